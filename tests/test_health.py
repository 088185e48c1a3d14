"""Tests for health, model catalogue, and usage endpoints."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

from quillstream.core.auth import get_current_user
from quillstream.main import app
from quillstream.schemas.ai import TokenUsage
from quillstream.services.generation_log import (
    GenerationRecordData,
    GenerationRecorder,
    get_generation_recorder,
)


class TestHealthEndpoint:
    async def test_healthy_with_db_connected(self, client):
        with patch(
            "quillstream.routers.health.check_database_connection",
            new_callable=AsyncMock,
        ) as mock_db:
            mock_db.return_value = True
            response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "database": "connected"}

    async def test_degraded_when_db_disconnected(self, client):
        with patch(
            "quillstream.routers.health.check_database_connection",
            new_callable=AsyncMock,
        ) as mock_db:
            mock_db.return_value = False
            response = await client.get("/health")

        assert response.status_code == 503
        assert response.json() == {"status": "degraded", "database": "disconnected"}

    async def test_liveness(self, client):
        response = await client.get("/health/live")
        assert response.status_code == 200
        assert response.json() == {"status": "alive"}

    async def test_correlation_id_is_echoed(self, client):
        response = await client.get("/health/live", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["x-correlation-id"] == "abc-123"

    async def test_overlong_correlation_id_replaced(self, client):
        response = await client.get("/health/live", headers={"X-Correlation-ID": "x" * 200})
        assert response.headers["x-correlation-id"] != "x" * 200
        assert uuid.UUID(response.headers["x-correlation-id"])


class TestAvailableModels:
    async def test_lists_tiers(self, client):
        response = await client.get("/api/models/available")

        assert response.status_code == 200
        body = response.json()
        assert body["defaultTextModel"] == "balanced"
        assert body["defaultCardModel"] == "fast"
        text_ids = [m["id"] for m in body["textModels"]]
        assert text_ids[0] == "fast"
        assert "master" in text_ids
        thinking = {m["id"]: m["thinking"] for m in body["textModels"]}
        assert thinking["master"] is True
        assert thinking["pro"] is False
        assert [m["credits"] for m in body["cardModels"]] == [1, 3, 10]


class TestTokenUsage:
    async def test_requires_authentication(self, client):
        response = await client.get("/api/user/token-usage")
        assert response.status_code == 401

    async def test_sums_recorded_generations(self, client, session_maker, make_user):
        user = await make_user()
        recorder = GenerationRecorder(session_maker)
        for total in (650, 350):
            assert await recorder.record(
                GenerationRecordData(
                    user_id=user.id,
                    novel_id=None,
                    tier="balanced",
                    model="gemini-2.5-flash",
                    provider="gemini",
                    thinking_enabled=False,
                    credits_consumed=24,
                    chapter_plot="plot",
                    usage=TokenUsage(input_tokens=200, output_tokens=100, total_tokens=total),
                    generated_content="text",
                )
            )
        app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=user.id)
        app.dependency_overrides[get_generation_recorder] = lambda: recorder

        response = await client.get("/api/user/token-usage")

        assert response.status_code == 200
        assert response.json() == {
            "generationCount": 2,
            "inputTokens": 400,
            "outputTokens": 200,
            "thinkingTokens": 0,
            "totalTokens": 1000,
            "creditsConsumed": 48,
        }
