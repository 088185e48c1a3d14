"""Tests for the chapter generation HTTP endpoint."""

import json
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from quillstream.core.auth import get_current_user, get_owned_novel
from quillstream.core.rate_limiter import RateLimitResult, SlidingWindowRateLimiter
from quillstream.database import get_db
from quillstream.main import app
from quillstream.routers.generation import get_chapter_orchestrator
from quillstream.schemas.ai import ContentChunk, TokenUsage
from quillstream.schemas.context import ContextBundle
from quillstream.services.ai_capabilities import ProviderName
from quillstream.services.ai_client import BaseTextProvider
from quillstream.services.credits import ConsumeResult, CreditCheck
from quillstream.services.generation import ChapterGenerationOrchestrator
from quillstream.services.pricing import PricingTable, TextModelTier

USER_ID = uuid.uuid4()
NOVEL_ID = uuid.uuid4()
URL = f"/api/novels/{NOVEL_ID}/chapters/generate"
SAME_ORIGIN = {"Origin": "http://test"}
BODY = {"chapterPlot": "Lin Feng returns to the burned village.", "wordCount": 1000}


class CannedProvider(BaseTextProvider):
    name = ProviderName.GEMINI

    async def _generate(self, request):
        raise NotImplementedError

    async def _stream(self, request):
        yield ContentChunk(text="Ash covered ")
        yield ContentChunk(text="the road.")
        yield TokenUsage(input_tokens=300, output_tokens=20)


def _ledger(balance: int) -> AsyncMock:
    ledger = AsyncMock()
    ledger.check_sufficient.side_effect = lambda user_id, amount: CreditCheck(
        sufficient=balance >= amount, balance=balance, required=amount
    )
    ledger.consume.side_effect = lambda user_id, amount, *args, **kwargs: ConsumeResult(
        success=True, balance=balance - amount
    )
    return ledger


def _orchestrator(*, ledger=None, rate_limiter=None, pricing=None):
    providers = MagicMock()
    providers.text_provider.return_value = CannedProvider()
    assembler = AsyncMock()
    assembler.assemble.return_value = ContextBundle()
    return ChapterGenerationOrchestrator(
        ledger=ledger or _ledger(100),
        assembler=assembler,
        providers=providers,
        recorder=AsyncMock(),
        rate_limiter=rate_limiter or SlidingWindowRateLimiter(in_memory=True),
        pricing=pricing or PricingTable(),
    )


@pytest.fixture
def signed_in():
    """Authenticate as a fixed user who owns the target novel."""
    app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=USER_ID)
    app.dependency_overrides[get_owned_novel] = lambda: SimpleNamespace(
        id=NOVEL_ID, title="Embers"
    )


def _use(orchestrator: ChapterGenerationOrchestrator) -> ChapterGenerationOrchestrator:
    app.dependency_overrides[get_chapter_orchestrator] = lambda: orchestrator
    return orchestrator


def _events(text: str) -> list[dict]:
    return [
        json.loads(frame[len("data: "):])
        for frame in text.split("\n\n")
        if frame.startswith("data: ")
    ]


class TestChapterGenerationEndpoint:
    async def test_requires_authentication(self, client):
        _use(_orchestrator())
        response = await client.post(URL, json=BODY, headers=SAME_ORIGIN)
        assert response.status_code == 401

    async def test_foreign_novel_is_not_found(self, client, session_maker):
        app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=USER_ID)

        async def _db():
            async with session_maker() as session:
                yield session

        app.dependency_overrides[get_db] = _db
        _use(_orchestrator())

        response = await client.post(URL, json=BODY, headers=SAME_ORIGIN)

        assert response.status_code == 404
        assert response.json()["detail"] == "Novel not found"

    async def test_rejects_cross_origin(self, client, signed_in):
        ledger = _ledger(100)
        _use(_orchestrator(ledger=ledger))

        response = await client.post(
            URL, json=BODY, headers={"Origin": "https://evil.example"}
        )

        assert response.status_code == 403
        assert response.json()["detail"] == "Invalid request origin"
        ledger.consume.assert_not_awaited()

    async def test_missing_origin_rejected(self, client, signed_in):
        _use(_orchestrator())
        response = await client.post(URL, json=BODY)
        assert response.status_code == 403

    async def test_invalid_body_is_400(self, client, signed_in):
        _use(_orchestrator())

        response = await client.post(
            URL, json={"chapterPlot": "", "wordCount": 99999}, headers=SAME_ORIGIN
        )

        assert response.status_code == 400
        locations = [error["loc"] for error in response.json()["detail"]]
        assert ["chapterPlot"] in locations
        assert ["wordCount"] in locations

    async def test_malformed_json_is_400(self, client, signed_in):
        _use(_orchestrator())

        response = await client.post(
            URL,
            content=b"{not json",
            headers={**SAME_ORIGIN, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Request body must be valid JSON"

    async def test_rate_limited_is_429(self, client, signed_in):
        rate_limiter = MagicMock()
        rate_limiter.hit = AsyncMock(
            return_value=RateLimitResult(success=False, remaining=0, reset_in=42)
        )
        ledger = _ledger(100)
        _use(_orchestrator(ledger=ledger, rate_limiter=rate_limiter))

        response = await client.post(URL, json=BODY, headers=SAME_ORIGIN)

        assert response.status_code == 429
        assert response.headers["retry-after"] == "42"
        assert response.json()["detail"]["retry_after"] == 42
        ledger.check_sufficient.assert_not_awaited()

    async def test_insufficient_credits_is_402(self, client, signed_in):
        pricing = PricingTable(
            text_tiers={
                "balanced": TextModelTier(
                    "balanced", "Balanced", "gemini-2.5-flash", 50, False, 0.60
                )
            }
        )
        ledger = _ledger(30)
        _use(_orchestrator(ledger=ledger, pricing=pricing))

        response = await client.post(URL, json=BODY, headers=SAME_ORIGIN)

        assert response.status_code == 402
        detail = response.json()["detail"]
        assert detail["required"] == 50
        assert detail["balance"] == 30
        ledger.consume.assert_not_awaited()

    async def test_unexpected_prepare_failure_is_500(self, client, signed_in):
        ledger = _ledger(100)
        ledger.check_sufficient.side_effect = RuntimeError("database unreachable")
        _use(_orchestrator(ledger=ledger))

        response = await client.post(URL, json=BODY, headers=SAME_ORIGIN)

        assert response.status_code == 500
        assert response.json()["detail"] == "Failed to start generation"

    async def test_streams_events(self, client, signed_in):
        _use(_orchestrator(ledger=_ledger(100)))

        response = await client.post(URL, json=BODY, headers=SAME_ORIGIN)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache, no-store, must-revalidate"
        events = _events(response.text)
        assert [e["type"] for e in events] == [
            "credit",
            "content",
            "content",
            "usage",
            "done",
        ]
        assert events[0] == {"type": "credit", "credits": 24, "balance": 76}
        assert "".join(e["text"] for e in events if e["type"] == "content") == (
            "Ash covered the road."
        )
        assert events[3]["usage"]["totalTokenCount"] == 320
        assert response.headers["x-correlation-id"]
