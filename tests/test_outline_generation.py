"""Tests for outline node drafting and its endpoint."""

import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from quillstream.core.auth import get_current_user, get_owned_novel
from quillstream.core.rate_limiter import SlidingWindowRateLimiter, get_rate_limiter
from quillstream.main import app
from quillstream.schemas.ai import UnifiedTextResult
from quillstream.schemas.generation import OutlineParent
from quillstream.services.ai_capabilities import ProviderName
from quillstream.services.ai_client import AIProviderError, get_provider_factory
from quillstream.services.credits import ConsumeResult, CreditCheck, get_credit_ledger
from quillstream.services.outline_generation import OutlineGenerator
from quillstream.services.pricing import CARD_TIERS
from quillstream.services.prompts import build_outline_system_prompt

USER_ID = uuid.uuid4()
NOVEL_ID = uuid.uuid4()
SAME_ORIGIN = {"Origin": "http://test"}

OUTLINE_JSON = (
    '{"titles": [{"name": "Ashes of the Sect", "meaning": "the fall"}],'
    ' "content": "Lin Feng returns to find the sect burned.",'
    ' "childSuggestions": ["The ruins", "A survivor"]}'
)


def _text_provider(content: str) -> MagicMock:
    provider = MagicMock()
    provider.name = ProviderName.GEMINI
    provider.capabilities.json_mode = True
    provider.generate = AsyncMock(return_value=UnifiedTextResult(content=content))
    return provider


def _factory(text_provider=None) -> MagicMock:
    factory = MagicMock()
    factory.text_provider.return_value = text_provider
    return factory


def _ledger(balance: int = 100) -> AsyncMock:
    ledger = AsyncMock()
    ledger.check_sufficient.side_effect = lambda user_id, amount: CreditCheck(
        sufficient=balance >= amount, balance=balance, required=amount
    )
    ledger.consume.side_effect = lambda user_id, amount, *args, **kwargs: ConsumeResult(
        success=True, balance=balance - amount
    )
    return ledger


class TestOutlinePrompt:
    def test_volume_includes_synopsis_and_children(self):
        prompt = build_outline_system_prompt(
            "volume", novel_title="Embers", novel_summary="A sect in ruins"
        )
        assert "\"Embers\"" in prompt
        assert "A sect in ruins" in prompt
        assert "childSuggestions" in prompt

    def test_plot_point_uses_parent_only(self):
        prompt = build_outline_system_prompt(
            "plot_point",
            novel_title="Embers",
            parent_type="chapter_outline",
            parent_title="The duel",
            parent_content="Lin Feng faces the elder",
        )
        assert "[Parent chapter outline]" in prompt
        assert "Lin Feng faces the elder" in prompt
        assert "Embers" not in prompt
        assert "childSuggestions" not in prompt


class TestOutlineGenerator:
    async def test_generate(self):
        provider = _text_provider(f"```json\n{OUTLINE_JSON}\n```")
        generator = OutlineGenerator(_factory(provider))

        outline = await generator.generate(
            node_type="chapter_outline",
            keywords="return to the burned sect",
            tier=CARD_TIERS["balanced"],
            parent=OutlineParent(type="volume", title="Volume One"),
        )

        assert outline.titles[0].name == "Ashes of the Sect"
        assert outline.child_suggestions == ["The ruins", "A survivor"]
        [request] = provider.generate.await_args.args
        assert request.model == "gemini-2.5-flash"
        assert request.json_mode is True
        assert "Volume One" in request.system_prompt

    async def test_reply_without_content_raises(self):
        generator = OutlineGenerator(
            _factory(_text_provider('{"titles": [{"name": "x"}], "content": "  "}'))
        )
        with pytest.raises(AIProviderError):
            await generator.generate(
                node_type="plot_point", keywords="ambush", tier=CARD_TIERS["fast"]
            )


@pytest.fixture
def signed_in():
    app.dependency_overrides[get_current_user] = lambda: SimpleNamespace(id=USER_ID)
    app.dependency_overrides[get_owned_novel] = lambda: SimpleNamespace(
        id=NOVEL_ID, title="Embers", summary="A sect in ruins"
    )
    limiter = SlidingWindowRateLimiter(in_memory=True)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter


class TestOutlineEndpoint:
    URL = f"/api/novels/{NOVEL_ID}/outline/generate"

    async def test_generates_and_charges_card_tier(self, client, signed_in):
        ledger = _ledger(100)
        app.dependency_overrides[get_credit_ledger] = lambda: ledger
        app.dependency_overrides[get_provider_factory] = lambda: _factory(
            _text_provider(OUTLINE_JSON)
        )

        response = await client.post(
            self.URL,
            json={"nodeType": "volume", "keywords": "the sect burns", "model": "pro"},
            headers=SAME_ORIGIN,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["nodeType"] == "volume"
        assert body["outline"]["titles"][0]["name"] == "Ashes of the Sect"
        assert body["outline"]["childSuggestions"] == ["The ruins", "A survivor"]
        assert body["creditsConsumed"] == 10
        assert body["balanceAfter"] == 90
        assert ledger.consume.await_args.args[:3] == (USER_ID, 10, "ai_outline")

    async def test_unusable_reply_refunds(self, client, signed_in):
        ledger = _ledger(100)
        app.dependency_overrides[get_credit_ledger] = lambda: ledger
        app.dependency_overrides[get_provider_factory] = lambda: _factory(
            _text_provider("I would rather not")
        )

        response = await client.post(
            self.URL,
            json={"nodeType": "plot_point", "keywords": "an ambush at dawn"},
            headers=SAME_ORIGIN,
        )

        assert response.status_code == 502
        ledger.refund.assert_awaited_once()
        assert ledger.refund.await_args.args[:3] == (USER_ID, 1, "ai_outline")

    async def test_unknown_node_type_is_400(self, client, signed_in):
        ledger = _ledger(100)
        app.dependency_overrides[get_credit_ledger] = lambda: ledger
        app.dependency_overrides[get_provider_factory] = lambda: _factory()

        response = await client.post(
            self.URL,
            json={"nodeType": "epilogue", "keywords": "after the war"},
            headers=SAME_ORIGIN,
        )

        assert response.status_code == 400
        ledger.consume.assert_not_awaited()
