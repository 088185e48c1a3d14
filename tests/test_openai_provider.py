"""Tests for the OpenAI adapters."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest

from quillstream.integrations.openai_client import OpenAIImageProvider, OpenAITextProvider
from quillstream.schemas.ai import (
    ContentChunk,
    DoneChunk,
    ImageGenerateRequest,
    ThinkingOptions,
    UnifiedGenerateRequest,
    UsageChunk,
)
from quillstream.services.ai_client import AIProviderError


async def _aiter(items):
    for item in items:
        yield item


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.images.generate = AsyncMock()
    return client


class TestOpenAIText:
    def test_build_options(self, openai_client):
        options = OpenAITextProvider(openai_client).build_options(
            UnifiedGenerateRequest(
                model="gpt-4o",
                user_prompt="go",
                max_tokens=500,
                temperature=0.4,
                json_mode=True,
                thinking=ThinkingOptions(enabled=True, budget=2000),
            )
        )
        assert options["response_format"] == {"type": "json_object"}
        assert options["max_tokens"] == 500
        assert options["temperature"] == 0.4
        assert "thinking" not in options

    async def test_generate(self, openai_client):
        openai_client.chat.completions.create.return_value = SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content="{}"), finish_reason="stop")],
            usage=SimpleNamespace(prompt_tokens=4, completion_tokens=1, total_tokens=5),
        )
        result = await OpenAITextProvider(openai_client).generate(
            UnifiedGenerateRequest(model="gpt-4o", user_prompt="go")
        )
        assert result.content == "{}"
        assert result.usage.input_tokens == 4

    async def test_auth_error_is_wrapped(self, openai_client):
        openai_client.chat.completions.create.side_effect = openai.AuthenticationError(
            message="invalid key",
            response=MagicMock(status_code=401),
            body=None,
        )
        with pytest.raises(AIProviderError) as exc_info:
            await OpenAITextProvider(openai_client).generate(
                UnifiedGenerateRequest(model="gpt-4o", user_prompt="go")
            )
        assert isinstance(exc_info.value.__cause__, openai.AuthenticationError)

    async def test_stream(self, openai_client):
        openai_client.chat.completions.create.return_value = _aiter(
            [
                SimpleNamespace(
                    choices=[SimpleNamespace(delta=SimpleNamespace(content="Hi"))], usage=None
                ),
                SimpleNamespace(
                    choices=[],
                    usage=SimpleNamespace(prompt_tokens=2, completion_tokens=1, total_tokens=3),
                ),
            ]
        )
        chunks = [
            chunk
            async for chunk in OpenAITextProvider(openai_client).generate_stream(
                UnifiedGenerateRequest(model="gpt-4o", user_prompt="go")
            )
        ]
        assert [type(c) for c in chunks] == [ContentChunk, UsageChunk, DoneChunk]


class TestDalle:
    async def test_generate_portrait(self, openai_client):
        openai_client.images.generate.return_value = SimpleNamespace(
            data=[SimpleNamespace(b64_json="aW1n")]
        )
        result = await OpenAIImageProvider(openai_client).generate(
            ImageGenerateRequest(prompt="a castle", aspect_ratio="3:4", size="2K")
        )
        params = openai_client.images.generate.call_args.kwargs
        assert params["model"] == "dall-e-3"
        assert params["size"] == "1024x1792"
        assert params["quality"] == "hd"
        assert (result.width, result.height) == (1024, 1792)

    async def test_empty_response_raises(self, openai_client):
        openai_client.images.generate.return_value = SimpleNamespace(data=[])
        with pytest.raises(AIProviderError):
            await OpenAIImageProvider(openai_client).generate(ImageGenerateRequest(prompt="x"))
