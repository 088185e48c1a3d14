"""Tests for the Gemini adapters."""

import base64
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from quillstream.integrations.gemini import GeminiImageProvider, GeminiTextProvider
from quillstream.schemas.ai import (
    ContentChunk,
    DoneChunk,
    ErrorChunk,
    ImageGenerateRequest,
    ThinkingChunk,
    ThinkingOptions,
    UnifiedGenerateRequest,
    UsageChunk,
)
from quillstream.services.ai_client import AIProviderError


def _part(text=None, thought=None, inline_data=None):
    return SimpleNamespace(text=text, thought=thought, inline_data=inline_data)


def _response(parts, usage=None, finish_reason=None):
    return SimpleNamespace(
        candidates=[
            SimpleNamespace(
                content=SimpleNamespace(parts=parts), finish_reason=finish_reason
            )
        ],
        usage_metadata=usage,
    )


def _usage(prompt=10, candidates=20, thoughts=None, cached=None, total=30):
    return SimpleNamespace(
        prompt_token_count=prompt,
        candidates_token_count=candidates,
        thoughts_token_count=thoughts,
        cached_content_token_count=cached,
        total_token_count=total,
    )


async def _aiter(items):
    for item in items:
        yield item


@pytest.fixture
def genai_client():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock()
    client.aio.models.generate_content_stream = AsyncMock()
    client.aio.models.generate_images = AsyncMock()
    return client


class TestBuildConfig:
    def test_thinking_on_gemini_25_uses_budget(self, genai_client):
        provider = GeminiTextProvider(genai_client)
        config = provider.build_config(
            UnifiedGenerateRequest(
                model="gemini-2.5-pro",
                user_prompt="x",
                system_prompt="sys",
                max_tokens=6000,
                thinking=ThinkingOptions(enabled=True, budget=2000, include_in_response=True),
            )
        )
        assert config["system_instruction"] == "sys"
        assert config["max_output_tokens"] == 6000
        assert config["temperature"] == 0.8
        assert config["thinking_config"] == {"thinking_budget": 2000, "include_thoughts": True}

    def test_budget_is_raised_to_minimum(self, genai_client):
        config = GeminiTextProvider(genai_client).build_config(
            UnifiedGenerateRequest(
                model="gemini-2.5-flash",
                user_prompt="x",
                thinking=ThinkingOptions(enabled=True, budget=10),
            )
        )
        assert config["thinking_config"]["thinking_budget"] == 128

    def test_thinking_on_gemini_3_uses_level(self, genai_client):
        config = GeminiTextProvider(genai_client).build_config(
            UnifiedGenerateRequest(
                model="gemini-3-pro-preview",
                user_prompt="x",
                thinking=ThinkingOptions(enabled=True),
            )
        )
        assert config["temperature"] == 1.0
        assert config["thinking_config"] == {"thinking_level": "HIGH", "include_thoughts": True}

    def test_disabled_thinking_is_minimised(self, genai_client):
        provider = GeminiTextProvider(genai_client)
        flash = provider.build_config(
            UnifiedGenerateRequest(
                model="gemini-2.5-flash",
                user_prompt="x",
                thinking=ThinkingOptions(enabled=False),
            )
        )
        gemini3 = provider.build_config(
            UnifiedGenerateRequest(model="gemini-3-pro-preview", user_prompt="x")
        )
        assert flash["thinking_config"] == {"thinking_budget": 128, "include_thoughts": False}
        assert gemini3["thinking_config"] == {"thinking_level": "LOW", "include_thoughts": False}

    def test_non_reasoning_model_has_no_thinking_config(self, genai_client):
        config = GeminiTextProvider(genai_client).build_config(
            UnifiedGenerateRequest(
                model="gemini-2.5-flash-lite",
                user_prompt="x",
                thinking=ThinkingOptions(enabled=True),
            )
        )
        assert "thinking_config" not in config

    def test_json_mode_and_overrides(self, genai_client):
        config = GeminiTextProvider(genai_client).build_config(
            UnifiedGenerateRequest(
                model="gemini-2.5-flash-lite",
                user_prompt="x",
                json_mode=True,
                temperature=0.2,
                native_overrides={"temperature": 0.5, "top_k": 4},
            )
        )
        assert config["response_mime_type"] == "application/json"
        assert config["temperature"] == 0.5
        assert config["top_k"] == 4


class TestGeminiText:
    async def test_generate_splits_thoughts(self, genai_client):
        genai_client.aio.models.generate_content.return_value = _response(
            [_part("planning", thought=True), _part("Chapter one.")],
            usage=_usage(thoughts=7),
            finish_reason=SimpleNamespace(value="STOP"),
        )
        result = await GeminiTextProvider(genai_client).generate(
            UnifiedGenerateRequest(model="gemini-2.5-flash", user_prompt="go")
        )
        assert result.content == "Chapter one."
        assert result.thinking == "planning"
        assert result.usage.thinking_tokens == 7
        assert result.finish_reason == "STOP"

    async def test_generate_wraps_sdk_errors(self, genai_client):
        genai_client.aio.models.generate_content.side_effect = RuntimeError("quota")
        with pytest.raises(AIProviderError, match="quota"):
            await GeminiTextProvider(genai_client).generate(
                UnifiedGenerateRequest(model="gemini-2.5-flash", user_prompt="go")
            )

    async def test_stream_emits_unified_chunks(self, genai_client):
        genai_client.aio.models.generate_content_stream.return_value = _aiter(
            [
                _response([_part("thinking...", thought=True)]),
                _response([_part("Hello")]),
                _response([_part(" world")], usage=_usage(10, 2, thoughts=5, total=17)),
            ]
        )
        chunks = [
            chunk
            async for chunk in GeminiTextProvider(genai_client).generate_stream(
                UnifiedGenerateRequest(model="gemini-2.5-flash", user_prompt="go")
            )
        ]

        assert [type(c) for c in chunks] == [
            ThinkingChunk,
            ContentChunk,
            ContentChunk,
            UsageChunk,
            DoneChunk,
        ]
        usage = chunks[3].usage
        assert usage.input_tokens == 10
        assert usage.thinking_tokens == 5
        assert usage.total_tokens == 17

    async def test_stream_start_failure_becomes_error_chunk(self, genai_client):
        genai_client.aio.models.generate_content_stream.side_effect = RuntimeError("503")
        chunks = [
            chunk
            async for chunk in GeminiTextProvider(genai_client).generate_stream(
                UnifiedGenerateRequest(model="gemini-2.5-flash", user_prompt="go")
            )
        ]
        assert len(chunks) == 1
        assert isinstance(chunks[0], ErrorChunk)


class TestGeminiImage:
    async def test_native_image_model(self, genai_client):
        genai_client.aio.models.generate_content.return_value = _response(
            [
                _part("here you go"),
                _part(inline_data=SimpleNamespace(data=b"PNGDATA", mime_type="image/png")),
            ]
        )
        result = await GeminiImageProvider(genai_client).generate(
            ImageGenerateRequest(prompt="a castle", aspect_ratio="3:4", size="2K")
        )

        assert base64.b64decode(result.image_base64) == b"PNGDATA"
        assert result.mime_type == "image/png"
        call = genai_client.aio.models.generate_content.call_args.kwargs
        assert call["model"] == "gemini-3-pro-image-preview"
        assert call["config"]["image_config"] == {"aspect_ratio": "3:4", "image_size": "2K"}

    async def test_imagen_model(self, genai_client):
        genai_client.aio.models.generate_images.return_value = SimpleNamespace(
            generated_images=[
                SimpleNamespace(
                    image=SimpleNamespace(image_bytes=b"JPG", mime_type="image/jpeg")
                )
            ]
        )
        result = await GeminiImageProvider(genai_client).generate(
            ImageGenerateRequest(prompt="a castle", model="imagen-3.0-generate-002")
        )
        assert result.mime_type == "image/jpeg"
        assert genai_client.aio.models.generate_images.call_args.kwargs["config"][
            "aspect_ratio"
        ] == "1:1"

    async def test_missing_image_data_raises(self, genai_client):
        genai_client.aio.models.generate_content.return_value = _response([_part("sorry")])
        with pytest.raises(AIProviderError, match="no image"):
            await GeminiImageProvider(genai_client).generate(
                ImageGenerateRequest(prompt="a castle")
            )
