"""Provider abstraction layer.

Abstract base classes for text and image backends, the errors they raise,
and the factory that hands out one cached adapter per backend. Callers
depend only on ``BaseTextProvider`` / ``BaseImageProvider`` and the unified
types in ``quillstream.schemas.ai``.
"""

import abc
import time
from collections.abc import AsyncIterator
from dataclasses import dataclass

import anthropic
import httpx
import openai
from google import genai

from quillstream.config import Settings, settings
from quillstream.logging_config import get_logger
from quillstream.schemas.ai import (
    ContentChunk,
    DoneChunk,
    ErrorChunk,
    ImageGenerateRequest,
    StreamChunk,
    ThinkingChunk,
    TokenUsage,
    UnifiedGenerateRequest,
    UnifiedImageResult,
    UnifiedTextResult,
    UsageChunk,
)
from quillstream.services.ai_capabilities import (
    ProviderCapabilities,
    ProviderName,
    capabilities_of,
    infer_provider,
)

logger = get_logger(__name__)


class AIProviderError(Exception):
    """A backend call failed."""

    def __init__(self, provider: ProviderName | str, message: str) -> None:
        super().__init__(message)
        self.provider = ProviderName(provider)
        self.message = message


class ProviderNotConfiguredError(AIProviderError):
    """No credentials/client are configured for the requested backend."""


class CapabilityNotSupportedError(AIProviderError):
    """The backend does not offer the requested capability."""


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


class BaseTextProvider(abc.ABC):
    """Abstract base class for text backends.

    Subclasses implement ``_generate`` (single shot) and ``_stream`` (raw
    streaming parts). ``_stream`` yields ``ContentChunk`` / ``ThinkingChunk``
    values plus ``TokenUsage`` snapshots whenever the backend reports usage;
    the base class turns that into the public chunk sequence.
    """

    name: ProviderName

    @property
    def capabilities(self) -> ProviderCapabilities:
        return capabilities_of(self.name)

    def resolve_model(self, request: UnifiedGenerateRequest) -> UnifiedGenerateRequest:
        if request.model:
            return request
        return request.model_copy(update={"model": self.capabilities.default_text_model})

    @abc.abstractmethod
    async def _generate(self, request: UnifiedGenerateRequest) -> UnifiedTextResult:
        """Run one non-streaming generation against the backend."""

    @abc.abstractmethod
    def _stream(
        self, request: UnifiedGenerateRequest
    ) -> AsyncIterator[ContentChunk | ThinkingChunk | TokenUsage]:
        """Yield raw streaming parts from the backend."""

    async def generate(self, request: UnifiedGenerateRequest) -> UnifiedTextResult:
        """Generate a complete response.

        Raises:
            AIProviderError: The backend call failed.
        """
        request = self.resolve_model(request)
        started = time.perf_counter()
        logger.info(
            "AI request started",
            provider=self.name.value,
            model=request.model,
            json_mode=request.json_mode,
            thinking=request.thinking_enabled,
        )
        try:
            result = await self._generate(request)
        except AIProviderError:
            raise
        except Exception as e:
            logger.error(
                "AI request failed",
                provider=self.name.value,
                model=request.model,
                error=_describe(e),
            )
            raise AIProviderError(self.name, _describe(e)) from e

        logger.info(
            "AI request completed",
            provider=self.name.value,
            model=request.model,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            content_length=len(result.content),
            usage=result.usage.model_dump() if result.usage else None,
        )
        return result

    async def generate_stream(
        self, request: UnifiedGenerateRequest
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response as unified chunks.

        Content and thinking chunks arrive in backend order, followed by
        at most one usage chunk and then exactly one ``done``. A failure at
        any point yields a single ``error`` chunk instead and ends the stream.
        """
        request = self.resolve_model(request)
        started = time.perf_counter()
        usage: TokenUsage | None = None
        content_length = 0
        thinking_length = 0

        logger.info(
            "AI stream started",
            provider=self.name.value,
            model=request.model,
            thinking=request.thinking_enabled,
        )

        try:
            async for part in self._stream(request):
                if isinstance(part, TokenUsage):
                    usage = part
                    continue
                if not part.text:
                    continue
                if isinstance(part, ThinkingChunk):
                    thinking_length += len(part.text)
                else:
                    content_length += len(part.text)
                yield part
        except Exception as e:
            logger.error(
                "AI stream failed",
                provider=self.name.value,
                model=request.model,
                error=_describe(e),
                content_length=content_length,
            )
            yield ErrorChunk(message=_describe(e))
            return

        logger.info(
            "AI stream completed",
            provider=self.name.value,
            model=request.model,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            content_length=content_length,
            thinking_length=thinking_length,
            usage=usage.model_dump() if usage else None,
        )
        if usage is not None:
            yield UsageChunk(usage=usage)
        yield DoneChunk()


class BaseImageProvider(abc.ABC):
    """Abstract base class for image backends."""

    name: ProviderName

    @property
    def capabilities(self) -> ProviderCapabilities:
        return capabilities_of(self.name)

    def resolve_model(self, request: ImageGenerateRequest) -> str:
        return request.model or self.capabilities.default_image_model or ""

    @abc.abstractmethod
    async def _generate(
        self, request: ImageGenerateRequest, model: str
    ) -> UnifiedImageResult:
        """Generate one image with the backend."""

    async def generate(self, request: ImageGenerateRequest) -> UnifiedImageResult:
        """Generate one image.

        Raises:
            AIProviderError: The backend call failed or returned no image.
        """
        model = self.resolve_model(request)
        started = time.perf_counter()
        logger.info(
            "AI image request started",
            provider=self.name.value,
            model=model,
            aspect_ratio=request.aspect_ratio,
            size=request.size,
        )
        try:
            result = await self._generate(request, model)
        except AIProviderError:
            raise
        except Exception as e:
            logger.error(
                "AI image request failed",
                provider=self.name.value,
                model=model,
                error=_describe(e),
            )
            raise AIProviderError(self.name, _describe(e)) from e

        logger.info(
            "AI image request completed",
            provider=self.name.value,
            model=model,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            width=result.width,
            height=result.height,
        )
        return result


@dataclass
class ProviderClients:
    """SDK clients, one per backend; None when the backend is not configured."""

    gemini: genai.Client | None = None
    volcengine: openai.AsyncOpenAI | None = None
    volcengine_http: httpx.AsyncClient | None = None
    openai_client: openai.AsyncOpenAI | None = None
    anthropic_client: anthropic.AsyncAnthropic | None = None

    async def aclose(self) -> None:
        if self.volcengine_http is not None:
            await self.volcengine_http.aclose()
        for client in (self.volcengine, self.openai_client, self.anthropic_client):
            if client is not None:
                await client.close()


def build_provider_clients(config: Settings) -> ProviderClients:
    """Create SDK clients for every backend that has credentials configured."""
    clients = ProviderClients()
    timeout = config.ai_request_timeout_seconds

    if config.gemini_use_vertex and config.google_cloud_project:
        clients.gemini = genai.Client(
            vertexai=True,
            project=config.google_cloud_project,
            location=config.google_cloud_location,
        )
    elif config.gemini_api_key:
        clients.gemini = genai.Client(api_key=config.gemini_api_key)

    if config.volc_ark_api_key:
        clients.volcengine = openai.AsyncOpenAI(
            api_key=config.volc_ark_api_key,
            base_url=config.volc_ark_base_url,
            timeout=timeout,
        )
        clients.volcengine_http = httpx.AsyncClient(
            base_url=config.volc_ark_base_url,
            headers={"Authorization": f"Bearer {config.volc_ark_api_key}"},
            timeout=timeout,
        )

    if config.openai_api_key:
        clients.openai_client = openai.AsyncOpenAI(
            api_key=config.openai_api_key,
            base_url=config.openai_base_url,
            timeout=timeout,
        )

    if config.anthropic_api_key:
        clients.anthropic_client = anthropic.AsyncAnthropic(
            api_key=config.anthropic_api_key,
            timeout=timeout,
        )

    return clients


class ProviderFactory:
    """Hands out cached text and image adapters.

    Backends are selected by explicit name, by model id (through
    ``infer_provider``), or by the configured defaults. Adapters are created
    on first use and reused for the life of the factory.
    """

    def __init__(
        self,
        clients: ProviderClients,
        *,
        default_text_provider: ProviderName | str = ProviderName.GEMINI,
        default_image_provider: ProviderName | str = ProviderName.GEMINI,
    ) -> None:
        self._clients = clients
        self._default_text = ProviderName(default_text_provider)
        self._default_image = ProviderName(default_image_provider)
        self._text_providers: dict[ProviderName, BaseTextProvider] = {}
        self._image_providers: dict[ProviderName, BaseImageProvider] = {}

    @staticmethod
    def resolve(name_or_model: str | None, default: ProviderName) -> ProviderName:
        """Map a provider name, a model id, or nothing to a backend."""
        if not name_or_model:
            return default
        try:
            return ProviderName(name_or_model)
        except ValueError:
            return infer_provider(name_or_model, default=default)

    def available_providers(self) -> list[ProviderName]:
        """Backends whose SDK client is configured."""
        configured = {
            ProviderName.GEMINI: self._clients.gemini,
            ProviderName.VOLCENGINE: self._clients.volcengine,
            ProviderName.OPENAI: self._clients.openai_client,
            ProviderName.CLAUDE: self._clients.anthropic_client,
        }
        return [name for name, client in configured.items() if client is not None]

    def text_provider(self, name_or_model: str | None = None) -> BaseTextProvider:
        """Return the text adapter for a backend name or model id.

        Raises:
            ProviderNotConfiguredError: The backend has no configured client.
        """
        name = self.resolve(name_or_model, self._default_text)
        provider = self._text_providers.get(name)
        if provider is None:
            provider = self._build_text_provider(name)
            self._text_providers[name] = provider
        return provider

    def image_provider(self, name_or_model: str | None = None) -> BaseImageProvider:
        """Return the image adapter for a backend name or model id.

        Raises:
            CapabilityNotSupportedError: The backend cannot generate images.
            ProviderNotConfiguredError: The backend has no configured client.
        """
        name = self.resolve(name_or_model, self._default_image)
        if not capabilities_of(name).image:
            raise CapabilityNotSupportedError(
                name, f"Provider {name.value} does not support image generation"
            )
        provider = self._image_providers.get(name)
        if provider is None:
            provider = self._build_image_provider(name)
            self._image_providers[name] = provider
        return provider

    def _require(self, name: ProviderName, client):
        if client is None:
            raise ProviderNotConfiguredError(
                name, f"Provider {name.value} is not configured"
            )
        return client

    def _build_text_provider(self, name: ProviderName) -> BaseTextProvider:
        from quillstream.integrations.claude import ClaudeTextProvider
        from quillstream.integrations.gemini import GeminiTextProvider
        from quillstream.integrations.openai_client import OpenAITextProvider
        from quillstream.integrations.volcengine import VolcengineTextProvider

        if name == ProviderName.GEMINI:
            return GeminiTextProvider(self._require(name, self._clients.gemini))
        if name == ProviderName.VOLCENGINE:
            return VolcengineTextProvider(self._require(name, self._clients.volcengine))
        if name == ProviderName.OPENAI:
            return OpenAITextProvider(self._require(name, self._clients.openai_client))
        return ClaudeTextProvider(self._require(name, self._clients.anthropic_client))

    def _build_image_provider(self, name: ProviderName) -> BaseImageProvider:
        from quillstream.integrations.gemini import GeminiImageProvider
        from quillstream.integrations.openai_client import OpenAIImageProvider
        from quillstream.integrations.volcengine import VolcengineImageProvider

        if name == ProviderName.GEMINI:
            return GeminiImageProvider(self._require(name, self._clients.gemini))
        if name == ProviderName.VOLCENGINE:
            return VolcengineImageProvider(
                self._require(name, self._clients.volcengine_http)
            )
        return OpenAIImageProvider(self._require(name, self._clients.openai_client))

    async def aclose(self) -> None:
        await self._clients.aclose()


_factory: ProviderFactory | None = None


def get_provider_factory() -> ProviderFactory:
    """Process-wide factory built from settings (FastAPI dependency)."""
    global _factory
    if _factory is None:
        _factory = ProviderFactory(
            build_provider_clients(settings),
            default_text_provider=settings.ai_default_text_provider,
            default_image_provider=settings.ai_default_image_provider,
        )
    return _factory


async def close_provider_factory() -> None:
    global _factory
    if _factory is not None:
        await _factory.aclose()
        _factory = None
