"""Passage rewriting.

Long passages are cut into blocks at paragraph boundaries and each block is
rewritten by its own model call. A block whose call fails keeps its
original text; the rewrite as a whole fails only when no block succeeded.
"""

import asyncio
from dataclasses import dataclass

from quillstream.logging_config import get_logger
from quillstream.schemas.ai import UnifiedGenerateRequest
from quillstream.services.ai_capabilities import ProviderName
from quillstream.services.ai_client import AIProviderError, ProviderFactory
from quillstream.services.prompts import REWRITE_SYSTEM_PROMPT, build_rewrite_prompt

logger = get_logger(__name__)

BLOCK_SEPARATOR = "\n\n"


def split_passage(text: str, target_size: int) -> list[str]:
    """Group paragraphs into blocks of roughly ``target_size`` characters.

    A block is closed before the paragraph that would push it past the
    target, so a single oversized paragraph becomes a block of its own.
    """
    blocks: list[str] = []
    current = ""
    for paragraph in (p.strip() for p in text.splitlines()):
        if not paragraph:
            continue
        if current and len(current) + len(paragraph) > target_size:
            blocks.append(current)
            current = paragraph
        else:
            current = f"{current}{BLOCK_SEPARATOR}{paragraph}" if current else paragraph
    if current:
        blocks.append(current)
    return blocks


@dataclass(frozen=True)
class RewriteOutcome:
    text: str
    block_count: int
    rewritten_blocks: int


class PassageRewriter:
    """Rewrites a passage block by block through one text backend."""

    def __init__(
        self,
        providers: ProviderFactory,
        *,
        block_chars: int = 650,
        concurrency: int = 4,
    ) -> None:
        self._providers = providers
        self.block_chars = block_chars
        self.concurrency = concurrency

    async def rewrite(self, text: str, model: str | None = None) -> RewriteOutcome:
        """Rewrite ``text``.

        ``model`` is a model id or a backend name; a bare backend name runs
        that backend's default text model.

        Raises:
            AIProviderError: Every block failed.
        """
        provider = self._providers.text_provider(model)
        if model in {name.value for name in ProviderName}:
            model = None
        blocks = split_passage(text, self.block_chars)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def rewrite_block(index: int, block: str) -> str | None:
            request = UnifiedGenerateRequest(
                model=model,
                system_prompt=REWRITE_SYSTEM_PROMPT,
                user_prompt=build_rewrite_prompt(block),
                max_tokens=len(block) * 3,
            )
            async with semaphore:
                try:
                    result = await provider.generate(request)
                except AIProviderError as e:
                    logger.warning(
                        "Rewrite block failed, keeping original",
                        provider=provider.name.value,
                        block=index,
                        error=e.message,
                    )
                    return None
            return result.content.strip() or None

        rewritten = await asyncio.gather(
            *(rewrite_block(index, block) for index, block in enumerate(blocks))
        )
        succeeded = sum(1 for block in rewritten if block is not None)
        if blocks and not succeeded:
            raise AIProviderError(provider.name, "No block of the passage could be rewritten")

        output = BLOCK_SEPARATOR.join(
            new if new is not None else old for old, new in zip(blocks, rewritten)
        )
        logger.info(
            "Passage rewritten",
            provider=provider.name.value,
            blocks=len(blocks),
            rewritten_blocks=succeeded,
            original_length=len(text),
            rewritten_length=len(output),
        )
        return RewriteOutcome(
            text=output, block_count=len(blocks), rewritten_blocks=succeeded
        )
