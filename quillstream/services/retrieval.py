"""Client for the embedding retrieval service.

The vector index over cards and chapter summaries runs as a separate
service; this module only speaks its two search endpoints. Every failure
surfaces as ``RetrievalError`` so callers can fall back uniformly.
"""

import uuid

import httpx
from pydantic import ValidationError

from quillstream.config import settings
from quillstream.logging_config import get_logger
from quillstream.schemas.context import CardHit, SummaryHit

logger = get_logger(__name__)


class RetrievalError(Exception):
    """Semantic search could not be performed."""


class RetrievalClient:
    """Semantic search over a novel's cards and chapter summaries."""

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._http_client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _post(self, path: str, payload: dict) -> list[dict]:
        if not self._base_url:
            raise RetrievalError("Retrieval service URL is not configured")

        url = f"{self._base_url}{path}"
        try:
            if self._http_client is not None:
                resp = await self._http_client.post(url, headers=self._headers(), json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    resp = await client.post(url, headers=self._headers(), json=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Retrieval request failed", path=path, error=str(exc))
            raise RetrievalError(str(exc)) from exc

        results = body.get("results") if isinstance(body, dict) else None
        if not isinstance(results, list):
            raise RetrievalError("Malformed retrieval response")
        return results

    async def search_cards(
        self,
        novel_id: uuid.UUID,
        query: str,
        top_k: int = 8,
        threshold: float = 0.4,
    ) -> list[CardHit]:
        """Cards whose embedding is similar to ``query``, best first."""
        results = await self._post(
            "/search/cards",
            {
                "novel_id": str(novel_id),
                "query": query,
                "top_k": top_k,
                "threshold": threshold,
            },
        )
        try:
            return [CardHit.model_validate(item) for item in results]
        except ValidationError as exc:
            raise RetrievalError("Malformed card hit") from exc

    async def search_summaries(
        self,
        novel_id: uuid.UUID,
        query: str,
        top_k: int = 5,
        threshold: float = 0.4,
        before_chapter_id: uuid.UUID | None = None,
    ) -> list[SummaryHit]:
        """Chapter summaries similar to ``query``, best first."""
        payload = {
            "novel_id": str(novel_id),
            "query": query,
            "top_k": top_k,
            "threshold": threshold,
        }
        if before_chapter_id is not None:
            payload["before_chapter_id"] = str(before_chapter_id)

        results = await self._post("/search/summaries", payload)
        try:
            return [SummaryHit.model_validate(item) for item in results]
        except ValidationError as exc:
            raise RetrievalError("Malformed summary hit") from exc


def get_retrieval_client() -> RetrievalClient:
    return RetrievalClient(
        base_url=settings.retrieval_url,
        api_key=settings.retrieval_api_key,
        timeout=settings.retrieval_timeout_seconds,
    )
