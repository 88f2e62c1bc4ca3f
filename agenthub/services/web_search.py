"""
Web Search Service — Brave Search API client used to ground new agents.

Requests are spaced at least `search_min_interval_seconds` apart (the
free Brave tier allows about one per second). Search is auxiliary: a
missing key, an HTTP error or a timeout yields an empty result, never an
exception.

Usage:
    from agenthub.services.web_search import get_web_search_service

    search = get_web_search_service()
    response = await search.search_with_timeout("sourdough starter", count=5)
    context = format_search_results(response)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import httpx

from agenthub.agent.ai_errors import log_ai_error
from agenthub.config import settings

logger = logging.getLogger(__name__)

FRESHNESS_VALUES = ("pd", "pw", "pm", "py")  # past day / week / month / year


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str
    published_date: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {"title": self.title, "url": self.url, "snippet": self.snippet}
        if self.published_date:
            data["publishedDate"] = self.published_date
        return data


@dataclass
class SearchResponse:
    query: str
    results: List[SearchResult] = field(default_factory=list)

    @property
    def total_results(self) -> int:
        return len(self.results)


class WebSearchService:
    """Brave Search client with a minimum interval between requests."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        min_interval: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.api_key = api_key or settings.brave_api_key
        self.min_interval = settings.search_min_interval_seconds if min_interval is None else min_interval
        self._transport = transport
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_request_at: Optional[float] = None

    async def _wait_for_slot(self) -> None:
        async with self._lock:
            if self._last_request_at is not None:
                elapsed = self._clock() - self._last_request_at
                if elapsed < self.min_interval:
                    wait = self.min_interval - elapsed
                    logger.debug("[SEARCH] Rate floor: waiting %.2fs", wait)
                    await asyncio.sleep(wait)
            self._last_request_at = self._clock()

    async def search(
        self,
        query: str,
        count: int = 5,
        api_key: Optional[str] = None,
        freshness: Optional[str] = None,
    ) -> SearchResponse:
        """Search the web. Returns an empty response on any failure."""
        key = api_key or self.api_key
        if not key:
            logger.warning("[SEARCH] No Brave Search API key, returning empty results")
            return SearchResponse(query=query)

        params = {
            "q": query,
            "count": count,
            "text_decorations": "false",
            "search_lang": "en",
        }
        if freshness in FRESHNESS_VALUES:
            params["freshness"] = freshness

        try:
            await self._wait_for_slot()
            async with httpx.AsyncClient(timeout=15, transport=self._transport) as client:
                resp = await client.get(
                    settings.brave_search_url,
                    params=params,
                    headers={
                        "Accept": "application/json",
                        "Accept-Encoding": "gzip",
                        "X-Subscription-Token": key,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            log_ai_error(e, "web-search")
            return SearchResponse(query=query)

        results = [
            SearchResult(
                title=r.get("title", ""),
                url=r.get("url", ""),
                snippet=r.get("description", ""),
                published_date=r.get("age"),
            )
            for r in (data.get("web") or {}).get("results", [])
        ]
        logger.info("[SEARCH] %d results for %r", len(results), query)
        return SearchResponse(query=query, results=results)

    async def search_with_timeout(
        self,
        query: str,
        count: int = 5,
        api_key: Optional[str] = None,
        freshness: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> SearchResponse:
        """search() bounded by a hard timeout; an expired search is empty."""
        timeout = settings.search_timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(
                self.search(query, count=count, api_key=api_key, freshness=freshness),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("[SEARCH] Timed out after %.1fs for %r", timeout, query)
            return SearchResponse(query=query)


def format_search_results(response: SearchResponse) -> str:
    """Render results as plain text for a model prompt."""
    if not response.results:
        return "No web search results available."

    lines = [f'Web Search Results for "{response.query}":', ""]
    for i, result in enumerate(response.results, 1):
        lines.append(f"{i}. {result.title}")
        lines.append(f"   URL: {result.url}")
        lines.append(f"   {result.snippet}")
        if result.published_date:
            lines.append(f"   Published: {result.published_date}")
        lines.append("")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Singleton
# ---------------------------------------------------------------------------
_web_search_service: Optional[WebSearchService] = None


def get_web_search_service() -> WebSearchService:
    global _web_search_service
    if _web_search_service is None:
        _web_search_service = WebSearchService()
    return _web_search_service
