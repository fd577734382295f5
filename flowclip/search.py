"""Web search collaborators used by the research workflow."""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

import requests

from .config import FlowClipConfig
from .errors import ExternalCallError
from .models import SearchResult

logger = logging.getLogger(__name__)

USER_AGENT = "FlowClip/1.0 Research Assistant"
SERPAPI_URL = "https://serpapi.com/search.json"
DUCKDUCKGO_URL = "https://api.duckduckgo.com/"
REQUEST_TIMEOUT = 15
MAX_RESULTS = 5


class WebSearch(Protocol):
    async def search(self, query: str) -> List[SearchResult]:  # pragma: no cover - protocol
        ...


def _today() -> str:
    return date.today().isoformat()


class _HttpSearch:
    """Runs blocking ``requests`` calls on a worker thread."""

    def __init__(self, session: Optional[requests.Session] = None, *, timeout: float = REQUEST_TIMEOUT) -> None:
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout

    async def search(self, query: str) -> List[SearchResult]:
        return await asyncio.to_thread(self._search_sync, query)

    def _get_json(self, url: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise ExternalCallError(f"search request failed: {exc}") from exc
        if not response.ok:
            logger.warning("Search API returned HTTP %s for %s", response.status_code, params.get("q"))
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ExternalCallError(f"search response was not JSON: {exc}") from exc

    def _search_sync(self, query: str) -> List[SearchResult]:  # pragma: no cover - overridden
        raise NotImplementedError


class SerpApiSearch(_HttpSearch):
    """Google results through SerpAPI: organic hits plus answer box and knowledge graph."""

    def __init__(self, api_key: str, session: Optional[requests.Session] = None, *, timeout: float = REQUEST_TIMEOUT) -> None:
        super().__init__(session, timeout=timeout)
        self.api_key = api_key

    def _search_sync(self, query: str) -> List[SearchResult]:
        data = self._get_json(SERPAPI_URL, {"q": query, "engine": "google", "api_key": self.api_key, "num": 10})
        if not data or not data.get("organic_results"):
            logger.info("No search results for %r", query)
            return []
        results = [
            SearchResult(
                title=item.get("title") or "Search Result",
                snippet=item.get("snippet") or item.get("description") or "No description available",
                url=item.get("link") or "",
                date=item.get("date") or _today(),
            )
            for item in data["organic_results"][:MAX_RESULTS]
        ]
        answer_box = data.get("answer_box")
        if answer_box:
            results.insert(
                0,
                SearchResult(
                    title=f"Featured: {answer_box.get('title') or 'Answer Box'}",
                    snippet=answer_box.get("answer") or answer_box.get("snippet") or "Featured information",
                    url=answer_box.get("link") or "",
                    date=_today(),
                    type="featured",
                ),
            )
        knowledge = data.get("knowledge_graph")
        if knowledge and knowledge.get("description"):
            results.insert(
                0,
                SearchResult(
                    title=f"Knowledge: {knowledge.get('title') or 'Knowledge Graph'}",
                    snippet=knowledge["description"],
                    url=knowledge.get("website") or "",
                    date=_today(),
                    type="knowledge",
                ),
            )
        logger.info("Found %d results for %r", len(results), query)
        return results


class DuckDuckGoSearch(_HttpSearch):
    """Keyless instant-answer search; returns the abstract and related topics."""

    def _search_sync(self, query: str) -> List[SearchResult]:
        data = self._get_json(DUCKDUCKGO_URL, {"q": query, "format": "json", "no_html": 1, "skip_disambig": 1})
        if not data:
            return []
        results: List[SearchResult] = []
        if data.get("AbstractText"):
            results.append(
                SearchResult(
                    title=data.get("Heading") or query,
                    snippet=data["AbstractText"],
                    url=data.get("AbstractURL") or "",
                    date=_today(),
                    type="knowledge",
                )
            )
        for topic in data.get("RelatedTopics") or []:
            if len(results) >= MAX_RESULTS:
                break
            text = topic.get("Text") if isinstance(topic, dict) else None
            if not text:
                continue
            results.append(
                SearchResult(
                    title=text.split(" - ")[0][:80],
                    snippet=text,
                    url=topic.get("FirstURL") or "",
                    date=_today(),
                )
            )
        return results


def build_search(config: FlowClipConfig) -> WebSearch:
    if config.serpapi_key:
        return SerpApiSearch(config.serpapi_key)
    return DuckDuckGoSearch()
