import asyncio
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from .config import ResearchConfig
from .sanitize import strip_html
from .schemas import SearchResult

logger = logging.getLogger("uvicorn.error")


async def _get_json(client: httpx.AsyncClient, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """Shared GET helper; failures come back as an error dict instead of raising."""
    try:
        resp = await client.get(url, params=params)
        resp.raise_for_status()
        data = resp.json()
    except httpx.HTTPStatusError as e:
        return {"error": "http_status", "status_code": e.response.status_code, "detail": e.response.text[:500]}
    except httpx.RequestError as e:
        return {"error": "request_failed", "detail": str(e)}
    except ValueError as e:
        return {"error": "invalid_json", "detail": str(e)}
    if not isinstance(data, dict):
        return {"error": "invalid_json", "detail": "expected a JSON object"}
    return data


class SerpApiClient:
    def __init__(self, api_key: Optional[str], config: Optional[ResearchConfig] = None, timeout: float = 20.0):
        self.api_key = api_key
        self.config = config or ResearchConfig()
        self.client = httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def search(self, query: str, num: Optional[int] = None) -> Dict[str, Any]:
        if not self.enabled:
            return {"error": "missing_api_key"}
        params = {
            "engine": self.config.serpapi_engine,
            "q": query,
            "num": num or self.config.results_per_query,
            "api_key": self.api_key,
        }
        return await _get_json(self.client, self.config.serpapi_url, params)

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


class WikipediaClient:
    def __init__(self, config: Optional[ResearchConfig] = None, timeout: float = 20.0):
        self.config = config or ResearchConfig()
        # Wikimedia rejects requests without a descriptive User-Agent.
        self.client = httpx.AsyncClient(timeout=timeout, headers={"User-Agent": self.config.user_agent})

    def article_url(self, title: str) -> str:
        return self.config.wikipedia_article_base + quote(title.replace(" ", "_"), safe="")

    async def search(self, query: str, limit: Optional[int] = None) -> Dict[str, Any]:
        params = {
            "action": "query",
            "list": "search",
            "srsearch": query,
            "srlimit": limit or self.config.wikipedia_limit,
            "format": "json",
        }
        return await _get_json(self.client, self.config.wikipedia_api_url, params)

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


def dedupe_by_link(results: List[SearchResult], limit: int) -> List[SearchResult]:
    seen = set()
    unique: List[SearchResult] = []
    for result in results:
        if result.link in seen:
            continue
        seen.add(result.link)
        unique.append(result)
        if len(unique) >= limit:
            break
    return unique


def _organic_results(payload: Dict[str, Any], limit: int) -> List[SearchResult]:
    organic = payload.get("organic_results")
    if not isinstance(organic, list):
        return []
    results: List[SearchResult] = []
    for item in organic[:limit]:
        if not isinstance(item, dict) or not item.get("link"):
            continue
        results.append(
            SearchResult(
                title=str(item.get("title") or ""),
                link=str(item["link"]),
                snippet=str(item.get("snippet") or ""),
            )
        )
    return results


class WebResearcher:
    """SerpAPI first, Wikipedia when SerpAPI is unconfigured or comes back empty."""

    def __init__(
        self,
        serpapi: SerpApiClient,
        wikipedia: WikipediaClient,
        config: Optional[ResearchConfig] = None,
    ):
        self.serpapi = serpapi
        self.wikipedia = wikipedia
        self.config = config or ResearchConfig()

    @property
    def provider(self) -> str:
        return "serpapi" if self.serpapi.enabled else "wikipedia"

    def build_queries(self, task: str) -> List[str]:
        return [f"{task} {variant}" for variant in self.config.query_variants]

    async def research(self, task: str) -> List[SearchResult]:
        results: List[SearchResult] = []
        if self.serpapi.enabled:
            results = await self._search_serpapi(task)
        if not results:
            results = await self._search_wikipedia(task)
        return results

    async def _search_serpapi(self, task: str) -> List[SearchResult]:
        queries = self.build_queries(task)
        # gather keeps issue order, so dedupe below is stable.
        payloads = await asyncio.gather(*(self.serpapi.search(q) for q in queries))
        collected: List[SearchResult] = []
        for query, payload in zip(queries, payloads):
            if payload.get("error"):
                logger.warning("SerpAPI query %r failed: %s", query, payload)
                continue
            collected.extend(_organic_results(payload, self.config.results_per_query))
        return dedupe_by_link(collected, self.config.max_sources)

    async def _search_wikipedia(self, task: str) -> List[SearchResult]:
        payload = await self.wikipedia.search(task)
        if payload.get("error"):
            logger.warning("Wikipedia search failed: %s", payload)
            return []
        query = payload.get("query")
        hits = query.get("search") if isinstance(query, dict) else None
        if not isinstance(hits, list):
            return []
        results: List[SearchResult] = []
        for hit in hits[: self.config.wikipedia_limit]:
            if not isinstance(hit, dict) or not hit.get("title"):
                continue
            title = str(hit["title"])
            results.append(
                SearchResult(
                    title=title,
                    link=self.wikipedia.article_url(title),
                    snippet=strip_html(hit.get("snippet")),
                )
            )
        return dedupe_by_link(results, self.config.max_sources)
