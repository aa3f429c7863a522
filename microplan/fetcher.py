import asyncio
import logging
from typing import List, Optional

import httpx

from .config import ResearchConfig
from .sanitize import strip_html
from .schemas import Page, SearchResult

logger = logging.getLogger("uvicorn.error")


def _decode(data: bytes, encoding: Optional[str]) -> str:
    try:
        return data.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return data.decode("utf-8", errors="replace")


class PageFetcher:
    def __init__(self, config: Optional[ResearchConfig] = None, timeout: float = 20.0):
        self.config = config or ResearchConfig()
        self.client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
        )

    async def _read_capped(self, url: str) -> str:
        max_bytes = self.config.page_max_bytes
        data = bytearray()
        async with self.client.stream("GET", url) as resp:
            resp.raise_for_status()
            encoding = resp.charset_encoding
            async for chunk in resp.aiter_bytes():
                if not chunk:
                    continue
                data.extend(chunk)
                if len(data) >= max_bytes:
                    data = data[:max_bytes]
                    break
        return _decode(bytes(data), encoding)

    async def fetch_page(self, result: SearchResult) -> Optional[Page]:
        """Fetch one result; None when the page is unreachable or not 2xx."""
        try:
            body = await self._read_capped(result.link)
        except httpx.HTTPStatusError as exc:
            logger.warning("Fetch %s returned HTTP %s", result.link, exc.response.status_code)
            return None
        except (httpx.RequestError, httpx.StreamError, httpx.InvalidURL) as exc:
            logger.warning("Fetch %s failed: %s", result.link, exc)
            return None
        text = strip_html(body)[: self.config.page_text_max_chars]
        return Page(title=result.title, url=result.link, text=text)

    async def fetch_pages(self, results: List[SearchResult]) -> List[Page]:
        fetched = await asyncio.gather(*(self.fetch_page(r) for r in results))
        return [page for page in fetched if page is not None]

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()
