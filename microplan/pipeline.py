import logging
from typing import List

from .config import AppSettings
from .fetcher import PageFetcher
from .llm import CompletionRouter
from .normalize import normalize_breakdown
from .prompts import build_prompt
from .schemas import BreakdownMeta, BreakdownResponse, Page, Source
from .search import WebResearcher

logger = logging.getLogger("uvicorn.error")


async def run_breakdown(
    task: str,
    *,
    settings: AppSettings,
    researcher: WebResearcher,
    fetcher: PageFetcher,
    completion: CompletionRouter,
) -> BreakdownResponse:
    """Research, prompt and normalize. Only completion failures propagate."""
    results = await researcher.research(task)
    pages: List[Page] = await fetcher.fetch_pages(results) if results else []
    logger.info("Research for %r: %d results, %d pages", task, len(results), len(pages))

    prompt = build_prompt(task, pages, settings.prompt)
    raw = await completion.complete(prompt)
    breakdown = normalize_breakdown(raw, max_tasks=settings.max_tasks)
    if not breakdown:
        logger.warning("Model reply held no usable micro-tasks (%d chars)", len(raw or ""))

    return BreakdownResponse(
        breakdown=breakdown,
        sources=[Source(title=r.title, url=r.link) for r in results],
        meta=BreakdownMeta(usedWebResearch=bool(pages)),
    )
