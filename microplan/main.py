import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.responses import JSONResponse

from .config import AppSettings, load_settings
from .fetcher import PageFetcher
from .llm import CompletionRouter
from .pipeline import run_breakdown
from .search import SerpApiClient, WebResearcher, WikipediaClient

logger = logging.getLogger("uvicorn.error")

BREAKDOWN_PATH = "/api/research-breakdown"
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def get_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_researcher(request: Request) -> WebResearcher:
    return request.app.state.researcher


def get_fetcher(request: Request) -> PageFetcher:
    return request.app.state.fetcher


def get_completion(request: Request) -> CompletionRouter:
    return request.app.state.completion


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def read_task(request: Request) -> Optional[str]:
    try:
        body: Any = await request.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    task = body.get("task")
    if not isinstance(task, str) or not task:
        return None
    return task


router = APIRouter()


@router.get("/health")
async def health(
    settings: AppSettings = Depends(get_settings),
    researcher: WebResearcher = Depends(get_researcher),
    completion: CompletionRouter = Depends(get_completion),
) -> Dict[str, Any]:
    return {
        "ok": True,
        "search_provider": researcher.provider,
        "completion_backend": completion.select().name.lower(),
        "settings": settings.to_safe_dict(),
    }


@router.api_route(BREAKDOWN_PATH, methods=ALL_METHODS)
async def research_breakdown(
    request: Request,
    settings: AppSettings = Depends(get_settings),
    researcher: WebResearcher = Depends(get_researcher),
    fetcher: PageFetcher = Depends(get_fetcher),
    completion: CompletionRouter = Depends(get_completion),
):
    if request.method != "POST":
        return error_response(405, "Method not allowed")
    task = await read_task(request)
    if task is None:
        return error_response(400, "Missing 'task' in request body")
    try:
        result = await run_breakdown(
            task,
            settings=settings,
            researcher=researcher,
            fetcher=fetcher,
            completion=completion,
        )
    except Exception as exc:
        logger.exception("Breakdown failed for %r", task)
        return error_response(500, str(exc) or "Internal error")
    return result.model_dump()


def create_app(
    settings: AppSettings,
    *,
    serpapi_client: Optional[SerpApiClient] = None,
    wikipedia_client: Optional[WikipediaClient] = None,
    fetcher: Optional[PageFetcher] = None,
    completion: Optional[CompletionRouter] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "MicroPlan ready: search=%s completion=%s",
            app.state.researcher.provider,
            app.state.completion.select().name,
        )
        try:
            yield
        finally:
            await app.state.researcher.serpapi.close()
            await app.state.researcher.wikipedia.close()
            await app.state.fetcher.close()
            await app.state.completion.close()

    app = FastAPI(title="MicroPlan Research Breakdown", lifespan=lifespan)
    app.state.settings = settings
    research_cfg = settings.research
    app.state.researcher = WebResearcher(
        serpapi_client or SerpApiClient(settings.serpapi_api_key, research_cfg, timeout=settings.http_timeout_s),
        wikipedia_client or WikipediaClient(research_cfg, timeout=settings.http_timeout_s),
        research_cfg,
    )
    app.state.fetcher = fetcher or PageFetcher(research_cfg, timeout=settings.http_timeout_s)
    app.state.completion = completion or CompletionRouter.from_settings(settings)
    app.include_router(router)
    return app


app = create_app(load_settings())


if __name__ == "__main__":
    import os
    import uvicorn

    settings = app.state.settings
    reload_enabled = os.getenv("MICROPLAN_RELOAD", "").lower() in ("1", "true", "yes", "on")
    try:
        uvicorn.run(
            "microplan.main:app",
            host=settings.host,
            port=settings.port,
            reload=reload_enabled,
        )
    except KeyboardInterrupt:
        pass
