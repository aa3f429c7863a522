import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from microplan.config import AppSettings
from microplan.main import create_app


def make_settings(**overrides) -> AppSettings:
    settings = AppSettings(
        serpapi_api_key=None,
        anthropic_api_key="test-anthropic-key",
        openai_api_key=None,
        http_timeout_s=5.0,
        completion_timeout_s=5.0,
        host="127.0.0.1",
        port=8000,
    )
    if overrides:
        settings = settings.model_copy(update=overrides)
    return settings


@pytest.fixture
def app_factory():
    def _factory(
        *,
        serpapi_client=None,
        wikipedia_client=None,
        fetcher=None,
        completion=None,
        **settings_overrides,
    ):
        settings = make_settings(**settings_overrides)
        return create_app(
            settings,
            serpapi_client=serpapi_client,
            wikipedia_client=wikipedia_client,
            fetcher=fetcher,
            completion=completion,
        )

    return _factory


@pytest.fixture
async def client(app_factory):
    app = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            yield http_client
