import json

import httpx
import pytest
import respx
from httpx import Response

from microplan.config import CompletionBackendConfig
from microplan.llm import CompletionConfigError, CompletionError, CompletionRouter
from tests.conftest import make_settings

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
OPENAI_URL = "https://api.openai.com/v1/chat/completions"


@pytest.mark.asyncio
async def test_anthropic_payload_shape_and_reply():
    router = CompletionRouter.from_settings(make_settings())
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                captured["headers"] = request.headers
                return Response(200, json={"content": [{"type": "text", "text": '{"microTasks": []}'}]})

            respx_mock.post(ANTHROPIC_URL).mock(side_effect=handler)
            text = await router.complete("the prompt")
    finally:
        await router.close()
    assert text == '{"microTasks": []}'
    payload = captured["json"]
    assert payload["model"] == "claude-3-5-sonnet-20240620"
    assert payload["max_tokens"] == 2000
    assert payload["temperature"] == 0.2
    assert payload["messages"] == [{"role": "user", "content": "the prompt"}]
    assert captured["headers"]["x-api-key"] == "test-anthropic-key"
    assert captured["headers"]["anthropic-version"] == "2023-06-01"


@pytest.mark.asyncio
async def test_openai_preferred_when_key_present():
    router = CompletionRouter.from_settings(make_settings(openai_api_key="test-openai-key"))
    captured = {}
    try:
        assert router.select() is router.openai
        with respx.mock(assert_all_called=True) as respx_mock:
            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                captured["auth"] = request.headers["Authorization"]
                return Response(200, json={"choices": [{"message": {"content": "{}"}}]})

            respx_mock.post(OPENAI_URL).mock(side_effect=handler)
            text = await router.complete("the prompt")
    finally:
        await router.close()
    assert text == "{}"
    payload = captured["json"]
    assert captured["auth"] == "Bearer test-openai-key"
    assert payload["model"] == "gpt-4o-mini"
    assert payload["response_format"] == {"type": "json_object"}
    assert payload["messages"][0]["role"] == "system"
    assert "strict JSON" in payload["messages"][0]["content"]
    assert payload["messages"][1] == {"role": "user", "content": "the prompt"}


@pytest.mark.asyncio
async def test_backend_shape_comes_from_config():
    custom = CompletionBackendConfig(url="http://llm.test/v1/messages", model="custom-model", max_tokens=99)
    router = CompletionRouter.from_settings(make_settings(anthropic=custom))
    captured = {}
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            def handler(request):
                captured["json"] = json.loads(request.content.decode("utf-8"))
                return Response(200, json={"content": []})

            respx_mock.post("http://llm.test/v1/messages").mock(side_effect=handler)
            assert await router.complete("p") == ""
    finally:
        await router.close()
    assert captured["json"]["model"] == "custom-model"
    assert captured["json"]["max_tokens"] == 99


@pytest.mark.asyncio
async def test_missing_anthropic_key_fails_without_network():
    router = CompletionRouter.from_settings(make_settings(anthropic_api_key=None))
    try:
        with respx.mock(assert_all_called=False) as respx_mock:
            route = respx_mock.post(ANTHROPIC_URL)
            with pytest.raises(CompletionConfigError, match="Missing ANTHROPIC_API_KEY env var"):
                await router.complete("p")
            assert not route.called
    finally:
        await router.close()


@pytest.mark.asyncio
async def test_non_success_status_raises_with_status():
    router = CompletionRouter.from_settings(make_settings())
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(ANTHROPIC_URL).mock(return_value=Response(500, json={"error": "overloaded"}))
            with pytest.raises(CompletionError, match="Anthropic error: 500"):
                await router.complete("p")
    finally:
        await router.close()


@pytest.mark.asyncio
async def test_transport_error_raises_completion_error():
    router = CompletionRouter.from_settings(make_settings())
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(ANTHROPIC_URL).mock(side_effect=httpx.ConnectError("connection refused"))
            with pytest.raises(CompletionError, match="Anthropic request failed: connection refused"):
                await router.complete("p")
    finally:
        await router.close()


@pytest.mark.asyncio
async def test_non_json_reply_raises_completion_error():
    router = CompletionRouter.from_settings(make_settings(openai_api_key="test-openai-key"))
    try:
        with respx.mock(assert_all_called=True) as respx_mock:
            respx_mock.post(OPENAI_URL).mock(return_value=Response(200, text="<html>gateway page</html>"))
            with pytest.raises(CompletionError, match="OpenAI returned invalid JSON"):
                await router.complete("p")
    finally:
        await router.close()
