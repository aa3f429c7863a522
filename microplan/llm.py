import json
import logging
from typing import Any, Dict, List, Optional

import httpx

from .config import AppSettings, CompletionBackendConfig

logger = logging.getLogger("uvicorn.error")


class CompletionError(RuntimeError):
    """The completion backend could not produce a reply."""


class CompletionConfigError(CompletionError):
    """The selected completion backend is missing its credential."""


def _extract_error_detail(response: httpx.Response) -> str:
    try:
        data = response.json()
        if isinstance(data, dict):
            return json.dumps(data, ensure_ascii=True)
    except ValueError:
        pass
    return response.text


class _BackendClient:
    name = "backend"
    env_key = ""

    def __init__(self, api_key: Optional[str], config: CompletionBackendConfig, timeout: float = 60.0):
        self.api_key = api_key
        self.config = config
        self.client = httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _headers(self) -> Dict[str, str]:
        raise NotImplementedError

    def _payload(self, prompt: str) -> Dict[str, Any]:
        raise NotImplementedError

    def _reply_text(self, data: Any) -> str:
        raise NotImplementedError

    async def complete(self, prompt: str) -> str:
        if not self.api_key:
            raise CompletionConfigError(f"Missing {self.env_key} env var")
        try:
            resp = await self.client.post(self.config.url, json=self._payload(prompt), headers=self._headers())
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = _extract_error_detail(exc.response)
            raise CompletionError(f"{self.name} error: {exc.response.status_code} {detail}") from exc
        except httpx.RequestError as exc:
            raise CompletionError(f"{self.name} request failed: {exc}") from exc
        try:
            data = resp.json()
        except ValueError as exc:
            raise CompletionError(f"{self.name} returned invalid JSON") from exc
        try:
            text = self._reply_text(data)
        except (AttributeError, IndexError, KeyError, TypeError):
            text = ""
        return text if isinstance(text, str) else ""

    async def close(self) -> None:
        if not self.client.is_closed:
            await self.client.aclose()


class AnthropicClient(_BackendClient):
    """Messages API (backend A)."""

    name = "Anthropic"
    env_key = "ANTHROPIC_API_KEY"

    def _headers(self) -> Dict[str, str]:
        headers = {"content-type": "application/json", "x-api-key": self.api_key or ""}
        if self.config.api_version:
            headers["anthropic-version"] = self.config.api_version
        return headers

    def _payload(self, prompt: str) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if self.config.system_prompt:
            payload["system"] = self.config.system_prompt
        return payload

    def _reply_text(self, data: Any) -> str:
        content = data.get("content") or []
        return (content[0] or {}).get("text") or ""


class OpenAIClient(_BackendClient):
    """Chat Completions API (backend B), preferred when its key is present."""

    name = "OpenAI"
    env_key = "OPENAI_API_KEY"

    def _headers(self) -> Dict[str, str]:
        return {"content-type": "application/json", "Authorization": f"Bearer {self.api_key}"}

    def _payload(self, prompt: str) -> Dict[str, Any]:
        messages: List[Dict[str, str]] = []
        if self.config.system_prompt:
            messages.append({"role": "system", "content": self.config.system_prompt})
        messages.append({"role": "user", "content": prompt})
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": messages,
        }
        if self.config.json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _reply_text(self, data: Any) -> str:
        choices = data.get("choices") or []
        message = (choices[0] or {}).get("message") or {}
        return message.get("content") or ""


class CompletionRouter:
    def __init__(self, anthropic: AnthropicClient, openai: OpenAIClient):
        self.anthropic = anthropic
        self.openai = openai

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "CompletionRouter":
        return cls(
            AnthropicClient(settings.anthropic_api_key, settings.anthropic, timeout=settings.completion_timeout_s),
            OpenAIClient(settings.openai_api_key, settings.openai, timeout=settings.completion_timeout_s),
        )

    def select(self) -> _BackendClient:
        if self.openai.enabled:
            return self.openai
        return self.anthropic

    async def complete(self, prompt: str) -> str:
        backend = self.select()
        logger.info("Requesting breakdown from %s (%s)", backend.name, backend.config.model)
        return await backend.complete(prompt)

    async def close(self) -> None:
        await self.anthropic.close()
        await self.openai.close()
