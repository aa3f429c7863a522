import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from dotenv import load_dotenv

CONFIG_PATH = Path("config.json")
ENV_OVERRIDE_KEY = "MICROPLAN_ENV_OVERRIDES_CONFIG"
ENV_OVERRIDE_TRUE = {"1", "true", "yes", "on"}
SECRET_FIELDS = ("serpapi_api_key", "anthropic_api_key", "openai_api_key")

DEFAULT_QUERY_VARIANTS = [
    "step by step guide",
    "best practices tutorial",
    "implementation checklist",
    "requirements breakdown",
    "development roadmap",
]


class CompletionBackendConfig(BaseModel):
    url: str
    model: str
    max_tokens: int = 2000
    temperature: float = 0.2
    api_version: Optional[str] = None
    system_prompt: Optional[str] = None
    json_mode: bool = False

    model_config = {"protected_namespaces": ()}


def _anthropic_defaults() -> CompletionBackendConfig:
    return CompletionBackendConfig(
        url="https://api.anthropic.com/v1/messages",
        model="claude-3-5-sonnet-20240620",
        api_version="2023-06-01",
    )


def _openai_defaults() -> CompletionBackendConfig:
    return CompletionBackendConfig(
        url="https://api.openai.com/v1/chat/completions",
        model="gpt-4o-mini",
        system_prompt="You are an expert planner. Respond ONLY with strict JSON per user instructions.",
        json_mode=True,
    )


class ResearchConfig(BaseModel):
    serpapi_url: str = "https://serpapi.com/search.json"
    serpapi_engine: str = "google"
    wikipedia_api_url: str = "https://en.wikipedia.org/w/api.php"
    wikipedia_article_base: str = "https://en.wikipedia.org/wiki/"
    query_variants: List[str] = Field(default_factory=lambda: list(DEFAULT_QUERY_VARIANTS))
    results_per_query: int = 5
    wikipedia_limit: int = 3
    max_sources: int = 8
    page_text_max_chars: int = 10000
    page_max_bytes: int = 1_000_000
    user_agent: str = "MicroPlan/0.1 (+https://github.com/microplan/microplan)"


class PromptConfig(BaseModel):
    max_sources: int = 3
    source_max_chars: int = 2500


class AppSettings(BaseModel):
    serpapi_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None

    anthropic: CompletionBackendConfig = Field(default_factory=_anthropic_defaults)
    openai: CompletionBackendConfig = Field(default_factory=_openai_defaults)
    research: ResearchConfig = Field(default_factory=ResearchConfig)
    prompt: PromptConfig = Field(default_factory=PromptConfig)

    max_tasks: int = 20
    http_timeout_s: float = 20.0
    completion_timeout_s: float = 60.0
    host: str = "0.0.0.0"
    port: int = 8000

    def to_safe_dict(self) -> dict:
        data = self.model_dump()
        for key in SECRET_FIELDS:
            if data.get(key):
                data[key] = "********"
        return data

    model_config = {"protected_namespaces": ()}


def _load_from_env() -> dict:
    load_dotenv()
    env_map = {
        "serpapi_api_key": os.getenv("SERPAPI_API_KEY"),
        "anthropic_api_key": os.getenv("ANTHROPIC_API_KEY"),
        "openai_api_key": os.getenv("OPENAI_API_KEY"),
        "anthropic_model": os.getenv("ANTHROPIC_MODEL"),
        "openai_model": os.getenv("OPENAI_MODEL"),
        "http_timeout_s": os.getenv("HTTP_TIMEOUT_S"),
        "completion_timeout_s": os.getenv("COMPLETION_TIMEOUT_S"),
        "host": os.getenv("HOST"),
        "port": os.getenv("PORT"),
    }
    cleaned = {k: v for k, v in env_map.items() if v not in (None, "")}
    if "http_timeout_s" in cleaned:
        cleaned["http_timeout_s"] = float(cleaned["http_timeout_s"])
    if "completion_timeout_s" in cleaned:
        cleaned["completion_timeout_s"] = float(cleaned["completion_timeout_s"])
    if "port" in cleaned:
        cleaned["port"] = int(cleaned["port"])
    return cleaned


def _env_overrides_config() -> bool:
    return str(os.getenv(ENV_OVERRIDE_KEY, "")).strip().lower() in ENV_OVERRIDE_TRUE


def _apply_model_overrides(merged: Dict[str, Any]) -> None:
    """Fold flat ANTHROPIC_MODEL / OPENAI_MODEL values into the nested backend configs."""
    for backend in ("anthropic", "openai"):
        model = merged.pop(f"{backend}_model", None)
        if not model:
            continue
        cfg = merged.get(backend)
        if isinstance(cfg, CompletionBackendConfig):
            cfg = cfg.model_dump()
        if not isinstance(cfg, dict):
            defaults = _anthropic_defaults() if backend == "anthropic" else _openai_defaults()
            cfg = defaults.model_dump()
        merged[backend] = {**cfg, "model": model}


def load_settings(config_path: Optional[Path] = None) -> AppSettings:
    env_data = _load_from_env()
    path = config_path or CONFIG_PATH
    file_data: Dict[str, Any] = {}
    if path.exists():
        try:
            file_data = json.loads(path.read_text())
        except (OSError, ValueError):
            file_data = {}
    if not isinstance(file_data, dict):
        file_data = {}
    # Config wins by default; allow env overrides only when explicitly enabled.
    if _env_overrides_config():
        merged = {**file_data, **env_data}
    else:
        merged = {**env_data, **file_data}
    # Credentials always come from the environment when the file leaves them blank.
    for key in SECRET_FIELDS:
        if not merged.get(key) and env_data.get(key):
            merged[key] = env_data[key]
    _apply_model_overrides(merged)
    return AppSettings(**merged)
