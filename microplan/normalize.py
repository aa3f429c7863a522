"""Turn raw model text into a bounded, well-typed micro-task list."""

import json
import math
import re
from typing import Any, Callable, List, Optional, Sequence

from .schemas import MicroTask

MAX_TASKS = 20
MIN_MINUTES = 10
MAX_MINUTES = 180
DEFAULT_MINUTES = 30
DEFAULT_PRIORITY = "medium"
PRIORITIES = {"high", "medium", "low"}
UNTITLED_TASK = "Untitled task"

_FENCED_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


def _loads_object(text: str) -> Optional[dict]:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def try_direct(text: str) -> Optional[dict]:
    return _loads_object(text)


def try_fenced_block(text: str) -> Optional[dict]:
    for match in _FENCED_RE.finditer(text):
        parsed = _loads_object(match.group(1).strip())
        if parsed is not None:
            return parsed
    return None


def try_brace_span(text: str) -> Optional[dict]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return _loads_object(text[start : end + 1])


JSON_PARSERS: Sequence[Callable[[str], Optional[dict]]] = (try_direct, try_fenced_block, try_brace_span)


def parse_model_json(text: Any) -> Optional[dict]:
    if not isinstance(text, str) or not text.strip():
        return None
    for parser in JSON_PARSERS:
        parsed = parser(text)
        if parsed is not None:
            return parsed
    return None


def normalize_text(value: Any) -> str:
    if not value:
        return UNTITLED_TASK
    cleaned = str(value).strip()
    return cleaned or UNTITLED_TASK


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        try:
            number = float(value)
        except OverflowError:
            number = math.inf if value > 0 else -math.inf
    elif isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(number):
        return None
    return number


def normalize_minutes(value: Any) -> int:
    number = _as_number(value)
    # Zero counts as missing, same as a blank field.
    if not number:
        number = DEFAULT_MINUTES
    return int(round(max(MIN_MINUTES, min(MAX_MINUTES, number))))


def normalize_priority(value: Any) -> str:
    if isinstance(value, str) and value in PRIORITIES:
        return value
    return DEFAULT_PRIORITY


def normalize_depends_on(value: Any) -> List[Any]:
    return list(value) if isinstance(value, list) else []


def normalize_task(raw: Any, position: int) -> MicroTask:
    entry = raw if isinstance(raw, dict) else {}
    return MicroTask(
        id=position,
        text=normalize_text(entry.get("text")),
        estimatedTime=normalize_minutes(entry.get("estimatedTimeMinutes")),
        priority=normalize_priority(entry.get("priority")),
        dependsOn=normalize_depends_on(entry.get("dependsOn")),
    )


def normalize_breakdown(text: Any, max_tasks: int = MAX_TASKS) -> List[MicroTask]:
    parsed = parse_model_json(text)
    raw_tasks = parsed.get("microTasks") if parsed else None
    if not isinstance(raw_tasks, list):
        return []
    return [normalize_task(raw, idx) for idx, raw in enumerate(raw_tasks[:max_tasks], start=1)]
