import html
import re
from typing import Optional

_SCRIPT_RE = re.compile(r"<script[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_ANGLE_RE = re.compile(r"[<>]")
_WS_RE = re.compile(r"\s+")


def strip_html(raw: Optional[str]) -> str:
    """Very naive HTML -> text stripper to keep prompt payloads small."""
    if not raw:
        return ""
    text = html.unescape(str(raw))
    text = _SCRIPT_RE.sub(" ", text)
    text = _STYLE_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = _ANGLE_RE.sub(" ", text)
    return _WS_RE.sub(" ", text).strip()
