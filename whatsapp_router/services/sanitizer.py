"""Plain-text cleanup applied to every message before it reaches WhatsApp."""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping

from ..errors import EmptyContentError

MAX_MESSAGE_LENGTH = 4096
ELLIPSIS = "..."

_TAG_RE = re.compile(r"<[^>]*>")
_ANGLE_RE = re.compile(r"[<>]")
_ENTITY_RE = re.compile(r"&[a-zA-Z0-9#]+;")
_WHITESPACE_RE = re.compile(r"\s+")
_VARIABLE_RE = re.compile(r"\{\{([^}]+)\}\}")

# Applied in order: "&amp;lt;" decodes all the way to "<".
HTML_ENTITIES = (
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&nbsp;", " "),
    ("&copy;", "©"),
    ("&reg;", "®"),
    ("&trade;", "™"),
)


def strip_markup(text: str) -> str:
    """Removes tags, including unterminated ones, and stray angle brackets."""

    return _ANGLE_RE.sub("", _TAG_RE.sub("", text))


def truncate(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(ELLIPSIS)] + ELLIPSIS


def sanitize(raw: Any) -> str:
    """Returns WhatsApp-safe plain text or raises EmptyContentError."""

    if not isinstance(raw, str) or not raw:
        raise EmptyContentError()
    message = strip_markup(raw)
    for entity, char in HTML_ENTITIES:
        message = message.replace(entity, char)
    message = _ENTITY_RE.sub("", message)
    message = _WHITESPACE_RE.sub(" ", message).strip()
    if not message:
        raise EmptyContentError()
    return truncate(message)


def parse_variables(template: str) -> List[str]:
    return _VARIABLE_RE.findall(template or "")


def render_variables(template: str, variables: Mapping[str, Any] | None) -> str:
    """Fills ``{{name}}`` placeholders; unknown names stay verbatim."""

    if not variables:
        return template
    values: Dict[str, str] = {str(key): str(value) for key, value in variables.items()}

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        return values.get(name, match.group(0))

    return _VARIABLE_RE.sub(_replace, template)
