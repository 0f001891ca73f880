"""
Turning raw model text into items.

Models wrap output in incidental decoration: markdown code fences, a leading
``json`` tag, trailing commas before a closing bracket, ``1.``/``-`` list
markers. These are stripped before parsing. Anything that still does not parse
is reported as an error string inside ``Err``.
"""

from __future__ import annotations

import json
import re
from typing import Any

from result import Err, Ok, Result

_FENCE_OPEN = re.compile(r'^```[a-zA-Z]*\s*')
_FENCE_CLOSE = re.compile(r'\s*```$')
_JSON_TAG = re.compile(r'^json\s*(?=[\[{])', re.IGNORECASE)
_TRAILING_COMMA = re.compile(r',\s*([\]}])')
_LINE_MARKER = re.compile(r'^\s*(?:\d+[.):]|[-*•])\s+')


def strip_wrappers(text: str) -> str:
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub('', cleaned)
    cleaned = _FENCE_CLOSE.sub('', cleaned)
    cleaned = _JSON_TAG.sub('', cleaned.strip())
    return cleaned.strip()


def _outermost(text: str) -> str | None:
    """Largest bracketed span, for prose-wrapped JSON."""
    starts = [i for i in (text.find('['), text.find('{')) if i >= 0]
    if not starts:
        return None
    start = min(starts)
    closer = ']' if text[start] == '[' else '}'
    end = text.rfind(closer)
    if end <= start:
        return None
    return text[start : end + 1]


def parse_json(text: str) -> Result[Any, str]:
    cleaned = _TRAILING_COMMA.sub(r'\1', strip_wrappers(text))
    if not cleaned:
        return Err('empty response')
    try:
        return Ok(json.loads(cleaned))
    except json.JSONDecodeError as exc:
        first_error = f'invalid JSON: {exc.msg} at position {exc.pos}'

    span = _outermost(cleaned)
    if span is not None and span != cleaned:
        try:
            return Ok(json.loads(span))
        except json.JSONDecodeError:
            pass
    return Err(first_error)


def json_items(text: str) -> Result[list[Any], str]:
    """
    A JSON array of items. An object holding exactly one array value (e.g.
    ``{"items": [...]}``, common in JSON-object output mode) is unwrapped.
    """
    match parse_json(text):
        case Err(message):
            return Err(message)
        case Ok(value):
            pass

    if isinstance(value, list):
        return Ok(value)
    if isinstance(value, dict):
        arrays = [v for v in value.values() if isinstance(v, list)]
        if len(arrays) == 1:
            return Ok(arrays[0])
    return Err(f'expected a JSON array, got {type(value).__name__}')


def line_items(text: str) -> list[str]:
    """Non-blank lines with list markers removed."""
    items: list[str] = []
    for raw in strip_wrappers(text).splitlines():
        line = _LINE_MARKER.sub('', raw).strip()
        if line:
            items.append(line)
    return items
