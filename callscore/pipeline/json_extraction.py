"""Recover a JSON value from free-form model output.

Models are asked for JSON but sometimes wrap it in markdown fences or add
commentary around it. ``extract_json`` tries three tiers in order and
returns a tagged result instead of raising:

1. ``direct``: the whole text parses as JSON.
2. ``fenced``: the text parses after removing ```json fences.
3. ``embedded``: the first balanced ``{...}`` or ``[...]`` substring parses,
   optionally restricted to one container type.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any


class ExtractionTier(str, Enum):
    DIRECT = "direct"
    FENCED = "fenced"
    EMBEDDED = "embedded"


@dataclass(frozen=True)
class Parsed:
    value: Any
    tier: ExtractionTier


@dataclass(frozen=True)
class Unparsed:
    raw: str
    reason: str


ExtractionResult = Parsed | Unparsed

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)
_OPEN_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*[ \t]*\n?")
_CLOSE_FENCE_RE = re.compile(r"\n?```\s*$")

_PAIRS = {"{": "}", "[": "]"}


def _loads(text: str) -> tuple[bool, Any]:
    try:
        return True, json.loads(text)
    except (ValueError, TypeError):
        return False, None


def strip_fences(text: str) -> str:
    """Return the body of the first fenced block, or ``text`` with stray fences removed."""
    match = _FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    stripped = _OPEN_FENCE_RE.sub("", text)
    return _CLOSE_FENCE_RE.sub("", stripped).strip()


def _balanced_end(text: str, start: int) -> int | None:
    """Index just past the bracket that closes ``text[start]``, honouring JSON strings."""
    stack = [_PAIRS[text[start]]]
    in_string = False
    escaped = False
    for index in range(start + 1, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in _PAIRS:
            stack.append(_PAIRS[char])
        elif char in ("}", "]"):
            if char != stack[-1]:
                return None
            stack.pop()
            if not stack:
                return index + 1
    return None


def find_embedded(text: str, expect: type | None = None) -> tuple[bool, Any]:
    """Parse the first balanced object or array inside ``text``.

    With ``expect`` set, a balanced value of another type is skipped whole,
    so a list quoted in prose does not hide the object that follows it.
    """
    start = 0
    while start < len(text):
        if text[start] not in _PAIRS:
            start += 1
            continue
        end = _balanced_end(text, start)
        if end is None:
            start += 1
            continue
        ok, value = _loads(text[start:end])
        if not ok:
            start += 1
            continue
        if expect is not None and not isinstance(value, expect):
            start = end
            continue
        return True, value
    return False, None


def extract_json(text: str | None, expect: type | None = None) -> ExtractionResult:
    """Run the three extraction tiers over ``text``.

    ``expect`` narrows the embedded tier to values of that type; the direct
    and fenced tiers return whatever the whole reply holds.
    """
    if text is None or not text.strip():
        return Unparsed(raw=text or "", reason="empty response")

    ok, value = _loads(text.strip())
    if ok:
        return Parsed(value, ExtractionTier.DIRECT)

    if "```" in text:
        ok, value = _loads(strip_fences(text))
        if ok:
            return Parsed(value, ExtractionTier.FENCED)

    ok, value = find_embedded(text, expect)
    if ok:
        return Parsed(value, ExtractionTier.EMBEDDED)

    return Unparsed(raw=text, reason="no JSON value found")


__all__ = [
    "ExtractionResult",
    "ExtractionTier",
    "Parsed",
    "Unparsed",
    "extract_json",
    "find_embedded",
    "strip_fences",
]
