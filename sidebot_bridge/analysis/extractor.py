"""Response extractor — pull a JSON payload out of free-form Claude output.

Claude answers with prose that may carry a JSON array of fixes (or of
edge-case strings) somewhere inside it. The extractor runs an ordered chain
of strategies and keeps the first one that yields a usable list:

  1. ``fenced``        a ```json fenced block whose body is an array
  2. ``fenced-object`` a fenced object wrapping the list (``{"fixes": [...]}``)
  3. ``bare-array``    the first non-empty list in the prose, outside any fence

Nothing here raises. A decode failure is logged and the chain moves on; when
every strategy misses, the whole text comes back as prose with no items,
which is the normal outcome for a conversational turn.
"""

from __future__ import annotations

import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?[ \t]*\n?([\s\S]*?)```", re.IGNORECASE)
_EXTRA_BLANK_LINES_RE = re.compile(r"\n{3,}")
_WRAPPER_KEYS = ("fixes", "issues", "cases", "edgeCases", "items", "results")
_STRING_ITEM_KEYS = ("text", "case", "description", "title")

_decoder = json.JSONDecoder()


class ItemShape(str, enum.Enum):
    """Expected element type of the extracted list."""

    OBJECTS = "objects"
    STRINGS = "strings"
    ANY = "any"


@dataclass
class ExtractedResult:
    items: list[Any] = field(default_factory=list)
    clean_text: str = ""
    strategy: str | None = None  # name of the winning strategy, None if nothing matched
    diagnostic: str = ""  # why nothing was extracted, when something looked like JSON

    @property
    def found(self) -> bool:
        return self.strategy is not None


@dataclass
class _Candidate:
    items: list[Any]
    start: int
    end: int


def _coerce_items(value: Any, shape: ItemShape) -> list[Any] | None:
    """Return the list filtered to *shape*, or ``None`` if it does not fit."""
    if not isinstance(value, list):
        return None
    if not value or shape is ItemShape.ANY:
        return list(value)

    if shape is ItemShape.OBJECTS:
        kept = [v for v in value if isinstance(v, dict) and v]
    else:
        kept = []
        for v in value:
            if isinstance(v, str) and v.strip():
                kept.append(v.strip())
            elif isinstance(v, dict):
                text = next((v[k] for k in _STRING_ITEM_KEYS if isinstance(v.get(k), str)), None)
                if text and text.strip():
                    kept.append(text.strip())
    return kept or None


def _from_fenced_block(text: str, shape: ItemShape) -> Optional[_Candidate]:
    for match in _FENCE_RE.finditer(text):
        body = match.group(1).strip()
        if not body.startswith("["):
            continue
        try:
            value = json.loads(body)
        except json.JSONDecodeError as exc:
            logger.debug("[Extractor] Fenced block is not valid JSON: %s", exc)
            continue
        items = _coerce_items(value, shape)
        if items is not None:
            return _Candidate(items, match.start(), match.end())
    return None


def _from_fenced_object(text: str, shape: ItemShape) -> Optional[_Candidate]:
    for match in _FENCE_RE.finditer(text):
        body = match.group(1).strip()
        if not body.startswith("{"):
            continue
        try:
            value = json.loads(body)
        except json.JSONDecodeError as exc:
            logger.debug("[Extractor] Fenced object is not valid JSON: %s", exc)
            continue
        if not isinstance(value, dict):
            continue
        for key in _WRAPPER_KEYS:
            items = _coerce_items(value.get(key), shape)
            if items is not None:
                return _Candidate(items, match.start(), match.end())
    return None


def _from_bare_array(text: str, shape: ItemShape) -> Optional[_Candidate]:
    """First ``[`` outside any fenced block that decodes to a usable list.

    An empty list only counts when it is the whole reply (the ``[]``
    sentinel); a ``[]`` inside prose is left alone.
    """
    fences = [m.span() for m in _FENCE_RE.finditer(text)]
    idx = text.find("[")
    while idx != -1:
        inside_fence = next((end for start, end in fences if start <= idx < end), None)
        if inside_fence is not None:
            idx = text.find("[", inside_fence)
            continue
        try:
            value, end = _decoder.raw_decode(text, idx)
        except json.JSONDecodeError:
            value, end = None, -1
        if end != -1:
            items = _coerce_items(value, shape)
            whole_reply = not text[:idx].strip() and not text[end:].strip()
            if items is not None and (items or whole_reply):
                return _Candidate(items, idx, end)
        idx = text.find("[", idx + 1)
    return None


Strategy = Callable[[str, ItemShape], Optional[_Candidate]]

STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("fenced", _from_fenced_block),
    ("fenced-object", _from_fenced_object),
    ("bare-array", _from_bare_array),
)


def _strip_span(text: str, start: int, end: int) -> str:
    remaining = text[:start] + text[end:]
    return _EXTRA_BLANK_LINES_RE.sub("\n\n", remaining).strip()


def tag_items(items: list[Any], action: str) -> list[Any]:
    """Stamp every object item with the action that produced it."""
    return [{**item, "action": action} if isinstance(item, dict) else item for item in items]


def extract(text: str, shape: ItemShape = ItemShape.ANY, action: str | None = None) -> ExtractedResult:
    """Run the strategy chain over *text*; first success wins."""
    if not isinstance(text, str) or not text:
        return ExtractedResult(items=[], clean_text=text if isinstance(text, str) else "")

    for name, strategy in STRATEGIES:
        try:
            candidate = strategy(text, shape)
        except Exception as exc:  # a strategy bug must never reach the relay
            logger.warning("[Extractor] Strategy %s failed: %s", name, exc)
            continue
        if candidate is None:
            continue
        items = tag_items(candidate.items, action) if action else candidate.items
        logger.info("[Extractor] %s strategy → %d items", name, len(items))
        return ExtractedResult(
            items=items,
            clean_text=_strip_span(text, candidate.start, candidate.end),
            strategy=name,
        )

    diagnostic = ""
    if "[" in text or "```" in text:
        diagnostic = "Response contained bracketed or fenced content that did not decode as a JSON list"
        logger.info("[Extractor] No structured data decoded (%d chars of prose).", len(text))
    return ExtractedResult(items=[], clean_text=text, diagnostic=diagnostic)
