"""Turn loosely structured model output into book candidates.

Models are asked for a bare JSON array but routinely wrap it in markdown,
add prose around it, or get cut off mid-array. Parsing is a small state
machine over three outcomes:

    Parsed(items)         -- a JSON array was recovered
    NeedsRepair(raw_text) -- text exists but no array could be recovered locally
    Failed(reason)        -- give up; the provider contributes nothing

``parse_book_array`` covers the local steps (whole string, first ``[...]``
span, reconstruction from complete objects). ``resolve`` applies the last
resort: one round-trip through a repair model.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

from loguru import logger

from .models import BookCandidate, CandidateState, Confidence

if TYPE_CHECKING:
    from .interfaces import JsonRepairer

log = logger.bind(stage="parse")

BOOK_ARRAY_SCHEMA = (
    "JSON array of book objects, each with keys: title (string or null), "
    "author (string or null), confidence ('high'|'medium'|'low'), "
    "spine_text (string), language (string), reason (string), "
    "spine_index (integer)"
)

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")
_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
# Flat objects only; nested braces mean the object was not a plain book record
_BOOK_OBJECT_RE = re.compile(r'\{[^{}]*"title"[^{}]*"author"[^{}]*\}')


@dataclass
class Parsed:
    items: list[Any] = field(default_factory=list)
    method: str = "direct"


@dataclass
class NeedsRepair:
    raw_text: str


@dataclass
class Failed:
    reason: str


ParseOutcome = Union[Parsed, NeedsRepair, Failed]


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```json ... ```) wherever they appear."""
    return _FENCE_RE.sub("", text).strip()


def _load_array(text: str) -> list[Any] | None:
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None
    return data if isinstance(data, list) else None


def parse_book_array(text: str | None) -> ParseOutcome:
    """Recover a JSON array of book objects from raw model text."""
    if not text or not text.strip():
        return Failed("empty response")

    content = strip_code_fences(text)
    if not content:
        return Failed("empty response")

    items = _load_array(content)
    if items is not None:
        return Parsed(items, method="direct")

    match = _ARRAY_RE.search(content)
    if match:
        items = _load_array(match.group(0))
        if items is not None:
            return Parsed(items, method="extracted")

    # Truncated output: keep every complete object that names both fields
    start = content.find("[")
    if start != -1:
        objects = _BOOK_OBJECT_RE.findall(content[start:])
        if objects:
            items = _load_array("[" + ",".join(objects) + "]")
            if items is not None:
                log.debug(f"Reconstructed {len(items)} objects from partial array")
                return Parsed(items, method="reconstructed")

    return NeedsRepair(content)


def resolve(
    outcome: ParseOutcome,
    repairer: JsonRepairer | None,
    schema: str = BOOK_ARRAY_SCHEMA,
) -> Parsed | Failed:
    """Settle a parse outcome, sending NeedsRepair through the repair model once."""
    if isinstance(outcome, (Parsed, Failed)):
        return outcome

    if repairer is None:
        return Failed("unparseable response and no repair model configured")

    log.debug(f"Attempting JSON repair on {len(outcome.raw_text)} chars")
    repaired = repairer.repair(outcome.raw_text, schema)
    if not repaired:
        return Failed("JSON repair returned nothing")

    content = strip_code_fences(repaired)
    items = _load_array(content)
    if items is None:
        match = _ARRAY_RE.search(content)
        if match:
            items = _load_array(match.group(0))
    if items is None:
        return Failed("JSON repair output is not a JSON array")
    return Parsed(items, method="repaired")


def _clean_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a"):
        return None
    return text


def _coerce_index(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def candidates_from_items(items: list[Any], provider: str) -> list[BookCandidate]:
    """Build raw candidates from parsed JSON items, skipping non-objects."""
    candidates = []
    for item in items:
        if not isinstance(item, dict):
            log.debug(f"Skipping non-object item from {provider}: {item!r}")
            continue
        candidates.append(
            BookCandidate(
                title=_clean_str(item.get("title")),
                author=_clean_str(item.get("author")),
                spine_text=_clean_str(item.get("spine_text")) or "",
                spine_index=_coerce_index(item.get("spine_index")),
                confidence=Confidence.parse(item.get("confidence")),
                language=_clean_str(item.get("language")) or "unknown",
                source_provider=provider,
                state=CandidateState.RAW,
            )
        )
    return candidates
