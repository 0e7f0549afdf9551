"""Core enums, dataclasses, and constants for the shelf scan pipeline.

Enums:
    Confidence      -- Coarse quality tier (high, medium, low, invalid) used to
                       break ties while merging.
    CandidateState  -- Where a candidate sits in the pipeline state machine.
    Stage           -- Individual pipeline stage (invoke through batch_validate).
    ErrorCategory   -- Error classification for retry logic (transient, permanent).

Dataclasses:
    BookCandidate       -- One detected spine, mutated in place by each stage.
    ExternalMatch       -- Advisory metadata-lookup hit attached by the augmenter.
    ValidationNotes     -- Fixes and notes attached by the batch validator.
    ImagePayload        -- Raw image bytes plus mime type (never decoded here).
    ProviderDiagnostics -- Per-provider outcome reported alongside the books.
    ScanResult          -- Final accepted books plus diagnostics.
"""

from __future__ import annotations

import base64
import binascii
import re
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from .normalize import canonical_key

# Spine position assumed for candidates the provider did not number
MISSING_SPINE_INDEX = 999


class Confidence(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    INVALID = "invalid"

    @property
    def rank(self) -> int:
        return _CONFIDENCE_RANK[self]

    @classmethod
    def parse(cls, value: Any, default: Confidence | None = None) -> Confidence:
        """Map a loose provider value onto a tier, falling back to ``default``."""
        fallback = default if default is not None else cls.MEDIUM
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return fallback
        try:
            return cls(value.strip().lower())
        except ValueError:
            return fallback


_CONFIDENCE_RANK: dict[Confidence, int] = {
    Confidence.HIGH: 3,
    Confidence.MEDIUM: 2,
    Confidence.LOW: 1,
    Confidence.INVALID: 0,
}


class CandidateState(StrEnum):
    RAW = "raw"
    CORRECTED = "corrected"
    NORMALIZED = "normalized"
    DEDUPED = "deduped"
    DISCARDED_DUPLICATE = "discarded_duplicate"
    CHEAP_ACCEPTED = "cheap_accepted"
    CHEAP_REJECTED = "cheap_rejected"
    AUGMENTED = "augmented"
    BATCH_VALID = "batch_valid"
    BATCH_INVALID = "batch_invalid"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


TERMINAL_EXCLUDED_STATES: frozenset[CandidateState] = frozenset(
    {
        CandidateState.REJECTED,
        CandidateState.DISCARDED_DUPLICATE,
        CandidateState.CHEAP_REJECTED,
        CandidateState.BATCH_INVALID,
    }
)


class Stage(StrEnum):
    INVOKE = "invoke"
    CORRECT = "correct"
    DEDUPE = "dedupe"
    CHEAP_VALIDATE = "cheap_validate"
    AUGMENT = "augment"
    BATCH_VALIDATE = "batch_validate"


# Order the orchestrator runs the stages in (dedupe runs again at the end)
STAGE_ORDER: list[Stage] = [
    Stage.INVOKE,
    Stage.CORRECT,
    Stage.DEDUPE,
    Stage.CHEAP_VALIDATE,
    Stage.AUGMENT,
    Stage.BATCH_VALIDATE,
]


class ErrorCategory(StrEnum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


@dataclass
class ExternalMatch:
    """Advisory hit from the metadata lookup. Never overwrites fields."""

    match_id: str
    confidence: Confidence = Confidence.HIGH
    title: str | None = None
    authors: list[str] = field(default_factory=list)
    source: str = "google_books"

    def to_dict(self) -> dict:
        return {
            "match_id": self.match_id,
            "confidence": self.confidence.value,
            "title": self.title,
            "authors": list(self.authors),
            "source": self.source,
        }


@dataclass
class ValidationNotes:
    fixes: list[str] = field(default_factory=list)
    notes: str = ""


@dataclass
class BookCandidate:
    """One book spine as reported by a provider and refined by each stage."""

    title: str | None = None
    author: str | None = None
    spine_text: str = ""
    spine_index: int | None = None
    confidence: Confidence = Confidence.MEDIUM
    language: str = "unknown"
    source_provider: str = ""
    external_match: ExternalMatch | None = None
    validation_notes: ValidationNotes | None = None
    rejection_reason: str | None = None
    state: CandidateState = CandidateState.RAW

    @property
    def has_title_and_author(self) -> bool:
        return bool(self.title and self.title.strip()) and bool(
            self.author and self.author.strip()
        )

    @property
    def position(self) -> int:
        """Spine index with missing values sorted last."""
        return self.spine_index if self.spine_index is not None else MISSING_SPINE_INDEX

    @property
    def canonical_key(self) -> str:
        return canonical_key(self.title, self.author)

    def to_dict(self) -> dict:
        """Caller-facing view. ``rejection_reason`` stays internal."""
        data: dict[str, Any] = {
            "title": self.title,
            "author": self.author,
            "confidence": self.confidence.value,
            "spine_index": self.spine_index,
            "spine_text": self.spine_text,
            "language": self.language,
            "source_provider": self.source_provider,
            "external_match": (
                self.external_match.to_dict() if self.external_match else None
            ),
        }
        if self.validation_notes is not None:
            data["validation"] = {
                "fixes": list(self.validation_notes.fixes),
                "notes": self.validation_notes.notes,
            }
        return data


_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[\w=-]+)*;base64,", re.I)

_SUFFIX_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".webp": "image/webp",
    ".heic": "image/heic",
    ".gif": "image/gif",
}


@dataclass(frozen=True)
class ImagePayload:
    """Image bytes handed to the vision providers as-is."""

    data: bytes
    mime_type: str = "image/jpeg"

    @classmethod
    def from_data_url(cls, value: str) -> ImagePayload:
        """Accept a ``data:image/...;base64,`` URL or bare base64 text.

        Raises ValueError when the payload is empty or not valid base64.
        """
        text = value.strip()
        mime_type = "image/jpeg"
        match = _DATA_URL_RE.match(text)
        if match:
            mime_type = match.group("mime") or mime_type
            text = text[match.end():]
        text = re.sub(r"\s+", "", text)
        if not text:
            raise ValueError("image payload is empty")
        try:
            data = base64.b64decode(text, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"image payload is not valid base64: {e}") from e
        return cls(data=data, mime_type=mime_type)

    @classmethod
    def from_path(cls, path: Path) -> ImagePayload:
        mime_type = _SUFFIX_MIME_TYPES.get(path.suffix.lower(), "image/jpeg")
        return cls(data=path.read_bytes(), mime_type=mime_type)

    def as_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def as_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.as_base64()}"


@dataclass
class ProviderDiagnostics:
    attempted: bool = False
    succeeded: bool = False
    count: int = 0
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "count": self.count,
            "error": self.error,
        }


@dataclass
class ScanResult:
    """Accepted books (in final order) plus per-provider diagnostics."""

    books: list[BookCandidate] = field(default_factory=list)
    providers: dict[str, ProviderDiagnostics] = field(default_factory=dict)
    job_id: str | None = None
    user_id: str | None = None
    stats: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "job_id": self.job_id,
            "user_id": self.user_id,
            "books": [b.to_dict() for b in self.books],
            "providers": {name: d.to_dict() for name, d in self.providers.items()},
            "stats": dict(self.stats),
        }
