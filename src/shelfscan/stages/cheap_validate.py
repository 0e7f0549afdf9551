"""Stage 4: cheap_validate -- drop obvious junk before paying for inference.

Pure rules, no network. Accepted candidates come out with cleaned display
values (OCR debris removed, author name formatted).
"""

from __future__ import annotations

import re

from loguru import logger

from ..models import BookCandidate, CandidateState, Confidence
from ..normalize import clean_display_text, format_author_name, normalize, normalize_with_ocr

log = logger.bind(stage="cheap_validate")

GENERIC_TITLE_WORDS = frozenset({"the", "a", "an", "book", "books", "volume", "vol"})

_DIGITS_AND_PUNCT_RE = re.compile(r"^[\d\s.,;:!?#/\-]+$")
_NONSENSE_RE = re.compile(r"^(?:i{4,}|@{4,}|%{4,}|#{4,}|\|{4,}|\*{4,})$")


def rejection_reason(candidate: BookCandidate) -> str | None:
    """Return why ``candidate`` is junk, or None if it passes."""
    title = normalize_with_ocr(candidate.title)
    author = normalize_with_ocr(candidate.author)
    spine = normalize_with_ocr(candidate.spine_text or candidate.title)
    raw_title = normalize(candidate.title)

    if len(spine) < 3 and not title and not author:
        return "spine_text_too_short"

    if raw_title and _DIGITS_AND_PUNCT_RE.match(raw_title):
        return "title_is_digits_only"

    if raw_title and _NONSENSE_RE.match(raw_title.replace(" ", "")):
        return "nonsense_pattern"

    if (
        title
        and not author
        and candidate.confidence == Confidence.LOW
        and len(title.split()) == 1
        and title in GENERIC_TITLE_WORDS
    ):
        return "generic_word_no_author"

    return None


def clean_candidate(candidate: BookCandidate) -> None:
    """Normalize display fields of an accepted candidate in place."""
    candidate.title = clean_display_text(candidate.title)
    candidate.author = format_author_name(clean_display_text(candidate.author))
    spine = (candidate.spine_text or "").strip()
    candidate.spine_text = spine or candidate.title or ""
    if not candidate.language:
        candidate.language = "unknown"


def run(candidates: list[BookCandidate]) -> tuple[list[BookCandidate], list[BookCandidate]]:
    """Split candidates into (accepted, rejected)."""
    accepted: list[BookCandidate] = []
    rejected: list[BookCandidate] = []
    for candidate in candidates:
        reason = rejection_reason(candidate)
        if reason:
            candidate.state = CandidateState.CHEAP_REJECTED
            candidate.rejection_reason = reason
            rejected.append(candidate)
            log.debug(f"Cheap filter rejected {candidate.title!r}: {reason}")
            continue
        clean_candidate(candidate)
        candidate.state = CandidateState.CHEAP_ACCEPTED
        accepted.append(candidate)

    log.info(f"Cheap validator: {len(accepted)} passed, {len(rejected)} filtered")
    return accepted, rejected
