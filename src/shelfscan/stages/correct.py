"""Stage 2: correct -- undo title/author swaps.

Vision models sometimes report the author's name as the title and the
title as the author. The fix is deliberately conservative: it only fires
when the title looks like a person's name AND the author looks like a
book title at the same time.
"""

from __future__ import annotations

import re

from loguru import logger

from ..models import BookCandidate, CandidateState
from ..normalize import format_author_name

log = logger.bind(stage="correct")

_ARTICLES = ("the", "a", "an")
_TITLE_CONNECTIVES = frozenset(
    {"of", "in", "on", "and", "to", "for", "with", "at", "from", "into", "the", "a", "an"}
)
# "Smith", "McCarthy", "O'Brien", "Lin-Manuel"
_NAME_WORD_RE = re.compile(r"^[A-Z][a-z]*(?:[A-Z][a-z]+)?(?:['-][A-Z]?[a-z]+)*$")
# "J.", "JR.", "J.R."
_INITIAL_RE = re.compile(r"^(?:[A-Z]{1,2}\.|(?:[A-Z]\.){2,3})$")


def looks_like_name(s: str | None) -> bool:
    """2-4 capitalized words (initials allowed), e.g. "John A. Smith"."""
    if not s:
        return False
    words = s.split()
    if not 2 <= len(words) <= 4:
        return False
    if words[0].lower() in _ARTICLES:
        return False
    full_words = 0
    for word in words:
        if _INITIAL_RE.match(word):
            continue
        if not _NAME_WORD_RE.match(word) or len(word) < 2:
            return False
        full_words += 1
    return full_words >= 1


def looks_like_title(s: str | None) -> bool:
    """Leading article, longer than 20 characters, more than 4 words, or a
    lowercase connective ("Dragonfly in Amber") that never appears in a name.
    """
    if not s:
        return False
    s = s.strip()
    words = s.split()
    if not words:
        return False
    if words[0].lower() in _ARTICLES or len(s) > 20 or len(words) > 4:
        return True
    return any(w in _TITLE_CONNECTIVES for w in words[1:])


def correct_candidate(candidate: BookCandidate) -> bool:
    """Swap title/author in place when both heuristics agree. Returns True if swapped."""
    title = (candidate.title or "").strip()
    author = (candidate.author or "").strip()
    if looks_like_name(title) and looks_like_title(author):
        log.info(f"Swapping title/author: {title!r} (title) <-> {author!r} (author)")
        candidate.title = author
        candidate.author = format_author_name(title)
        return True
    return False


def run(candidates: list[BookCandidate]) -> list[BookCandidate]:
    swapped = 0
    for candidate in candidates:
        if correct_candidate(candidate):
            swapped += 1
        candidate.state = CandidateState.CORRECTED
    if swapped:
        log.info(f"Corrected {swapped} swapped title/author pairs")
    return candidates
