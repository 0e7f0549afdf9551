"""Stage 3: dedupe -- collapse the same book reported more than once.

Two passes, always in this order:

1. Exact: group by canonical key (normalized title + author's last name).
   Within a group keep the entry that has both title and author, then the
   more confident one.
2. Fuzzy: walk the survivors in order. A candidate is a duplicate of an
   accepted one when titles/authors normalize identically, or when the
   authors agree, the spines are within ``window`` positions of each other
   and the titles share enough words (Jaccard) or one contains the other.

The spine-position gate keeps two copies of a similarly titled book on
opposite ends of the shelf apart.
"""

from __future__ import annotations

from loguru import logger

from ..models import BookCandidate, CandidateState
from ..normalize import normalize_author, normalize_title

log = logger.bind(stage="dedupe")

DEFAULT_SIMILARITY_THRESHOLD = 0.5
DEFAULT_SPINE_WINDOW = 2


def _exact_rank(candidate: BookCandidate) -> tuple[bool, int]:
    return (candidate.has_title_and_author, candidate.confidence.rank)


def _discard(candidate: BookCandidate, survivor: BookCandidate, reason: str) -> None:
    candidate.state = CandidateState.DISCARDED_DUPLICATE
    candidate.rejection_reason = (
        f"{reason} duplicate of {survivor.title!r} by {survivor.author or 'unknown'}"
    )


def exact_pass(candidates: list[BookCandidate]) -> list[BookCandidate]:
    """Keep one candidate per canonical key.

    Candidates without a usable title have no meaningful key and pass
    through untouched.
    """
    groups: dict[str, BookCandidate] = {}
    order: list[str | int] = []
    passthrough: dict[int, BookCandidate] = {}

    for idx, candidate in enumerate(candidates):
        if not normalize_title(candidate.title):
            passthrough[idx] = candidate
            order.append(idx)
            continue

        key = candidate.canonical_key
        existing = groups.get(key)
        if existing is None:
            groups[key] = candidate
            order.append(key)
        elif _exact_rank(candidate) > _exact_rank(existing):
            _discard(existing, candidate, "exact")
            groups[key] = candidate
        else:
            _discard(candidate, existing, "exact")

    return [passthrough[k] if isinstance(k, int) else groups[k] for k in order]


def _title_words(title: str) -> set[str]:
    return {w for w in title.split() if len(w) > 2}


def jaccard(a: str, b: str) -> float:
    """Token-set similarity over words longer than 2 characters."""
    words_a, words_b = _title_words(a), _title_words(b)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _authors_match(a: str, b: str) -> bool:
    return a == b or not a or not b or a in b or b in a


def is_fuzzy_duplicate(
    candidate: BookCandidate,
    existing: BookCandidate,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    window: int = DEFAULT_SPINE_WINDOW,
) -> bool:
    title_a, title_b = normalize_title(candidate.title), normalize_title(existing.title)
    author_a, author_b = normalize_author(candidate.author), normalize_author(existing.author)

    if title_a == title_b and author_a == author_b:
        return True

    if not _authors_match(author_a, author_b):
        return False
    if abs(candidate.position - existing.position) > window:
        return False
    if len(title_a) <= 3 or len(title_b) <= 3:
        return False

    return jaccard(title_a, title_b) > threshold or title_a in title_b or title_b in title_a


def fuzzy_pass(
    candidates: list[BookCandidate],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    window: int = DEFAULT_SPINE_WINDOW,
) -> list[BookCandidate]:
    accepted: list[BookCandidate] = []
    for candidate in candidates:
        if not normalize_title(candidate.title):
            accepted.append(candidate)
            continue

        duplicate_of = None
        for i, existing in enumerate(accepted):
            if not normalize_title(existing.title):
                continue
            if is_fuzzy_duplicate(candidate, existing, threshold, window):
                duplicate_of = i
                break

        if duplicate_of is None:
            accepted.append(candidate)
            continue

        existing = accepted[duplicate_of]
        if candidate.confidence.rank > existing.confidence.rank:
            log.debug(f"Fuzzy merge: {candidate.title!r} replaces {existing.title!r}")
            _discard(existing, candidate, "fuzzy")
            accepted[duplicate_of] = candidate
        else:
            log.debug(f"Fuzzy merge: {candidate.title!r} folded into {existing.title!r}")
            _discard(candidate, existing, "fuzzy")

    return accepted


def run(
    candidates: list[BookCandidate],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    window: int = DEFAULT_SPINE_WINDOW,
) -> list[BookCandidate]:
    """Exact pass then fuzzy pass. Never returns more candidates than it got."""
    exact = exact_pass(candidates)
    survivors = fuzzy_pass(exact, threshold, window)
    for candidate in survivors:
        candidate.state = CandidateState.DEDUPED
    log.info(
        f"Dedupe: {len(candidates)} in, {len(survivors)} unique "
        f"(exact removed {len(candidates) - len(exact)}, fuzzy removed {len(exact) - len(survivors)})"
    )
    return survivors
