"""Stage 5: augment -- look up ambiguous candidates in an external catalog.

A hit is attached as an advisory ExternalMatch for the batch validator to
weigh; title and author are never overwritten here. Lookups run
concurrently and any failure leaves the candidate as it was.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from ..concurrency import settle_all
from ..models import BookCandidate, CandidateState, Confidence

if TYPE_CHECKING:
    from ..interfaces import MetadataLookup

log = logger.bind(stage="augment")


def is_ambiguous(candidate: BookCandidate) -> bool:
    """Low/medium confidence, no author, or a very short title."""
    return (
        candidate.confidence in (Confidence.LOW, Confidence.MEDIUM)
        or not candidate.author
        or (bool(candidate.title) and len(candidate.title) < 5)
    )


def lookup_query(candidate: BookCandidate) -> str | None:
    query = (candidate.title or candidate.spine_text or "").strip()
    return query if len(query) >= 2 else None


def run(
    candidates: list[BookCandidate],
    lookup: MetadataLookup | None,
    max_workers: int = 8,
    timeout: float | None = None,
) -> list[BookCandidate]:
    """Attach external matches to ambiguous candidates, in place."""
    if lookup is None:
        log.debug("No metadata lookup configured, skipping")
        return candidates

    tasks = {}
    for idx, candidate in enumerate(candidates):
        if not is_ambiguous(candidate):
            continue
        query = lookup_query(candidate)
        if query is None:
            continue
        author = candidate.author or None
        tasks[idx] = lambda q=query, a=author: lookup.lookup(q, a)

    if not tasks:
        log.info("Early lookup: no ambiguous candidates")
        return candidates

    log.info(f"Early lookup for {len(tasks)} ambiguous candidates...")
    settled = settle_all(tasks, max_workers=max_workers, timeout=timeout)

    found = 0
    for idx, outcome in settled.items():
        candidate = candidates[idx]
        if not outcome.ok:
            log.debug(f"Lookup failed for {candidate.title!r}: {outcome.error}")
            continue
        if outcome.value is None:
            continue
        candidate.external_match = outcome.value
        candidate.state = CandidateState.AUGMENTED
        found += 1

    log.info(f"Early lookup: {found} of {len(tasks)} matched")
    return candidates
