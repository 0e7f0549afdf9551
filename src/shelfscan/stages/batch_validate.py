"""Stage 6: batch_validate -- semantic validation in fixed-size batches.

Each batch goes to the validation model in a single call. Results are
matched back to candidates by canonical key, suffixed "#<n>" when several
candidates in one batch share a key (untitled spines all key to "::").
Valid results may rewrite title, author and confidence; invalid ones are
tagged for the orchestrator to drop. A missing result or a failed batch
leaves candidates exactly as they were: validation trouble never loses a
book.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from loguru import logger

from ..errors import ValidationCallFailure
from ..models import BookCandidate, CandidateState, Confidence, ValidationNotes
from ..normalize import format_author_name

if TYPE_CHECKING:
    from ..interfaces import BatchValidationProvider

log = logger.bind(stage="batch_validate")

DEFAULT_BATCH_SIZE = 20


def summarize(candidate: BookCandidate) -> dict:
    """The per-candidate payload sent to the validation model."""
    return {
        "canonical_key": candidate.canonical_key,
        "title": candidate.title,
        "author": candidate.author,
        "spine_text": candidate.spine_text or candidate.title or "",
        "confidence": candidate.confidence.value,
        "external_match": (
            candidate.external_match.to_dict() if candidate.external_match else None
        ),
    }


def chunk(candidates: list[BookCandidate], size: int) -> list[list[BookCandidate]]:
    size = max(size, 1)
    return [candidates[i:i + size] for i in range(0, len(candidates), size)]


def _is_valid_flag(value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip().lower() not in ("false", "no", "0")
    return bool(value)


def apply_result(candidate: BookCandidate, result: dict) -> None:
    """Apply one validation result to its candidate, in place."""
    fixes = result.get("fixes") or []
    if not isinstance(fixes, list):
        fixes = [str(fixes)]
    notes = str(result.get("notes") or "")
    candidate.validation_notes = ValidationNotes(
        fixes=[str(f) for f in fixes if f and f != "none"],
        notes=notes,
    )

    if not _is_valid_flag(result.get("is_valid", True)):
        candidate.confidence = Confidence.INVALID
        candidate.state = CandidateState.BATCH_INVALID
        candidate.rejection_reason = f"batch_invalid: {notes}" if notes else "batch_invalid"
        log.info(f"Marked INVALID: {candidate.title!r} by {candidate.author or 'no author'}")
        return

    final_title = result.get("final_title")
    if isinstance(final_title, str) and final_title.strip():
        candidate.title = final_title.strip()

    final_author = result.get("final_author")
    if isinstance(final_author, str) and final_author.strip():
        candidate.author = format_author_name(final_author)
    else:
        candidate.author = format_author_name(candidate.author)

    final_confidence = Confidence.parse(result.get("final_confidence"), default=candidate.confidence)
    if final_confidence != Confidence.INVALID:
        candidate.confidence = final_confidence
    candidate.state = CandidateState.BATCH_VALID


def batch_keys(batch: list[BookCandidate]) -> list[str]:
    """One result key per candidate, unique within the batch."""
    seen: dict[str, int] = {}
    keys = []
    for candidate in batch:
        key = candidate.canonical_key
        n = seen.get(key, 0)
        seen[key] = n + 1
        keys.append(key if n == 0 else f"{key}#{n}")
    return keys


def validate_batch(batch: list[BookCandidate], validator: BatchValidationProvider) -> int:
    """Validate one batch in place. Returns how many candidates got a result."""
    keys = batch_keys(batch)
    summaries = [{**summarize(c), "canonical_key": key} for c, key in zip(batch, keys)]
    results = validator.validate(summaries)
    by_key: dict[str, dict] = {}
    for result in results:
        result_key = result.get("canonical_key")
        if isinstance(result_key, str) and result_key not in by_key:
            by_key[result_key] = result

    matched = 0
    for candidate, key in zip(batch, keys):
        result = by_key.get(key)
        if result is None:
            log.debug(f"No validation result for {candidate.title!r}, keeping as-is")
            continue
        apply_result(candidate, result)
        matched += 1
    return matched


def run(
    candidates: list[BookCandidate],
    validator: BatchValidationProvider | None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[BookCandidate]:
    """Validate candidates batch by batch, sequentially, in place.

    Returns the same list; invalid candidates are tagged, not removed.
    """
    if validator is None or not candidates:
        return candidates

    batches = chunk(candidates, batch_size)
    for num, batch in enumerate(batches, 1):
        log.info(f"Batch validating {num}/{len(batches)} ({len(batch)} books)...")
        try:
            matched = validate_batch(batch, validator)
        except ValidationCallFailure as e:
            log.warning(f"Batch {num} validation failed, keeping originals: {e}")
            continue
        log.debug(f"Batch {num}: {matched}/{len(batch)} results applied")

    invalid = sum(1 for c in candidates if c.state == CandidateState.BATCH_INVALID)
    log.info(f"Validation complete: {len(candidates)} validated, {invalid} invalid")
    return candidates
