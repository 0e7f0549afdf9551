"""Stage 1: invoke -- ask every vision provider for the spines, concurrently.

Each provider runs as its own task with its own timeout and retry budget.
A provider that times out, errors, or returns text nothing can be parsed
out of contributes an empty list; the stage only raises when no provider
is configured at all.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

from loguru import logger

from ..ai import SCAN_PROMPT
from ..concurrency import settle_all, with_retries
from ..errors import NoProvidersAvailable, ParseError, is_transient
from ..models import BookCandidate, ImagePayload, ProviderDiagnostics
from ..parsing import Failed, candidates_from_items, parse_book_array, resolve

if TYPE_CHECKING:
    from ..config import PipelineConfig
    from ..interfaces import JsonRepairer, VisionProvider

log = logger.bind(stage="invoke")


def scan_with_provider(
    provider: VisionProvider,
    image: ImagePayload,
    config: PipelineConfig,
    repairer: JsonRepairer | None = None,
    prompt: str = SCAN_PROMPT,
) -> list[BookCandidate]:
    """Call one provider (with transient retries) and parse its answer.

    Raises the provider's error once retries are exhausted, or ParseError
    when the fallback chain cannot recover a book array.
    """
    text = with_retries(
        lambda: provider.invoke(image, prompt),
        tries=config.provider_attempts,
        backoff=config.retry_backoff,
        retry_on=is_transient,
    )

    outcome = resolve(parse_book_array(text), repairer)
    if isinstance(outcome, Failed):
        raise ParseError(f"{provider.name}: {outcome.reason}")

    candidates = candidates_from_items(outcome.items, provider.name)
    log.info(f"{provider.name}: parsed {len(candidates)} books ({outcome.method})")
    return candidates


def run(
    image: ImagePayload,
    providers: Sequence[VisionProvider],
    config: PipelineConfig,
    repairer: JsonRepairer | None = None,
    prompt: str = SCAN_PROMPT,
) -> tuple[list[BookCandidate], dict[str, ProviderDiagnostics]]:
    """Scan ``image`` with every available provider and merge the results.

    Returns the merged raw candidates (provider order, then response order)
    and a diagnostics entry per provider.
    """
    diagnostics: dict[str, ProviderDiagnostics] = {}
    active = []
    for provider in providers:
        if provider.available:
            diagnostics[provider.name] = ProviderDiagnostics(attempted=True)
            active.append(provider)
        else:
            diagnostics[provider.name] = ProviderDiagnostics(
                attempted=False, error="not configured"
            )

    if not active:
        log.error("No vision provider is configured")
        raise NoProvidersAvailable(
            "no vision provider configured (set OPENAI_API_KEY and/or GEMINI_API_KEY)"
        )

    log.info(f"Starting scans in parallel: {', '.join(p.name for p in active)}")

    settled = settle_all(
        {
            p.name: (lambda p=p: scan_with_provider(p, image, config, repairer, prompt))
            for p in active
        },
        timeout=config.provider_deadline,
    )

    merged: list[BookCandidate] = []
    for provider in active:
        outcome = settled[provider.name]
        diag = diagnostics[provider.name]
        if outcome.ok:
            books = outcome.value or []
            diag.succeeded = True
            diag.count = len(books)
            merged.extend(books)
        else:
            diag.succeeded = False
            diag.count = 0
            diag.error = str(outcome.error) or type(outcome.error).__name__
            log.warning(f"{provider.name} contributed nothing: {diag.error}")

    if not merged:
        log.warning("Providers ran but found zero books")
    return merged, diagnostics
