"""Pipeline runner -- orchestrates one scan from photo to accepted books."""

from __future__ import annotations

import random
import string
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from loguru import logger

from .ai import OpenAIBatchValidator, OpenAIRepairer, get_client
from .api.gemini import GeminiVisionProvider
from .api.google_books import GoogleBooksLookup
from .api.openai_vision import OpenAIVisionProvider
from .cache import LookupCache
from .config import PipelineConfig
from .models import (
    BookCandidate,
    TERMINAL_EXCLUDED_STATES,
    CandidateState,
    ImagePayload,
    ScanResult,
    Stage,
)
from .stages import get_stage_runner

if TYPE_CHECKING:
    from .interfaces import (
        BatchValidationProvider,
        JsonRepairer,
        MetadataLookup,
        VisionProvider,
    )

log = logger.bind(stage="runner")

_JOB_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_job_id() -> str:
    """``job_<unix-ms>_<7 base36 chars>``, used when the caller has none."""
    suffix = "".join(random.choices(_JOB_ID_ALPHABET, k=7))
    return f"job_{int(time.time() * 1000)}_{suffix}"


def settle_validated(candidates: list[BookCandidate]) -> list[BookCandidate]:
    """Reject batch-invalid candidates and return the ones still in play."""
    for candidate in candidates:
        if candidate.state is CandidateState.BATCH_INVALID:
            candidate.state = CandidateState.REJECTED
    return [c for c in candidates if c.state not in TERMINAL_EXCLUDED_STATES]


class ScanPipeline:
    """Runs the extraction-reconciliation pipeline for one image at a time.

    Holds no per-run state, so one instance can serve concurrent scans.
    The lookup cache is the only thing shared between runs and it is
    thread-safe.
    """

    def __init__(
        self,
        config: PipelineConfig,
        providers: Sequence[VisionProvider],
        repairer: JsonRepairer | None = None,
        lookup: MetadataLookup | None = None,
        validator: BatchValidationProvider | None = None,
    ) -> None:
        self.config = config
        self.providers = list(providers)
        self.repairer = repairer
        self.lookup = lookup if config.lookup_enabled else None
        self.validator = validator if config.validation_enabled else None

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        cache: LookupCache | None = None,
    ) -> ScanPipeline:
        """Wire the concrete OpenAI, Gemini and Google Books collaborators."""
        log.debug(f"Vision providers with credentials: {config.configured_providers or 'none'}")
        providers = [
            OpenAIVisionProvider(
                api_key=config.openai_api_key,
                model=config.openai_vision_model,
                base_url=config.openai_base_url,
                timeout=config.provider_timeout,
            ),
            GeminiVisionProvider(
                api_key=config.gemini_api_key,
                model=config.gemini_model,
                base_url=config.gemini_base_url,
                timeout=config.provider_timeout,
            ),
        ]

        repairer = None
        repair_client = get_client(
            config.openai_base_url, config.openai_api_key, config.repair_timeout
        )
        if repair_client is not None:
            repairer = OpenAIRepairer(repair_client, config.repair_model)

        validator = None
        validation_client = get_client(
            config.openai_base_url, config.openai_api_key, config.validation_timeout
        )
        if validation_client is not None:
            validator = OpenAIBatchValidator(
                validation_client, config.validation_model, repairer=repairer
            )

        if cache is None:
            cache = LookupCache(
                ttl_seconds=config.lookup_cache_ttl,
                max_entries=config.lookup_cache_size,
            )
        lookup = GoogleBooksLookup(
            api_key=config.google_books_api_key,
            base_url=config.google_books_base_url,
            cache=cache,
            timeout=config.lookup_timeout,
            match_threshold=config.lookup_match_threshold,
            min_interval=config.lookup_min_interval,
        )

        return cls(
            config=config,
            providers=providers,
            repairer=repairer,
            lookup=lookup,
            validator=validator,
        )

    def run(
        self,
        image: ImagePayload,
        user_id: str | None = None,
        job_id: str | None = None,
    ) -> ScanResult:
        """Scan one shelf photo.

        Raises NoProvidersAvailable when no vision provider is configured;
        every other failure degrades into the diagnostics.
        """
        job_id = job_id or generate_job_id()
        run_log = log.bind(job_id=job_id)
        run_log.info(f"Scan {job_id} started (user={user_id or '-'})")

        invoke = get_stage_runner(Stage.INVOKE)
        correct = get_stage_runner(Stage.CORRECT)
        dedupe = get_stage_runner(Stage.DEDUPE)
        cheap_validate = get_stage_runner(Stage.CHEAP_VALIDATE)
        augment = get_stage_runner(Stage.AUGMENT)
        batch_validate = get_stage_runner(Stage.BATCH_VALIDATE)

        raw, diagnostics = invoke(image, self.providers, self.config, self.repairer)

        corrected = correct(raw)
        for candidate in corrected:
            candidate.state = CandidateState.NORMALIZED
        merged = self._dedupe(dedupe, corrected)

        accepted, rejected = cheap_validate(merged)

        augment(
            accepted,
            self.lookup,
            max_workers=self.config.lookup_workers,
            timeout=self.config.lookup_deadline,
        )
        augmented = sum(1 for c in accepted if c.external_match is not None)

        batch_validate(accepted, self.validator, batch_size=self.config.batch_size)
        valid = settle_validated(accepted)
        invalid = len(accepted) - len(valid)

        # Validation can normalize two distinct entries into the same book
        final = self._dedupe(dedupe, valid)
        for candidate in final:
            candidate.state = CandidateState.ACCEPTED

        stats = {
            "raw": len(raw),
            "merged": len(merged),
            "cheap_rejected": len(rejected),
            "augmented": augmented,
            "invalid": invalid,
            "final": len(final),
        }
        run_log.info(
            "Scan complete: "
            + ", ".join(f"{name}={d.count}" for name, d in diagnostics.items())
            + f", merged={len(merged)}, final={len(final)}"
        )

        return ScanResult(
            books=final,
            providers=diagnostics,
            job_id=job_id,
            user_id=user_id,
            stats=stats,
        )

    def _dedupe(self, dedupe, candidates: list[BookCandidate]) -> list[BookCandidate]:
        return dedupe(
            candidates,
            threshold=self.config.fuzzy_similarity_threshold,
            window=self.config.spine_index_window,
        )
