"""Stage registry -- maps Stage enum values to run functions.

Pipeline order: invoke -> correct -> dedupe -> cheap_validate -> augment
-> batch_validate (-> dedupe again, run by the orchestrator)

Stages:
    invoke -- Call every configured vision provider concurrently, each under
              its own timeout with linear-backoff retries for transient
              failures. Parses each response through the fallback chain
              (direct JSON, extracted array, reconstructed objects, repair
              model) and records per-provider diagnostics. Raises
              NoProvidersAvailable only when no provider is configured.
    correct -- Swap title/author when the title is name-shaped AND the author
               is title-shaped. Never fires on a single signal.
    dedupe -- Exact pass on canonical keys (prefer complete, then more
              confident entries), then fuzzy pass on token-set similarity
              gated by author agreement and spine-index proximity.
    cheap_validate -- Rule-based junk filter (short spine text, digit-only
                      titles, repeated-symbol noise, lone stopwords). Cleans
                      display values of accepted candidates.
    augment -- Concurrent metadata lookups for ambiguous candidates. Attaches
               an advisory ExternalMatch; never overwrites title/author.
    batch_validate -- Sequential batches through a semantic validation model.
                      Applies corrections, tags invalid entries, and leaves
                      candidates untouched on any failure.
"""

from ..models import Stage


def get_stage_runner(stage: Stage):
    """Return the run function for a given stage."""
    if stage == Stage.INVOKE:
        from .invoke import run as invoke_run

        return invoke_run

    if stage == Stage.CORRECT:
        from .correct import run as correct_run

        return correct_run

    if stage == Stage.DEDUPE:
        from .dedupe import run as dedupe_run

        return dedupe_run

    if stage == Stage.CHEAP_VALIDATE:
        from .cheap_validate import run as cheap_validate_run

        return cheap_validate_run

    if stage == Stage.AUGMENT:
        from .augment import run as augment_run

        return augment_run

    if stage == Stage.BATCH_VALIDATE:
        from .batch_validate import run as batch_validate_run

        return batch_validate_run

    raise NotImplementedError(f"Stage '{stage.value}' has no runner.")
