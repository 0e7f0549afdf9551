"""shelfscan -- turn a bookshelf photo into a deduplicated list of books.

Core modules:
    config      -- Pipeline configuration via pydantic-settings (OPENAI_*, GEMINI_*,
                   GOOGLE_BOOKS_* env vars, heuristics and timeouts)
    cli         -- Click CLI entry point. Prints the scan result as JSON.
    runner      -- ScanPipeline: sequences the stages and assembles the result
    models      -- BookCandidate, confidence tiers, candidate states, diagnostics
    normalize   -- Idempotent title/author canonicalization and canonical keys
    parsing     -- Model output -> JSON array fallback chain (Parsed/NeedsRepair/Failed)
    ai          -- Scan prompt, JSON repair and batch validation over any
                   OpenAI-compatible endpoint
    concurrency -- settle_all fan-out/fan-in and transient-only retries
    cache       -- Explicitly scoped TTL cache for metadata lookups
    errors      -- Exception hierarchy and HTTP status categorization

Subpackages:
    api    -- External API clients (OpenAI vision, Gemini vision, Google Books)
    stages -- Pipeline stages (invoke, correct, dedupe, cheap_validate,
              augment, batch_validate)
"""
