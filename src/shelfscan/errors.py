"""Exception hierarchy and error categorization for the shelf scan pipeline."""

from __future__ import annotations

from .models import ErrorCategory


class PipelineError(Exception):
    """Base exception for all pipeline errors."""


class ConfigError(PipelineError):
    """Invalid or missing configuration."""


class NoProvidersAvailable(ConfigError):
    """No vision provider is configured at all.

    The only error that aborts a scan. Distinct from providers running and
    finding zero books.
    """


class ProviderError(PipelineError):
    """A vision provider call failed."""

    def __init__(self, provider: str, message: str) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider


class ProviderUnavailable(ProviderError):
    """The provider is missing its configuration (usually an API key)."""

    def __init__(self, provider: str) -> None:
        super().__init__(provider, "not configured")


class ProviderTimeout(ProviderError):
    """The provider did not answer within its timeout."""

    def __init__(self, provider: str, timeout: float) -> None:
        super().__init__(provider, f"timed out after {timeout:g}s")
        self.timeout = timeout


class ProviderHTTPError(ProviderError):
    """Non-success response, or no response at all (``status_code`` is None)."""

    def __init__(self, provider: str, status_code: int | None, detail: str = "") -> None:
        if status_code is None:
            message = f"network error: {detail}" if detail else "network error"
        else:
            message = f"HTTP {status_code}"
            if detail:
                message += f": {detail[:200]}"
        super().__init__(provider, message)
        self.status_code = status_code
        self.category = categorize_status_code(status_code)


class ParseError(PipelineError):
    """Provider output could not be turned into a book list."""


class ValidationCallFailure(PipelineError):
    """A batch validation call failed; its candidates pass through unmodified."""


class LookupFailure(PipelineError):
    """A metadata lookup failed; the candidate proceeds without augmentation."""


def categorize_status_code(code: int | None) -> ErrorCategory:
    """Map an HTTP status to an error category.

    No status (connection failure), 408, 429 and 5xx are transient and worth
    retrying. Everything else (bad key, bad request) is permanent.
    """
    if code is None or code in (408, 429) or code >= 500:
        return ErrorCategory.TRANSIENT
    return ErrorCategory.PERMANENT


def is_transient(exc: BaseException) -> bool:
    """True for provider failures the retry policy should retry."""
    if isinstance(exc, ProviderTimeout):
        return True
    if isinstance(exc, ProviderHTTPError):
        return exc.category == ErrorCategory.TRANSIENT
    return False
