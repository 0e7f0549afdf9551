"""Collaborator protocols consumed by the pipeline stages."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from .models import ExternalMatch, ImagePayload


@runtime_checkable
class VisionProvider(Protocol):
    """A vision-capable model that lists the spines in a shelf photo.

    ``invoke`` returns the model's raw text. It raises ProviderUnavailable,
    ProviderTimeout or ProviderHTTPError; parsing happens elsewhere.
    """

    @property
    def name(self) -> str: ...

    @property
    def available(self) -> bool: ...

    def invoke(self, image: ImagePayload, prompt: str) -> str: ...


class JsonRepairer(Protocol):
    def repair(self, invalid_text: str, schema_description: str) -> str | None: ...


class MetadataLookup(Protocol):
    def lookup(self, title: str, author: str | None = None) -> ExternalMatch | None: ...


class BatchValidationProvider(Protocol):
    """Validates a batch of candidate summaries in one inference call.

    Raises ValidationCallFailure when the call or its output is unusable.
    """

    def validate(self, summaries: list[dict]) -> list[dict]: ...
