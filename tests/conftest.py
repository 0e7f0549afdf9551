"""Shared fixtures: isolated config and in-memory collaborator fakes."""

import pytest

from shelfscan.config import PipelineConfig
from shelfscan.models import ImagePayload

# Env vars that pydantic-settings reads -- cleaned so tests see defaults
_CONFIG_ENV_VARS = [
    "OPENAI_API_KEY", "OPENAI_BASE_URL", "OPENAI_VISION_MODEL",
    "GEMINI_API_KEY", "GEMINI_BASE_URL", "GEMINI_MODEL",
    "GOOGLE_BOOKS_API_KEY", "GOOGLE_BOOKS_BASE_URL",
    "REPAIR_MODEL", "VALIDATION_MODEL", "BATCH_SIZE",
    "PROVIDER_TIMEOUT", "PROVIDER_DEADLINE", "PROVIDER_ATTEMPTS", "RETRY_BACKOFF",
    "FUZZY_SIMILARITY_THRESHOLD", "SPINE_INDEX_WINDOW",
    "LOOKUP_ENABLED", "VALIDATION_ENABLED", "LOG_LEVEL", "LOG_DIR", "VERBOSE",
]


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in _CONFIG_ENV_VARS:
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def config():
    return PipelineConfig(_env_file=None, retry_backoff=0.0, lookup_min_interval=0.0)


@pytest.fixture
def image():
    return ImagePayload(data=b"\xff\xd8\xff\xe0fake-jpeg", mime_type="image/jpeg")


class FakeProvider:
    """Vision provider returning canned text, or raising canned errors in order."""

    def __init__(self, name, responses=None, available=True):
        self.name = name
        self.available = available
        self._responses = list(responses or [])
        self.calls = 0

    def invoke(self, image, prompt):
        self.calls += 1
        response = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response()
        return response


class FakeRepairer:
    def __init__(self, output=None):
        self.output = output
        self.calls = []

    def repair(self, invalid_text, schema_description):
        self.calls.append((invalid_text, schema_description))
        return self.output


class FakeLookup:
    def __init__(self, matches=None, error=None):
        self.matches = matches or {}
        self.error = error
        self.calls = []

    def lookup(self, title, author=None):
        self.calls.append((title, author))
        if self.error is not None:
            raise self.error
        return self.matches.get(title)


class FakeValidator:
    """Batch validator driven by a per-call function over the summaries."""

    def __init__(self, respond=None, error=None):
        self.respond = respond
        self.error = error
        self.batches = []

    def validate(self, summaries):
        self.batches.append(summaries)
        if self.error is not None:
            raise self.error
        if self.respond is None:
            return [
                {
                    "canonical_key": s["canonical_key"],
                    "is_valid": True,
                    "final_title": s["title"],
                    "final_author": s["author"],
                    "final_confidence": s["confidence"],
                    "fixes": ["none"],
                    "notes": "",
                }
                for s in summaries
            ]
        return self.respond(summaries)


@pytest.fixture
def fake_provider():
    return FakeProvider


@pytest.fixture
def fake_repairer():
    return FakeRepairer


@pytest.fixture
def fake_lookup():
    return FakeLookup


@pytest.fixture
def fake_validator():
    return FakeValidator
