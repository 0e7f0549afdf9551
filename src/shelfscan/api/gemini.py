"""Google Gemini vision provider (REST generateContent)."""

from __future__ import annotations

import httpx
from loguru import logger

from ..errors import ProviderHTTPError, ProviderTimeout, ProviderUnavailable
from ..models import ImagePayload

log = logger.bind(stage="gemini")


class GeminiVisionProvider:
    name = "gemini"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-1.5-pro",
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout: float = 60.0,
        max_output_tokens: int = 8000,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_output_tokens = max_output_tokens

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def invoke(self, image: ImagePayload, prompt: str) -> str:
        if not self.api_key:
            raise ProviderUnavailable(self.name)

        body = {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": image.mime_type,
                                "data": image.as_base64(),
                            }
                        },
                    ]
                }
            ],
            "generationConfig": {
                "temperature": 0.1,
                "maxOutputTokens": self.max_output_tokens,
            },
        }

        log.debug(f"Requesting scan from {self.model} ({len(image.data):,} bytes)")
        try:
            resp = httpx.post(
                f"{self.base_url}/models/{self.model}:generateContent",
                headers={"x-goog-api-key": self.api_key},
                json=body,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except httpx.TimeoutException as e:
            raise ProviderTimeout(self.name, self.timeout) from e
        except httpx.HTTPStatusError as e:
            raise ProviderHTTPError(
                self.name, e.response.status_code, e.response.text
            ) from e
        except httpx.HTTPError as e:
            raise ProviderHTTPError(self.name, None, str(e)) from e

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderHTTPError(self.name, resp.status_code, "response body is not JSON") from e

        if data.get("error"):
            raise ProviderHTTPError(self.name, resp.status_code, str(data["error"]))

        content = extract_text(data)
        if not content:
            usage = data.get("usageMetadata") or {}
            if usage.get("thoughtsTokenCount"):
                log.warning(
                    f"Gemini spent {usage['thoughtsTokenCount']} tokens reasoning "
                    "and produced no output"
                )
            else:
                log.warning(f"Gemini returned empty content (keys: {sorted(data)})")
        log.debug(f"Gemini raw response: {len(content)} chars")
        return content


def extract_text(data: dict) -> str:
    """Pull the first non-empty text part out of a generateContent response."""
    candidates = data.get("candidates") or []
    if candidates:
        first = candidates[0] or {}
        content = first.get("content") or {}
        for part in content.get("parts") or []:
            text = (part or {}).get("text")
            if text and text.strip():
                return text.strip()
        for text in (first.get("text"), content.get("text")):
            if text and text.strip():
                return text.strip()
    text = data.get("text")
    return text.strip() if isinstance(text, str) else ""
