"""OpenAI chat-completions vision provider.

Sends the shelf photo as a data URL alongside the scan prompt and returns
the model's text. SDK exceptions are translated into the pipeline's
provider errors so the invoker can decide what to retry.
"""

from __future__ import annotations

import openai
from loguru import logger

from ..ai import get_client
from ..errors import ProviderHTTPError, ProviderTimeout, ProviderUnavailable
from ..models import ImagePayload

log = logger.bind(stage="openai")


class OpenAIVisionProvider:
    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        max_tokens: int = 4000,
        client=None,
    ) -> None:
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.client = client if client is not None else get_client(base_url, api_key, timeout)

    @property
    def available(self) -> bool:
        return self.client is not None

    def invoke(self, image: ImagePayload, prompt: str) -> str:
        if self.client is None:
            raise ProviderUnavailable(self.name)

        log.debug(f"Requesting scan from {self.model} ({len(image.data):,} bytes)")
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "user",
                        "content": [
                            {"type": "text", "text": prompt},
                            {"type": "image_url", "image_url": {"url": image.as_data_url()}},
                        ],
                    }
                ],
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except openai.APITimeoutError as e:
            raise ProviderTimeout(self.name, self.timeout) from e
        except openai.APIStatusError as e:
            raise ProviderHTTPError(self.name, e.status_code, str(e)) from e
        except openai.APIConnectionError as e:
            raise ProviderHTTPError(self.name, None, str(e)) from e

        if not response.choices:
            log.warning("OpenAI returned no choices")
            return ""

        choice = response.choices[0]
        content = (choice.message.content or "").strip()
        if not content and choice.finish_reason == "length":
            log.warning("OpenAI response truncated before any content (finish_reason=length)")
        log.debug(f"OpenAI raw response: {len(content)} chars, finish_reason={choice.finish_reason}")
        return content
