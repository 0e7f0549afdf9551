"""AI-assisted scanning, JSON repair and batch validation.

Works with any OpenAI-compatible endpoint (OpenAI, LiteLLM, Ollama). The
vision prompt lives here so every provider asks for the same contract.
"""

from __future__ import annotations

import json

from loguru import logger

from .errors import ValidationCallFailure
from .parsing import strip_code_fences

log = logger.bind(stage="ai")

SCAN_PROMPT = """Scan this image and return ALL visible book spines as a strict JSON array.

CRITICAL RULES:
- TITLE is the book name (usually larger text, on the spine)
- AUTHOR is the person's name who wrote it (usually smaller text, below or above title)
- DO NOT swap title and author - titles are book names, authors are people's names
- If you see "John Smith" and "The Great Novel", "John Smith" is the AUTHOR, "The Great Novel" is the TITLE
- Format author names with normal capitalization and the full name (e.g. "John Smith", not "JOHN SMITH")
- Number books left-to-right: spine_index 0, 1, 2, etc.
- Capture raw spine_text exactly as you see it (even if messy)
- Detect language: "en", "es", "fr", or "unknown"

Return ONLY a valid JSON array (no markdown, no code blocks, no explanations):
[{
  "title": "Book Title Here or null",
  "author": "Author Name Here or null",
  "confidence": "high|medium|low",
  "spine_text": "raw text from spine",
  "language": "en|es|fr|unknown",
  "reason": "brief reason for confidence",
  "spine_index": 0
}]"""

VALIDATION_SCHEMA = (
    "JSON array of validation results, each with keys: canonical_key (string), "
    "is_valid (boolean), final_title (string or null), final_author (string or null), "
    "final_confidence ('high'|'medium'|'low'), fixes (array of strings), notes (string)"
)


def get_client(base_url: str, api_key: str, timeout: float | None = None):
    """Return an OpenAI client configured for the given endpoint, or None.

    Returns None if base_url or api_key is empty (AI disabled).
    """
    if not base_url or not api_key:
        return None

    from openai import OpenAI

    # The SDK does not append /v1 itself, so only the trailing slash goes
    clean_url = base_url.rstrip("/")

    # with_retries owns the retry policy; the SDK must not add its own
    kwargs = {"base_url": clean_url, "api_key": api_key, "max_retries": 0}
    if timeout is not None:
        kwargs["timeout"] = timeout
    return OpenAI(**kwargs)


def build_validation_prompt(summaries: list[dict]) -> str:
    return (
        "You are a book expert validating detected books from a bookshelf scan.\n\n"
        "DETECTED BOOKS (JSON array):\n"
        f"{json.dumps(summaries, indent=2, ensure_ascii=False)}\n\n"
        "TASK: For each book, determine if it's valid and correct any errors. "
        "Be LENIENT - only mark as invalid if clearly junk.\n\n"
        "RULES:\n"
        "1. Books WITHOUT authors are VALID if the title is distinctive\n"
        "2. Partial titles are VALID\n"
        "3. Only mark INVALID if clearly not a real book (random words, OCR garbage)\n"
        "4. If title/author are swapped, fix them\n"
        "5. Fix obvious OCR errors\n"
        "6. Prefer external_match data if provided (from a catalog lookup)\n\n"
        "Return ONLY a valid JSON array (no markdown, no code blocks), one entry per input book:\n"
        "[{\n"
        '  "canonical_key": "same as input",\n'
        '  "is_valid": true,\n'
        '  "final_title": "corrected title or null",\n'
        '  "final_author": "corrected author or null",\n'
        '  "final_confidence": "high|medium|low",\n'
        '  "fixes": ["title_author_swap", "ocr_cleanup", "filled_author", "none"],\n'
        '  "notes": "brief explanation"\n'
        "}]"
    )


class OpenAIRepairer:
    """Ask a model to turn broken JSON into valid JSON for a given schema."""

    def __init__(self, client, model: str, max_tokens: int = 2000) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens

    def repair(self, invalid_text: str, schema_description: str) -> str | None:
        if self.client is None or not invalid_text:
            return None

        prompt = (
            f"Fix this invalid JSON to match the schema: {schema_description}\n\n"
            f"Invalid JSON:\n{invalid_text}\n\n"
            "Return ONLY valid JSON, no explanations."
        )
        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=self.max_tokens,
                temperature=0,
            )
            content = (response.choices[0].message.content or "").strip()
        except Exception as e:
            log.warning(f"JSON repair failed: {e}")
            return None

        return strip_code_fences(content) or None


class OpenAIBatchValidator:
    """Validate a batch of candidate summaries in one chat completion."""

    def __init__(
        self,
        client,
        model: str,
        repairer: OpenAIRepairer | None = None,
        max_tokens: int = 2000,
    ) -> None:
        self.client = client
        self.model = model
        self.repairer = repairer
        self.max_tokens = max_tokens

    def validate(self, summaries: list[dict]) -> list[dict]:
        if self.client is None:
            raise ValidationCallFailure("no validation model configured")
        if not summaries:
            return []

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": build_validation_prompt(summaries)}],
                max_tokens=self.max_tokens,
                temperature=0.1,
            )
            content = (response.choices[0].message.content or "").strip()
        except Exception as e:
            raise ValidationCallFailure(f"validation call failed: {e}") from e

        results = _load_result_list(strip_code_fences(content))
        if results is None and self.repairer is not None:
            log.debug("Validation output is not a JSON array, attempting repair")
            repaired = self.repairer.repair(content, VALIDATION_SCHEMA)
            if repaired:
                results = _load_result_list(strip_code_fences(repaired))
        if results is None:
            raise ValidationCallFailure("validation output is not a JSON array")

        return [r for r in results if isinstance(r, dict)]


def _load_result_list(text: str) -> list | None:
    if not text:
        return None
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        start, end = text.find("["), text.rfind("]")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start:end + 1])
        except (json.JSONDecodeError, ValueError):
            return None
    return data if isinstance(data, list) else None
