"""Google Books volume search used to confirm ambiguous candidates.

Searches by title (plus author when known), scores the returned volumes with
rapidfuzz and reports a match only when the best score clears the threshold.
Results, including misses, are memoized in an explicitly passed LookupCache.
"""

from __future__ import annotations

import re
import threading
import time

import httpx
from loguru import logger
from rapidfuzz import fuzz

from ..cache import LookupCache
from ..errors import LookupFailure
from ..models import Confidence, ExternalMatch
from ..normalize import normalize, normalize_title

log = logger.bind(stage="lookup")


def build_query(title: str, author: str | None = None) -> str:
    """Search query with punctuation stripped (Google Books chokes on some)."""
    clean_title = re.sub(r"[^\w\s]", "", title).strip()
    clean_title = re.sub(r"\s+", " ", clean_title)
    if author:
        return f"{clean_title} {author.strip()}".strip()
    return clean_title


def score_volumes(
    volumes: list[dict],
    title_hint: str,
    author_hint: str | None,
) -> list[dict]:
    """Score volumes with rapidfuzz, sorted descending.

    Weights: title 70%, author 30%. Without an author hint the title score
    is scaled to the full 100 so title-only lookups are not penalized.
    """
    title_norm = normalize_title(title_hint)
    author_norm = normalize(author_hint)

    scored = []
    for v in volumes:
        info = v.get("volumeInfo") or {}
        candidate_title = normalize_title(info.get("title", ""))
        title_score = fuzz.token_set_ratio(title_norm, candidate_title)

        if author_norm:
            author_scores = [
                fuzz.partial_ratio(author_norm, normalize(a))
                for a in (info.get("authors") or [])
            ]
            total = title_score * 0.7 + max(author_scores, default=0) * 0.3
        else:
            total = float(title_score)

        scored.append({**v, "score": round(total, 1)})

    scored.sort(key=lambda x: x["score"], reverse=True)
    return scored


class GoogleBooksLookup:
    """Metadata lookup against the Google Books volumes endpoint."""

    def __init__(
        self,
        api_key: str = "",
        base_url: str = "https://www.googleapis.com/books/v1",
        cache: LookupCache | None = None,
        timeout: float = 5.0,
        match_threshold: float = 80.0,
        min_interval: float = 0.2,
        max_results: int = 5,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.cache = cache if cache is not None else LookupCache()
        self.timeout = timeout
        self.match_threshold = match_threshold
        self.min_interval = min_interval
        self.max_results = max_results
        self._rate_lock = threading.Lock()
        self._last_request = 0.0

    def _wait_for_rate_limit(self) -> None:
        with self._rate_lock:
            elapsed = time.monotonic() - self._last_request
            if elapsed < self.min_interval:
                time.sleep(self.min_interval - elapsed)
            self._last_request = time.monotonic()

    def search(self, query: str) -> list[dict]:
        """Raw volume search. Raises LookupFailure on network/HTTP errors."""
        params = {"q": query, "maxResults": str(self.max_results)}
        if self.api_key:
            params["key"] = self.api_key

        self._wait_for_rate_limit()
        log.debug(f"Google Books search: query={query!r}")
        try:
            resp = httpx.get(
                f"{self.base_url}/volumes",
                params=params,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            # str(e) carries the full URL, key included
            raise LookupFailure(f"Google Books returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise LookupFailure(f"Google Books request failed: {e}") from e

        try:
            data = resp.json()
        except ValueError as e:
            raise LookupFailure("Google Books response is not JSON") from e
        return data.get("items") or []

    def lookup(self, title: str, author: str | None = None) -> ExternalMatch | None:
        query = build_query(title, author)
        if len(query) < 2:
            return None
        # Concurrent lookups of one query share a single request
        return self.cache.get_or_load(
            f"search:{query.lower()}",
            lambda: self._best_match(query, title, author),
        )

    def _best_match(self, query: str, title: str, author: str | None) -> ExternalMatch | None:
        volumes = self.search(query)
        match = None
        if volumes:
            best = score_volumes(volumes, title, author)[0]
            if best["score"] >= self.match_threshold and best.get("id"):
                info = best.get("volumeInfo") or {}
                match = ExternalMatch(
                    match_id=best["id"],
                    confidence=Confidence.HIGH,
                    title=info.get("title"),
                    authors=list(info.get("authors") or []),
                )
                log.debug(f"Matched {title!r} -> {best['id']} (score={best['score']:.0f})")
            else:
                log.debug(f"No strong match for {title!r} (best={best['score']:.0f})")

        return match
