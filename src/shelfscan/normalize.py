"""Title/author canonicalization for matching and display.

Every ``normalize*`` function is pure and idempotent, so they can be applied
at any stage (and re-applied after validation) without drifting.
"""

from __future__ import annotations

import re

_QUOTE_MAP = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "„": '"',
        "«": '"',
        "»": '"',
        "‘": "'",
        "’": "'",
        "‚": "'",
        "ʼ": "'",
        "–": "-",
        "—": "-",
        "‒": "-",
        "―": "-",
    }
)

_PUNCT_RE = re.compile(r"[.,;:!?]")
_WS_RE = re.compile(r"\s+")
_LEADING_ARTICLE_RE = re.compile(r"^(?:(?:the|a|an)\s+)+")
_AUTHOR_SUFFIX_RE = re.compile(r"(?:\s+(?:jr|sr|ii|iii|iv))+$")
_CONJUNCTION_RE = re.compile(r"\s*&\s*|\s+and\s+")
_VOL_PREFIX_RE = re.compile(r"^(?:vol\s+)+")
_VOL_SUFFIX_RE = re.compile(r"(?:\s+vol)+$")
_DIGITS_ONLY_RE = re.compile(r"^[\d\s]+$")
_SYMBOLS_ONLY_RE = re.compile(r"^[\W_]+$")
_INITIALS_RE = re.compile(r"^(?:[A-Za-z]\.)+$")


def normalize(s: str | None) -> str:
    """Trim, lowercase, ASCII-fy quotes/dashes, drop punctuation, collapse spaces."""
    if not s:
        return ""
    s = s.translate(_QUOTE_MAP).lower()
    s = _PUNCT_RE.sub("", s)
    return _WS_RE.sub(" ", s).strip()


def normalize_with_ocr(s: str | None) -> str:
    """``normalize`` plus removal of common OCR debris.

    Pipes vanish, "vol" markers at either end are dropped, and strings that
    are only digits or only symbols collapse to the empty string.
    """
    s = normalize(s).replace("|", "")
    s = _WS_RE.sub(" ", s).strip()
    s = _VOL_PREFIX_RE.sub("", s)
    s = _VOL_SUFFIX_RE.sub("", s).strip()
    if _DIGITS_ONLY_RE.match(s) or _SYMBOLS_ONLY_RE.match(s):
        return ""
    return s


def normalize_title(s: str | None) -> str:
    """``normalize`` without leading articles ("The Hobbit" == "Hobbit")."""
    return _LEADING_ARTICLE_RE.sub("", normalize(s)).strip()


def normalize_author(s: str | None) -> str:
    """``normalize`` without generational suffixes, with "and" folded into "&"."""
    # Fold first: "&jr" only exposes a suffix once spaced out
    s = _CONJUNCTION_RE.sub(" & ", normalize(s))
    s = _AUTHOR_SUFFIX_RE.sub("", s)
    return _WS_RE.sub(" ", s).strip()


def last_token(s: str) -> str:
    parts = s.split()
    return parts[-1] if parts else ""


def canonical_key(title: str | None, author: str | None) -> str:
    """Exact-match dedup key: normalized title plus the author's last token."""
    return f"{normalize_title(title)}::{last_token(normalize_author(author))}"


def _format_name_word(word: str) -> str:
    if len(word) == 1 or (len(word) == 2 and word.endswith(".")):
        return word.upper()
    if _INITIALS_RE.match(word):
        return word.upper()
    return "-".join(part[:1].upper() + part[1:].lower() for part in word.split("-"))


def format_author_name(s: str | None) -> str | None:
    """Display form of an author name.

    "smith, john" -> "John Smith", "MARY J. JONES" -> "Mary J. Jones".
    Returns None for empty input.
    """
    if not s or not s.strip():
        return None
    name = s.strip()
    if "," in name:
        parts = [p.strip() for p in name.split(",")]
        if len(parts) == 2 and parts[0] and parts[1]:
            name = f"{parts[1]} {parts[0]}"
        else:
            name = " ".join(p for p in parts if p)
    words = [w for w in name.split() if w]
    if not words:
        return None
    return " ".join(_format_name_word(w) for w in words)


def clean_display_text(s: str | None) -> str | None:
    """Strip OCR debris from a display value while keeping its casing.

    Returns None when nothing meaningful is left.
    """
    if not s:
        return None
    s = s.replace("|", " ")
    s = _WS_RE.sub(" ", s).strip()
    s = re.sub(r"^(?:vol\s+)+", "", s, flags=re.IGNORECASE)
    s = re.sub(r"(?:\s+vol)+$", "", s, flags=re.IGNORECASE).strip()
    return s or None
