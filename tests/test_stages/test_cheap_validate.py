"""Tests for stages/cheap_validate.py -- rule-based junk filter."""

import pytest

from shelfscan.models import BookCandidate, CandidateState, Confidence
from shelfscan.stages.cheap_validate import clean_candidate, rejection_reason, run


class TestRejectionReason:
    def test_short_spine_without_fields(self):
        book = BookCandidate(title=None, author=None, spine_text="ab")
        assert rejection_reason(book) == "spine_text_too_short"

    def test_short_spine_with_title_passes(self):
        book = BookCandidate(title="Dune", author=None, spine_text="D")
        assert rejection_reason(book) is None

    @pytest.mark.parametrize("title", ["123-456", "12 / 34", "#42"])
    def test_digits_only_title(self, title):
        book = BookCandidate(title=title, spine_text="label on spine")
        assert rejection_reason(book) == "title_is_digits_only"

    def test_digits_only_applies_with_author(self):
        book = BookCandidate(title="1984", author="George Orwell")
        assert rejection_reason(book) == "title_is_digits_only"

    @pytest.mark.parametrize("title", ["IIII", "@@@@@", "%%%%", "****", "i i i i"])
    def test_nonsense_pattern(self, title):
        book = BookCandidate(title=title, spine_text="spine label")
        assert rejection_reason(book) == "nonsense_pattern"

    def test_generic_word_low_confidence(self):
        book = BookCandidate(title="Book", confidence=Confidence.LOW)
        assert rejection_reason(book) == "generic_word_no_author"

    def test_generic_word_with_author_passes(self):
        book = BookCandidate(title="Book", author="Someone Real", confidence=Confidence.LOW)
        assert rejection_reason(book) is None

    def test_generic_word_medium_confidence_passes(self):
        assert rejection_reason(BookCandidate(title="Volume")) is None

    def test_real_book_passes(self):
        book = BookCandidate(title="The Left Hand of Darkness", author="Ursula K. Le Guin")
        assert rejection_reason(book) is None


class TestCleanCandidate:
    def test_cleans_display_fields(self):
        book = BookCandidate(title="Vol | Dune", author="HERBERT, FRANK", spine_text="  ")
        clean_candidate(book)
        assert book.title == "Dune"
        assert book.author == "Frank Herbert"
        assert book.spine_text == "Dune"

    def test_keeps_spine_text(self):
        book = BookCandidate(title="Dune", spine_text=" DUNE  HERBERT ")
        clean_candidate(book)
        assert book.spine_text == "DUNE  HERBERT"

    def test_empty_language_defaults(self):
        book = BookCandidate(title="Dune", language="")
        clean_candidate(book)
        assert book.language == "unknown"


class TestRun:
    def test_splits_and_marks(self):
        good = BookCandidate(title="Dune", author="frank herbert", confidence=Confidence.HIGH)
        junk = BookCandidate(title="||||", spine_text="||||")
        generic = BookCandidate(title="The", confidence=Confidence.LOW, spine_text="THE")
        accepted, rejected = run([good, junk, generic])

        assert accepted == [good]
        assert good.state is CandidateState.CHEAP_ACCEPTED
        assert good.author == "Frank Herbert"
        assert rejected == [junk, generic]
        assert all(b.state is CandidateState.CHEAP_REJECTED for b in rejected)
        assert junk.rejection_reason == "spine_text_too_short"

    def test_empty(self):
        assert run([]) == ([], [])
