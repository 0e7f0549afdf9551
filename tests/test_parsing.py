"""Tests for parsing.py -- the JSON fallback chain and candidate building."""

import json

import pytest

from shelfscan.models import CandidateState, Confidence
from shelfscan.parsing import (
    BOOK_ARRAY_SCHEMA,
    Failed,
    NeedsRepair,
    Parsed,
    candidates_from_items,
    parse_book_array,
    resolve,
    strip_code_fences,
)

BOOKS = [
    {"title": "Dune", "author": "Frank Herbert", "confidence": "high", "spine_index": 0},
    {"title": "Emma", "author": "Jane Austen", "confidence": "medium", "spine_index": 1},
]


class TestStripCodeFences:
    def test_json_fence(self):
        assert strip_code_fences('```json\n[1, 2]\n```') == "[1, 2]"

    def test_plain_fence(self):
        assert strip_code_fences("```\n[]\n```") == "[]"

    def test_no_fence(self):
        assert strip_code_fences("  [] ") == "[]"


class TestParseBookArray:
    @pytest.mark.parametrize("text", [None, "", "   \n"])
    def test_empty_fails(self, text):
        assert isinstance(parse_book_array(text), Failed)

    def test_only_fences_fails(self):
        assert isinstance(parse_book_array("```json\n```"), Failed)

    def test_direct(self):
        outcome = parse_book_array(json.dumps(BOOKS))
        assert isinstance(outcome, Parsed)
        assert outcome.method == "direct"
        assert outcome.items == BOOKS

    def test_fenced(self):
        outcome = parse_book_array(f"```json\n{json.dumps(BOOKS)}\n```")
        assert isinstance(outcome, Parsed)
        assert outcome.items == BOOKS

    def test_extracted_from_prose(self):
        text = f"Here are the books I found:\n{json.dumps(BOOKS)}\nLet me know!"
        outcome = parse_book_array(text)
        assert isinstance(outcome, Parsed)
        assert outcome.method == "extracted"
        assert len(outcome.items) == 2

    def test_reconstructed_from_truncated_output(self):
        text = (
            '[{"title": "Dune", "author": "Frank Herbert", "spine_index": 0}, '
            '{"title": "Emma", "author": "Jane Austen", "spine_index": 1}, '
            '{"title": "Beloved", "auth'
        )
        outcome = parse_book_array(text)
        assert isinstance(outcome, Parsed)
        assert outcome.method == "reconstructed"
        assert [i["title"] for i in outcome.items] == ["Dune", "Emma"]

    def test_object_not_array_needs_repair(self):
        outcome = parse_book_array('{"title": "Dune"}')
        assert isinstance(outcome, NeedsRepair)

    def test_garbage_needs_repair(self):
        outcome = parse_book_array("I could not read any spines, sorry.")
        assert isinstance(outcome, NeedsRepair)
        assert outcome.raw_text == "I could not read any spines, sorry."

    def test_empty_array_is_parsed(self):
        outcome = parse_book_array("[]")
        assert isinstance(outcome, Parsed)
        assert outcome.items == []


class TestResolve:
    def test_passthrough(self):
        parsed = Parsed([1])
        failed = Failed("x")
        assert resolve(parsed, None) is parsed
        assert resolve(failed, None) is failed

    def test_no_repairer_fails(self):
        assert isinstance(resolve(NeedsRepair("junk"), None), Failed)

    def test_repaired(self, fake_repairer):
        repairer = fake_repairer(output=json.dumps(BOOKS))
        outcome = resolve(NeedsRepair("junk"), repairer)
        assert isinstance(outcome, Parsed)
        assert outcome.method == "repaired"
        assert repairer.calls == [("junk", BOOK_ARRAY_SCHEMA)]

    def test_repaired_with_fences_and_prose(self, fake_repairer):
        repairer = fake_repairer(output=f"Sure:\n```json\n{json.dumps(BOOKS)}\n```")
        outcome = resolve(NeedsRepair("junk"), repairer)
        assert isinstance(outcome, Parsed)
        assert len(outcome.items) == 2

    def test_repair_returns_nothing(self, fake_repairer):
        assert isinstance(resolve(NeedsRepair("junk"), fake_repairer(output=None)), Failed)

    def test_repair_returns_non_array(self, fake_repairer):
        outcome = resolve(NeedsRepair("junk"), fake_repairer(output='{"a": 1}'))
        assert isinstance(outcome, Failed)


class TestCandidatesFromItems:
    def test_fields(self):
        items = [
            {
                "title": " Dune ",
                "author": "Frank Herbert",
                "confidence": "HIGH",
                "spine_text": "DUNE HERBERT",
                "language": "en",
                "spine_index": "3",
            }
        ]
        [book] = candidates_from_items(items, "gemini")
        assert book.title == "Dune"
        assert book.author == "Frank Herbert"
        assert book.confidence is Confidence.HIGH
        assert book.spine_text == "DUNE HERBERT"
        assert book.language == "en"
        assert book.spine_index == 3
        assert book.source_provider == "gemini"
        assert book.state is CandidateState.RAW

    def test_null_strings_become_none(self):
        [book] = candidates_from_items([{"title": "Dune", "author": "null"}], "openai")
        assert book.author is None

    def test_defaults(self):
        [book] = candidates_from_items([{"title": "Dune"}], "openai")
        assert book.confidence is Confidence.MEDIUM
        assert book.language == "unknown"
        assert book.spine_index is None
        assert book.spine_text == ""

    @pytest.mark.parametrize("bad", [True, "left", 1.5, None])
    def test_bad_spine_index(self, bad):
        [book] = candidates_from_items([{"title": "Dune", "spine_index": bad}], "openai")
        assert book.spine_index is None

    def test_non_objects_skipped(self):
        books = candidates_from_items(["Dune", 3, {"title": "Emma"}], "openai")
        assert [b.title for b in books] == ["Emma"]
