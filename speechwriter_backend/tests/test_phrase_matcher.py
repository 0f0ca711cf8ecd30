"""
Tests for the trie-based cliché phrase matcher.
"""

import pytest

from speechwriter_backend.services.phrase_matcher import (
    CLICHE_TABLE,
    PhraseEntry,
    PhraseMatcher,
    classify_severity,
    cliche_density,
    count_tokens,
    entries_from_table,
    get_phrase_matcher,
)


@pytest.fixture
def matcher():
    return PhraseMatcher(entries_from_table(CLICHE_TABLE))


def test_every_table_phrase_is_found_with_exact_span(matcher):
    for category, phrases in CLICHE_TABLE.items():
        for phrase in phrases:
            text = f"Honestly, {phrase.upper()} is what I heard today."
            matches = matcher.search(text)
            spans = [text[m.start:m.end].lower() for m in matches if m.phrase == phrase]
            assert phrase in spans, phrase


def test_offsets_ignore_trailing_punctuation(matcher):
    text = "Let's circle back, then touch base."
    matches = matcher.search(text)

    assert [text[m.start:m.end] for m in matches] == ["circle back", "touch base"]


def test_nested_phrase_produces_overlapping_matches(matcher):
    text = "Thanks to each and every one of you"
    matches = matcher.search(text)

    phrases = sorted(m.phrase for m in matches)
    assert phrases == ["each and every", "each and every one"]
    assert matches[0].start == matches[1].start


def test_context_window_is_thirty_chars_each_side(matcher):
    prefix = "x" * 50 + " "
    text = prefix + "synergy" + " " + "y" * 50
    match = matcher.search(text)[0]

    assert match.context == text[match.start - 30:match.end + 30]


def test_empty_and_clean_text_have_no_matches(matcher):
    assert matcher.search("") == []
    assert matcher.search("The harbor lights came on one by one.") == []


def test_density_is_monotonic_as_cliches_are_appended(matcher):
    base = ["word"] * 40
    previous = 0.0
    for count in range(1, 6):
        tokens = base[: 40 - count * 2] + ["synergy", "word"] * count
        text = " ".join(tokens)
        density = cliche_density(len(matcher.search(text)), count_tokens(text))
        assert density >= previous
        previous = density


def test_density_of_empty_text_is_zero():
    assert cliche_density(0, 0) == 0.0


@pytest.mark.parametrize("category,density,expected", [
    ("business", 0.1, "HIGH"),
    ("general", 2.5, "HIGH"),
    ("redundant", 0.1, "MEDIUM"),
    ("general", 1.5, "MEDIUM"),
    ("motivational", 0.5, "LOW"),
])
def test_severity_classification(category, density, expected):
    assert classify_severity(category, density) == expected


def test_detect_assigns_severity_from_density(matcher):
    matches = matcher.detect("end result")

    assert matches[0].severity == "HIGH"  # 1 match in 2 tokens is 50 per 100


def test_isolated_matcher_uses_only_its_own_phrases():
    matcher = PhraseMatcher([PhraseEntry("red herring", "custom")])

    assert matcher.phrase_count == 1
    assert [m.category for m in matcher.search("a red herring and synergy")] == ["custom"]


def test_factory_is_memoized():
    assert get_phrase_matcher() is get_phrase_matcher()
