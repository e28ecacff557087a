import pytest

from subtrack.matching import (
    common_prefix,
    compact,
    extract_core_words,
    fuzzy_contains,
    levenshtein_distance,
    longest_common_substring,
    mean,
    normalize_description,
    population_variance,
    string_similarity,
)


def test_normalize_description():
    assert normalize_description("NETFLIX.COM   Oslo") == "netflix com oslo"
    assert normalize_description("  Spotify*AB  ") == "spotify ab"


def test_compact_strips_everything_but_alphanumerics():
    assert compact("Help.HBO-Max com") == "helphbomaxcom"


def test_similarity_identical():
    assert string_similarity("Netflix", "NETFLIX") == 1.0


def test_similarity_substring_ratio():
    assert string_similarity("Netflix", "Netflix Com") == pytest.approx(7 / 11)


def test_similarity_jaccard():
    assert string_similarity("spotify premium", "spotify family") == pytest.approx(1 / 3)


def test_similarity_empty_inputs():
    assert string_similarity("", "") == 1.0
    assert string_similarity("...", "netflix") == 0.0


def test_levenshtein():
    assert levenshtein_distance("kitten", "sitting") == 3
    assert levenshtein_distance("", "abc") == 3
    assert levenshtein_distance("same", "same") == 0


def test_fuzzy_contains_tolerates_renamed_merchant():
    assert fuzzy_contains("HELP.MAX.COM OSLO", "help.hbomax.com") is True


def test_fuzzy_contains_typo():
    assert fuzzy_contains("SPOTIFI STOCKHOLM", "spotify stockholm") is True


def test_fuzzy_contains_rejects_unrelated():
    assert fuzzy_contains("SPOTIFY", "netflix com") is False
    assert fuzzy_contains("anything", "") is False


def test_extract_core_words_drops_noise():
    assert extract_core_words("VISA NETFLIX.COM 1234 payment") == ["netflix.com"]


def test_longest_common_substring():
    assert longest_common_substring(["SPOTIFY P1234 OSLO", "SPOTIFY P5678 OSLO"]) == "SPOTIFY P"
    assert longest_common_substring([]) == ""


def test_common_prefix():
    assert common_prefix(["APPLE.COM/BILL 1", "APPLE.COM/BILL 2"]) == "APPLE.COM/BILL "
    assert common_prefix(["abc", "xyz"]) == ""


def test_interval_statistics():
    assert mean([28, 31, 30]) == pytest.approx(29.6667, rel=1e-4)
    assert population_variance([30, 30, 30]) == 0.0
    assert population_variance([28, 32]) == 4.0
    assert mean([]) == 0.0
