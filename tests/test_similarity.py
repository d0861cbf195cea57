import pytest

from screenbot.similarity import similarity, tokenize


def test_tokenize_lowercases_and_strips_punctuation():
    assert tokenize("Hello, World! It's 2024.") == ["hello", "world", "it", "s", "2024"]


def test_tokenize_drops_non_ascii_letters():
    assert tokenize("café naïve") == ["caf", "na", "ve"]


def test_tokenize_empty_and_none():
    assert tokenize("") == []
    assert tokenize(None) == []
    assert tokenize("  !!! ...  ") == []


def test_two_blank_answers_are_identical():
    assert similarity("", "") == 1.0
    assert similarity("?!", "   ") == 1.0


def test_blank_against_text_is_zero():
    assert similarity("", "some answer") == 0.0


def test_identical_text_scores_one():
    assert similarity("I like building systems", "i LIKE building systems!!") == 1.0


def test_partial_overlap_is_ratio_of_sets():
    # {a, b, c} vs {b, c, d}: 2 shared out of 4 distinct
    assert similarity("a b c", "b c d") == pytest.approx(0.5)


def test_repeated_words_count_once():
    assert similarity("yes yes yes", "yes") == 1.0


@pytest.mark.parametrize(
    "a,b",
    [
        ("the quick brown fox", "the lazy dog"),
        ("", "anything at all"),
        ("One, two; three", "three two one four"),
        ("Résumé review", "resume review"),
    ],
)
def test_similarity_is_symmetric_and_bounded(a, b):
    forward = similarity(a, b)
    assert forward == similarity(b, a)
    assert 0.0 <= forward <= 1.0
