# -*- coding: utf-8 -*-
########################
# text_matcher.py
########################
# Purpose:
# - Normalized string comparison and edit distance accuracy for typed lyric lines.
#
# Design notes:
# - No Qt usage. Pure, stateless and deterministic.
# - normalize() lowercases and strips a fixed punctuation set. It does not trim whitespace;
#   accuracy() trims before normalizing, the early completion test does not.
#
########################
# Interfaces:
# Public constants:
# - PUNCTUATION: str
#
# Public functions:
# - is_punctuation(character: str) -> bool
# - normalize(text: str) -> str
# - levenshtein_distance(a: str, b: str) -> int
# - accuracy(typed: str, expected: str) -> float
# - is_complete_match(typed: str, expected: str) -> bool
# - character_marks(typed: str, expected: str) -> list[bool]
#
########################

from __future__ import annotations

from typing import List

PUNCTUATION = ".,!?;:'\"()[]{}-–—…"

_STRIP_TABLE = str.maketrans("", "", PUNCTUATION)


def is_punctuation(character: str) -> bool:
    return len(character) == 1 and character in PUNCTUATION


def normalize(text: str) -> str:
    return str(text).lower().translate(_STRIP_TABLE)


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    # Two row dynamic programming; row index walks a, column index walks b.
    previous_row = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current_row = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            if char_a == char_b:
                current_row[j] = previous_row[j - 1]
            else:
                current_row[j] = min(
                    previous_row[j - 1] + 1,  # substitution
                    current_row[j - 1] + 1,  # insertion
                    previous_row[j] + 1,  # deletion
                )
        previous_row = current_row
    return previous_row[len(b)]


def accuracy(typed: str, expected: str) -> float:
    """Return character accuracy of typed against expected, in [0, 1].

    Both sides are trimmed, lowercased and stripped of punctuation before comparison.
    """
    if not expected:
        return 0.0 if typed else 1.0
    if not typed:
        return 0.0

    typed_norm = normalize(typed.strip())
    expected_norm = normalize(expected.strip())
    if typed_norm == expected_norm:
        return 1.0

    distance = levenshtein_distance(typed_norm, expected_norm)
    max_length = max(len(typed_norm), len(expected_norm))
    return max(0.0, 1.0 - distance / max_length)


def is_complete_match(typed: str, expected: str) -> bool:
    typed_norm = normalize(typed)
    return bool(typed_norm) and typed_norm == normalize(expected)


def character_marks(typed: str, expected: str) -> List[bool]:
    """Per typed character, whether it equals the expected character at that position."""
    marks: List[bool] = []
    for index, character in enumerate(typed):
        if index < len(expected):
            marks.append(character.lower() == expected[index].lower())
        else:
            marks.append(False)
    return marks


def _run_unit_tests() -> None:
    assert normalize("Hello, World!") == "hello world"
    assert levenshtein_distance("kitten", "sitting") == 3
    assert accuracy("", "") == 1.0
    assert accuracy("", "abc") == 0.0
    assert accuracy("abc", "") == 0.0
    assert accuracy("hello world", "Hello, world!") == 1.0
    assert abs(accuracy("helo", "hello") - 0.8) < 1e-9
    assert is_complete_match("hello world", "Hello, world!")
    assert not is_complete_match("", "...")
    assert character_marks("hEx", "hello") == [True, True, False]


if __name__ == "__main__":
    _run_unit_tests()
    print("text_matcher.py: ok")
