# -*- coding: utf-8 -*-
########################
# input_policy.py
########################
# Purpose:
# - Transform a proposed typed buffer into the effective buffer under the active InputPolicy.
#
# Design notes:
# - No Qt usage. Pure functions.
# - Policies are silent corrections, never errors:
#   - normal: accept verbatim
#   - strict: reject deletions (a shorter proposal keeps the previous buffer)
#   - assist: inject expected punctuation the learner skipped
#
########################
# Interfaces:
# Public functions:
# - apply_policy(policy: InputPolicy | str, proposed: str, previous: str, expected: str) -> str
# - assist_align(proposed: str, expected: str) -> str
#
########################

from __future__ import annotations

from typing import Union

from gameplay_models import InputPolicy, normalize_input_policy
from text_matcher import is_punctuation


def assist_align(proposed: str, expected: str) -> str:
    aligned: list[str] = []
    typed_index = 0
    expected_index = 0

    while typed_index < len(proposed) and expected_index < len(expected):
        typed_char = proposed[typed_index]
        expected_char = expected[expected_index]
        if is_punctuation(expected_char) and typed_char != expected_char:
            aligned.append(expected_char)
            expected_index += 1
        else:
            aligned.append(typed_char)
            typed_index += 1
            expected_index += 1

    # Typed input exhausted: close out any punctuation the learner has now reached.
    while expected_index < len(expected) and is_punctuation(expected[expected_index]):
        aligned.append(expected[expected_index])
        expected_index += 1

    return "".join(aligned)


def apply_policy(policy: Union[InputPolicy, str], proposed: str, previous: str, expected: str) -> str:
    resolved = normalize_input_policy(policy)
    text = str(proposed)

    if resolved == InputPolicy.STRICT:
        if len(text) < len(previous):
            return previous
        return text

    if resolved == InputPolicy.ASSIST:
        if not text:
            return text
        return assist_align(text, expected)

    return text


def _run_unit_tests() -> None:
    assert apply_policy("normal", "helo", "hel", "hello") == "helo"
    assert apply_policy("strict", "he", "hel", "hello") == "hel"
    assert apply_policy("strict", "hex", "hel", "hello") == "hex"
    assert apply_policy("assist", "dont stop", "", "Don't stop!") == "don't stop!"
    assert apply_policy("assist", "", "abc", "Don't") == ""


if __name__ == "__main__":
    _run_unit_tests()
    print("input_policy.py: ok")
