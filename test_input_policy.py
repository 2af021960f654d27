from input_policy import apply_policy, assist_align
from text_matcher import accuracy


def test_normal_passes_text_through():
    assert apply_policy("normal", "anything!", "any", "Hello") == "anything!"


def test_strict_rejects_deletions():
    assert apply_policy("strict", "hel", "hell", "hello") == "hell"
    assert apply_policy("strict", "", "h", "hello") == "h"


def test_strict_allows_same_length_replacement():
    assert apply_policy("strict", "hexl", "hell", "hello") == "hexl"


def test_strict_buffer_length_never_decreases():
    previous = ""
    for proposed in ["h", "he", "h", "hel", "", "hell", "hello"]:
        current = apply_policy("strict", proposed, previous, "hello")
        assert len(current) >= len(previous)
        previous = current
    assert previous == "hello"


def test_assist_inserts_skipped_punctuation():
    assert assist_align("dont stop", "Don't stop!") == "don't stop!"
    assert assist_align("wait what", "Wait... what?") == "wait... what?"


def test_assist_keeps_typed_punctuation():
    assert assist_align("don't", "Don't") == "don't"


def test_assist_reaches_full_accuracy_when_letters_are_typed():
    expected = "Hey, (you) - yes, you!"
    typed = "hey you  yes you"
    aligned = apply_policy("assist", typed, "", expected)
    assert accuracy(aligned, expected) == 1.0


def test_assist_drops_characters_beyond_expected_text():
    assert assist_align("hello there", "hello") == "hello"


def test_assist_empty_input_stays_empty():
    assert apply_policy("assist", "", "abc", "Don't") == ""
