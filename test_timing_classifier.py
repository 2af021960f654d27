import pytest

from gameplay_models import Difficulty, TimingVerdict, profile_for
from timing_classifier import classify, multiplier, verdict_label


@pytest.mark.parametrize(
    "judged_at, verdict",
    [
        (10000, TimingVerdict.PERFECT),
        (10300, TimingVerdict.PERFECT),
        (9700, TimingVerdict.PERFECT),
        (10301, TimingVerdict.LATE),
        (10800, TimingVerdict.LATE),
        (10801, TimingVerdict.TOO_LATE),
        (9699, TimingVerdict.EARLY),
        (9200, TimingVerdict.EARLY),
        (9199, TimingVerdict.TOO_EARLY),
    ],
)
def test_medium_boundaries(judged_at, verdict):
    assert classify(judged_at, 10000, profile_for("medium")) == verdict


@pytest.mark.parametrize("difficulty", list(Difficulty))
def test_every_offset_gets_exactly_one_verdict(difficulty):
    profile = profile_for(difficulty)
    seen = set()
    for diff in range(-3000, 3001, 25):
        verdict = classify(5000 + diff, 5000, profile)
        seen.add(verdict)
        if abs(diff) <= profile.perfect_window_ms:
            assert verdict == TimingVerdict.PERFECT
        elif diff < -profile.good_window_ms:
            assert verdict == TimingVerdict.TOO_EARLY
        elif diff < 0:
            assert verdict == TimingVerdict.EARLY
        elif diff > profile.good_window_ms:
            assert verdict == TimingVerdict.TOO_LATE
        else:
            assert verdict == TimingVerdict.LATE
    assert seen == set(TimingVerdict)


def test_multiplier_uses_profile_penalties():
    hard = profile_for("hard")
    assert multiplier(TimingVerdict.PERFECT, hard) == 1.0
    assert multiplier(TimingVerdict.EARLY, hard) == hard.early_penalty
    assert multiplier(TimingVerdict.LATE, hard) == hard.late_penalty
    assert multiplier(TimingVerdict.TOO_EARLY, hard) == hard.too_early_penalty
    assert multiplier(TimingVerdict.TOO_LATE, hard) == hard.too_late_penalty


def test_verdict_label():
    assert verdict_label(TimingVerdict.TOO_EARLY) == "TOO EARLY"
    assert verdict_label(TimingVerdict.PERFECT) == "PERFECT"
