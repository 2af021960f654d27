# -*- coding: utf-8 -*-
########################
# timing_classifier.py
########################
# Purpose:
# - Map the offset between judgment time and target time to a discrete TimingVerdict.
# - Map a verdict to its score multiplier under a DifficultyProfile.
#
# Design notes:
# - No Qt usage. Pure functions.
# - Checks run in a fixed sequence, so boundary ties resolve toward perfect first,
#   then toward the inner band (early/late) over the outer one.
#
########################
# Interfaces:
# Public functions:
# - classify(judged_at_ms: float, target_ms: float, profile: DifficultyProfile) -> TimingVerdict
# - multiplier(verdict: TimingVerdict, profile: DifficultyProfile) -> float
# - verdict_label(verdict: TimingVerdict) -> str
#
########################

from __future__ import annotations

from gameplay_models import DifficultyProfile, TimingVerdict, profile_for


def classify(judged_at_ms: float, target_ms: float, profile: DifficultyProfile) -> TimingVerdict:
    diff = float(judged_at_ms) - float(target_ms)

    if abs(diff) <= profile.perfect_window_ms:
        return TimingVerdict.PERFECT
    if diff < -profile.good_window_ms:
        return TimingVerdict.TOO_EARLY
    if diff < 0:
        return TimingVerdict.EARLY
    if diff > profile.good_window_ms:
        return TimingVerdict.TOO_LATE
    return TimingVerdict.LATE


def multiplier(verdict: TimingVerdict, profile: DifficultyProfile) -> float:
    if verdict == TimingVerdict.PERFECT:
        return 1.0
    if verdict == TimingVerdict.EARLY:
        return float(profile.early_penalty)
    if verdict == TimingVerdict.LATE:
        return float(profile.late_penalty)
    if verdict == TimingVerdict.TOO_EARLY:
        return float(profile.too_early_penalty)
    if verdict == TimingVerdict.TOO_LATE:
        return float(profile.too_late_penalty)
    raise ValueError(f"Unknown timing verdict: {verdict!r}")


_VERDICT_LABELS = {
    TimingVerdict.PERFECT: "PERFECT",
    TimingVerdict.EARLY: "EARLY",
    TimingVerdict.LATE: "LATE",
    TimingVerdict.TOO_EARLY: "TOO EARLY",
    TimingVerdict.TOO_LATE: "TOO LATE",
}


def verdict_label(verdict: TimingVerdict) -> str:
    return _VERDICT_LABELS[TimingVerdict(verdict)]


def _run_unit_tests() -> None:
    medium = profile_for("medium")
    assert classify(10250, 10000, medium) == TimingVerdict.PERFECT
    assert classify(10300, 10000, medium) == TimingVerdict.PERFECT
    assert classify(9699, 10000, medium) == TimingVerdict.EARLY
    assert classify(9200, 10000, medium) == TimingVerdict.EARLY
    assert classify(9199, 10000, medium) == TimingVerdict.TOO_EARLY
    assert classify(10800, 10000, medium) == TimingVerdict.LATE
    assert classify(12000, 10000, medium) == TimingVerdict.TOO_LATE
    assert multiplier(TimingVerdict.TOO_LATE, medium) == 0.4
    assert verdict_label(TimingVerdict.TOO_EARLY) == "TOO EARLY"


if __name__ == "__main__":
    _run_unit_tests()
    print("timing_classifier.py: ok")
