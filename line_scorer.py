# -*- coding: utf-8 -*-
########################
# line_scorer.py
########################
# Purpose:
# - Line judgment and scoring engine.
# - Combines text accuracy, timing verdict and combo state into one LineJudgment.
# - Aggregates a session's judgments into SessionStats.
#
# Design notes:
# - No Qt usage. Pure gameplay logic.
# - Weighting (60% accuracy, 30% timing, 10% combo) and the 0.95 perfect accuracy threshold
#   are fixed constants, not per difficulty settings.
# - Combo resets hard to zero on any non perfect line.
# - Rounding is half up (scores are never negative).
#
########################
# Interfaces:
# Public dataclasses:
# - ScoreState(score: int, combo: int, max_combo: int)
#   - apply_judgment(judgment: LineJudgment) -> None
#
# Public functions:
# - score_line(typed, expected, judged_at_ms, target_ms, combo_before, profile, *, line_index=0) -> LineJudgment
# - compute_session_stats(judgments: Sequence[LineJudgment], total_duration_ms: float) -> SessionStats
#
# Inputs:
# - Typed and expected text, judgment and target time in ms, combo before the line, DifficultyProfile.
#
# Outputs:
# - LineJudgment objects appended to the session history by session_engine.Synchronizer.
#
########################

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Sequence

import text_matcher
import timing_classifier
from gameplay_models import DifficultyProfile, LineJudgment, SessionStats, TimingVerdict, profile_for

BASE_LINE_SCORE = 1000
ACCURACY_WEIGHT = 0.6
TIMING_WEIGHT = 0.3
COMBO_WEIGHT = 0.1
COMBO_BONUS_CAP = 2.0
PERFECT_ACCURACY_THRESHOLD = 0.95
MISSED_LINE_SCORE_CEILING = 500


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def score_line(
    typed: str,
    expected: str,
    judged_at_ms: float,
    target_ms: float,
    combo_before: int,
    profile: DifficultyProfile,
    *,
    line_index: int = 0,
) -> LineJudgment:
    line_accuracy = text_matcher.accuracy(typed, expected)
    verdict = timing_classifier.classify(judged_at_ms, target_ms, profile)
    timing_score = timing_classifier.multiplier(verdict, profile)

    is_perfect_line = line_accuracy >= PERFECT_ACCURACY_THRESHOLD and verdict == TimingVerdict.PERFECT
    combo_after = int(combo_before) + 1 if is_perfect_line else 0

    combo_bonus = 1.0 + int(combo_before) * (float(profile.combo_growth_factor) - 1.0) * 0.1
    weighted = (
        line_accuracy * ACCURACY_WEIGHT
        + timing_score * TIMING_WEIGHT
        + min(combo_bonus, COMBO_BONUS_CAP) * COMBO_WEIGHT
    )
    score = _round_half_up(BASE_LINE_SCORE * weighted * float(profile.base_score_multiplier))

    return LineJudgment(
        line_index=int(line_index),
        typed_text=str(typed),
        expected_text=str(expected),
        accuracy=float(line_accuracy),
        timing_verdict=verdict,
        timing_score=float(timing_score),
        score=max(0, score),
        combo_after=combo_after,
    )


@dataclass
class ScoreState:
    score: int = 0
    combo: int = 0
    max_combo: int = 0

    def apply_judgment(self, judgment: LineJudgment) -> None:
        self.score += int(judgment.score)
        self.combo = int(judgment.combo_after)
        if self.combo > self.max_combo:
            self.max_combo = self.combo


def compute_session_stats(judgments: Sequence[LineJudgment], total_duration_ms: float) -> SessionStats:
    if not judgments:
        return SessionStats()

    total_score = sum(int(judgment.score) for judgment in judgments)
    mean_accuracy = sum(float(judgment.accuracy) for judgment in judgments) / len(judgments)
    max_combo = max([int(judgment.combo_after) for judgment in judgments] + [0])

    perfect_lines = 0
    good_lines = 0
    missed_lines = 0
    for judgment in judgments:
        is_perfect_timing = judgment.timing_verdict == TimingVerdict.PERFECT
        if is_perfect_timing and judgment.accuracy >= PERFECT_ACCURACY_THRESHOLD:
            perfect_lines += 1
        # Good and missed may overlap: a low scoring line with perfect timing
        # and weak accuracy counts as both.
        if (judgment.score > MISSED_LINE_SCORE_CEILING and not is_perfect_timing) or (
            is_perfect_timing and judgment.accuracy < PERFECT_ACCURACY_THRESHOLD
        ):
            good_lines += 1
        if judgment.score <= MISSED_LINE_SCORE_CEILING:
            missed_lines += 1

    total_characters = sum(len(judgment.typed_text) for judgment in judgments)
    duration_minutes = float(total_duration_ms) / 60000.0
    words_per_minute = 0
    if duration_minutes > 0:
        words_per_minute = _round_half_up((total_characters / 5.0) / duration_minutes)

    return SessionStats(
        total_score=total_score,
        accuracy=mean_accuracy,
        max_combo=max_combo,
        perfect_lines=perfect_lines,
        good_lines=good_lines,
        missed_lines=missed_lines,
        words_per_minute=words_per_minute,
    )


def _run_unit_tests() -> None:
    medium = profile_for("medium")

    perfect = score_line("Hello there", "Hello, there!", 10250, 10000, 0, medium, line_index=3)
    assert perfect.timing_verdict == TimingVerdict.PERFECT
    assert perfect.timing_score == 1.0
    assert perfect.combo_after == 1
    assert perfect.score == 1000
    assert perfect.line_index == 3

    late = score_line("Hello there", "Hello there", 12000, 10000, 4, medium)
    assert late.timing_verdict == TimingVerdict.TOO_LATE
    assert late.timing_score == 0.4
    assert late.combo_after == 0

    state = ScoreState()
    state.apply_judgment(perfect)
    state.apply_judgment(late)
    assert state.score == perfect.score + late.score
    assert state.combo == 0
    assert state.max_combo == 1

    stats = compute_session_stats([perfect, late], total_duration_ms=60000)
    assert stats.total_score == state.score
    assert stats.perfect_lines == 1
    assert stats.max_combo == 1


if __name__ == "__main__":
    _run_unit_tests()
    print("line_scorer.py: ok")
