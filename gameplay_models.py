# -*- coding: utf-8 -*-
########################
# gameplay_models.py
########################
# Purpose:
# - Core gameplay data models for the lyric typing pipeline.
# - Defines difficulty profiles, verdict and policy enums, line judgments and session statistics.
#
# Design notes:
# - Keep these models stable. Prefer extending with new optional fields rather than breaking changes.
# - No Qt usage. These are plain dataclasses and str enums.
# - Difficulty profiles are immutable configuration, never runtime state.
#
########################
# Interfaces:
# Public enums:
# - Difficulty: EASY, MEDIUM, HARD
# - TimingVerdict: PERFECT, EARLY, LATE, TOO_EARLY, TOO_LATE
# - InputPolicy: NORMAL, STRICT, ASSIST
# - SessionStatus: IDLE, LOADING, COUNTDOWN, PLAYING, PAUSED, FINISHED
#
# Public dataclasses:
# - DifficultyProfile(name, description, perfect_window_ms, good_window_ms, early_penalty, late_penalty,
#                     too_early_penalty, too_late_penalty, base_score_multiplier, combo_growth_factor)
# - LineJudgment(line_index, typed_text, expected_text, accuracy, timing_verdict, timing_score, score, combo_after)
# - SessionStats(total_score, accuracy, max_combo, perfect_lines, good_lines, missed_lines, words_per_minute)
# - HighScoreRecord(song_id, track_name, artist_name, difficulty, score, accuracy, max_combo, date)
# - SongInfo(song_id, track_name, artist_name)
#
# Public functions:
# - normalize_difficulty(difficulty: str) -> Difficulty
# - profile_for(difficulty: str | Difficulty) -> DifficultyProfile
# - normalize_input_policy(policy: str) -> InputPolicy
#
########################

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Union


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class TimingVerdict(str, Enum):
    PERFECT = "perfect"
    EARLY = "early"
    LATE = "late"
    TOO_EARLY = "too_early"
    TOO_LATE = "too_late"


class InputPolicy(str, Enum):
    NORMAL = "normal"
    STRICT = "strict"
    ASSIST = "assist"


class SessionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    COUNTDOWN = "countdown"
    PLAYING = "playing"
    PAUSED = "paused"
    FINISHED = "finished"


@dataclass(frozen=True)
class DifficultyProfile:
    name: str
    description: str
    perfect_window_ms: int
    good_window_ms: int
    early_penalty: float
    late_penalty: float
    too_early_penalty: float
    too_late_penalty: float
    base_score_multiplier: float
    combo_growth_factor: float

    def __post_init__(self) -> None:
        if self.perfect_window_ms < 0 or self.good_window_ms < 0:
            raise ValueError("timing windows must be non-negative")
        if self.perfect_window_ms >= self.good_window_ms:
            raise ValueError("perfect_window_ms must be smaller than good_window_ms")
        for penalty in (self.early_penalty, self.late_penalty, self.too_early_penalty, self.too_late_penalty):
            if not 0.0 < float(penalty) <= 1.0:
                raise ValueError(f"penalty multipliers must be in (0, 1], got {penalty!r}")
        if self.base_score_multiplier <= 0.0:
            raise ValueError("base_score_multiplier must be positive")
        if self.combo_growth_factor <= 1.0:
            raise ValueError("combo_growth_factor must be greater than 1")


DIFFICULTY_PROFILES: Dict[Difficulty, DifficultyProfile] = {
    Difficulty.EASY: DifficultyProfile(
        name="Easy",
        description="Relaxed timing, forgiving penalties",
        perfect_window_ms=500,
        good_window_ms=1500,
        early_penalty=0.9,
        late_penalty=0.85,
        too_early_penalty=0.7,
        too_late_penalty=0.6,
        base_score_multiplier=0.8,
        combo_growth_factor=1.05,
    ),
    Difficulty.MEDIUM: DifficultyProfile(
        name="Medium",
        description="Balanced timing and penalties",
        perfect_window_ms=300,
        good_window_ms=800,
        early_penalty=0.8,
        late_penalty=0.75,
        too_early_penalty=0.5,
        too_late_penalty=0.4,
        base_score_multiplier=1.0,
        combo_growth_factor=1.1,
    ),
    Difficulty.HARD: DifficultyProfile(
        name="Hard",
        description="Tight timing, harsh penalties",
        perfect_window_ms=150,
        good_window_ms=400,
        early_penalty=0.6,
        late_penalty=0.5,
        too_early_penalty=0.2,
        too_late_penalty=0.1,
        base_score_multiplier=1.5,
        combo_growth_factor=1.2,
    ),
}


def normalize_difficulty(difficulty: Union[str, Difficulty]) -> Difficulty:
    if isinstance(difficulty, Difficulty):
        return difficulty
    text = str(difficulty or "").strip().lower()
    try:
        return Difficulty(text)
    except ValueError:
        raise ValueError(f"Unknown difficulty: {difficulty!r}") from None


def profile_for(difficulty: Union[str, Difficulty]) -> DifficultyProfile:
    return DIFFICULTY_PROFILES[normalize_difficulty(difficulty)]


def normalize_input_policy(policy: Union[str, InputPolicy]) -> InputPolicy:
    if isinstance(policy, InputPolicy):
        return policy
    text = str(policy or "").strip().lower()
    try:
        return InputPolicy(text)
    except ValueError:
        raise ValueError(f"Unknown input policy: {policy!r}") from None


@dataclass(frozen=True)
class LineJudgment:
    line_index: int
    typed_text: str
    expected_text: str
    accuracy: float
    timing_verdict: TimingVerdict
    timing_score: float
    score: int
    combo_after: int

    @property
    def is_perfect_line(self) -> bool:
        return self.accuracy >= 0.95 and self.timing_verdict == TimingVerdict.PERFECT


@dataclass(frozen=True)
class SessionStats:
    total_score: int = 0
    accuracy: float = 0.0
    max_combo: int = 0
    perfect_lines: int = 0
    good_lines: int = 0
    missed_lines: int = 0
    words_per_minute: int = 0


@dataclass(frozen=True)
class SongInfo:
    song_id: str
    track_name: str = ""
    artist_name: str = ""


@dataclass(frozen=True)
class HighScoreRecord:
    song_id: str
    track_name: str
    artist_name: str
    difficulty: Difficulty
    score: int
    accuracy: float
    max_combo: int
    date: str
