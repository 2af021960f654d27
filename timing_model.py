# -*- coding: utf-8 -*-
########################
# timing_model.py
########################
# Purpose:
# - Single source of truth for song timing in a typing session.
# - Converts audio time into lookup time by applying the learner's lyric offset.
#
# Design notes:
# - Line lookup must use TimingModel.adjusted_time_ms; judgments use the raw audio time.
# - No Qt usage. Keep this module pure and deterministic.
# - Clamp audio time to non-negative and the offset to [MIN_OFFSET_MS, MAX_OFFSET_MS].
#
########################
# Interfaces:
# Public dataclasses:
# - TimingSnapshot(audio_time_ms: float, offset_ms: int, adjusted_time_ms: float)
#
# Public classes:
# - class TimingModel
#   - audio_time_ms() -> float
#   - offset_ms() -> int
#   - adjusted_time_ms() -> float
#   - set_offset_ms(offset_ms: int) -> int
#   - update_audio_time_ms(audio_time_ms: float) -> None
#   - snapshot() -> TimingSnapshot
#
# Inputs:
# - audio_time_ms from the AudioTransport.
# - offset_ms from configuration or UI adjustment.
#
# Outputs:
# - Derived adjusted_time_ms used by session_engine.Synchronizer for line lookup.
#
########################

from __future__ import annotations

from dataclasses import dataclass

MIN_OFFSET_MS = -2000
MAX_OFFSET_MS = 2000


def clamp_offset_ms(offset_ms: float) -> int:
    return int(max(MIN_OFFSET_MS, min(MAX_OFFSET_MS, int(round(float(offset_ms))))))


@dataclass(frozen=True)
class TimingSnapshot:
    audio_time_ms: float
    offset_ms: int
    adjusted_time_ms: float


class TimingModel:
    def __init__(self, offset_ms: int = 0) -> None:
        self._audio_time_ms = 0.0
        self._offset_ms = clamp_offset_ms(offset_ms)

    def audio_time_ms(self) -> float:
        return float(self._audio_time_ms)

    def offset_ms(self) -> int:
        return int(self._offset_ms)

    def adjusted_time_ms(self) -> float:
        # Offset may be negative, so adjusted time may be negative near the start.
        return float(self._audio_time_ms) + float(self._offset_ms)

    def set_offset_ms(self, offset_ms: float) -> int:
        self._offset_ms = clamp_offset_ms(offset_ms)
        return self._offset_ms

    def update_audio_time_ms(self, audio_time_ms: float) -> None:
        value = float(audio_time_ms)
        if value < 0.0:
            value = 0.0
        self._audio_time_ms = value

    def snapshot(self) -> TimingSnapshot:
        return TimingSnapshot(
            audio_time_ms=self.audio_time_ms(),
            offset_ms=self.offset_ms(),
            adjusted_time_ms=self.adjusted_time_ms(),
        )


def _run_unit_tests() -> None:
    model = TimingModel()
    model.set_offset_ms(-200)
    model.update_audio_time_ms(-5000.0)
    assert model.audio_time_ms() == 0.0
    assert model.adjusted_time_ms() == -200.0

    model.update_audio_time_ms(1500.0)
    assert model.adjusted_time_ms() == 1300.0

    assert model.set_offset_ms(5000) == MAX_OFFSET_MS
    assert model.set_offset_ms(-9999) == MIN_OFFSET_MS

    snap = model.snapshot()
    assert snap.adjusted_time_ms == model.adjusted_time_ms()


if __name__ == "__main__":
    _run_unit_tests()
    print("timing_model.py: ok")
