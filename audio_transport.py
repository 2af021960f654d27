# -*- coding: utf-8 -*-
########################
# audio_transport.py
########################
# Purpose:
# - Minimal player port the synchronizer depends on: a pull based clock plus playback controls.
# - Provides SimulatedTransport, a wall clock driven transport for tests and headless runs.
#
# Design notes:
# - No Qt usage. The Qt backed transport lives in qt_audio_transport.py.
# - The synchronizer only reads the clock and calls play() at countdown end and pause() at finish.
#   It never owns transport lifecycle.
# - Lifecycle is pushed through optional callbacks: on_loaded, on_ended, on_error.
#
########################
# Interfaces:
# Public protocols:
# - AudioTransport
#   - current_time_ms() -> float
#   - duration_ms() -> float
#   - is_playing() -> bool
#   - play() / pause() -> None
#   - seek(time_ms: float) -> None
#   - set_rate(rate: float) -> None
#   - set_volume(volume: float) -> None
#   - set_callbacks(*, on_loaded, on_ended, on_error) -> None
#
# Public classes:
# - class SimulatedTransport(duration_ms: float, *, clock: Callable[[], float] = time.monotonic)
#   - load() -> None
#   - fail(message: str) -> None
#
########################

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Protocol, runtime_checkable

log = logging.getLogger(__name__)

LoadedCallback = Callable[[float], None]
EndedCallback = Callable[[], None]
ErrorCallback = Callable[[str], None]


@runtime_checkable
class AudioTransport(Protocol):
    def current_time_ms(self) -> float: ...

    def duration_ms(self) -> float: ...

    def is_playing(self) -> bool: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def seek(self, time_ms: float) -> None: ...

    def set_rate(self, rate: float) -> None: ...

    def set_volume(self, volume: float) -> None: ...

    def set_callbacks(
        self,
        *,
        on_loaded: Optional[LoadedCallback] = None,
        on_ended: Optional[EndedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None: ...


class SimulatedTransport:
    """Transport whose position advances with a monotonic clock while playing.

    The clock is injectable (seconds, like time.monotonic) so tests can step time by hand.
    Duration reads as 0 until load() is called, mirroring a real backend that reports
    duration only once media is loaded.
    """

    def __init__(self, duration_ms: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._media_duration_ms = max(0.0, float(duration_ms))
        self._is_loaded = False
        self._is_playing = False
        self._position_ms = 0.0
        self._anchor_clock_seconds = 0.0
        self._rate = 1.0
        self._volume = 1.0
        self._ended_emitted = False

        self._on_loaded: Optional[LoadedCallback] = None
        self._on_ended: Optional[EndedCallback] = None
        self._on_error: Optional[ErrorCallback] = None

    def set_callbacks(
        self,
        *,
        on_loaded: Optional[LoadedCallback] = None,
        on_ended: Optional[EndedCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._on_loaded = on_loaded
        self._on_ended = on_ended
        self._on_error = on_error

    def load(self) -> None:
        self._is_loaded = True
        if self._on_loaded is not None:
            self._on_loaded(self._media_duration_ms)

    def fail(self, message: str) -> None:
        log.warning("Simulated transport error: %s", message)
        if self._on_error is not None:
            self._on_error(str(message))

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def rate(self) -> float:
        return self._rate

    def current_time_ms(self) -> float:
        if not self._is_playing:
            return self._position_ms
        elapsed_ms = (self._clock() - self._anchor_clock_seconds) * 1000.0 * self._rate
        position_ms = self._position_ms + elapsed_ms
        if position_ms >= self._media_duration_ms:
            self._finish_playback()
            return self._position_ms
        return position_ms

    def duration_ms(self) -> float:
        return self._media_duration_ms if self._is_loaded else 0.0

    def is_playing(self) -> bool:
        if self._is_playing:
            # Reading the clock settles end of media.
            self.current_time_ms()
        return self._is_playing

    def play(self) -> None:
        if not self._is_loaded or self._is_playing:
            return
        self._anchor_clock_seconds = self._clock()
        self._is_playing = True
        self._ended_emitted = False

    def pause(self) -> None:
        if not self._is_playing:
            return
        self._position_ms = self.current_time_ms()
        self._is_playing = False

    def seek(self, time_ms: float) -> None:
        self._position_ms = max(0.0, min(float(time_ms), self._media_duration_ms))
        self._anchor_clock_seconds = self._clock()

    def set_rate(self, rate: float) -> None:
        if float(rate) <= 0.0:
            raise ValueError("rate must be positive")
        self._position_ms = self.current_time_ms()
        self._anchor_clock_seconds = self._clock()
        self._rate = float(rate)

    def set_volume(self, volume: float) -> None:
        self._volume = max(0.0, min(1.0, float(volume)))

    def _finish_playback(self) -> None:
        self._position_ms = self._media_duration_ms
        self._is_playing = False
        if not self._ended_emitted:
            self._ended_emitted = True
            if self._on_ended is not None:
                self._on_ended()


def _run_unit_tests() -> None:
    clock_seconds = [0.0]
    ended: list = []
    transport = SimulatedTransport(2000.0, clock=lambda: clock_seconds[0])
    transport.set_callbacks(on_ended=lambda: ended.append(True))
    assert isinstance(transport, AudioTransport)

    transport.play()
    assert not transport.is_playing()
    assert transport.duration_ms() == 0.0

    transport.load()
    transport.play()
    clock_seconds[0] = 0.5
    assert abs(transport.current_time_ms() - 500.0) < 1e-9
    transport.pause()
    clock_seconds[0] = 1.0
    assert abs(transport.current_time_ms() - 500.0) < 1e-9

    transport.play()
    clock_seconds[0] = 5.0
    assert transport.current_time_ms() == 2000.0
    assert not transport.is_playing()
    transport.current_time_ms()
    assert ended == [True]


if __name__ == "__main__":
    _run_unit_tests()
    print("audio_transport.py: ok")
