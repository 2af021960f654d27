# -*- coding: utf-8 -*-
########################
# countdown.py
########################
# Purpose:
# - Cancellable fixed step countdown used before playback starts.
#
# Design notes:
# - No Qt usage. Scheduling is injected through a Scheduler so the same Countdown runs on
#   threading.Timer (headless), QTimer (gameplay_harness.py) or a manual scheduler (tests).
# - At most one step is pending at any time. cancel() drops it, so no transition fires afterwards.
#
########################
# Interfaces:
# Public protocols:
# - ScheduledCall: cancel() -> None
# - Scheduler: schedule(delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall
#
# Public classes:
# - class ThreadingScheduler
# - class ManualScheduler
#   - advance(seconds: float) -> int
# - class Countdown(scheduler, *, on_step, on_finished, steps=3, interval_seconds=1.0)
#   - start() -> None
#   - cancel() -> None
#   - remaining() -> int
#   - is_running() -> bool
#
########################

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, List, Optional, Protocol

COUNTDOWN_STEPS = 3
COUNTDOWN_INTERVAL_SECONDS = 1.0


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall: ...


class ThreadingScheduler:
    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        timer = threading.Timer(float(delay_seconds), callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass
class _ManualCall:
    due_seconds: float
    callback: Callable[[], None]
    is_cancelled: bool = False

    def cancel(self) -> None:
        self.is_cancelled = True


class ManualScheduler:
    """Scheduler driven by explicit advance() calls."""

    def __init__(self) -> None:
        self._now_seconds = 0.0
        self._pending: List[_ManualCall] = []

    def schedule(self, delay_seconds: float, callback: Callable[[], None]) -> ScheduledCall:
        call = _ManualCall(due_seconds=self._now_seconds + float(delay_seconds), callback=callback)
        self._pending.append(call)
        return call

    def pending_count(self) -> int:
        return sum(1 for call in self._pending if not call.is_cancelled)

    def advance(self, seconds: float) -> int:
        """Advance time and run due callbacks in order. Returns how many ran."""
        target_seconds = self._now_seconds + float(seconds)
        fired = 0
        while True:
            due = [call for call in self._pending if not call.is_cancelled and call.due_seconds <= target_seconds]
            if not due:
                break
            call = min(due, key=lambda item: item.due_seconds)
            self._pending.remove(call)
            self._now_seconds = call.due_seconds
            call.callback()
            fired += 1
        self._pending = [call for call in self._pending if not call.is_cancelled]
        self._now_seconds = target_seconds
        return fired


class Countdown:
    def __init__(
        self,
        scheduler: Scheduler,
        *,
        on_step: Optional[Callable[[int], None]] = None,
        on_finished: Callable[[], None],
        steps: int = COUNTDOWN_STEPS,
        interval_seconds: float = COUNTDOWN_INTERVAL_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._on_step = on_step
        self._on_finished = on_finished
        self._steps = max(1, int(steps))
        self._interval_seconds = float(interval_seconds)
        self._lock = threading.Lock()
        self._remaining = 0
        self._pending: Optional[ScheduledCall] = None
        self._generation = 0

    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    def is_running(self) -> bool:
        with self._lock:
            return self._pending is not None

    def start(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._remaining = self._steps
            generation = self._generation
            remaining = self._remaining
            self._pending = self._scheduler.schedule(self._interval_seconds, lambda: self._fire(generation))
        if self._on_step is not None:
            self._on_step(remaining)

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()
            self._remaining = 0

    def _cancel_locked(self) -> None:
        # Bumping the generation makes an already running timer callback a no-op.
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._remaining -= 1
            remaining = self._remaining
            if remaining > 0:
                self._pending = self._scheduler.schedule(self._interval_seconds, lambda: self._fire(generation))
            else:
                self._pending = None

        if remaining > 0:
            if self._on_step is not None:
                self._on_step(remaining)
            return
        self._on_finished()


def _run_unit_tests() -> None:
    scheduler = ManualScheduler()
    steps: List[int] = []
    finished: List[bool] = []
    countdown = Countdown(scheduler, on_step=steps.append, on_finished=lambda: finished.append(True))

    countdown.start()
    assert steps == [3]
    assert scheduler.advance(2.0) == 2
    assert steps == [3, 2, 1]
    assert not finished
    scheduler.advance(1.0)
    assert finished == [True]
    assert not countdown.is_running()

    # Cancelled countdowns never finish
    cancelled: List[bool] = []
    other = Countdown(scheduler, on_finished=lambda: cancelled.append(True))
    other.start()
    scheduler.advance(1.5)
    other.cancel()
    scheduler.advance(5.0)
    assert not cancelled
    assert other.remaining() == 0


if __name__ == "__main__":
    _run_unit_tests()
    print("countdown.py: ok")
