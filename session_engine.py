# -*- coding: utf-8 -*-
########################
# session_engine.py
########################
# Purpose:
# - Session state machine and synchronizer for one lyric typing attempt.
# - Maps the advancing audio clock to the active lyric line, accepts keystrokes through the
#   active input policy, and judges every line exactly once (early match, manual submit,
#   clock advance or end of song).
#
# Design notes:
# - No Qt usage. Pure gameplay logic plus a lock; adapters drive it with ticks and keystrokes.
# - Single writer: SessionState is mutated only inside Synchronizer commands, and every command
#   runs under one RLock so an event (including its auto judgment and score update) is fully
#   processed before the next one is admitted.
# - Line lookup uses the offset adjusted time. Auto judgment on advance uses the raw audio time.
# - previous_index is captured before active_line_index is mutated in the tick handler.
# - Judging an index twice is an invariant violation guarded by is_judged checks.
#
########################
# Interfaces:
# Public protocols:
# - ScoreStore: is_high_score(song_id, difficulty, score) -> bool, save(record) -> None
#
# Public dataclasses:
# - SessionState(status, active_line_index, typed_buffer, line_locked, score_state, judgments,
#                offset_ms, input_policy, difficulty, ...)
#
# Public classes:
# - class CommandQueue: post(command) -> None, drain() -> int
# - class Synchronizer
#   - select_song(song: SongInfo, timeline: Timeline) -> None
#   - attach_audio(transport: AudioTransport) -> None
#   - start() -> bool
#   - restart() -> bool
#   - pause() / resume() / toggle_pause() / quit() / close()
#   - on_tick() -> None
#   - on_keystroke(text: str) -> str
#   - submit() -> Optional[LineJudgment]
#   - clear_input() -> None
#   - on_control(name: str) -> bool
#   - set_offset_ms(offset_ms) -> int, set_input_policy(policy), set_difficulty(difficulty) -> bool
#   - snapshot() -> dict
#
# Inputs:
# - Periodic tick from the playback clock (sub 200 ms), keystroke text, named controls.
#
# Outputs:
# - LineJudgment history, running score and combo, SessionStats at finish, high score records.
#
########################

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, Union

import input_policy
import line_scorer
import text_matcher
from audio_transport import AudioTransport
from countdown import Countdown, Scheduler, ThreadingScheduler
from gameplay_models import (
    Difficulty,
    DifficultyProfile,
    HighScoreRecord,
    InputPolicy,
    LineJudgment,
    SessionStats,
    SessionStatus,
    SongInfo,
    normalize_difficulty,
    normalize_input_policy,
    profile_for,
)
from lyric_timeline import Timeline
from timing_model import TimingModel

log = logging.getLogger(__name__)


class ScoreStore(Protocol):
    def is_high_score(self, song_id: str, difficulty: Difficulty, score: int) -> bool: ...

    def save(self, record: HighScoreRecord) -> None: ...


@dataclass
class SessionState:
    status: SessionStatus = SessionStatus.IDLE
    active_line_index: int = -1
    typed_buffer: str = ""
    line_locked: bool = False
    score_state: line_scorer.ScoreState = field(default_factory=line_scorer.ScoreState)
    judgments: List[LineJudgment] = field(default_factory=list)
    offset_ms: int = 0
    input_policy: InputPolicy = InputPolicy.NORMAL
    difficulty: Difficulty = Difficulty.MEDIUM
    countdown_remaining: int = 0
    auto_submit_notice: bool = False
    last_error: Optional[str] = None
    stats: Optional[SessionStats] = None
    _judged_indices: Set[int] = field(default_factory=set, repr=False)

    @property
    def score(self) -> int:
        return self.score_state.score

    @property
    def combo(self) -> int:
        return self.score_state.combo

    @property
    def max_combo(self) -> int:
        return self.score_state.max_combo

    def is_judged(self, line_index: int) -> bool:
        return line_index in self._judged_indices

    def record(self, judgment: LineJudgment) -> None:
        if judgment.line_index in self._judged_indices:
            raise AssertionError(f"line {judgment.line_index} judged twice")
        self._judged_indices.add(judgment.line_index)
        self.judgments.append(judgment)
        self.score_state.apply_judgment(judgment)


JudgmentCallback = Callable[[LineJudgment, bool], None]


class CommandQueue:
    """Inbox for commands posted from other threads, drained on the thread that owns playback."""

    def __init__(self) -> None:
        self._queue: "queue.SimpleQueue[Callable[[], Any]]" = queue.SimpleQueue()

    def post(self, command: Callable[[], Any]) -> None:
        self._queue.put(command)

    def drain(self) -> int:
        handled = 0
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                return handled
            try:
                command()
            except Exception:
                log.exception("Queued command failed")
            handled += 1


class Synchronizer:
    def __init__(
        self,
        *,
        difficulty: Union[str, Difficulty] = Difficulty.MEDIUM,
        offset_ms: int = 0,
        policy: Union[str, InputPolicy] = InputPolicy.NORMAL,
        score_store: Optional[ScoreStore] = None,
        scheduler: Optional[Scheduler] = None,
        countdown_interval_seconds: float = 1.0,
        on_judgment: Optional[JudgmentCallback] = None,
        on_auto_submit: Optional[Callable[[LineJudgment], None]] = None,
        on_status_changed: Optional[Callable[[SessionStatus], None]] = None,
        on_countdown_step: Optional[Callable[[int], None]] = None,
        on_finished: Optional[Callable[[SessionStats], None]] = None,
    ) -> None:
        self._lock = threading.RLock()
        self._timing = TimingModel(offset_ms)
        self._score_store = score_store
        self._scheduler: Scheduler = scheduler if scheduler is not None else ThreadingScheduler()
        self._countdown_interval_seconds = float(countdown_interval_seconds)

        self._on_judgment = on_judgment
        self._on_auto_submit = on_auto_submit
        self._on_status_changed = on_status_changed
        self._on_countdown_step = on_countdown_step
        self._on_finished = on_finished

        self._song: Optional[SongInfo] = None
        self._timeline: Optional[Timeline] = None
        self._transport: Optional[AudioTransport] = None
        self._countdown: Optional[Countdown] = None

        self._processing = False
        self._ended_pending = False

        self._state = SessionState(
            offset_ms=self._timing.offset_ms(),
            input_policy=normalize_input_policy(policy),
            difficulty=normalize_difficulty(difficulty),
        )

    # -----------------
    # Read access
    # -----------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def timeline(self) -> Optional[Timeline]:
        return self._timeline

    @property
    def song(self) -> Optional[SongInfo]:
        return self._song

    @property
    def timing_model(self) -> TimingModel:
        return self._timing

    def profile(self) -> DifficultyProfile:
        return profile_for(self._state.difficulty)

    def active_line_text(self) -> str:
        with self._lock:
            if not self._has_valid_active_line():
                return ""
            assert self._timeline is not None
            return self._timeline[self._state.active_line_index].text

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            state = self._state
            last_judgment = state.judgments[-1] if state.judgments else None
            payload: Dict[str, Any] = {
                "ok": True,
                "status": state.status.value,
                "song_id": self._song.song_id if self._song is not None else None,
                "line_count": len(self._timeline) if self._timeline is not None else 0,
                "active_line_index": state.active_line_index,
                "active_line_text": self.active_line_text(),
                "typed_buffer": state.typed_buffer,
                "line_locked": state.line_locked,
                "score": state.score,
                "combo": state.combo,
                "max_combo": state.max_combo,
                "judged_lines": len(state.judgments),
                "offset_ms": state.offset_ms,
                "input_policy": state.input_policy.value,
                "difficulty": state.difficulty.value,
                "countdown_remaining": state.countdown_remaining,
                "auto_submit_notice": state.auto_submit_notice,
                "audio_time_ms": self._timing.audio_time_ms(),
            }
            if last_judgment is not None:
                payload["last_judgment"] = {
                    "line_index": last_judgment.line_index,
                    "accuracy": last_judgment.accuracy,
                    "timing_verdict": last_judgment.timing_verdict.value,
                    "score": last_judgment.score,
                    "combo_after": last_judgment.combo_after,
                }
            if state.stats is not None:
                payload["stats"] = {
                    "total_score": state.stats.total_score,
                    "accuracy": state.stats.accuracy,
                    "max_combo": state.stats.max_combo,
                    "perfect_lines": state.stats.perfect_lines,
                    "good_lines": state.stats.good_lines,
                    "missed_lines": state.stats.missed_lines,
                    "words_per_minute": state.stats.words_per_minute,
                }
            if state.last_error:
                payload["error"] = state.last_error
            return payload

    def stats(self) -> SessionStats:
        with self._lock:
            if self._state.stats is not None:
                return self._state.stats
            duration_ms = self._transport.duration_ms() if self._transport is not None else 0.0
            return line_scorer.compute_session_stats(self._state.judgments, duration_ms)

    # -----------------
    # Song and audio selection
    # -----------------

    def select_song(self, song: SongInfo, timeline: Timeline) -> None:
        with self._lock:
            self._cancel_countdown()
            self._song = song
            self._timeline = timeline
            self._reset_state(SessionStatus.LOADING)
            if timeline.is_empty:
                log.warning("Song %s has an empty timeline; judging is disabled", song.song_id)
            log.info("Selected song %s (%d lines)", song.song_id, len(timeline))

    def attach_audio(self, transport: AudioTransport) -> None:
        with self._lock:
            self._transport = transport
            self._ended_pending = False
            transport.set_callbacks(
                on_loaded=self._on_transport_loaded,
                on_ended=self._on_transport_ended,
                on_error=self._on_transport_error,
            )
            if self._state.status == SessionStatus.IDLE:
                self._set_status(SessionStatus.LOADING)

    def is_ready(self) -> bool:
        with self._lock:
            return self._timeline is not None and self._transport is not None

    # -----------------
    # Lifecycle controls
    # -----------------

    def start(self) -> bool:
        with self._lock:
            if self._state.status != SessionStatus.LOADING:
                log.debug("start ignored in status %s", self._state.status.value)
                return False
            if not self.is_ready():
                log.debug("start ignored: lyrics or audio unavailable")
                return False

            self._reset_state(SessionStatus.COUNTDOWN)
            self._countdown = Countdown(
                self._scheduler,
                on_step=self._on_countdown_step_fired,
                on_finished=self._on_countdown_finished,
                interval_seconds=self._countdown_interval_seconds,
            )
            self._countdown.start()
            return True

    def restart(self) -> bool:
        with self._lock:
            if self._timeline is None:
                return False
            self._cancel_countdown()
            if self._transport is not None:
                self._transport.pause()
                self._transport.seek(0.0)
            self._reset_state(SessionStatus.LOADING)
        return self.start()

    def pause(self) -> bool:
        with self._lock:
            if self._state.status != SessionStatus.PLAYING:
                return False
            if self._transport is not None:
                self._transport.pause()
            self._set_status(SessionStatus.PAUSED)
            return True

    def resume(self) -> bool:
        with self._lock:
            if self._state.status != SessionStatus.PAUSED:
                return False
            if self._transport is not None:
                self._transport.play()
            self._set_status(SessionStatus.PLAYING)
            return True

    def toggle_pause(self) -> bool:
        with self._lock:
            if self._state.status == SessionStatus.PLAYING:
                return self.pause()
            if self._state.status == SessionStatus.PAUSED:
                return self.resume()
            return False

    def quit(self) -> None:
        """Abandon the attempt and go back to song selection."""
        with self._lock:
            self._cancel_countdown()
            if self._transport is not None and self._state.status in (SessionStatus.PLAYING, SessionStatus.PAUSED):
                self._transport.pause()
            self._song = None
            self._timeline = None
            self._transport = None
            self._ended_pending = False
            self._reset_state(SessionStatus.IDLE)

    def close(self) -> None:
        with self._lock:
            self._cancel_countdown()

    # -----------------
    # Settings
    # -----------------

    def set_offset_ms(self, offset_ms: float) -> int:
        with self._lock:
            self._state.offset_ms = self._timing.set_offset_ms(offset_ms)
            return self._state.offset_ms

    def set_input_policy(self, policy: Union[str, InputPolicy]) -> InputPolicy:
        with self._lock:
            self._state.input_policy = normalize_input_policy(policy)
            return self._state.input_policy

    def set_difficulty(self, difficulty: Union[str, Difficulty]) -> bool:
        with self._lock:
            resolved = normalize_difficulty(difficulty)
            if self._state.status in (SessionStatus.COUNTDOWN, SessionStatus.PLAYING, SessionStatus.PAUSED):
                log.debug("difficulty change ignored during an attempt")
                return False
            self._state.difficulty = resolved
            return True

    def dismiss_auto_submit_notice(self) -> None:
        with self._lock:
            self._state.auto_submit_notice = False

    # -----------------
    # Event entry points
    # -----------------

    def on_tick(self) -> None:
        with self._lock:
            self._processing = True
            try:
                if self._state.status == SessionStatus.PLAYING and self._transport is not None:
                    audio_time_ms = float(self._transport.current_time_ms())
                    self._advance_to(audio_time_ms)
                    self._check_end_of_session(audio_time_ms)
            finally:
                self._processing = False
            if self._ended_pending:
                self._process_transport_ended()

    def on_keystroke(self, text: str) -> str:
        """Apply one text change event. Returns the effective buffer after policy."""
        with self._lock:
            state = self._state
            if state.status != SessionStatus.PLAYING or state.line_locked or not self._has_valid_active_line():
                return state.typed_buffer
            assert self._timeline is not None

            line = self._timeline[state.active_line_index]
            state.typed_buffer = input_policy.apply_policy(state.input_policy, text, state.typed_buffer, line.text)

            if text_matcher.is_complete_match(state.typed_buffer, line.text):
                state.line_locked = True
                if not state.is_judged(state.active_line_index):
                    self._judge_line(state.active_line_index, self._current_audio_time_ms(), auto=False)
            return state.typed_buffer

    def submit(self) -> Optional[LineJudgment]:
        with self._lock:
            state = self._state
            if state.status != SessionStatus.PLAYING or not self._has_valid_active_line():
                return None
            if state.is_judged(state.active_line_index):
                return None
            state.line_locked = True
            return self._judge_line(state.active_line_index, self._current_audio_time_ms(), auto=False)

    def clear_input(self) -> None:
        with self._lock:
            if self._state.status != SessionStatus.PLAYING or self._state.line_locked:
                return
            self._state.typed_buffer = ""

    def on_control(self, name: str) -> bool:
        key = str(name or "").strip().lower()
        if key in ("enter", "return", "clear"):
            with self._lock:
                if self._state.status != SessionStatus.PLAYING:
                    return False
                self.clear_input()
                return True
        if key in ("escape", "esc"):
            return self.toggle_pause()
        if key in ("space", " "):
            # A space while playing is lyric text.
            return self.resume()
        if key == "pause":
            return self.pause()
        if key == "resume":
            return self.resume()
        if key == "submit":
            return self.submit() is not None
        if key == "start":
            return self.start()
        if key == "restart":
            return self.restart()
        if key in ("quit", "back"):
            self.quit()
            return True
        log.debug("Unknown control: %r", name)
        return False

    # -----------------
    # Internal steps
    # -----------------

    def _has_valid_active_line(self) -> bool:
        if self._timeline is None:
            return False
        return 0 <= self._state.active_line_index < len(self._timeline)

    def _current_audio_time_ms(self) -> float:
        if self._transport is None:
            return self._timing.audio_time_ms()
        audio_time_ms = float(self._transport.current_time_ms())
        self._timing.update_audio_time_ms(audio_time_ms)
        return audio_time_ms

    def _advance_to(self, audio_time_ms: float) -> None:
        assert self._timeline is not None
        if self._timeline.is_empty:
            return

        self._timing.update_audio_time_ms(audio_time_ms)
        new_index = self._timeline.line_at(self._timing.adjusted_time_ms())

        state = self._state
        previous_index = state.active_line_index
        if new_index == previous_index or new_index < 0:
            return

        if 0 <= previous_index < len(self._timeline) and not state.is_judged(previous_index):
            judgment = self._judge_line(previous_index, audio_time_ms, auto=True)
            state.auto_submit_notice = True
            if self._on_auto_submit is not None:
                self._on_auto_submit(judgment)

        state.active_line_index = new_index
        state.typed_buffer = ""
        # A line revisited after a backward seek stays locked once judged.
        state.line_locked = state.is_judged(new_index)

    def _check_end_of_session(self, audio_time_ms: float) -> None:
        assert self._transport is not None and self._timeline is not None
        if self._timeline.is_empty or self._state.status != SessionStatus.PLAYING:
            return
        if float(self._transport.duration_ms()) <= 0.0:
            return

        last_index = self._timeline.last_index
        if audio_time_ms < self._timeline[last_index].end_ms:
            return

        if self._state.active_line_index == last_index and not self._state.is_judged(last_index):
            self._judge_line(last_index, audio_time_ms, auto=True)
        self._finish()

    def _judge_line(self, line_index: int, judged_at_ms: float, *, auto: bool) -> LineJudgment:
        assert self._timeline is not None
        line = self._timeline[line_index]
        judgment = line_scorer.score_line(
            self._state.typed_buffer,
            line.text,
            judged_at_ms,
            line.start_ms,
            self._state.combo,
            self.profile(),
            line_index=line_index,
        )
        self._state.record(judgment)
        if line_index == self._state.active_line_index:
            self._state.typed_buffer = ""
            self._state.line_locked = True

        log.debug(
            "Judged line %d (%s): accuracy=%.3f verdict=%s score=%d combo=%d",
            line_index,
            "auto" if auto else "typed",
            judgment.accuracy,
            judgment.timing_verdict.value,
            judgment.score,
            judgment.combo_after,
        )
        if self._on_judgment is not None:
            self._on_judgment(judgment, auto)
        return judgment

    def _finish(self) -> None:
        if self._transport is not None:
            self._transport.pause()
            duration_ms = float(self._transport.duration_ms())
        else:
            duration_ms = 0.0

        stats = line_scorer.compute_session_stats(self._state.judgments, duration_ms)
        self._state.stats = stats
        self._set_status(SessionStatus.FINISHED)
        log.info(
            "Session finished: score=%d accuracy=%.3f max_combo=%d",
            stats.total_score,
            stats.accuracy,
            stats.max_combo,
        )
        self._persist_high_score(stats)
        if self._on_finished is not None:
            self._on_finished(stats)

    def _persist_high_score(self, stats: SessionStats) -> None:
        if self._score_store is None or self._song is None:
            return

        song = self._song
        metadata = self._timeline.metadata if self._timeline is not None else None
        record = HighScoreRecord(
            song_id=song.song_id,
            track_name=song.track_name or (metadata.title if metadata is not None and metadata.title else ""),
            artist_name=song.artist_name or (metadata.artist if metadata is not None and metadata.artist else ""),
            difficulty=self._state.difficulty,
            score=stats.total_score,
            accuracy=stats.accuracy,
            max_combo=stats.max_combo,
            date=datetime.now(timezone.utc).isoformat(),
        )
        try:
            if self._score_store.is_high_score(song.song_id, self._state.difficulty, stats.total_score):
                self._score_store.save(record)
                log.info("Saved high score %d for %s (%s)", stats.total_score, song.song_id, self._state.difficulty.value)
        except Exception:
            # A failed write must not block the finish transition.
            log.exception("Failed to persist high score for %s", song.song_id)

    def _reset_state(self, status: SessionStatus) -> None:
        previous = self._state
        self._state = SessionState(
            status=previous.status,
            offset_ms=previous.offset_ms,
            input_policy=previous.input_policy,
            difficulty=previous.difficulty,
            last_error=previous.last_error if status != SessionStatus.IDLE else None,
        )
        self._timing.update_audio_time_ms(0.0)
        self._set_status(status)

    def _set_status(self, status: SessionStatus) -> None:
        if self._state.status == status:
            return
        self._state.status = status
        if self._on_status_changed is not None:
            self._on_status_changed(status)

    def _cancel_countdown(self) -> None:
        if self._countdown is not None:
            self._countdown.cancel()
            self._countdown = None
        self._state.countdown_remaining = 0

    # -----------------
    # Countdown and transport callbacks
    # -----------------

    def _on_countdown_step_fired(self, remaining: int) -> None:
        with self._lock:
            if self._state.status != SessionStatus.COUNTDOWN:
                return
            self._state.countdown_remaining = int(remaining)
        if self._on_countdown_step is not None:
            self._on_countdown_step(int(remaining))

    def _on_countdown_finished(self) -> None:
        with self._lock:
            if self._state.status != SessionStatus.COUNTDOWN:
                return
            self._countdown = None
            self._state.countdown_remaining = 0
            self._set_status(SessionStatus.PLAYING)
            if self._transport is not None:
                self._transport.play()

    def _on_transport_loaded(self, duration_ms: float) -> None:
        log.info("Audio loaded (%.0f ms)", float(duration_ms))
        with self._lock:
            self._state.last_error = None

    def _on_transport_error(self, message: str) -> None:
        cleaned = str(message or "").strip() or "Unknown audio error"
        log.warning("Audio unavailable: %s", cleaned)
        with self._lock:
            self._state.last_error = cleaned

    def _on_transport_ended(self) -> None:
        with self._lock:
            self._ended_pending = True
            if self._processing:
                return
            self._process_transport_ended()

    def _process_transport_ended(self) -> None:
        self._ended_pending = False
        state = self._state
        if state.status not in (SessionStatus.PLAYING, SessionStatus.PAUSED) or self._timeline is None:
            return
        if self._timeline.is_empty:
            self._finish()
            return

        # Media ran out before the last line's derived end: close the session on what was reached.
        audio_time_ms = self._current_audio_time_ms()
        self._advance_to(audio_time_ms)
        if self._has_valid_active_line() and not state.is_judged(state.active_line_index):
            self._judge_line(state.active_line_index, audio_time_ms, auto=True)
        self._finish()
