# -*- coding: utf-8 -*-
########################
# gameplay_harness.py
########################
# Purpose:
# - Gameplay harness window for playing one song locally.
# - Integrates QtAudioTransport + Synchronizer + InputRouter + a typing field and status labels.
#
# Design notes:
# - The Synchronizer is the single source of truth for session state; the harness only renders
#   snapshots and forwards events.
# - One QObject timer drives the loop: drain queued web commands, then Synchronizer.on_tick().
#   Every command therefore runs on the Qt thread.
# - The countdown runs on QTimer through a Scheduler adapter so its callbacks also land on the Qt thread.
# - Provides a reusable controller (GameplayHarnessController) so other windows can embed the same
#   pipeline, event filter, timer loop and handlers by passing their own ui object.
#
########################
# Interfaces:
# Public dataclasses:
# - HarnessState(song_id: str, last_error: str, last_judgment_text: str, is_finished: bool)
#
# Public classes:
# - class GameplayHarnessController(PyQt6.QtCore.QObject)
#   - load_song(song: SongInfo, timeline: Timeline) -> None
#   - start() -> bool
#   - current_settings() -> dict
#   - synchronizer, command_queue, signals
#
# - class GameplayHarnessWindow(PyQt6.QtWidgets.QMainWindow)
#   - Default harness UI. Accepts an optional ui object.
#
# Public functions:
# - render_line_markup(typed: str, expected: str) -> str
# - main() -> int
#
# Inputs:
# - Lyric text typed into the typing field (QLineEdit.textEdited).
# - Control keys (InputRouter handles QKeyEvent).
# - Audio position pulled from the transport on every tick.
#
# Outputs:
# - Visible lyric line with per character marks, score, combo, timing verdicts and final stats.
#
########################

from __future__ import annotations

import argparse
import html
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@dataclass
class HarnessState:
    song_id: str = ""
    last_error: str = ""
    last_judgment_text: str = ""
    is_finished: bool = False


_CORRECT_COLOR = "#3fbf5f"
_WRONG_COLOR = "#e05050"
_PENDING_COLOR = "#8a8a8a"


def render_line_markup(typed: str, expected: str) -> str:
    """Rich text for the active line: typed characters colored by correctness, the rest dimmed."""
    import text_matcher

    typed_text = str(typed or "")
    expected_text = str(expected or "")
    marks = text_matcher.character_marks(typed_text, expected_text)

    parts = []
    for index, is_correct in enumerate(marks):
        shown = expected_text[index] if index < len(expected_text) else typed_text[index]
        color = _CORRECT_COLOR if is_correct else _WRONG_COLOR
        parts.append(f'<span style="color:{color}">{html.escape(shown)}</span>')
    if len(typed_text) < len(expected_text):
        parts.append(f'<span style="color:{_PENDING_COLOR}">{html.escape(expected_text[len(typed_text):])}</span>')
    return "".join(parts)


@runtime_checkable
class HarnessUiProtocol(Protocol):
    """UI contract used by GameplayHarnessController.

    Attribute based, so external callers can pass a plain object whose attributes point at
    existing widgets.

    Required attributes for wiring:
    - typing_edit: QLineEdit
    - lyric_label, next_label, status_label, score_label, time_label, judgment_label: QLabel-like
    - start_button, pause_button, resume_button, restart_button, quit_button: QPushButton-like
    - offset_spin: QSpinBox-like (valueChanged, value, setValue)
    - policy_combo, difficulty_combo: QComboBox-like (currentTextChanged, setCurrentText)

    Optional attributes for embedding:
    - root_widget: QWidget, only required if the harness window needs to call setCentralWidget(root_widget).
    """

    typing_edit: Any
    lyric_label: Any
    next_label: Any
    status_label: Any
    score_label: Any
    time_label: Any
    judgment_label: Any
    start_button: Any
    pause_button: Any
    resume_button: Any
    restart_button: Any
    quit_button: Any
    offset_spin: Any
    policy_combo: Any
    difficulty_combo: Any
    root_widget: Any


class GameplayHarnessController:  # QObject subclass, defined lazily inside Qt import block
    pass


def _create_controller_class():
    from PyQt6.QtCore import QEvent, QObject, QTimer, pyqtSignal
    from PyQt6.QtGui import QKeyEvent

    import input_router
    import lyric_timeline
    import session_engine
    import timing_classifier
    from gameplay_models import SessionStatus

    class _Signals(QObject):
        judgmentMade = pyqtSignal(object, bool)
        autoSubmitted = pyqtSignal(object)
        statusChanged = pyqtSignal(object)
        countdownStep = pyqtSignal(int)
        sessionFinished = pyqtSignal(object)

    class _QtScheduledCall:
        def __init__(self, timer: QTimer) -> None:
            self._timer = timer
            self.is_done = False

        def cancel(self) -> None:
            if self.is_done:
                return
            self.is_done = True
            self._timer.stop()
            self._timer.deleteLater()

    class _QtScheduler:
        """countdown.Scheduler backed by single shot QTimers owned by the controller."""

        def __init__(self, parent: QObject) -> None:
            self._parent = parent

        def schedule(self, delay_seconds: float, callback) -> _QtScheduledCall:
            timer = QTimer(self._parent)
            timer.setSingleShot(True)
            call = _QtScheduledCall(timer)

            def fire() -> None:
                if call.is_done:
                    return
                call.is_done = True
                timer.deleteLater()
                callback()

            timer.timeout.connect(fire)
            timer.start(max(0, int(round(float(delay_seconds) * 1000.0))))
            return call

    class _GameplayHarnessController(QObject):
        """Reusable gameplay pipeline controller.

        GameplayHarnessWindow and embedding windows reuse:
        - the same Synchronizer wiring and callbacks
        - the same InputRouter eventFilter routing
        - the same timer loop for ticks and queued commands
        - the same click and settings handlers
        """

        def __init__(
            self,
            *,
            settings: Any,
            transport: Any,
            score_store: Any = None,
            ui: Optional[HarnessUiProtocol] = None,
            parent: Optional[QObject] = None,
        ) -> None:
            super().__init__(parent)
            self._signals = _Signals(self)
            self._state = HarnessState()
            self._ui: Optional[HarnessUiProtocol] = None
            self._show_upcoming = bool(settings.show_upcoming)
            self._volume = float(settings.volume)

            self._transport = transport
            self._transport.set_volume(self._volume)
            loaded_signal = getattr(self._transport, "loadedChanged", None)
            if loaded_signal is not None:
                loaded_signal.connect(lambda _is_loaded: self.refresh_ui())

            self._command_queue = session_engine.CommandQueue()
            self._synchronizer = session_engine.Synchronizer(
                difficulty=settings.difficulty,
                offset_ms=settings.offset_ms,
                policy=settings.input_policy,
                score_store=score_store,
                scheduler=_QtScheduler(self),
                on_judgment=self._signals.judgmentMade.emit,
                on_auto_submit=self._signals.autoSubmitted.emit,
                on_status_changed=self._signals.statusChanged.emit,
                on_countdown_step=self._signals.countdownStep.emit,
                on_finished=self._signals.sessionFinished.emit,
            )

            self._signals.judgmentMade.connect(self._on_judgment)
            self._signals.statusChanged.connect(lambda _status: self.refresh_ui())
            self._signals.countdownStep.connect(lambda _remaining: self.refresh_ui())
            self._signals.sessionFinished.connect(self._on_session_finished)

            self._router = input_router.InputRouter(self._is_paused, parent=self)
            self._router.controlRequested.connect(self._on_control_requested)

            self._tick_timer_id: int = self.startTimer(int(settings.tick_interval_ms))

            if ui is not None:
                self.attach_ui(ui)

        @property
        def signals(self) -> _Signals:
            return self._signals

        @property
        def synchronizer(self) -> session_engine.Synchronizer:
            return self._synchronizer

        @property
        def command_queue(self) -> session_engine.CommandQueue:
            return self._command_queue

        @property
        def state(self) -> HarnessState:
            return self._state

        def attach_ui(self, ui: HarnessUiProtocol) -> None:
            self._ui = ui

            self._ui.start_button.clicked.connect(self._on_start_clicked)
            self._ui.pause_button.clicked.connect(self._on_pause_clicked)
            self._ui.resume_button.clicked.connect(self._on_resume_clicked)
            self._ui.restart_button.clicked.connect(self._on_restart_clicked)
            self._ui.quit_button.clicked.connect(self._on_quit_clicked)

            self._ui.typing_edit.textEdited.connect(self._on_text_edited)
            self._ui.typing_edit.installEventFilter(self)

            self._sync_settings_widgets_from_state()
            self._ui.offset_spin.valueChanged.connect(self._on_offset_changed)
            self._ui.policy_combo.currentTextChanged.connect(self._on_policy_changed)
            self._ui.difficulty_combo.currentTextChanged.connect(self._on_difficulty_changed)

            self.refresh_ui()

        def detach_ui(self) -> None:
            self._ui = None

        # -----------------
        # Event filter and timer loop (shared)
        # -----------------

        def eventFilter(self, watched: QObject, event: QEvent) -> bool:  # noqa: N802
            if event.type() == QEvent.Type.KeyPress and isinstance(event, QKeyEvent):
                if self._router.handle_key_press(event):
                    return True
            return super().eventFilter(watched, event)

        def timerEvent(self, event) -> None:  # type: ignore[override]
            if event.timerId() != self._tick_timer_id:
                return
            if self._command_queue.drain():
                self._sync_settings_widgets_from_state()
            self._synchronizer.on_tick()
            self.refresh_ui()

        # -----------------
        # Core operations (used by click handlers and by embedding code)
        # -----------------

        def load_song(self, song, timeline) -> None:
            self._state = HarnessState(song_id=song.song_id)
            self._synchronizer.select_song(song, timeline)
            self._synchronizer.attach_audio(self._transport)
            self.refresh_ui()

        def start(self) -> bool:
            started = self._synchronizer.start()
            if started:
                self._state.is_finished = False
                self._state.last_judgment_text = ""
                if self._ui is not None:
                    self._ui.typing_edit.setFocus()
            self.refresh_ui()
            return started

        def close(self) -> None:
            self.killTimer(self._tick_timer_id)
            self._synchronizer.close()
            self._transport.pause()

        def current_settings(self) -> Dict[str, Any]:
            state = self._synchronizer.state
            return {
                "difficulty": state.difficulty,
                "offset_ms": state.offset_ms,
                "input_policy": state.input_policy,
                "volume": self._volume,
            }

        # -----------------
        # UI helpers
        # -----------------

        def _is_paused(self) -> bool:
            return self._synchronizer.state.status == SessionStatus.PAUSED

        def _is_transport_loaded(self) -> bool:
            is_loaded = getattr(self._transport, "is_loaded", None)
            return bool(is_loaded()) if callable(is_loaded) else True

        def _sync_settings_widgets_from_state(self) -> None:
            if self._ui is None:
                return
            state = self._synchronizer.state
            for widget in (self._ui.offset_spin, self._ui.policy_combo, self._ui.difficulty_combo):
                widget.blockSignals(True)
            try:
                self._ui.offset_spin.setValue(int(state.offset_ms))
                self._ui.policy_combo.setCurrentText(state.input_policy.value)
                self._ui.difficulty_combo.setCurrentText(state.difficulty.value)
            finally:
                for widget in (self._ui.offset_spin, self._ui.policy_combo, self._ui.difficulty_combo):
                    widget.blockSignals(False)

        def _status_text(self, snapshot: Dict[str, Any]) -> str:
            status = str(snapshot["status"])
            if status == SessionStatus.COUNTDOWN.value:
                return f"Starting in {snapshot['countdown_remaining']}"
            if status == SessionStatus.LOADING.value:
                return "Ready, press Start" if self._is_transport_loaded() else "Loading audio"
            if status == SessionStatus.PAUSED.value:
                return "Paused (Escape or Space to resume)"
            if status == SessionStatus.PLAYING.value and snapshot["auto_submit_notice"]:
                return "Playing (previous line auto submitted)"
            return status.capitalize()

        def refresh_ui(self) -> None:
            if self._ui is None:
                return
            snapshot = self._synchronizer.snapshot()
            status = str(snapshot["status"])
            is_playing = status == SessionStatus.PLAYING.value

            status_text = self._status_text(snapshot)
            error_text = snapshot.get("error") or self._state.last_error
            if error_text:
                status_text = f"{status_text}  |  {error_text}"
            self._ui.status_label.setText(status_text)

            active_text = str(snapshot["active_line_text"])
            self._ui.lyric_label.setText(render_line_markup(snapshot["typed_buffer"], active_text))

            next_text = ""
            timeline = self._synchronizer.timeline
            next_index = int(snapshot["active_line_index"]) + 1
            if self._show_upcoming and timeline is not None and 0 <= next_index < len(timeline):
                next_text = timeline[next_index].text
            self._ui.next_label.setText(next_text)

            self._ui.score_label.setText(
                f"Score {snapshot['score']}   Combo {snapshot['combo']}   Max combo {snapshot['max_combo']}"
            )
            duration_ms = float(self._transport.duration_ms())
            self._ui.time_label.setText(
                f"{lyric_timeline.format_time(snapshot['audio_time_ms'])} / {lyric_timeline.format_time(duration_ms)}"
                f"   offset {snapshot['offset_ms']:+d} ms"
            )
            self._ui.judgment_label.setText(self._state.last_judgment_text)

            if self._ui.typing_edit.text() != snapshot["typed_buffer"]:
                self._ui.typing_edit.setText(snapshot["typed_buffer"])
            self._ui.typing_edit.setReadOnly(not is_playing or bool(snapshot["line_locked"]))

            self._ui.start_button.setEnabled(status == SessionStatus.LOADING.value and self._is_transport_loaded())
            self._ui.pause_button.setEnabled(is_playing)
            self._ui.resume_button.setEnabled(status == SessionStatus.PAUSED.value)
            self._ui.restart_button.setEnabled(self._synchronizer.timeline is not None)
            self._ui.difficulty_combo.setEnabled(
                status not in (SessionStatus.COUNTDOWN.value, SessionStatus.PLAYING.value, SessionStatus.PAUSED.value)
            )

        # -----------------
        # Button and settings handlers (shared)
        # -----------------

        def _on_start_clicked(self) -> None:
            self.start()

        def _on_pause_clicked(self) -> None:
            self._synchronizer.pause()
            self.refresh_ui()

        def _on_resume_clicked(self) -> None:
            self._synchronizer.resume()
            self.refresh_ui()

        def _on_restart_clicked(self) -> None:
            self._state.is_finished = False
            self._state.last_judgment_text = ""
            self._synchronizer.restart()
            self.refresh_ui()

        def _on_quit_clicked(self) -> None:
            self._synchronizer.quit()
            self._state = HarnessState()
            self.refresh_ui()

        def _on_offset_changed(self, value: int) -> None:
            applied = self._synchronizer.set_offset_ms(value)
            if applied != value and self._ui is not None:
                self._sync_settings_widgets_from_state()
            self.refresh_ui()

        def _on_policy_changed(self, text: str) -> None:
            try:
                self._synchronizer.set_input_policy(text)
            except ValueError as exception:
                self._state.last_error = str(exception)
                self._sync_settings_widgets_from_state()

        def _on_difficulty_changed(self, text: str) -> None:
            try:
                applied = self._synchronizer.set_difficulty(text)
            except ValueError as exception:
                self._state.last_error = str(exception)
                applied = False
            if not applied:
                self._sync_settings_widgets_from_state()

        # -----------------
        # Input path (shared)
        # -----------------

        def _on_text_edited(self, text: str) -> None:
            self._synchronizer.dismiss_auto_submit_notice()
            effective = self._synchronizer.on_keystroke(str(text))
            if self._ui is not None and self._ui.typing_edit.text() != effective:
                cursor_position = min(len(effective), self._ui.typing_edit.cursorPosition())
                self._ui.typing_edit.setText(effective)
                self._ui.typing_edit.setCursorPosition(cursor_position)
            self.refresh_ui()

        def _on_control_requested(self, control_name: str) -> None:
            self._synchronizer.on_control(control_name)
            self.refresh_ui()

        # -----------------
        # Synchronizer callbacks (shared)
        # -----------------

        def _on_judgment(self, judgment, auto: bool) -> None:
            verdict_text = timing_classifier.verdict_label(judgment.timing_verdict)
            source_text = "auto" if auto else "typed"
            self._state.last_judgment_text = (
                f"{verdict_text}  {judgment.accuracy:.0%}  +{judgment.score}  ({source_text})"
            )

        def _on_session_finished(self, stats) -> None:
            self._state.is_finished = True
            self._state.last_judgment_text = (
                f"Final score {stats.total_score}   accuracy {stats.accuracy:.1%}   max combo {stats.max_combo}   "
                f"perfect {stats.perfect_lines}   good {stats.good_lines}   missed {stats.missed_lines}   "
                f"{stats.words_per_minute} wpm"
            )
            self.refresh_ui()

    return _GameplayHarnessController


# Instantiate the Qt-backed controller class.
GameplayHarnessController = _create_controller_class()


class GameplayHarnessWindow:
    pass


def _create_window_class():
    from PyQt6.QtCore import Qt
    from PyQt6.QtWidgets import (
        QComboBox,
        QHBoxLayout,
        QLabel,
        QLineEdit,
        QMainWindow,
        QPushButton,
        QSpinBox,
        QVBoxLayout,
        QWidget,
    )

    from gameplay_models import Difficulty, InputPolicy
    from timing_model import MAX_OFFSET_MS, MIN_OFFSET_MS

    class _DefaultHarnessUi:
        def __init__(self, *, parent: QWidget) -> None:
            self.root_widget = QWidget(parent)
            self.root_layout = QVBoxLayout(self.root_widget)

            self.controls = QWidget(self.root_widget)
            self.controls_layout = QHBoxLayout(self.controls)

            self.difficulty_combo = QComboBox(self.controls)
            self.difficulty_combo.addItems([difficulty.value for difficulty in Difficulty])
            self.policy_combo = QComboBox(self.controls)
            self.policy_combo.addItems([policy.value for policy in InputPolicy])
            self.offset_spin = QSpinBox(self.controls)
            self.offset_spin.setRange(MIN_OFFSET_MS, MAX_OFFSET_MS)
            self.offset_spin.setSingleStep(50)
            self.offset_spin.setSuffix(" ms")

            self.start_button = QPushButton("Start", self.controls)
            self.pause_button = QPushButton("Pause", self.controls)
            self.resume_button = QPushButton("Resume", self.controls)
            self.restart_button = QPushButton("Restart", self.controls)
            self.quit_button = QPushButton("Quit", self.controls)

            self.controls_layout.addWidget(QLabel("Difficulty:", self.controls))
            self.controls_layout.addWidget(self.difficulty_combo)
            self.controls_layout.addWidget(QLabel("Input:", self.controls))
            self.controls_layout.addWidget(self.policy_combo)
            self.controls_layout.addWidget(QLabel("Offset:", self.controls))
            self.controls_layout.addWidget(self.offset_spin)
            self.controls_layout.addWidget(self.start_button)
            self.controls_layout.addWidget(self.pause_button)
            self.controls_layout.addWidget(self.resume_button)
            self.controls_layout.addWidget(self.restart_button)
            self.controls_layout.addWidget(self.quit_button)

            self.lyric_label = QLabel("", self.root_widget)
            self.lyric_label.setTextFormat(Qt.TextFormat.RichText)
            self.lyric_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
            lyric_font = self.lyric_label.font()
            lyric_font.setPointSize(lyric_font.pointSize() * 2)
            self.lyric_label.setFont(lyric_font)

            self.next_label = QLabel("", self.root_widget)
            self.next_label.setAlignment(Qt.AlignmentFlag.AlignCenter)
            self.next_label.setStyleSheet("color: #8a8a8a;")

            self.typing_edit = QLineEdit(self.root_widget)
            self.typing_edit.setPlaceholderText("Type the lyric line")

            self.judgment_label = QLabel("", self.root_widget)
            self.score_label = QLabel("", self.root_widget)
            self.status_label = QLabel("", self.root_widget)
            self.time_label = QLabel("0:00 / 0:00", self.root_widget)

            self.root_layout.addWidget(self.controls)
            self.root_layout.addStretch(1)
            self.root_layout.addWidget(self.lyric_label)
            self.root_layout.addWidget(self.next_label)
            self.root_layout.addWidget(self.typing_edit)
            self.root_layout.addWidget(self.judgment_label)
            self.root_layout.addStretch(1)
            self.root_layout.addWidget(self.score_label)
            self.root_layout.addWidget(self.status_label)
            self.root_layout.addWidget(self.time_label)

    class _GameplayHarnessWindow(QMainWindow):
        def __init__(
            self,
            *,
            settings: Any,
            transport: Any,
            score_store: Any = None,
            ui: Optional[HarnessUiProtocol] = None,
        ) -> None:
            super().__init__()
            self.setWindowTitle("Karatype")

            self._controller = GameplayHarnessController(
                settings=settings,
                transport=transport,
                score_store=score_store,
                ui=None,
                parent=self,
            )

            if ui is None:
                default_ui = _DefaultHarnessUi(parent=self)
                self.setCentralWidget(default_ui.root_widget)
                self._controller.attach_ui(default_ui)  # type: ignore[arg-type]
            else:
                self._controller.attach_ui(ui)

            # Install the shared event filter.
            self.installEventFilter(self._controller)

        @property
        def controller(self) -> GameplayHarnessController:
            return self._controller

        def closeEvent(self, event) -> None:  # noqa: N802
            self._controller.close()
            super().closeEvent(event)

    return _GameplayHarnessWindow


GameplayHarnessWindow = _create_window_class()


def _run_chunk_tests() -> None:
    from audio_transport import SimulatedTransport
    from countdown import ManualScheduler
    from gameplay_models import SessionStatus, SongInfo
    from lyric_timeline import parse_lrc
    from session_engine import Synchronizer

    clock_seconds = [0.0]
    transport = SimulatedTransport(20000.0, clock=lambda: clock_seconds[0])
    scheduler = ManualScheduler()
    synchronizer = Synchronizer(scheduler=scheduler)

    timeline = parse_lrc("[00:01.00]Hello world\n[00:05.00]Second line\n")
    synchronizer.select_song(SongInfo(song_id="chunk"), timeline)
    synchronizer.attach_audio(transport)
    transport.load()

    # Countdown gates playback
    assert synchronizer.start()
    assert synchronizer.state.status == SessionStatus.COUNTDOWN
    scheduler.advance(3.0)
    assert synchronizer.state.status == SessionStatus.PLAYING

    # Early complete match judges the active line once
    clock_seconds[0] = 1.0
    synchronizer.on_tick()
    assert synchronizer.state.active_line_index == 0
    synchronizer.on_keystroke("hello world")
    assert len(synchronizer.state.judgments) == 1
    assert synchronizer.state.line_locked

    # Advancing past an unjudged line auto judges it
    clock_seconds[0] = 5.0
    synchronizer.on_tick()
    clock_seconds[0] = 11.0
    synchronizer.on_tick()
    assert synchronizer.state.status == SessionStatus.FINISHED
    assert len(synchronizer.state.judgments) == 2

    markup = render_line_markup("Hx", "Hi <b>")
    assert _CORRECT_COLOR in markup and _WRONG_COLOR in markup
    assert "&lt;b&gt;" in markup


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--run-tests",
        action="store_true",
        help="Run pure logic tests (no Qt window).",
    )
    return parser


def main() -> int:
    args, remaining_arguments = build_argument_parser().parse_known_args()
    if args.run_tests:
        _run_chunk_tests()
        print("Chunk tests passed.")
        return 0

    import karatype

    return karatype.main(remaining_arguments)


if __name__ == "__main__":
    raise SystemExit(main())
