# -*- coding: utf-8 -*-
########################
# qt_audio_transport.py
########################
# Purpose:
# - AudioTransport implementation backed by QMediaPlayer and QAudioOutput.
# - Lets the gameplay harness play a local audio file and report its position to the synchronizer.
#
# Design notes:
# - Must live on the Qt thread. All calls come from the harness tick loop or Qt slots.
# - Position is pulled from QMediaPlayer.position() on every read; the synchronizer is the
#   only consumer and samples it from its own tick.
# - Lifecycle callbacks are raised from Qt signals:
#   - mediaStatusChanged(LoadedMedia) -> on_loaded(duration_ms)
#   - mediaStatusChanged(EndOfMedia) -> on_ended()
#   - errorOccurred / InvalidMedia -> on_error(message)
#
########################
# Interfaces:
# Public classes:
# - class QtAudioTransport(PyQt6.QtCore.QObject)
#   - Signals:
#     - loadedChanged(bool)
#   - Methods:
#     - load_file(audio_path: pathlib.Path) -> None
#     - is_loaded() -> bool
#     - AudioTransport protocol methods (current_time_ms, duration_ms, is_playing, play, pause,
#       seek, set_rate, set_volume, set_callbacks)
#
# Inputs:
# - Local audio file path from karatype.py.
#
# Outputs:
# - Audio playback and the clock read by session_engine.Synchronizer.
#
########################

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import QObject, QUrl, pyqtSignal
from PyQt6.QtMultimedia import QAudioOutput, QMediaPlayer

from audio_transport import EndedCallback, ErrorCallback, LoadedCallback

log = logging.getLogger(__name__)


class QtAudioTransport(QObject):
    loadedChanged = pyqtSignal(bool)

    def __init__(self, parent: Optional[QObject] = None) -> None:
        super().__init__(parent)
        self._audio_output = QAudioOutput(self)
        self._media_player = QMediaPlayer(self)
        self._media_player.setAudioOutput(self._audio_output)

        self._is_loaded = False
        self._on_loaded: Optional[LoadedCallback] = None
        self._on_ended: Optional[EndedCallback] = None
        self._on_error: Optional[ErrorCallback] = None

        self._media_player.mediaStatusChanged.connect(self._on_media_status_changed)
        self._media_player.errorOccurred.connect(self._on_error_occurred)
        self._media_player.durationChanged.connect(self._on_duration_changed)

    # -----------------
    # Loading
    # -----------------

    def load_file(self, audio_path: Path) -> None:
        resolved_path = Path(audio_path).expanduser().resolve()
        self._set_loaded(False)
        if not resolved_path.is_file():
            self._emit_error(f"Audio file not found: {resolved_path}")
            return
        log.info("Loading audio %s", resolved_path)
        self._media_player.setSource(QUrl.fromLocalFile(str(resolved_path)))

    def is_loaded(self) -> bool:
        return bool(self._is_loaded)

    # -----------------
    # AudioTransport
    # -----------------

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
        if self._is_loaded and self._on_loaded is not None:
            self._on_loaded(self.duration_ms())

    def current_time_ms(self) -> float:
        return float(max(0, int(self._media_player.position())))

    def duration_ms(self) -> float:
        if not self._is_loaded:
            return 0.0
        return float(max(0, int(self._media_player.duration())))

    def is_playing(self) -> bool:
        return self._media_player.playbackState() == QMediaPlayer.PlaybackState.PlayingState

    def play(self) -> None:
        if not self._is_loaded:
            log.debug("play ignored: audio not loaded")
            return
        self._media_player.play()

    def pause(self) -> None:
        self._media_player.pause()

    def seek(self, time_ms: float) -> None:
        self._media_player.setPosition(max(0, int(round(float(time_ms)))))

    def set_rate(self, rate: float) -> None:
        self._media_player.setPlaybackRate(max(0.1, float(rate)))

    def set_volume(self, volume: float) -> None:
        self._audio_output.setVolume(min(1.0, max(0.0, float(volume))))

    # -----------------
    # Qt slots
    # -----------------

    def _on_media_status_changed(self, status: QMediaPlayer.MediaStatus) -> None:
        if status in (QMediaPlayer.MediaStatus.LoadedMedia, QMediaPlayer.MediaStatus.BufferedMedia):
            if not self._is_loaded:
                self._set_loaded(True)
                if self._on_loaded is not None:
                    self._on_loaded(self.duration_ms())
            return
        if status == QMediaPlayer.MediaStatus.EndOfMedia:
            log.info("Audio reached end of media")
            if self._on_ended is not None:
                self._on_ended()
            return
        if status == QMediaPlayer.MediaStatus.InvalidMedia:
            self._set_loaded(False)
            self._emit_error("Audio file could not be decoded")

    def _on_error_occurred(self, error: QMediaPlayer.Error, error_text: str) -> None:
        if error == QMediaPlayer.Error.NoError:
            return
        self._emit_error(str(error_text or error.name))

    def _on_duration_changed(self, duration_ms: int) -> None:
        log.debug("Audio duration %d ms", int(duration_ms))

    def _set_loaded(self, is_loaded: bool) -> None:
        if self._is_loaded == bool(is_loaded):
            return
        self._is_loaded = bool(is_loaded)
        self.loadedChanged.emit(self._is_loaded)

    def _emit_error(self, message: str) -> None:
        log.warning("Audio error: %s", message)
        if self._on_error is not None:
            self._on_error(message)
