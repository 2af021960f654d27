# -*- coding: utf-8 -*-
########################
# input_router.py
########################
# Purpose:
# - Single keyboard listener for gameplay control keys.
# - Translates QKeyEvent into a named control (enter, escape, space) and emits a Qt signal.
#
# Design notes:
# - Lyric text never goes through this router. The typing field delivers text changes directly
#   to Synchronizer.on_keystroke; this router only sees keys that the typing field must not eat.
# - Debounce rules:
#   - Ignore auto repeat.
# - Space is a control only when the injected gate says so (while paused). Otherwise it is
#   left to the typing field as lyric text.
#
########################
# Interfaces:
# Public functions:
# - control_name_for_key(key_code: int) -> Optional[str]
#
# Public classes:
# - class InputRouter(PyQt6.QtCore.QObject)
#   - Signals:
#     - controlRequested(str)
#   - Methods:
#     - handle_key_press(event: QKeyEvent) -> bool
#     - reset_stats() -> None
#
# Inputs:
# - Raw QKeyEvent from the Qt event loop.
#
# Outputs:
# - Control names consumed by session_engine.Synchronizer.on_control.
#
########################

from __future__ import annotations

from typing import Callable, Dict, Optional

from PyQt6.QtCore import QObject, Qt, pyqtSignal
from PyQt6.QtGui import QKeyEvent


def _build_default_key_to_control_map() -> Dict[int, str]:
    """
    Default control mapping.

      Enter / Return -> "enter" (clear the typing buffer)
      Escape         -> "escape" (pause or resume)
      Space          -> "space" (resume while paused)
    """
    key_to_control: Dict[int, str] = {}

    def bind(key_constant: int, control_name: str) -> None:
        key_to_control[int(key_constant)] = str(control_name)

    bind(Qt.Key.Key_Return, "enter")
    bind(Qt.Key.Key_Enter, "enter")
    bind(Qt.Key.Key_Escape, "escape")
    bind(Qt.Key.Key_Space, "space")

    return key_to_control


_DEFAULT_KEY_TO_CONTROL = _build_default_key_to_control_map()


def control_name_for_key(key_code: int) -> Optional[str]:
    return _DEFAULT_KEY_TO_CONTROL.get(int(key_code))


class InputRouter(QObject):
    """
    Keyboard router for gameplay controls.

    This object never touches session state. Its only job is to:
      - map keys to control names
      - emit controlRequested for each consumed press
    """

    controlRequested = pyqtSignal(str)

    def __init__(
        self,
        space_gate: Optional[Callable[[], bool]] = None,
        parent: Optional[QObject] = None,
        key_to_control_map: Optional[Dict[int, str]] = None,
    ) -> None:
        """
        space_gate:
            Callable that returns True when Space should act as a control.
            GameplayHarnessController passes a check for the paused status.
        parent:
            Optional QObject parent.
        key_to_control_map:
            Optional override for the key map.
        """
        super().__init__(parent)

        self._space_gate: Callable[[], bool] = space_gate if space_gate is not None else (lambda: False)
        self._key_to_control: Dict[int, str] = (
            dict(key_to_control_map) if key_to_control_map is not None else dict(_DEFAULT_KEY_TO_CONTROL)
        )

        self._total_presses: int = 0
        self._ignored_presses: int = 0

    def handle_key_press(self, event: QKeyEvent) -> bool:
        """
        Handle a Qt key press.

        Returns True if this router consumed the event, False otherwise.
        """
        control_name = self._key_to_control.get(int(event.key()))
        if control_name is None:
            return False

        if control_name == "space" and not self._space_gate():
            return False

        if event.isAutoRepeat():
            self._ignored_presses += 1
            return True

        self._total_presses += 1
        self.controlRequested.emit(control_name)
        return True

    def reset_stats(self) -> None:
        self._total_presses = 0
        self._ignored_presses = 0

    @property
    def key_to_control_map(self) -> Dict[int, str]:
        return dict(self._key_to_control)

    @property
    def total_presses(self) -> int:
        return self._total_presses

    @property
    def ignored_presses(self) -> int:
        return self._ignored_presses


def _run_unit_tests() -> None:
    assert control_name_for_key(int(Qt.Key.Key_Return)) == "enter"
    assert control_name_for_key(int(Qt.Key.Key_Enter)) == "enter"
    assert control_name_for_key(int(Qt.Key.Key_Escape)) == "escape"
    assert control_name_for_key(int(Qt.Key.Key_Space)) == "space"
    assert control_name_for_key(int(Qt.Key.Key_A)) is None


if __name__ == "__main__":
    _run_unit_tests()
    print("input_router.py: ok")
