# -*- coding: utf-8 -*-
########################
# paths.py
########################
# Purpose:
# - Central filesystem path helpers for the app.
# - Defines where lyric files and the high score file live.
#
# Design notes:
# - Keep path derivation consistent across modules.
# - No Qt usage. Return pathlib.Path only.
# - Directories are not created here; writers create their own parent directories.
#
########################
# Interfaces:
# Public functions:
# - app_root_dir() -> pathlib.Path
# - user_data_root() -> pathlib.Path
# - lyrics_dir() -> pathlib.Path
# - scores_path() -> pathlib.Path
#
# Inputs:
# - The launched Python entrypoint file location and the platformdirs user data directory.
#
# Outputs:
# - Paths used by lyric_library.py, score_store.py and config.py defaults.
#
########################

from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from platformdirs import user_data_dir

APP_NAME = "Karatype"
APP_AUTHOR = "Karatype"
LYRICS_DIR_NAME = "Lyrics"
SCORES_FILE_NAME = "highscores.json"


def _launched_script() -> Optional[Path]:
    """Path of the script Python was started with, when there is one."""
    candidates = [getattr(sys.modules.get("__main__"), "__file__", None)]
    if sys.argv and sys.argv[0] not in ("", "-c", "-m"):
        candidates.append(sys.argv[0])

    for candidate in candidates:
        if not candidate:
            continue
        try:
            return Path(str(candidate)).resolve()
        except OSError:
            continue
    return None


def app_root_dir() -> Path:
    """Directory holding the launched script; the cwd for interactive sessions."""
    script_path = _launched_script()
    return script_path.parent if script_path is not None else Path.cwd().resolve()


def user_data_root() -> Path:
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


def lyrics_dir() -> Path:
    """Return ./Lyrics beside the entrypoint when present, else the per user Lyrics directory.

    Neither directory is created here.
    """
    local_lyrics_dir = app_root_dir() / LYRICS_DIR_NAME
    if local_lyrics_dir.is_dir():
        return local_lyrics_dir
    return user_data_root() / LYRICS_DIR_NAME


def scores_path() -> Path:
    """Return the default high score file path (not created automatically)."""
    return user_data_root() / SCORES_FILE_NAME
