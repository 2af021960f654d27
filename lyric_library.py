# -*- coding: utf-8 -*-
########################
# lyric_library.py
########################
# Purpose:
# - Locate local timed lyric files (.lrc) for a song id and load them into a Timeline.
#
# Design notes:
# - Directory layout is an interface contract: <lyrics_dir>/<song_id>.lrc first,
#   then <lyrics_dir>/<song_id>/*.lrc in lexicographic order.
# - Keep search order deterministic and explicit.
# - No Qt usage. File system paths only. Network search is not handled here.
#
########################
# Interfaces:
# Public dataclasses:
# - LyricCandidate(source_kind: Literal["flat","folder"], lyric_path: pathlib.Path)
#
# Public classes:
# - LyricNotFoundError(LookupError)
#
# Public functions:
# - list_lyric_candidates(song_id: str, lyrics_root: pathlib.Path) -> list[LyricCandidate]
# - load_timeline(lyric_path: pathlib.Path) -> Timeline
# - load_timeline_for_song(song_id: str, lyrics_root: pathlib.Path) -> tuple[Timeline, pathlib.Path]
# - song_id_for_path(lyric_path: pathlib.Path) -> str
#
# Inputs:
# - song_id: str
# - lyrics_root: directory from config.StorageConfig.
#
# Outputs:
# - Timeline objects for session_engine.Synchronizer.
#
########################

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Tuple

from lyric_timeline import ParseError, Timeline, parse_lrc

log = logging.getLogger(__name__)


class LyricNotFoundError(LookupError):
    pass


@dataclass(frozen=True)
class LyricCandidate:
    source_kind: Literal["flat", "folder"]
    lyric_path: Path


def _list_lrc_files(directory_path: Path) -> List[Path]:
    if not directory_path.exists():
        return []
    if not directory_path.is_dir():
        return []
    return sorted([path for path in directory_path.glob("*.lrc") if path.is_file()], key=lambda item: item.name)


def list_lyric_candidates(song_id: str, lyrics_root: Path) -> List[LyricCandidate]:
    cleaned_song_id = str(song_id).strip()
    if not cleaned_song_id:
        return []

    candidates: List[LyricCandidate] = []
    flat_path = Path(lyrics_root) / f"{cleaned_song_id}.lrc"
    if flat_path.is_file():
        candidates.append(LyricCandidate(source_kind="flat", lyric_path=flat_path))
    for lyric_path in _list_lrc_files(Path(lyrics_root) / cleaned_song_id):
        candidates.append(LyricCandidate(source_kind="folder", lyric_path=lyric_path))
    return candidates


def load_timeline(lyric_path: Path) -> Timeline:
    try:
        raw_bytes = Path(lyric_path).read_bytes()
    except OSError as exception:
        raise ParseError(f"Failed to read lyric file: {lyric_path}. Error: {exception}") from exception
    return parse_lrc(raw_bytes)


def load_timeline_for_song(song_id: str, lyrics_root: Path) -> Tuple[Timeline, Path]:
    """Load the first candidate that parses into at least one timed line."""
    candidates = list_lyric_candidates(song_id, lyrics_root)
    if not candidates:
        raise LyricNotFoundError(f"No .lrc file for song {song_id!r} under {lyrics_root}")

    last_error: Exception = LyricNotFoundError(f"No timed lines for song {song_id!r}")
    for candidate in candidates:
        try:
            timeline = load_timeline(candidate.lyric_path)
        except ParseError as exception:
            log.warning("Skipping %s: %s", candidate.lyric_path, exception)
            last_error = exception
            continue
        if timeline.is_empty:
            log.warning("Skipping %s: no timed lines", candidate.lyric_path)
            continue
        return timeline, candidate.lyric_path

    raise last_error


def song_id_for_path(lyric_path: Path) -> str:
    return Path(lyric_path).stem
