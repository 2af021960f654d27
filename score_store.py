# -*- coding: utf-8 -*-
########################
# score_store.py
########################
# Purpose:
# - Persist high score records per song and difficulty in one UTF-8 JSON file.
# - Implements the ScoreStore port used by session_engine.Synchronizer at the finish transition.
#
# Design notes:
# - No Qt usage. File I/O only.
# - Records are validated with pydantic on read; a corrupt file reads as empty and is logged.
# - Only the top MAX_SCORES_PER_SONG scores are kept per (song_id, difficulty).
# - Writes go to a temp file and are moved into place.
#
########################
# Interfaces:
# Public classes:
# - class HighScoreEntry(pydantic.BaseModel)
# - class HighScoreTable(pydantic.BaseModel)
# - class JsonScoreStore(path: Optional[pathlib.Path] = None)
#   - all_scores() -> list[HighScoreRecord]
#   - scores_for_song(song_id: str, difficulty: Optional[Difficulty] = None) -> list[HighScoreRecord]
#   - is_high_score(song_id: str, difficulty: Difficulty, score: int) -> bool
#   - save(record: HighScoreRecord) -> None
#   - top_scores(limit: int = 10) -> list[HighScoreRecord]
#   - clear() -> None
#
########################

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, ValidationError

import paths
from gameplay_models import Difficulty, HighScoreRecord, normalize_difficulty

log = logging.getLogger(__name__)

MAX_SCORES_PER_SONG = 5


class ScoreStoreError(Exception):
    """Raised when the high score file cannot be written."""


class HighScoreEntry(BaseModel):
    song_id: str
    track_name: str = ""
    artist_name: str = ""
    difficulty: Difficulty
    score: int = Field(ge=0)
    accuracy: float = Field(ge=0.0, le=1.0)
    max_combo: int = Field(default=0, ge=0)
    date: str = ""

    @classmethod
    def from_record(cls, record: HighScoreRecord) -> "HighScoreEntry":
        return cls(
            song_id=str(record.song_id),
            track_name=str(record.track_name),
            artist_name=str(record.artist_name),
            difficulty=record.difficulty,
            score=int(record.score),
            accuracy=float(record.accuracy),
            max_combo=int(record.max_combo),
            date=str(record.date),
        )

    def to_record(self) -> HighScoreRecord:
        return HighScoreRecord(
            song_id=self.song_id,
            track_name=self.track_name,
            artist_name=self.artist_name,
            difficulty=self.difficulty,
            score=self.score,
            accuracy=self.accuracy,
            max_combo=self.max_combo,
            date=self.date,
        )


class HighScoreTable(BaseModel):
    scores: List[HighScoreEntry] = Field(default_factory=list)


def _trim_per_song(entries: List[HighScoreEntry]) -> List[HighScoreEntry]:
    grouped: Dict[Tuple[str, Difficulty], List[HighScoreEntry]] = {}
    for entry in entries:
        grouped.setdefault((entry.song_id, entry.difficulty), []).append(entry)

    trimmed: List[HighScoreEntry] = []
    for group in grouped.values():
        group.sort(key=lambda item: item.score, reverse=True)
        trimmed.extend(group[:MAX_SCORES_PER_SONG])
    return trimmed


class JsonScoreStore:
    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else paths.scores_path()
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def _read_entries(self) -> List[HighScoreEntry]:
        if not self._path.exists():
            return []
        try:
            raw_text = self._path.read_text(encoding="utf-8")
            table = HighScoreTable.model_validate(json.loads(raw_text))
        except (OSError, json.JSONDecodeError, ValidationError) as exception:
            log.error("Failed to load high scores from %s: %s", self._path, exception)
            return []
        return list(table.scores)

    def _write_entries(self, entries: List[HighScoreEntry]) -> None:
        table = HighScoreTable(scores=entries)
        payload = json.dumps(table.model_dump(mode="json"), ensure_ascii=False, indent=2)
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            file_descriptor, temp_name = tempfile.mkstemp(prefix=".highscores.", dir=str(self._path.parent))
            with os.fdopen(file_descriptor, "w", encoding="utf-8") as handle:
                handle.write(payload)
            os.replace(temp_name, self._path)
        except OSError as exception:
            raise ScoreStoreError(f"Failed to save high scores to {self._path}: {exception}") from exception

    def all_scores(self) -> List[HighScoreRecord]:
        with self._lock:
            return [entry.to_record() for entry in self._read_entries()]

    def scores_for_song(
        self, song_id: str, difficulty: Optional[Union[str, Difficulty]] = None
    ) -> List[HighScoreRecord]:
        resolved = normalize_difficulty(difficulty) if difficulty is not None else None
        with self._lock:
            entries = [
                entry
                for entry in self._read_entries()
                if entry.song_id == str(song_id) and (resolved is None or entry.difficulty == resolved)
            ]
        entries.sort(key=lambda item: item.score, reverse=True)
        return [entry.to_record() for entry in entries[:MAX_SCORES_PER_SONG]]

    def is_high_score(self, song_id: str, difficulty: Union[str, Difficulty], score: int) -> bool:
        existing = self.scores_for_song(song_id, difficulty)
        if len(existing) < MAX_SCORES_PER_SONG:
            return True
        return int(score) > existing[-1].score

    def save(self, record: HighScoreRecord) -> None:
        entry = HighScoreEntry.from_record(record)
        with self._lock:
            entries = self._read_entries()
            entries.append(entry)
            self._write_entries(_trim_per_song(entries))

    def top_scores(self, limit: int = 10) -> List[HighScoreRecord]:
        with self._lock:
            entries = self._read_entries()
        entries.sort(key=lambda item: item.score, reverse=True)
        return [entry.to_record() for entry in entries[: max(0, int(limit))]]

    def clear(self) -> None:
        with self._lock:
            try:
                self._path.unlink()
            except FileNotFoundError:
                return
            except OSError as exception:
                raise ScoreStoreError(f"Failed to clear high scores at {self._path}: {exception}") from exception
