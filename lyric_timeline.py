# -*- coding: utf-8 -*-
########################
# lyric_timeline.py
########################
# Purpose:
# - Parse timed lyric text (LRC style) into an immutable Timeline of TimedLine entries.
# - Answer "which line is active at time t" for the synchronizer.
#
# Design notes:
# - No Qt usage. Pure parsing and lookup.
# - Parsing is tolerant of individual malformed timestamp tags (they are not timestamps),
#   but input that cannot be decoded into text lines raises ParseError.
# - Line order is deterministic: stable sort by start_ms.
# - end_ms is derived, never authored. Duplicate timestamps keep a zero length duration.
#
########################
# Interfaces:
# Public dataclasses:
# - TimedLine(start_ms: int, end_ms: int, text: str)
# - TimelineMetadata(artist: Optional[str], title: Optional[str], album: Optional[str],
#                    duration_seconds: Optional[int])
# - Timeline(lines: tuple[TimedLine, ...], metadata: TimelineMetadata)
#   - line_at(time_ms: int) -> int
#   - time_remaining_ms(line_index: int, time_ms: int) -> int
#
# Public functions:
# - parse_lrc(raw_text: str | bytes) -> Timeline
# - format_time(ms: int) -> str
#
# Inputs:
# - Raw timed text from the lyric source (lyric_library.py or any caller).
#
# Outputs:
# - Timeline consumed by session_engine.Synchronizer.
#
########################

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple, Union

log = logging.getLogger(__name__)

LAST_LINE_DURATION_MS = 5000

_METADATA_LINE_REGEX = re.compile(r"^\[([a-z]+):(.+)\]$", re.IGNORECASE)
_TIMESTAMP_REGEX = re.compile(r"\[(\d{2}):(\d{2})\.(\d{2,3})\]")
_LENGTH_REGEX = re.compile(r"(\d+):(\d+)")
_LINE_SPLIT_REGEX = re.compile(r"\r?\n")


class ParseError(Exception):
    """Raised when timed text cannot be decomposed into lines."""


@dataclass(frozen=True)
class TimedLine:
    start_ms: int
    end_ms: int
    text: str

    @property
    def duration_ms(self) -> int:
        return int(self.end_ms) - int(self.start_ms)


@dataclass(frozen=True)
class TimelineMetadata:
    artist: Optional[str] = None
    title: Optional[str] = None
    album: Optional[str] = None
    duration_seconds: Optional[int] = None


@dataclass(frozen=True)
class Timeline:
    lines: Tuple[TimedLine, ...] = ()
    metadata: TimelineMetadata = field(default_factory=TimelineMetadata)

    def __len__(self) -> int:
        return len(self.lines)

    def __getitem__(self, index: int) -> TimedLine:
        return self.lines[index]

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def last_index(self) -> int:
        return len(self.lines) - 1

    def line_at(self, time_ms: float) -> int:
        """Return the index of the last line whose start is at or before time_ms.

        Returns -1 when time_ms precedes the first line (or the timeline is empty).
        """
        for index in range(len(self.lines) - 1, -1, -1):
            if time_ms >= self.lines[index].start_ms:
                return index
        return -1

    def time_remaining_ms(self, line_index: int, time_ms: float) -> int:
        if not 0 <= line_index < len(self.lines):
            return 0
        return max(0, int(self.lines[line_index].end_ms - time_ms))


def _decode_raw_text(raw_text: Union[str, bytes, bytearray]) -> str:
    if isinstance(raw_text, str):
        return raw_text
    if isinstance(raw_text, (bytes, bytearray)):
        try:
            return bytes(raw_text).decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ParseError(f"Timed text is not valid UTF-8: {exc}") from exc
    raise ParseError(f"Timed text must be str or bytes, got {type(raw_text).__name__}")


def _timestamp_to_ms(minutes_text: str, seconds_text: str, fraction_text: str) -> int:
    milliseconds = int(fraction_text)
    if len(fraction_text) == 2:
        milliseconds *= 10
    return (int(minutes_text) * 60 + int(seconds_text)) * 1000 + milliseconds


def _apply_metadata_tag(tag: str, value: str, metadata: dict) -> None:
    key = tag.lower()
    if key == "ar":
        metadata["artist"] = value.strip()
    elif key == "ti":
        metadata["title"] = value.strip()
    elif key == "al":
        metadata["album"] = value.strip()
    elif key == "length":
        match = _LENGTH_REGEX.search(value)
        if match:
            metadata["duration_seconds"] = int(match.group(1)) * 60 + int(match.group(2))


def parse_lrc(raw_text: Union[str, bytes, bytearray]) -> Timeline:
    text = _decode_raw_text(raw_text)

    pending: List[Tuple[int, str]] = []
    metadata: dict = {}

    for raw_line in _LINE_SPLIT_REGEX.split(text):
        if not raw_line.strip():
            continue

        metadata_match = _METADATA_LINE_REGEX.match(raw_line)
        if metadata_match:
            _apply_metadata_tag(metadata_match.group(1), metadata_match.group(2), metadata)
            continue

        timestamps = [
            _timestamp_to_ms(match.group(1), match.group(2), match.group(3))
            for match in _TIMESTAMP_REGEX.finditer(raw_line)
        ]
        lyric_text = _TIMESTAMP_REGEX.sub("", raw_line).strip()
        if not lyric_text:
            continue

        for start_ms in timestamps:
            pending.append((start_ms, lyric_text))

    # list.sort is stable, so duplicates keep their source order.
    pending.sort(key=lambda item: item[0])

    lines: List[TimedLine] = []
    for index, (start_ms, lyric_text) in enumerate(pending):
        if index < len(pending) - 1:
            end_ms = pending[index + 1][0]
        else:
            end_ms = start_ms + LAST_LINE_DURATION_MS
        lines.append(TimedLine(start_ms=start_ms, end_ms=end_ms, text=lyric_text))

    log.debug("Parsed %d timed lines (metadata keys: %s)", len(lines), sorted(metadata.keys()))
    return Timeline(lines=tuple(lines), metadata=TimelineMetadata(**metadata))


def format_time(ms: float) -> str:
    total_seconds = int(max(0.0, float(ms)) // 1000)
    minutes = total_seconds // 60
    seconds = total_seconds % 60
    return f"{minutes}:{seconds:02d}"


def _run_unit_tests() -> None:
    timeline = parse_lrc("[ar:Someone]\n[00:12.50][00:12.50]Hello there\n[00:15.00]Next line\n[00:16.123]   \n")
    assert timeline.metadata.artist == "Someone"
    assert [(line.start_ms, line.end_ms, line.text) for line in timeline.lines] == [
        (12500, 12500, "Hello there"),
        (12500, 15000, "Hello there"),
        (15000, 20000, "Next line"),
    ]

    assert timeline.line_at(0) == -1
    assert timeline.line_at(12500) == 1
    assert timeline.line_at(14999) == 1
    assert timeline.line_at(15000) == 2

    try:
        parse_lrc(b"\xff\xfe\xfa")
    except ParseError:
        pass
    else:
        raise AssertionError("expected ParseError for undecodable input")

    assert format_time(75_900) == "1:15"


if __name__ == "__main__":
    _run_unit_tests()
    print("lyric_timeline.py: ok")
