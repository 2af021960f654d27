import pytest

from lyric_library import (
    LyricNotFoundError,
    list_lyric_candidates,
    load_timeline,
    load_timeline_for_song,
    song_id_for_path,
)
from lyric_timeline import ParseError


def test_candidates_flat_first_then_folder_sorted(tmp_path):
    (tmp_path / "song.lrc").write_text("[00:01.00]flat", encoding="utf-8")
    folder = tmp_path / "song"
    folder.mkdir()
    (folder / "b.lrc").write_text("[00:01.00]b", encoding="utf-8")
    (folder / "a.lrc").write_text("[00:01.00]a", encoding="utf-8")
    (folder / "notes.txt").write_text("ignored", encoding="utf-8")

    candidates = list_lyric_candidates("song", tmp_path)
    assert [(candidate.source_kind, candidate.lyric_path.name) for candidate in candidates] == [
        ("flat", "song.lrc"),
        ("folder", "a.lrc"),
        ("folder", "b.lrc"),
    ]


def test_blank_song_id_has_no_candidates(tmp_path):
    assert list_lyric_candidates("  ", tmp_path) == []


def test_load_for_song_skips_files_without_timed_lines(tmp_path):
    (tmp_path / "song.lrc").write_text("[ar:Nobody]\n", encoding="utf-8")
    folder = tmp_path / "song"
    folder.mkdir()
    (folder / "good.lrc").write_text("[00:02.00]Found me", encoding="utf-8")

    timeline, path = load_timeline_for_song("song", tmp_path)
    assert path.name == "good.lrc"
    assert timeline[0].text == "Found me"


def test_load_for_song_missing(tmp_path):
    with pytest.raises(LyricNotFoundError):
        load_timeline_for_song("absent", tmp_path)

    (tmp_path / "empty.lrc").write_text("", encoding="utf-8")
    with pytest.raises(LyricNotFoundError):
        load_timeline_for_song("empty", tmp_path)


def test_load_timeline_errors_become_parse_errors(tmp_path):
    with pytest.raises(ParseError):
        load_timeline(tmp_path / "missing.lrc")

    bad = tmp_path / "bad.lrc"
    bad.write_bytes(b"\xff\xfe\xfa")
    with pytest.raises(ParseError):
        load_timeline(bad)


def test_song_id_for_path(tmp_path):
    assert song_id_for_path(tmp_path / "My Song.lrc") == "My Song"
