import json

import pytest

from gameplay_models import Difficulty, HighScoreRecord
from score_store import MAX_SCORES_PER_SONG, JsonScoreStore, ScoreStoreError


def make_record(score, *, song_id="song-1", difficulty=Difficulty.MEDIUM):
    return HighScoreRecord(
        song_id=song_id,
        track_name="Track",
        artist_name="Artist",
        difficulty=difficulty,
        score=score,
        accuracy=0.9,
        max_combo=3,
        date="2024-01-01T00:00:00+00:00",
    )


def test_missing_file_reads_as_empty(tmp_path):
    store = JsonScoreStore(tmp_path / "scores.json")
    assert store.all_scores() == []
    assert store.is_high_score("song-1", Difficulty.MEDIUM, 0)


def test_save_and_read_back(tmp_path):
    path = tmp_path / "nested" / "scores.json"
    store = JsonScoreStore(path)
    store.save(make_record(1200))

    assert path.exists()
    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["scores"][0]["difficulty"] == "medium"
    assert store.scores_for_song("song-1") == [make_record(1200)]


def test_keeps_top_five_per_song_and_difficulty(tmp_path):
    store = JsonScoreStore(tmp_path / "scores.json")
    for score in (100, 700, 300, 900, 500, 200, 800):
        store.save(make_record(score))
    store.save(make_record(50, difficulty=Difficulty.HARD))
    store.save(make_record(60, song_id="song-2"))

    medium = store.scores_for_song("song-1", "medium")
    assert [record.score for record in medium] == [900, 800, 700, 500, 300]
    assert len(medium) == MAX_SCORES_PER_SONG
    assert [record.score for record in store.scores_for_song("song-1", Difficulty.HARD)] == [50]
    assert len(store.all_scores()) == 7


def test_is_high_score_against_fifth_place(tmp_path):
    store = JsonScoreStore(tmp_path / "scores.json")
    for score in (100, 200, 300, 400):
        store.save(make_record(score))
    assert store.is_high_score("song-1", Difficulty.MEDIUM, 1)

    store.save(make_record(500))
    assert not store.is_high_score("song-1", Difficulty.MEDIUM, 100)
    assert store.is_high_score("song-1", Difficulty.MEDIUM, 101)
    assert store.is_high_score("song-1", Difficulty.HARD, 1)


def test_top_scores_across_songs(tmp_path):
    store = JsonScoreStore(tmp_path / "scores.json")
    store.save(make_record(10, song_id="a"))
    store.save(make_record(30, song_id="b"))
    store.save(make_record(20, song_id="c"))
    assert [record.song_id for record in store.top_scores(limit=2)] == ["b", "c"]


def test_corrupt_file_reads_as_empty(tmp_path):
    path = tmp_path / "scores.json"
    path.write_text("{not json", encoding="utf-8")
    store = JsonScoreStore(path)
    assert store.all_scores() == []

    path.write_text(json.dumps({"scores": [{"song_id": "x"}]}), encoding="utf-8")
    assert store.all_scores() == []


def test_clear(tmp_path):
    store = JsonScoreStore(tmp_path / "scores.json")
    store.clear()
    store.save(make_record(10))
    store.clear()
    assert store.all_scores() == []


def test_unwritable_location_raises_store_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    store = JsonScoreStore(blocker / "scores.json")
    with pytest.raises(ScoreStoreError):
        store.save(make_record(10))
