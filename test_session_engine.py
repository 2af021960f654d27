from dataclasses import dataclass, field
from typing import List

import pytest

from audio_transport import SimulatedTransport
from countdown import ManualScheduler
from gameplay_models import Difficulty, InputPolicy, SessionStatus, SongInfo, TimingVerdict
from lyric_timeline import parse_lrc
from session_engine import CommandQueue, Synchronizer

THREE_LINES = "[ti:Test Song]\n[00:01.00]Hello world\n[00:04.00]Second line\n[00:08.00]Last one\n"


class FakeClock:
    def __init__(self) -> None:
        self.seconds = 0.0

    def __call__(self) -> float:
        return self.seconds


class FakeScoreStore:
    def __init__(self, *, accept: bool = True, fail: bool = False) -> None:
        self.accept = accept
        self.fail = fail
        self.saved = []

    def is_high_score(self, song_id, difficulty, score):
        return self.accept

    def save(self, record):
        if self.fail:
            raise OSError("disk full")
        self.saved.append(record)


@dataclass
class Session:
    synchronizer: Synchronizer
    transport: SimulatedTransport
    scheduler: ManualScheduler
    clock: FakeClock
    store: FakeScoreStore
    judged: List = field(default_factory=list)
    auto_submitted: List = field(default_factory=list)
    finished: List = field(default_factory=list)
    statuses: List = field(default_factory=list)

    def at(self, seconds: float) -> None:
        self.clock.seconds = seconds
        self.synchronizer.on_tick()

    @property
    def state(self):
        return self.synchronizer.state


def make_session(lrc=THREE_LINES, *, duration_ms=20000.0, offset_ms=0, store=None, **kwargs) -> Session:
    clock = FakeClock()
    transport = SimulatedTransport(duration_ms, clock=clock)
    scheduler = ManualScheduler()
    session = Session(
        synchronizer=None,  # type: ignore[arg-type]
        transport=transport,
        scheduler=scheduler,
        clock=clock,
        store=store if store is not None else FakeScoreStore(),
    )
    session.synchronizer = Synchronizer(
        offset_ms=offset_ms,
        score_store=session.store,
        scheduler=scheduler,
        on_judgment=lambda judgment, auto: session.judged.append((judgment, auto)),
        on_auto_submit=session.auto_submitted.append,
        on_status_changed=session.statuses.append,
        on_finished=session.finished.append,
        **kwargs,
    )
    session.synchronizer.select_song(SongInfo(song_id="song-1", artist_name="Artist"), parse_lrc(lrc))
    session.synchronizer.attach_audio(transport)
    transport.load()
    return session


def start_playing(session: Session) -> None:
    assert session.synchronizer.start()
    session.scheduler.advance(3.0)
    assert session.state.status == SessionStatus.PLAYING


def test_countdown_gates_playback():
    session = make_session()
    assert session.state.status == SessionStatus.LOADING
    assert session.synchronizer.start()
    assert session.state.status == SessionStatus.COUNTDOWN
    assert session.state.countdown_remaining == 3
    assert not session.transport.is_playing()

    session.scheduler.advance(1.0)
    assert session.state.countdown_remaining == 2
    session.scheduler.advance(1.0)
    assert session.state.countdown_remaining == 1
    session.scheduler.advance(1.0)
    assert session.state.status == SessionStatus.PLAYING
    assert session.state.countdown_remaining == 0
    assert session.transport.is_playing()
    assert session.statuses[-2:] == [SessionStatus.COUNTDOWN, SessionStatus.PLAYING]


def test_start_only_from_loading():
    session = make_session()
    start_playing(session)
    assert not session.synchronizer.start()

    idle = Synchronizer(scheduler=ManualScheduler())
    assert not idle.start()
    assert idle.state.status == SessionStatus.IDLE


def test_keystrokes_ignored_before_first_line():
    session = make_session()
    start_playing(session)
    session.at(0.5)
    assert session.state.active_line_index == -1
    assert session.synchronizer.on_keystroke("hello") == ""
    assert session.synchronizer.submit() is None


def test_complete_match_judges_immediately_and_locks():
    session = make_session()
    start_playing(session)
    session.at(1.2)
    assert session.state.active_line_index == 0

    assert session.synchronizer.on_keystroke("hello world") == ""
    assert len(session.state.judgments) == 1
    judgment, auto = session.judged[0]
    assert not auto
    assert judgment.timing_verdict == TimingVerdict.PERFECT
    assert judgment.score == 1000
    assert session.state.line_locked
    assert session.state.combo == 1

    assert session.synchronizer.on_keystroke("more") == ""
    assert session.synchronizer.submit() is None
    assert len(session.state.judgments) == 1


def test_advancing_auto_submits_unfinished_line():
    session = make_session()
    start_playing(session)
    session.at(1.0)
    session.synchronizer.on_keystroke("hello wor")

    session.at(4.0)
    assert session.state.active_line_index == 1
    assert session.state.typed_buffer == ""
    assert not session.state.line_locked
    assert session.state.auto_submit_notice
    assert len(session.auto_submitted) == 1

    judgment, auto = session.judged[0]
    assert auto
    assert judgment.line_index == 0
    assert judgment.typed_text == "hello wor"
    assert judgment.timing_verdict == TimingVerdict.TOO_LATE

    session.synchronizer.dismiss_auto_submit_notice()
    assert not session.state.auto_submit_notice


def test_manual_submit_then_no_op():
    session = make_session()
    start_playing(session)
    session.at(1.1)
    session.synchronizer.on_keystroke("hello")
    judgment = session.synchronizer.submit()
    assert judgment is not None
    assert judgment.typed_text == "hello"
    assert session.synchronizer.submit() is None

    session.at(4.0)
    assert len(session.state.judgments) == 1
    assert not session.auto_submitted


def test_enter_clears_buffer():
    session = make_session()
    start_playing(session)
    session.at(1.0)
    session.synchronizer.on_keystroke("helo")
    assert session.synchronizer.on_control("enter")
    assert session.state.typed_buffer == ""
    assert not session.state.judgments


def test_pause_freezes_clock_and_input():
    session = make_session()
    start_playing(session)
    session.at(1.0)
    assert session.synchronizer.on_control("escape")
    assert session.state.status == SessionStatus.PAUSED
    assert not session.transport.is_playing()

    session.at(6.0)
    assert session.state.active_line_index == 0
    assert session.synchronizer.on_keystroke("hello") == ""

    assert session.synchronizer.on_control("space")
    assert session.state.status == SessionStatus.PLAYING
    session.at(6.5)
    assert session.transport.current_time_ms() == pytest.approx(1500.0)
    assert session.state.active_line_index == 0


def test_space_does_not_pause_while_playing():
    session = make_session()
    start_playing(session)
    assert not session.synchronizer.on_control("space")
    assert session.state.status == SessionStatus.PLAYING


def test_positive_offset_shifts_lookup_but_not_judging():
    session = make_session(offset_ms=500)
    start_playing(session)
    session.at(0.6)
    assert session.state.active_line_index == 0

    session.synchronizer.on_keystroke("hello world")
    judgment = session.state.judgments[0]
    assert judgment.timing_verdict == TimingVerdict.EARLY


def test_negative_offset_delays_lookup():
    session = make_session(offset_ms=-500)
    start_playing(session)
    session.at(1.2)
    assert session.state.active_line_index == -1
    session.at(1.5)
    assert session.state.active_line_index == 0


def test_offset_is_clamped():
    session = make_session()
    assert session.synchronizer.set_offset_ms(5000) == 2000
    assert session.synchronizer.set_offset_ms(-2500) == -2000
    assert session.state.offset_ms == -2000


def test_session_finishes_after_last_line_and_saves_high_score():
    session = make_session(difficulty="hard")
    start_playing(session)
    session.at(1.0)
    session.synchronizer.on_keystroke("hello world")
    session.at(4.0)
    session.at(8.0)
    session.at(12.9)
    assert session.state.status == SessionStatus.PLAYING

    session.at(13.0)
    assert session.state.status == SessionStatus.FINISHED
    assert [judgment.line_index for judgment in session.state.judgments] == [0, 1, 2]
    assert not session.transport.is_playing()

    stats = session.state.stats
    assert stats is not None
    assert stats.total_score == session.state.score
    assert session.finished == [stats]

    assert len(session.store.saved) == 1
    record = session.store.saved[0]
    assert record.song_id == "song-1"
    assert record.track_name == "Test Song"
    assert record.artist_name == "Artist"
    assert record.difficulty == Difficulty.HARD
    assert record.score == stats.total_score

    session.at(20.0)
    assert len(session.finished) == 1


def test_score_not_saved_when_not_a_high_score():
    session = make_session(store=FakeScoreStore(accept=False))
    start_playing(session)
    for seconds in (1.0, 4.0, 8.0, 13.0):
        session.at(seconds)
    assert session.state.status == SessionStatus.FINISHED
    assert session.store.saved == []


def test_store_failure_does_not_block_finish():
    session = make_session(store=FakeScoreStore(fail=True))
    start_playing(session)
    for seconds in (1.0, 4.0, 8.0, 13.0):
        session.at(seconds)
    assert session.state.status == SessionStatus.FINISHED
    assert session.state.stats is not None
    assert len(session.finished) == 1


def test_media_ending_before_last_line_finishes_session():
    session = make_session(duration_ms=9000.0)
    start_playing(session)
    for seconds in (1.0, 4.0, 8.0):
        session.at(seconds)
    session.at(10.0)
    assert session.state.status == SessionStatus.FINISHED
    assert [judgment.line_index for judgment in session.state.judgments] == [0, 1, 2]


def test_empty_timeline_plays_without_judging():
    session = make_session("[ar:Nobody]\nno timestamps here\n", duration_ms=5000.0)
    start_playing(session)
    session.at(2.0)
    assert session.state.active_line_index == -1
    assert session.synchronizer.on_keystroke("anything") == ""
    assert session.synchronizer.submit() is None

    session.at(6.0)
    assert session.state.status == SessionStatus.FINISHED
    assert session.state.judgments == []
    assert session.state.stats.total_score == 0


def test_backward_seek_never_judges_a_line_twice():
    session = make_session()
    start_playing(session)
    session.at(1.0)
    session.synchronizer.on_keystroke("hello world")
    session.at(4.5)
    assert session.state.active_line_index == 1

    session.transport.seek(1500.0)
    session.at(4.5)
    assert session.state.active_line_index == 0
    assert session.state.line_locked
    assert session.synchronizer.submit() is None

    session.at(7.5)
    assert session.state.active_line_index == 1
    assert session.state.line_locked

    indices = [judgment.line_index for judgment in session.state.judgments]
    assert sorted(indices) == sorted(set(indices)) == [0, 1]


def test_quit_during_countdown_cancels_it():
    session = make_session()
    assert session.synchronizer.start()
    session.synchronizer.quit()
    assert session.state.status == SessionStatus.IDLE
    session.scheduler.advance(5.0)
    assert session.state.status == SessionStatus.IDLE
    assert not session.transport.is_playing()
    assert session.synchronizer.timeline is None


def test_restart_resets_progress_but_keeps_settings():
    session = make_session(offset_ms=250, policy="strict")
    start_playing(session)
    session.at(1.1)
    session.synchronizer.on_keystroke("hello world")
    assert session.state.score > 0

    assert session.synchronizer.restart()
    assert session.state.status == SessionStatus.COUNTDOWN
    assert session.state.score == 0
    assert session.state.judgments == []
    assert session.state.offset_ms == 250
    assert session.state.input_policy == InputPolicy.STRICT
    assert session.transport.current_time_ms() == 0.0


def test_difficulty_change_refused_during_attempt():
    session = make_session()
    assert session.synchronizer.set_difficulty("easy")
    assert session.state.difficulty == Difficulty.EASY
    start_playing(session)
    assert not session.synchronizer.set_difficulty("hard")
    assert session.state.difficulty == Difficulty.EASY
    with pytest.raises(ValueError):
        session.synchronizer.set_difficulty("impossible")


def test_strict_policy_rejects_deletions_through_synchronizer():
    session = make_session(policy="strict")
    start_playing(session)
    session.at(1.0)
    assert session.synchronizer.on_keystroke("hel") == "hel"
    assert session.synchronizer.on_keystroke("he") == "hel"


def test_assist_policy_fills_punctuation():
    session = make_session("[00:01.00]Don't stop!\n", policy="assist")
    start_playing(session)
    session.at(1.0)
    assert session.synchronizer.on_keystroke("dont sto") == "don't sto"
    assert session.synchronizer.on_keystroke("don't stop") == ""
    assert session.state.judgments[0].accuracy == 1.0


def test_unknown_control_is_ignored():
    session = make_session()
    assert not session.synchronizer.on_control("launch")


def test_snapshot_reports_progress():
    session = make_session()
    start_playing(session)
    session.at(1.0)
    session.synchronizer.on_keystroke("hello world")
    snapshot = session.synchronizer.snapshot()
    assert snapshot["ok"] is True
    assert snapshot["status"] == "playing"
    assert snapshot["song_id"] == "song-1"
    assert snapshot["line_count"] == 3
    assert snapshot["active_line_text"] == "Hello world"
    assert snapshot["judged_lines"] == 1
    assert snapshot["last_judgment"]["timing_verdict"] == "perfect"
    assert "stats" not in snapshot

    running = session.synchronizer.stats()
    assert running.total_score == session.state.score


def test_transport_error_is_reported():
    session = make_session()
    session.transport.fail("codec missing")
    assert session.synchronizer.snapshot()["error"] == "codec missing"


def test_command_queue_runs_commands_in_order_and_survives_failures():
    command_queue = CommandQueue()
    calls = []

    def failing():
        raise RuntimeError("boom")

    command_queue.post(lambda: calls.append(1))
    command_queue.post(failing)
    command_queue.post(lambda: calls.append(2))
    assert command_queue.drain() == 3
    assert calls == [1, 2]
    assert command_queue.drain() == 0
