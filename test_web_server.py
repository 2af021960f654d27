import pytest

from audio_transport import SimulatedTransport
from countdown import ManualScheduler
from gameplay_models import Difficulty, InputPolicy, SessionStatus, SongInfo
from lyric_timeline import parse_lrc
from score_store import JsonScoreStore
from session_engine import CommandQueue, Synchronizer
from web_server import create_flask_app


class FakeClock:
    def __init__(self) -> None:
        self.seconds = 0.0

    def __call__(self) -> float:
        return self.seconds


@pytest.fixture
def playing(tmp_path):
    clock = FakeClock()
    scheduler = ManualScheduler()
    transport = SimulatedTransport(20000.0, clock=clock)
    store = JsonScoreStore(tmp_path / "scores.json")
    synchronizer = Synchronizer(scheduler=scheduler, score_store=store)
    synchronizer.select_song(SongInfo(song_id="web-song"), parse_lrc("[00:01.00]Hello\n[00:04.00]World\n"))
    synchronizer.attach_audio(transport)
    transport.load()
    synchronizer.start()
    scheduler.advance(3.0)
    clock.seconds = 1.0
    synchronizer.on_tick()
    return synchronizer, store


@pytest.fixture
def client(playing):
    synchronizer, store = playing
    return create_flask_app(synchronizer, score_store=store).test_client()


def test_status(client):
    response = client.get("/api/status")
    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "no-store"
    payload = response.get_json()
    assert payload["ok"] is True
    assert payload["status"] == "playing"
    assert payload["active_line_text"] == "Hello"


def test_pause_and_resume(client, playing):
    synchronizer, _store = playing
    assert client.post("/api/pause").get_json() == {"ok": True, "queued": False, "result": True}
    assert synchronizer.state.status == SessionStatus.PAUSED
    client.post("/api/resume")
    assert synchronizer.state.status == SessionStatus.PLAYING


def test_submit_returns_judgment(client, playing):
    synchronizer, _store = playing
    synchronizer.on_keystroke("hel")
    payload = client.post("/api/submit").get_json()
    assert payload["result"]["line_index"] == 0
    assert payload["result"]["typed_text"] == "hel"
    assert payload["result"]["timing_verdict"] == "perfect"

    assert "result" not in client.post("/api/submit").get_json()


def test_clear(client, playing):
    synchronizer, _store = playing
    synchronizer.on_keystroke("hel")
    client.post("/api/clear")
    assert synchronizer.state.typed_buffer == ""


def test_settings_commands(client, playing):
    synchronizer, _store = playing
    assert client.post("/api/offset", json={"offset_ms": 5000}).get_json()["result"] == 2000
    assert synchronizer.state.offset_ms == 2000

    assert client.post("/api/policy", json={"policy": "assist"}).get_json()["result"] == "assist"
    assert synchronizer.state.input_policy == InputPolicy.ASSIST

    assert client.post("/api/difficulty", json={"difficulty": "hard"}).get_json()["result"] is False
    assert synchronizer.state.difficulty == Difficulty.MEDIUM


@pytest.mark.parametrize(
    "route, body",
    [
        ("/api/offset", {"offset_ms": "soon"}),
        ("/api/offset", {"offset_ms": True}),
        ("/api/offset", None),
        ("/api/policy", {"policy": "lenient"}),
        ("/api/difficulty", {}),
    ],
)
def test_bad_requests(client, route, body):
    response = client.post(route, json=body)
    assert response.status_code == 400
    assert response.get_json()["ok"] is False


def test_quit(client, playing):
    synchronizer, _store = playing
    client.post("/api/quit")
    assert synchronizer.state.status == SessionStatus.IDLE
    assert client.get("/api/status").get_json()["song_id"] is None


def test_stats(client, playing):
    synchronizer, _store = playing
    synchronizer.on_keystroke("hello")
    stats = client.get("/api/stats").get_json()["stats"]
    assert stats["total_score"] == synchronizer.state.score
    assert stats["max_combo"] == 1


def test_scores(client, playing):
    synchronizer, store = playing
    synchronizer.on_keystroke("hello")
    synchronizer.quit()

    assert client.get("/api/scores").get_json() == {"ok": True, "scores": []}
    assert client.get("/api/scores?difficulty=extreme").status_code == 400


def test_scores_unavailable_without_store(playing):
    synchronizer, _store = playing
    client = create_flask_app(synchronizer).test_client()
    assert client.get("/api/scores").status_code == 503


def test_commands_are_queued_when_a_queue_is_given(playing):
    synchronizer, _store = playing
    command_queue = CommandQueue()
    client = create_flask_app(synchronizer, command_queue=command_queue).test_client()

    assert client.post("/api/pause").get_json() == {"ok": True, "queued": True}
    assert synchronizer.state.status == SessionStatus.PLAYING
    assert command_queue.drain() == 1
    assert synchronizer.state.status == SessionStatus.PAUSED
