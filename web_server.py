# -*- coding: utf-8 -*-
from __future__ import annotations

########################
# web_server.py
########################
# Purpose:
# - Local Flask control API for a running typing session.
# - Exposes status, stats and high scores, and forwards pause, resume, submit, clear, quit,
#   restart, offset, input policy and difficulty commands to the Synchronizer.
#
# Design notes:
# - Reads go straight to Synchronizer.snapshot(), which takes the synchronizer lock.
# - Commands are posted to a CommandQueue when one is given so they run on the thread that owns
#   playback (the Qt thread in the harness). Without a queue they run inline (tests, headless use).
# - Input validation happens here so a bad request is answered with 400 before anything is queued.
#
########################
# Interfaces:
# Public dataclasses:
# - WebServerConfig(host: str, port: int, debug: bool)
#
# Public classes:
# - class WebServerThread(flask_app, config)
#   - start() -> None
#   - is_running() -> bool
#
# Public functions:
# - create_flask_app(synchronizer, *, score_store=None, command_queue=None) -> flask.Flask
#
# Inputs:
# - HTTP requests from local clients:
#   - /api/status, /api/stats, /api/scores (GET)
#   - /api/pause, /api/resume, /api/submit, /api/clear, /api/quit, /api/restart (POST)
#   - /api/offset {offset_ms}, /api/policy {policy}, /api/difficulty {difficulty} (POST)
#
# Outputs:
# - JSON responses.
#
########################

import dataclasses
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from flask import Flask, Response, jsonify, request

from gameplay_models import normalize_difficulty, normalize_input_policy
from session_engine import CommandQueue, Synchronizer

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class WebServerConfig:
    host: str
    port: int
    debug: bool = False


def _serialize_dataclass(value: Any) -> Any:
    if dataclasses.is_dataclass(value):
        result: dict[str, Any] = {}
        for field in dataclasses.fields(value):
            result[field.name] = _serialize_dataclass(getattr(value, field.name))
        return result
    if isinstance(value, (list, tuple)):
        return [_serialize_dataclass(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _serialize_dataclass(subvalue) for key, subvalue in value.items()}
    if isinstance(value, Enum):
        return value.value
    return value


def create_flask_app(
    synchronizer: Synchronizer,
    *,
    score_store: Any = None,
    command_queue: Optional[CommandQueue] = None,
) -> Flask:
    flask_app = Flask(__name__, static_folder=None)
    flask_app.extensions["karatype_synchronizer"] = synchronizer

    @flask_app.after_request
    def add_no_cache_headers(response: Response) -> Response:
        response.headers["Cache-Control"] = "no-store"
        return response

    def bad_request(message: str) -> Response:
        return jsonify({"ok": False, "error": message}), 400

    def dispatch(command: Callable[[], Any]) -> Response:
        if command_queue is not None:
            command_queue.post(command)
            return jsonify({"ok": True, "queued": True})
        result = command()
        payload: dict[str, Any] = {"ok": True, "queued": False}
        if result is not None:
            payload["result"] = _serialize_dataclass(result)
        return jsonify(payload)

    def json_body() -> dict[str, Any]:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}

    # Reads

    @flask_app.get("/api/status")
    def api_status() -> Response:
        return jsonify(synchronizer.snapshot())

    @flask_app.get("/api/stats")
    def api_stats() -> Response:
        return jsonify({"ok": True, "stats": _serialize_dataclass(synchronizer.stats())})

    @flask_app.get("/api/scores")
    def api_scores() -> Response:
        if score_store is None:
            return jsonify({"ok": False, "error": "High scores are not available"}), 503

        song_id = (request.args.get("song_id") or "").strip()
        difficulty_text = (request.args.get("difficulty") or "").strip()
        try:
            difficulty = normalize_difficulty(difficulty_text) if difficulty_text else None
        except ValueError as exception:
            return bad_request(str(exception))

        if song_id:
            records = score_store.scores_for_song(song_id, difficulty)
        else:
            records = score_store.top_scores()
        return jsonify({"ok": True, "scores": _serialize_dataclass(records)})

    # Commands

    @flask_app.post("/api/pause")
    def api_pause() -> Response:
        return dispatch(synchronizer.pause)

    @flask_app.post("/api/resume")
    def api_resume() -> Response:
        return dispatch(synchronizer.resume)

    @flask_app.post("/api/submit")
    def api_submit() -> Response:
        return dispatch(synchronizer.submit)

    @flask_app.post("/api/clear")
    def api_clear() -> Response:
        return dispatch(synchronizer.clear_input)

    @flask_app.post("/api/quit")
    def api_quit() -> Response:
        return dispatch(synchronizer.quit)

    @flask_app.post("/api/restart")
    def api_restart() -> Response:
        return dispatch(synchronizer.restart)

    @flask_app.post("/api/offset")
    def api_offset() -> Response:
        offset_value = json_body().get("offset_ms")
        if isinstance(offset_value, bool) or not isinstance(offset_value, (int, float)):
            return bad_request("offset_ms must be a number")
        return dispatch(lambda: synchronizer.set_offset_ms(float(offset_value)))

    @flask_app.post("/api/policy")
    def api_policy() -> Response:
        try:
            policy = normalize_input_policy(json_body().get("policy"))
        except ValueError as exception:
            return bad_request(str(exception))
        return dispatch(lambda: synchronizer.set_input_policy(policy))

    @flask_app.post("/api/difficulty")
    def api_difficulty() -> Response:
        try:
            difficulty = normalize_difficulty(json_body().get("difficulty"))
        except ValueError as exception:
            return bad_request(str(exception))
        return dispatch(lambda: synchronizer.set_difficulty(difficulty))

    return flask_app


class WebServerThread:
    """Runs the Flask development server on a daemon thread."""

    def __init__(self, flask_app: Flask, config: WebServerConfig) -> None:
        self._flask_application = flask_app
        self._config = config
        self._server_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._server_thread is not None:
            return

        def run_server() -> None:
            try:
                self._flask_application.run(
                    host=self._config.host,
                    port=self._config.port,
                    debug=self._config.debug,
                    use_reloader=False,
                    threaded=False,
                )
            except OSError:
                log.exception("Control API failed on %s:%d", self._config.host, self._config.port)

        self._server_thread = threading.Thread(target=run_server, name="karatype-web-server", daemon=True)
        self._server_thread.start()
        log.info("Control API listening on http://%s:%d", self._config.host, self._config.port)

    def is_running(self) -> bool:
        return self._server_thread is not None and self._server_thread.is_alive()
