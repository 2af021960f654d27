"""
karatype.py

Real entrypoint that launches the lyric typing game for one song.

Integration
- Configures logging
- Loads config and paths
- Loads the lyric timeline (an .lrc path, or a song id looked up in the lyrics directory)
- Creates QApplication, the Qt audio transport and the harness window
- Starts the Flask control API in background
- Persists gameplay settings (difficulty, offset, input policy) on exit

Usage
    python karatype.py song.lrc song.mp3 --difficulty hard --policy assist --offset-ms -150
    python karatype.py my-song-id song.mp3
    python karatype.py --run-tests
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple

log = logging.getLogger("karatype")

_SELF_TEST_MODULES = (
    "text_matcher",
    "lyric_timeline",
    "timing_classifier",
    "line_scorer",
    "input_policy",
    "timing_model",
    "countdown",
    "audio_transport",
)


def build_argument_parser() -> argparse.ArgumentParser:
    argument_parser = argparse.ArgumentParser(description="Karatype lyric typing game")
    argument_parser.add_argument("lyrics", nargs="?", help="Path to an .lrc file, or a song id in the lyrics directory.")
    argument_parser.add_argument("audio", nargs="?", help="Path to the song audio file.")
    argument_parser.add_argument("--difficulty", choices=["easy", "medium", "hard"], help="Overrides the config value.")
    argument_parser.add_argument("--policy", choices=["normal", "strict", "assist"], help="Input policy override.")
    argument_parser.add_argument("--offset-ms", type=int, help="Lyric offset in milliseconds (-2000..2000).")
    argument_parser.add_argument("--song-id", help="Song id used for high scores. Defaults to the lyric file stem.")
    argument_parser.add_argument("--config", help="Config file path. Defaults to KARATYPE_CONFIG_PATH or the standard locations.")
    argument_parser.add_argument("--no-web", action="store_true", help="Do not start the control API.")
    argument_parser.add_argument("--web-debug", action="store_true", help="Enable Flask debug mode.")
    argument_parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    argument_parser.add_argument("--run-tests", action="store_true", help="Run the built in module self tests and exit.")
    return argument_parser


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def run_self_tests() -> int:
    import importlib

    failures: List[str] = []
    for module_name in _SELF_TEST_MODULES:
        module = importlib.import_module(module_name)
        try:
            module._run_unit_tests()
        except AssertionError as exception:
            failures.append(f"{module_name}: {exception!r}")
            continue
        print(f"{module_name}.py: ok")

    if failures:
        for failure in failures:
            print(f"FAILED {failure}", file=sys.stderr)
        return 1
    return 0


def _load_timeline(lyrics_argument: str, lyrics_root: Path):
    """Return (timeline, song_id) for an .lrc path or a song id."""
    import lyric_library

    lyric_path = Path(lyrics_argument).expanduser()
    if lyric_path.is_file():
        return lyric_library.load_timeline(lyric_path), lyric_library.song_id_for_path(lyric_path)

    timeline, found_path = lyric_library.load_timeline_for_song(lyrics_argument, lyrics_root)
    log.info("Using lyrics %s", found_path)
    return timeline, str(lyrics_argument).strip()


def _apply_cli_overrides(gameplay_config, parsed_args: argparse.Namespace):
    updates = {}
    if parsed_args.difficulty:
        updates["difficulty"] = parsed_args.difficulty
    if parsed_args.policy:
        updates["input_policy"] = parsed_args.policy
    if parsed_args.offset_ms is not None:
        updates["offset_ms"] = parsed_args.offset_ms
    if not updates:
        return gameplay_config
    return type(gameplay_config).model_validate({**gameplay_config.model_dump(), **updates})


def _load_app_config(config_argument: Optional[str]) -> Tuple[Any, Path]:
    import config as config_module

    if config_argument:
        return config_module.load_config(Path(config_argument).expanduser())
    return config_module.get_config()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parsed_args = build_argument_parser().parse_args(argv)
    _configure_logging(bool(parsed_args.verbose))

    if parsed_args.run_tests:
        return run_self_tests()

    if not parsed_args.lyrics or not parsed_args.audio:
        build_argument_parser().print_usage(sys.stderr)
        print("karatype: error: lyrics and audio are required", file=sys.stderr)
        return 2

    import config as config_module
    import web_server
    from gameplay_models import SongInfo
    from lyric_library import LyricNotFoundError
    from lyric_timeline import ParseError
    from score_store import JsonScoreStore

    try:
        app_config, config_path = _load_app_config(parsed_args.config)
        gameplay_config = _apply_cli_overrides(app_config.gameplay, parsed_args)
    except (OSError, ValueError) as exception:
        log.error("Configuration error: %s", exception)
        return 2

    try:
        timeline, derived_song_id = _load_timeline(parsed_args.lyrics, app_config.storage.resolved_lyrics_dir())
    except (ParseError, LyricNotFoundError) as exception:
        log.error("Could not load lyrics: %s", exception)
        return 2
    if timeline.is_empty:
        log.warning("No timed lyric lines found; the song will play without judging")

    song = SongInfo(
        song_id=str(parsed_args.song_id or derived_song_id),
        track_name=timeline.metadata.title or "",
        artist_name=timeline.metadata.artist or "",
    )
    score_store = JsonScoreStore(app_config.storage.resolved_scores_path())

    from PyQt6.QtWidgets import QApplication

    from gameplay_harness import GameplayHarnessWindow
    from qt_audio_transport import QtAudioTransport

    qt_application = QApplication(sys.argv[:1])

    transport = QtAudioTransport()
    window = GameplayHarnessWindow(settings=gameplay_config, transport=transport, score_store=score_store)
    controller = window.controller
    controller.load_song(song, timeline)
    transport.load_file(Path(parsed_args.audio))

    window.resize(1100, 520)
    window.show()

    if app_config.web_server.enabled and not parsed_args.no_web:
        flask_app = web_server.create_flask_app(
            controller.synchronizer,
            score_store=score_store,
            command_queue=controller.command_queue,
        )
        server = web_server.WebServerThread(
            flask_app,
            web_server.WebServerConfig(
                host=str(app_config.web_server.host),
                port=int(app_config.web_server.port),
                debug=bool(parsed_args.web_debug),
            ),
        )
        server.start()

    exit_code = int(qt_application.exec())

    settings = controller.current_settings()
    try:
        config_module.save_gameplay_settings(
            config_path,
            difficulty=settings["difficulty"],
            offset_ms=settings["offset_ms"],
            input_policy=settings["input_policy"],
            volume=settings["volume"],
        )
    except (OSError, ValueError) as exception:
        log.warning("Could not save settings to %s: %s", config_path, exception)

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
