"""
config.py

Typed configuration loading and validation for Karatype.

Design goals
- Load at most one UTF-8 JSON config file
- Validate with pydantic (defaults included)
- Support environment variable overrides
- Persist gameplay settings (difficulty, offset, input policy, volume) back to the same file

Config file location
- If KARATYPE_CONFIG_PATH is set, that file is used.
- Otherwise Karatype searches these paths in order and uses the first one that exists:
  1) ./karatype_config.json (current working directory)
  2) <user config dir>/Karatype/Karatype/karatype_config.json
  3) <user config dir>/Karatype/Karatype/config.json
- When none exists, defaults are used and settings are saved to candidate 2.

Example config file (karatype_config.json)
{
  "gameplay": {
    "difficulty": "medium",
    "offset_ms": 0,
    "input_policy": "normal",
    "volume": 0.7,
    "show_upcoming": true,
    "tick_interval_ms": 50
  },
  "storage": {
    "lyrics_dir": "",
    "scores_path": ""
  },
  "web_server": {
    "enabled": true,
    "host": "127.0.0.1",
    "port": 5178
  }
}
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from platformdirs import user_config_dir
from pydantic import BaseModel, Field, ValidationError, field_validator

import paths
from gameplay_models import Difficulty, InputPolicy
from timing_model import MAX_OFFSET_MS, MIN_OFFSET_MS

log = logging.getLogger(__name__)


class GameplayConfig(BaseModel):
    difficulty: Difficulty = Field(default=Difficulty.MEDIUM, description="easy, medium, or hard")
    offset_ms: int = Field(default=0, ge=MIN_OFFSET_MS, le=MAX_OFFSET_MS, description="Lyric offset in ms.")
    input_policy: InputPolicy = Field(default=InputPolicy.NORMAL, description="normal, strict, or assist")
    volume: float = Field(default=0.7, ge=0.0, le=1.0, description="Playback volume.")
    show_upcoming: bool = Field(default=True, description="Show the next lyric line in the harness.")
    tick_interval_ms: int = Field(default=50, ge=10, le=199, description="Synchronizer tick period.")

    @field_validator("difficulty", "input_policy", mode="before")
    @classmethod
    def normalize_enum_text(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value


class StorageConfig(BaseModel):
    lyrics_dir: str = Field(default="", description="Directory of .lrc files. Empty uses ./Lyrics or the user data Lyrics dir.")
    scores_path: str = Field(default="", description="High score JSON path. Empty uses the user data dir.")

    def resolved_lyrics_dir(self) -> Path:
        return Path(self.lyrics_dir).expanduser() if self.lyrics_dir.strip() else paths.lyrics_dir()

    def resolved_scores_path(self) -> Path:
        return Path(self.scores_path).expanduser() if self.scores_path.strip() else paths.scores_path()


class WebServerConfig(BaseModel):
    enabled: bool = Field(default=True, description="Start the local control API.")
    host: str = Field(default="127.0.0.1", description="Bind address for local web server.")
    port: int = Field(default=5178, ge=1, le=65535, description="Port for local web server.")


class AppConfig(BaseModel):
    gameplay: GameplayConfig = Field(default_factory=GameplayConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    web_server: WebServerConfig = Field(default_factory=WebServerConfig)


def _default_config_candidates() -> List[Path]:
    config_directory = Path(user_config_dir(paths.APP_NAME, paths.APP_AUTHOR))
    return [
        Path.cwd() / "karatype_config.json",
        config_directory / "karatype_config.json",
        config_directory / "config.json",
    ]


def _resolve_config_path() -> Path:
    explicit_path_text = os.environ.get("KARATYPE_CONFIG_PATH", "").strip()
    if explicit_path_text:
        return Path(explicit_path_text)

    candidates = _default_config_candidates()
    for candidate_path in candidates:
        if candidate_path.exists():
            return candidate_path

    return candidates[1]


def _read_json_file_utf8(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        return {}

    try:
        raw_text = config_path.read_text(encoding="utf-8")
    except OSError as exception:
        raise OSError(f"Failed to read config file: {config_path}. Error: {exception}") from exception

    if not raw_text.strip():
        return {}

    try:
        parsed = json.loads(raw_text)
    except json.JSONDecodeError as exception:
        raise ValueError(f"Config file is not valid JSON: {config_path}. Error: {exception}") from exception

    if not isinstance(parsed, dict):
        raise ValueError(f"Config file root must be a JSON object: {config_path}")

    return parsed


def _apply_environment_overrides(config_dict: Dict[str, Any]) -> Dict[str, Any]:
    """
    Environment overrides are optional. The config file is the primary source of truth.

    Override variables:
    - KARATYPE_DIFFICULTY
    - KARATYPE_OFFSET_MS
    - KARATYPE_INPUT_POLICY
    - KARATYPE_VOLUME
    - KARATYPE_LYRICS_DIR
    - KARATYPE_SCORES_PATH
    - KARATYPE_WEB_ENABLED
    - KARATYPE_WEB_HOST
    - KARATYPE_WEB_PORT
    """
    def ensure_nested(config_root: Dict[str, Any], section_name: str) -> Dict[str, Any]:
        section = config_root.get(section_name)
        if isinstance(section, dict):
            return section
        section = {}
        config_root[section_name] = section
        return section

    updated_config = dict(config_dict)

    gameplay_section = ensure_nested(updated_config, "gameplay")
    storage_section = ensure_nested(updated_config, "storage")
    web_server_section = ensure_nested(updated_config, "web_server")

    def override_string(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "")
        if value_text.strip():
            target_dict[key_name] = value_text.strip()

    def override_int(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = int(value_text)
        except ValueError:
            log.warning("Ignoring %s: not an integer (%r)", env_name, value_text)

    def override_float(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip()
        if not value_text:
            return
        try:
            target_dict[key_name] = float(value_text)
        except ValueError:
            log.warning("Ignoring %s: not a number (%r)", env_name, value_text)

    def override_bool(env_name: str, target_dict: Dict[str, Any], key_name: str) -> None:
        value_text = os.environ.get(env_name, "").strip().lower()
        if not value_text:
            return
        truthy = {"1", "true", "yes", "on"}
        falsy = {"0", "false", "no", "off"}
        if value_text in truthy:
            target_dict[key_name] = True
        elif value_text in falsy:
            target_dict[key_name] = False

    override_string("KARATYPE_DIFFICULTY", gameplay_section, "difficulty")
    override_int("KARATYPE_OFFSET_MS", gameplay_section, "offset_ms")
    override_string("KARATYPE_INPUT_POLICY", gameplay_section, "input_policy")
    override_float("KARATYPE_VOLUME", gameplay_section, "volume")

    override_string("KARATYPE_LYRICS_DIR", storage_section, "lyrics_dir")
    override_string("KARATYPE_SCORES_PATH", storage_section, "scores_path")

    override_bool("KARATYPE_WEB_ENABLED", web_server_section, "enabled")
    override_string("KARATYPE_WEB_HOST", web_server_section, "host")
    override_int("KARATYPE_WEB_PORT", web_server_section, "port")

    return updated_config


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, Path]:
    resolved_path = config_path if config_path is not None else _resolve_config_path()
    json_dict = _read_json_file_utf8(resolved_path)
    json_dict = _apply_environment_overrides(json_dict)

    try:
        config = AppConfig.model_validate(json_dict)
    except ValidationError as exception:
        raise ValueError(f"Config validation failed for {resolved_path}:\n{exception}") from exception

    return config, resolved_path


@lru_cache(maxsize=1)
def get_config() -> Tuple[AppConfig, Path]:
    return load_config()


def save_gameplay_settings(
    config_path: Path,
    *,
    difficulty: Optional[Difficulty] = None,
    offset_ms: Optional[int] = None,
    input_policy: Optional[InputPolicy] = None,
    volume: Optional[float] = None,
) -> GameplayConfig:
    """Merge gameplay settings into the config file, leaving other sections untouched."""
    raw_dict = _read_json_file_utf8(config_path)
    gameplay_section = raw_dict.get("gameplay")
    if not isinstance(gameplay_section, dict):
        gameplay_section = {}

    if difficulty is not None:
        gameplay_section["difficulty"] = Difficulty(difficulty).value
    if offset_ms is not None:
        gameplay_section["offset_ms"] = int(offset_ms)
    if input_policy is not None:
        gameplay_section["input_policy"] = InputPolicy(input_policy).value
    if volume is not None:
        gameplay_section["volume"] = float(volume)

    try:
        validated = GameplayConfig.model_validate(gameplay_section)
    except ValidationError as exception:
        raise ValueError(f"Gameplay settings are invalid:\n{exception}") from exception

    raw_dict["gameplay"] = validated.model_dump(mode="json")
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(raw_dict, ensure_ascii=False, indent=2), encoding="utf-8")
    get_config.cache_clear()
    return validated


def to_json(config: AppConfig) -> str:
    return json.dumps(config.model_dump(mode="json"), ensure_ascii=False, indent=2)


def main() -> int:
    try:
        config, resolved_path = load_config()
    except (OSError, ValueError) as exception:
        error_payload = {"ok": False, "error": str(exception)}
        print(json.dumps(error_payload, ensure_ascii=False, indent=2))
        return 2

    output_payload = {
        "ok": True,
        "config_path": str(resolved_path),
        "config": json.loads(to_json(config)),
    }
    print(json.dumps(output_payload, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
