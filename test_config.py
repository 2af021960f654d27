import json

import pytest

import config
from gameplay_models import Difficulty, InputPolicy


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in (
        "KARATYPE_CONFIG_PATH",
        "KARATYPE_DIFFICULTY",
        "KARATYPE_OFFSET_MS",
        "KARATYPE_INPUT_POLICY",
        "KARATYPE_VOLUME",
        "KARATYPE_LYRICS_DIR",
        "KARATYPE_SCORES_PATH",
        "KARATYPE_WEB_ENABLED",
        "KARATYPE_WEB_HOST",
        "KARATYPE_WEB_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    config.get_config.cache_clear()
    yield
    config.get_config.cache_clear()


def test_defaults_when_file_missing(tmp_path):
    app_config, path = config.load_config(tmp_path / "karatype_config.json")
    assert path == tmp_path / "karatype_config.json"
    assert app_config.gameplay.difficulty == Difficulty.MEDIUM
    assert app_config.gameplay.offset_ms == 0
    assert app_config.gameplay.input_policy == InputPolicy.NORMAL
    assert app_config.web_server.port == 5178


def test_file_values_are_validated(tmp_path):
    path = tmp_path / "karatype_config.json"
    path.write_text(
        json.dumps({"gameplay": {"difficulty": " HARD ", "offset_ms": -150, "input_policy": "Assist"}}),
        encoding="utf-8",
    )
    app_config, _path = config.load_config(path)
    assert app_config.gameplay.difficulty == Difficulty.HARD
    assert app_config.gameplay.offset_ms == -150
    assert app_config.gameplay.input_policy == InputPolicy.ASSIST


@pytest.mark.parametrize(
    "gameplay",
    [
        {"offset_ms": 2001},
        {"difficulty": "expert"},
        {"input_policy": "lenient"},
        {"volume": 1.5},
    ],
)
def test_invalid_values_raise_value_error(tmp_path, gameplay):
    path = tmp_path / "karatype_config.json"
    path.write_text(json.dumps({"gameplay": gameplay}), encoding="utf-8")
    with pytest.raises(ValueError):
        config.load_config(path)


def test_non_object_root_is_rejected(tmp_path):
    path = tmp_path / "karatype_config.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        config.load_config(path)


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("KARATYPE_DIFFICULTY", "easy")
    monkeypatch.setenv("KARATYPE_OFFSET_MS", "300")
    monkeypatch.setenv("KARATYPE_WEB_ENABLED", "off")
    monkeypatch.setenv("KARATYPE_WEB_PORT", "not-a-number")
    monkeypatch.setenv("KARATYPE_SCORES_PATH", str(tmp_path / "s.json"))

    app_config, _path = config.load_config(tmp_path / "missing.json")
    assert app_config.gameplay.difficulty == Difficulty.EASY
    assert app_config.gameplay.offset_ms == 300
    assert app_config.web_server.enabled is False
    assert app_config.web_server.port == 5178
    assert app_config.storage.resolved_scores_path() == tmp_path / "s.json"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "custom.json"
    path.write_text(json.dumps({"web_server": {"port": 9000}}), encoding="utf-8")
    monkeypatch.setenv("KARATYPE_CONFIG_PATH", str(path))
    app_config, resolved = config.get_config()
    assert resolved == path
    assert app_config.web_server.port == 9000


def test_save_gameplay_settings_keeps_other_sections(tmp_path):
    path = tmp_path / "karatype_config.json"
    path.write_text(json.dumps({"web_server": {"port": 6000}, "extra": True}), encoding="utf-8")

    saved = config.save_gameplay_settings(
        path,
        difficulty=Difficulty.HARD,
        offset_ms=-75,
        input_policy=InputPolicy.STRICT,
    )
    assert saved.offset_ms == -75

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["extra"] is True
    assert raw["web_server"]["port"] == 6000
    assert raw["gameplay"]["difficulty"] == "hard"
    assert raw["gameplay"]["input_policy"] == "strict"

    app_config, _path = config.load_config(path)
    assert app_config.gameplay.offset_ms == -75


def test_save_gameplay_settings_rejects_out_of_range_offset(tmp_path):
    with pytest.raises(ValueError):
        config.save_gameplay_settings(tmp_path / "c.json", offset_ms=9000)
