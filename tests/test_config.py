import json

import pytest

from sceneforge.config import ConfigError, Settings, load_settings


def test_environment_names(monkeypatch):
    monkeypatch.setenv("SCENEFORGE_MAX_TURNS", "7")
    monkeypatch.setenv("GEMINI_API_KEY", "g-key")
    settings = Settings()
    assert settings.agent_max_turns == 7
    assert settings.gemini_api_key == "g-key"
    assert settings.max_turns_for("agent") == 7
    assert settings.max_turns_for("ask") == settings.ask_max_turns


def test_load_settings_from_json_with_overrides(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"max_edits": 5, "require_plan": True}), encoding="utf-8")
    settings = load_settings(path, max_edits=8, default_provider=None)
    assert settings.max_edits == 8
    assert settings.require_plan is True


def test_load_settings_from_yaml(tmp_path):
    pytest.importorskip("yaml")
    path = tmp_path / "settings.yaml"
    path.write_text("checkpoint_limit: 3\nenable_fallbacks: false\n", encoding="utf-8")
    settings = load_settings(path)
    assert settings.checkpoint_limit == 3
    assert settings.enable_fallbacks is False


def test_invalid_settings_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_fallbacks_can_be_disabled_from_environment(monkeypatch):
    monkeypatch.setenv("SCENEFORGE_ENABLE_FALLBACKS", "false")
    assert Settings().enable_fallbacks is False
