from __future__ import annotations

import json
from pathlib import Path

import pytest

from auracle.config import ConfigManager, CustomAgent, Settings, default_config_path


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    for key in ("AURACLE_CONFIG", "AURACLE_AGENT__MAX_TURNS", "AURACLE_MODEL__PROVIDER"):
        monkeypatch.delenv(key, raising=False)


def test_defaults() -> None:
    settings = Settings()

    assert settings.model.provider == "ollama"
    assert settings.model.name == "llama3"
    assert settings.agent.mode == "vibe"
    assert settings.agent.max_turns == 10
    assert settings.agent.loop_repeat_threshold == 3
    assert settings.agent.loop_history == 10
    assert settings.prompt.mode == "auto"
    assert settings.prompt.recommendations_enabled is False
    assert settings.uses_default_model() is True


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "nested" / "config.json")
    settings = Settings(data_dir=tmp_path / "home")
    settings.model.provider = "openai"
    settings.model.name = "gpt-4o"
    settings.agent.custom_agents = [CustomAgent(name="docs", instructions="Only docs.")]

    manager.save(settings)
    loaded = manager.load()

    assert loaded.model.provider == "openai"
    assert loaded.model.name == "gpt-4o"
    assert loaded.agent.custom_agents == [CustomAgent(name="docs", instructions="Only docs.")]
    assert loaded.uses_default_model() is False
    assert json.loads(manager.path.read_text(encoding="utf-8"))["model"]["name"] == "gpt-4o"


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_invalid_file_falls_back_to_defaults(tmp_path: Path, content: str) -> None:
    path = tmp_path / "config.json"
    path.write_text(content, encoding="utf-8")

    assert ConfigManager(path).load().model.provider == "ollama"


def test_env_overrides_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AURACLE_AGENT__MAX_TURNS", "4")

    assert ConfigManager(tmp_path / "missing.json").load().agent.max_turns == 4


def test_config_path_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AURACLE_CONFIG", str(tmp_path / "custom.json"))

    assert default_config_path() == tmp_path / "custom.json"
    assert ConfigManager().path == tmp_path / "custom.json"


def test_active_custom_agent_requires_custom_mode() -> None:
    settings = Settings()
    settings.agent.custom_agents = [CustomAgent(name="docs")]
    settings.agent.active_custom = "docs"

    assert settings.active_custom_agent() is None

    settings.agent.mode = "custom"
    assert settings.active_custom_agent() == CustomAgent(name="docs")

    settings.agent.active_custom = "gone"
    assert settings.active_custom_agent() is None


def test_resolve_home_creates_directory(tmp_path: Path) -> None:
    settings = Settings(data_dir=tmp_path / "a" / "b")

    home = settings.resolve_home()

    assert home.is_dir()
    assert home == (tmp_path / "a" / "b").resolve()
