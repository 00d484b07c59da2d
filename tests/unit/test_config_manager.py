"""Tests for persisted user preferences."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fragments.config import ConfigManager, default_config_path
from fragments.settings import LLMModelConfig

pytestmark = pytest.mark.unit


def test_defaults_without_file(tmp_path: Path) -> None:
    manager = ConfigManager(path=tmp_path / "config.json")
    assert manager.get_chat_input() == ""
    assert manager.get_language_model() == manager.settings.llm
    assert manager.get_setting("ui.selected_template") == "auto"
    with pytest.raises(KeyError):
        manager.get_setting("ui.missing")
    with pytest.raises(KeyError):
        manager.get_setting("selected_template")
    assert not manager.path.exists()


def test_default_path_lives_under_home(tmp_path: Path) -> None:
    assert default_config_path() == Path.home() / ".fragments" / "config.json"
    assert default_config_path("My Client!").name == "config-my-client.json"


def test_chat_draft_and_language_model_persist(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "config.json"
    manager = ConfigManager(path=path)
    manager.set_chat_input("build a todo app")
    manager.set_language_model(LLMModelConfig(model="gpt-4o", apiKey="sk-1"))
    manager.flush()

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["preferences"]["chat"] == "build a todo app"
    assert stored["preferences"]["languageModel"] == {"model": "gpt-4o", "apiKey": "sk-1"}
    assert stored["settings"] == {}

    reloaded = ConfigManager(path=path)
    assert reloaded.get_chat_input() == "build a todo app"
    assert reloaded.get_language_model() == LLMModelConfig(model="gpt-4o", api_key="sk-1")


def test_settings_overrides_are_validated(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    manager = ConfigManager(path=path)
    manager.set_setting("endpoints.base_url", "http://localhost:4000/")
    manager.set_setting("llm.temperature", 7)
    with pytest.raises(ValueError):
        manager.set_setting("endpoints.transport", "carrier-pigeon")
    assert manager.settings.endpoints.transport == "http"
    manager.flush()

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["settings"]["endpoints"] == {"base_url": "http://localhost:4000"}

    reloaded = ConfigManager(path=path)
    assert reloaded.settings.endpoints.base_url == "http://localhost:4000"
    assert reloaded.get_setting("llm.temperature") == 2.0

    reloaded.reset_setting("llm.temperature")
    assert reloaded.settings.llm.temperature is None


def test_invalid_stored_values_fall_back(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "settings": {"endpoints": {"timeout_seconds": -1}},
                "preferences": {"languageModel": {"model": "x", "temperature": "hot"}},
            }
        ),
        encoding="utf-8",
    )
    manager = ConfigManager(path=path)
    assert manager.settings.endpoints.timeout_seconds > 0
    assert manager.get_language_model() == manager.settings.llm


def test_corrupted_file_is_ignored(tmp_path: Path) -> None:
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    manager = ConfigManager(path=path)
    assert manager.get_chat_input() == ""
