"""Tests for the pydantic settings models."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from fragments.llm.constants import DEFAULT_LLM_MODEL
from fragments.settings import (
    AppSettings,
    EndpointSettings,
    LLMModelConfig,
    UISettings,
    load_app_settings,
)

pytestmark = pytest.mark.unit


def test_llm_model_config_defaults_and_wire_form() -> None:
    config = LLMModelConfig()
    assert config.model == DEFAULT_LLM_MODEL
    assert config.to_wire() == {"model": DEFAULT_LLM_MODEL}


def test_llm_model_config_accepts_camel_case_and_normalises() -> None:
    config = LLMModelConfig.model_validate(
        {
            "model": "gpt-4o",
            "apiKey": "  sk-test  ",
            "baseURL": "   ",
            "temperature": "3.5",
            "topP": -1,
            "topK": "0",
            "frequencyPenalty": 9,
            "maxTokens": "2048",
        }
    )
    assert config.api_key == "sk-test"
    assert config.base_url is None
    assert config.temperature == 2.0
    assert config.top_p == 0.0
    assert config.top_k is None
    assert config.frequency_penalty == 2.0
    assert config.max_tokens == 2048
    assert config.to_wire() == {
        "model": "gpt-4o",
        "apiKey": "sk-test",
        "temperature": 2.0,
        "topP": 0.0,
        "frequencyPenalty": 2.0,
        "maxTokens": 2048,
    }


def test_llm_model_config_rejects_boolean_numbers() -> None:
    with pytest.raises(ValueError):
        LLMModelConfig(temperature=True)


def test_endpoint_settings_normalise_urls() -> None:
    endpoints = EndpointSettings(base_url="https://fragments.example/", chat_path="api/chat")
    assert endpoints.base_url == "https://fragments.example"
    assert endpoints.chat_path == "/api/chat"
    assert endpoints.sandbox_path == "/api/sandbox"
    with pytest.raises(ValueError):
        EndpointSettings(timeout_seconds=0)
    with pytest.raises(ValueError):
        EndpointSettings(transport="grpc")


def test_ui_settings_blank_template_means_auto() -> None:
    assert UISettings(selected_template="  ").selected_template == "auto"


def test_load_app_settings_json_and_toml(tmp_path: Path) -> None:
    json_path = tmp_path / "settings.json"
    json_path.write_text(
        json.dumps({"endpoints": {"base_url": "http://app:3000/"}, "llm": {"model": "gpt-4o"}}),
        encoding="utf-8",
    )
    loaded = load_app_settings(json_path)
    assert loaded.endpoints.base_url == "http://app:3000"
    assert loaded.llm.model == "gpt-4o"

    toml_path = tmp_path / "settings.toml"
    toml_path.write_text(
        '[ui]\nselected_template = "nextjs-developer"\n\n[endpoints]\ntransport = "openai"\n',
        encoding="utf-8",
    )
    loaded = load_app_settings(toml_path)
    assert loaded.ui.selected_template == "nextjs-developer"
    assert loaded.endpoints.transport == "openai"


def test_load_app_settings_wraps_validation_errors(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"endpoints": {"timeout_seconds": -1}}), encoding="utf-8")
    with pytest.raises(ValueError):
        load_app_settings(path)


def test_app_settings_to_dict_round_trips() -> None:
    settings = AppSettings()
    assert AppSettings.model_validate(settings.to_dict()) == settings
