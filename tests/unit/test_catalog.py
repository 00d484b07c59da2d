"""Tests for the bundled model and template catalogs."""

from __future__ import annotations

import pytest

from fragments.catalog import (
    FREE_MODEL_IDS,
    filter_models,
    find_model,
    load_models,
    load_templates,
    parse_models,
    parse_templates,
    resolve_model,
    resolve_templates,
    templates_to_wire,
)

pytestmark = pytest.mark.unit


def test_bundled_templates_load() -> None:
    templates = load_templates()
    assert set(templates) == {
        "code-interpreter-v1",
        "nextjs-developer",
        "vue-developer",
        "streamlit-developer",
        "gradio-developer",
    }
    assert templates["nextjs-developer"].port == 3000
    assert templates["code-interpreter-v1"].port is None


def test_resolve_templates_auto_returns_everything() -> None:
    assert resolve_templates("auto") == load_templates()


def test_resolve_templates_single_selection() -> None:
    selected = resolve_templates("streamlit-developer")
    assert list(selected) == ["streamlit-developer"]
    with pytest.raises(KeyError):
        resolve_templates("does-not-exist")


def test_templates_to_wire_uses_plain_json() -> None:
    wire = templates_to_wire(resolve_templates("vue-developer"))
    assert wire["vue-developer"]["lib"] == ["vue@latest", "nuxt@3.13.0", "tailwindcss"]
    assert wire["vue-developer"]["file"] == "app.vue"


def test_parse_templates_rejects_invalid_payload() -> None:
    with pytest.raises(ValueError):
        parse_templates({"broken": {"name": "x"}})
    with pytest.raises(ValueError):
        parse_templates({})


def test_parse_models_rejects_invalid_payload() -> None:
    with pytest.raises(ValueError):
        parse_models({"models": [{"id": "x"}]})


def test_free_tier_only_sees_free_models() -> None:
    models = load_models()
    free = filter_models(models)
    assert free
    assert {model.id for model in free} <= FREE_MODEL_IDS
    assert find_model(free, "llama3.1") is None
    assert len(filter_models(models, tier="pro")) == len(models)


def test_resolve_model_by_id() -> None:
    models = load_models()
    descriptor = resolve_model(models, "gpt-4o")
    assert descriptor is not None
    assert descriptor.to_wire() == {
        "id": "gpt-4o",
        "provider": "OpenAI",
        "providerId": "openai",
        "name": "GPT-4o",
        "multiModal": True,
    }
    assert resolve_model(models, None) is None
    assert resolve_model(models, "unknown") is None
