"""Bundled catalogs of language models and sandbox templates."""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from functools import lru_cache
from importlib import resources
from typing import Any

from jsonschema import validate as _validate
from jsonschema.exceptions import ValidationError
from pydantic import BaseModel, ConfigDict, Field

from .llm.constants import AUTO_TEMPLATE

TEMPLATES_SCHEMA: dict[str, Any] = {
    "type": "object",
    "minProperties": 1,
    "additionalProperties": {
        "type": "object",
        "required": ["name", "lib", "file", "instructions", "port"],
        "properties": {
            "name": {"type": "string"},
            "lib": {"type": "array", "items": {"type": "string"}},
            "file": {"type": ["string", "null"]},
            "instructions": {"type": "string"},
            "port": {"type": ["integer", "null"]},
        },
    },
}

MODELS_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["models"],
    "properties": {
        "models": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "provider", "providerId", "name"],
                "properties": {
                    "id": {"type": "string"},
                    "provider": {"type": "string"},
                    "providerId": {"type": "string"},
                    "name": {"type": "string"},
                    "multiModal": {"type": "boolean"},
                },
            },
        }
    },
}

FREE_MODEL_IDS: frozenset[str] = frozenset(
    {
        "claude-3-5-sonnet-latest",
        "claude-3-5-haiku-latest",
        "gpt-4o",
        "gpt-4o-mini",
        "models/gemini-2.5-flash-preview-05-20",
        "models/gemini-2.5-pro-preview-05-06",
        "models/gemini-2.0-flash",
        "models/gemini-1.5-pro",
        "models/gemini-1.5-flash",
        "mistral-large-latest",
        "mistral-small-latest",
    }
)

PRO_TIER = "pro"


class TemplateDefinition(BaseModel):
    """Named sandbox environment the model may target."""

    model_config = ConfigDict(frozen=True)

    name: str
    lib: tuple[str, ...] = ()
    file: str | None = None
    instructions: str = ""
    port: int | None = None


class ModelDescriptor(BaseModel):
    """Entry of the model catalog as sent to the chat endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    provider: str
    provider_id: str = Field(alias="providerId")
    name: str
    multi_modal: bool = Field(False, alias="multiModal")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _read_resource(name: str) -> Any:
    text = resources.files("fragments.resources").joinpath(name).read_text(encoding="utf-8")
    return json.loads(text)


def parse_templates(data: Mapping[str, Any]) -> dict[str, TemplateDefinition]:
    """Validate raw template data and return definitions keyed by id."""
    try:
        _validate(instance=data, schema=TEMPLATES_SCHEMA)
    except ValidationError as exc:
        raise ValueError(f"invalid template catalog: {exc.message}") from exc
    return {
        template_id: TemplateDefinition.model_validate(raw)
        for template_id, raw in data.items()
    }


def parse_models(data: Mapping[str, Any]) -> tuple[ModelDescriptor, ...]:
    """Validate raw model catalog data."""
    try:
        _validate(instance=data, schema=MODELS_SCHEMA)
    except ValidationError as exc:
        raise ValueError(f"invalid model catalog: {exc.message}") from exc
    return tuple(ModelDescriptor.model_validate(raw) for raw in data["models"])


@lru_cache(maxsize=1)
def load_templates() -> dict[str, TemplateDefinition]:
    """Return the bundled template catalog."""
    return parse_templates(_read_resource("templates.json"))


@lru_cache(maxsize=1)
def load_models() -> tuple[ModelDescriptor, ...]:
    """Return the bundled model catalog."""
    return parse_models(_read_resource("models.json"))


def resolve_templates(
    selection: str,
    templates: Mapping[str, TemplateDefinition] | None = None,
) -> dict[str, TemplateDefinition]:
    """Return the template set offered to the model for *selection*.

    ``"auto"`` offers every template; any other value must be a known id and
    yields a single-entry mapping.
    """
    catalog = dict(templates if templates is not None else load_templates())
    if selection == AUTO_TEMPLATE:
        return catalog
    if selection not in catalog:
        raise KeyError(selection)
    return {selection: catalog[selection]}


def templates_to_wire(templates: Mapping[str, TemplateDefinition]) -> dict[str, Any]:
    return {
        template_id: template.model_dump(mode="json")
        for template_id, template in templates.items()
    }


def filter_models(
    models: Iterable[ModelDescriptor], *, tier: str | None = None
) -> list[ModelDescriptor]:
    """Return models available to a team on *tier*; ``pro`` sees everything."""
    if tier == PRO_TIER:
        return list(models)
    return [model for model in models if model.id in FREE_MODEL_IDS]


def find_model(
    models: Iterable[ModelDescriptor], model_id: str
) -> ModelDescriptor | None:
    for model in models:
        if model.id == model_id:
            return model
    return None


def resolve_model(
    models: Iterable[ModelDescriptor], model_id: str | None
) -> ModelDescriptor | None:
    """Return the descriptor selected by *model_id*, or ``None`` when unknown."""
    if not model_id:
        return None
    return find_model(models, model_id)


__all__ = [
    "FREE_MODEL_IDS",
    "ModelDescriptor",
    "TemplateDefinition",
    "filter_models",
    "find_model",
    "load_models",
    "load_templates",
    "parse_models",
    "parse_templates",
    "resolve_model",
    "resolve_templates",
    "templates_to_wire",
]
