"""Typed application settings with Pydantic validation."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Literal

import tomllib
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .llm.constants import (
    AUTH_PATH,
    AUTO_TEMPLATE,
    CHAT_PATH,
    DEFAULT_APP_BASE_URL,
    DEFAULT_LLM_MODEL,
    DEFAULT_TIMEOUT_SECONDS,
    SANDBOX_PATH,
)


def _coerce_optional_float(
    value: float | str | None, *, minimum: float, maximum: float
) -> float | None:
    """Clamp *value* into ``[minimum, maximum]``; blanks become ``None``."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid numeric setting")
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        try:
            parsed = float(raw)
        except ValueError:  # pragma: no cover - delegated to Pydantic
            return value  # type: ignore[return-value]
    else:
        parsed = float(value)
    return min(max(parsed, minimum), maximum)


class LLMModelConfig(BaseModel):
    """Model selection plus provider overrides chosen by the user.

    Field aliases match the camelCase keys the chat endpoint expects, so
    ``model_dump(by_alias=True, exclude_none=True)`` yields the wire form.
    """

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    model: str = DEFAULT_LLM_MODEL
    api_key: str | None = Field(None, alias="apiKey")
    base_url: str | None = Field(None, alias="baseURL")
    temperature: float | None = None
    top_p: float | None = Field(None, alias="topP")
    top_k: int | None = Field(None, alias="topK")
    frequency_penalty: float | None = Field(None, alias="frequencyPenalty")
    presence_penalty: float | None = Field(None, alias="presencePenalty")
    max_tokens: int | None = Field(None, alias="maxTokens")

    @field_validator("api_key", "base_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @field_validator("temperature", mode="before")
    @classmethod
    def _normalize_temperature(cls, value: float | str | None) -> float | None:
        """Coerce *value* to the supported temperature range."""
        return _coerce_optional_float(value, minimum=0.0, maximum=2.0)

    @field_validator("top_p", mode="before")
    @classmethod
    def _normalize_top_p(cls, value: float | str | None) -> float | None:
        return _coerce_optional_float(value, minimum=0.0, maximum=1.0)

    @field_validator("frequency_penalty", "presence_penalty", mode="before")
    @classmethod
    def _normalize_penalty(cls, value: float | str | None) -> float | None:
        return _coerce_optional_float(value, minimum=-2.0, maximum=2.0)

    @field_validator("top_k", "max_tokens", mode="before")
    @classmethod
    def _normalize_positive_int(cls, value: int | str | None) -> int | None:
        """Treat blanks and non-positive limits as "not configured"."""
        if value is None:
            return None
        if isinstance(value, bool):
            raise ValueError("Boolean is not a valid limit")
        if isinstance(value, str):
            raw = value.strip()
            if not raw:
                return None
            try:
                numeric = int(raw)
            except ValueError:  # pragma: no cover - delegated to Pydantic
                return value  # type: ignore[return-value]
        else:
            numeric = int(value)
        return numeric if numeric > 0 else None

    def to_wire(self) -> dict[str, Any]:
        """Return the camelCase payload sent as ``config`` to the chat endpoint."""
        return self.model_dump(by_alias=True, exclude_none=True)


class EndpointSettings(BaseModel):
    """Location of the web application routes consumed by the client."""

    model_config = ConfigDict(validate_assignment=True)

    base_url: str = DEFAULT_APP_BASE_URL
    chat_path: str = CHAT_PATH
    sandbox_path: str = SANDBOX_PATH
    auth_path: str = AUTH_PATH
    timeout_seconds: float = Field(DEFAULT_TIMEOUT_SECONDS, gt=0)
    transport: Literal["http", "openai"] = "http"

    @field_validator("base_url", mode="before")
    @classmethod
    def _strip_trailing_slash(cls, value: str | None) -> str:
        if value is None:
            return DEFAULT_APP_BASE_URL
        text = str(value).strip().rstrip("/")
        return text or DEFAULT_APP_BASE_URL

    @field_validator("chat_path", "sandbox_path", "auth_path", mode="before")
    @classmethod
    def _ensure_leading_slash(cls, value: str) -> str:
        text = str(value).strip()
        if not text.startswith("/"):
            text = f"/{text}"
        return text


class UISettings(BaseModel):
    """Preferences for interactive frontends."""

    model_config = ConfigDict(validate_assignment=True)

    selected_template: str = AUTO_TEMPLATE
    log_level: int = Field(default=logging.INFO)

    @field_validator("selected_template", mode="before")
    @classmethod
    def _normalise_template(cls, value: str | None) -> str:
        if value is None:
            return AUTO_TEMPLATE
        text = str(value).strip()
        return text or AUTO_TEMPLATE


class AppSettings(BaseModel):
    """Aggregate settings for the application."""

    model_config = ConfigDict(validate_assignment=True)

    llm: LLMModelConfig = Field(default_factory=LLMModelConfig)
    endpoints: EndpointSettings = Field(default_factory=EndpointSettings)
    ui: UISettings = Field(default_factory=UISettings)

    def to_dict(self) -> dict:
        """Return settings as a plain dictionary."""
        return self.model_dump()


def load_app_settings(path: str | Path) -> AppSettings:
    """Load :class:`AppSettings` from *path* with validation.

    Format is detected by file extension: ``.toml`` uses :mod:`tomllib`,
    everything else is treated as JSON.  Any validation errors are wrapped into
    :class:`ValueError` with a human-friendly message.
    """
    p = Path(path)
    with p.open("rb") as fh:
        data = tomllib.load(fh) if p.suffix.lower() == ".toml" else json.load(fh)
    try:
        return AppSettings.model_validate(data)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
