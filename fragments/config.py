"""Persisted user preferences and settings overrides."""

from __future__ import annotations

import json
import logging
import re
from copy import deepcopy
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .settings import AppSettings, LLMModelConfig

logger = logging.getLogger(__name__)

CHAT_INPUT_KEY = "chat"
LANGUAGE_MODEL_KEY = "languageModel"
SECTIONS = ("llm", "endpoints", "ui")
DEFAULT_APP_NAME = "Fragments"


def default_config_path(app_name: str = DEFAULT_APP_NAME) -> Path:
    """Return ``~/.fragments/config.json`` or a per-application variant."""
    if app_name == DEFAULT_APP_NAME:
        filename = "config.json"
    else:
        slug = re.sub(r"[^a-z0-9]+", "-", app_name.strip().lower()).strip("-")
        filename = f"config-{slug or 'default'}.json"
    return Path.home() / ".fragments" / filename


def _split_name(name: str) -> tuple[str, str]:
    section, _, field = name.partition(".")
    if section not in SECTIONS:
        raise KeyError(name)
    if field not in type(getattr(AppSettings(), section)).model_fields:
        raise KeyError(name)
    return section, field


class ConfigManager:
    """Keep settings overrides and client preferences in one JSON document.

    The file holds ``{"settings": {section: {field: value}}, "preferences":
    {...}}``.  Overrides are addressed as ``"section.field"`` and validated
    through :class:`AppSettings`; preferences (the unsent chat draft and the
    chosen language model) are stored as given.  Nothing reaches the disk
    until :meth:`flush`.
    """

    def __init__(
        self,
        app_name: str = DEFAULT_APP_NAME,
        path: Path | str | None = None,
    ) -> None:
        self._path = Path(path) if path is not None else default_config_path(app_name)
        self._overrides: dict[str, dict[str, Any]] = {section: {} for section in SECTIONS}
        self._preferences: dict[str, Any] = {}
        self._settings = AppSettings()
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> AppSettings:
        """Defaults merged with the stored overrides."""
        return self._settings

    # ------------------------------------------------------------------
    def _read(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable config %s: %s", self._path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _load(self) -> None:
        data = self._read()
        stored = data.get("settings")
        if isinstance(stored, dict):
            for section in SECTIONS:
                values = stored.get(section)
                if isinstance(values, dict):
                    self._overrides[section] = deepcopy(values)
        try:
            self._settings = self._validate(self._overrides)
        except ValidationError as exc:
            logger.warning("Discarding invalid settings overrides: %s", exc)
            self._overrides = {section: {} for section in SECTIONS}
            self._settings = AppSettings()
        preferences = data.get("preferences")
        if isinstance(preferences, dict):
            self._preferences = deepcopy(preferences)

    @staticmethod
    def _validate(overrides: dict[str, dict[str, Any]]) -> AppSettings:
        return AppSettings.model_validate(
            {section: values for section, values in overrides.items() if values}
        )

    def flush(self) -> None:
        """Write the document atomically."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "settings": {
                section: values for section, values in self._overrides.items() if values
            },
            "preferences": self._preferences,
        }
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        tmp_path.write_text(
            json.dumps(document, indent=2, sort_keys=True, ensure_ascii=False),
            encoding="utf-8",
        )
        tmp_path.replace(self._path)

    # ------------------------------------------------------------------
    # settings overrides
    def get_setting(self, name: str) -> Any:
        """Return the effective value of ``"section.field"``."""
        section, field = _split_name(name)
        return deepcopy(getattr(getattr(self._settings, section), field))

    def set_setting(self, name: str, value: Any) -> None:
        """Override ``"section.field"``; invalid values raise ``ValueError``."""
        section, field = _split_name(name)
        candidate = deepcopy(self._overrides)
        candidate[section][field] = value
        settings = self._validate(candidate)
        # keep the normalised form so the file mirrors what is in effect
        candidate[section][field] = getattr(getattr(settings, section), field)
        self._overrides = candidate
        self._settings = settings

    def reset_setting(self, name: str) -> None:
        section, field = _split_name(name)
        if self._overrides[section].pop(field, None) is not None:
            self._settings = self._validate(self._overrides)

    # ------------------------------------------------------------------
    # chat preferences
    def get_chat_input(self) -> str:
        """Return the persisted, not yet submitted chat draft."""
        value = self._preferences.get(CHAT_INPUT_KEY, "")
        return value if isinstance(value, str) else ""

    def set_chat_input(self, text: str) -> None:
        self._preferences[CHAT_INPUT_KEY] = str(text)

    def get_language_model(self) -> LLMModelConfig:
        """Return the stored model configuration or the settings default."""
        raw = self._preferences.get(LANGUAGE_MODEL_KEY)
        if isinstance(raw, dict):
            try:
                return LLMModelConfig.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Ignoring invalid stored language model: %s", exc)
        return self._settings.llm.model_copy()

    def set_language_model(self, config: LLMModelConfig) -> None:
        self._preferences[LANGUAGE_MODEL_KEY] = config.to_wire()


__all__ = ["ConfigManager", "default_config_path"]
