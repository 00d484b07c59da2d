"""Composition root building shared dependencies for the fragments client."""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import httpx

from .auth import AuthClient, SessionGate, StaticSessionGate
from .chat.controller import AnalyticsCallback, ChatController
from .config import ConfigManager
from .llm.transport import HttpObjectTransport, ObjectStreamTransport, OpenAIObjectTransport
from .sandbox import SandboxClient, SandboxExecutor
from .settings import AppSettings
from .telemetry import log_event


class ApplicationContext:
    """Central dependency registry shared by the CLI and embedding frontends."""

    def __init__(
        self,
        *,
        app_name: str = "Fragments",
        settings: AppSettings | None = None,
        config_factory: Callable[[str], ConfigManager] | None = None,
        session_gate: SessionGate | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
        stream_transport: ObjectStreamTransport | None = None,
        executor: SandboxExecutor | None = None,
        analytics: AnalyticsCallback | None = None,
    ) -> None:
        self._app_name = app_name
        self._settings = settings
        self._config_factory = config_factory or (lambda name: ConfigManager(name))
        self._session_gate = session_gate or StaticSessionGate()
        self._http_transport = http_transport
        self._stream_transport = stream_transport
        self._executor = executor
        self._analytics = analytics
        self._config: ConfigManager | None = None
        self._auth_client: AuthClient | None = None

    @property
    def config(self) -> ConfigManager:
        """Return lazily initialised :class:`ConfigManager`."""
        if self._config is None:
            self._config = self._config_factory(self._app_name)
        return self._config

    @property
    def settings(self) -> AppSettings:
        """Explicit settings win over the persisted configuration."""
        if self._settings is not None:
            return self._settings
        return self.config.settings

    @property
    def session_gate(self) -> SessionGate:
        return self._session_gate

    @property
    def stream_transport(self) -> ObjectStreamTransport:
        """Return the transport selected by ``endpoints.transport``."""
        if self._stream_transport is None:
            endpoints = self.settings.endpoints
            if endpoints.transport == "openai":
                self._stream_transport = OpenAIObjectTransport(
                    default_base_url=self.settings.llm.base_url
                )
            else:
                self._stream_transport = HttpObjectTransport(
                    endpoints, http_transport=self._http_transport
                )
        return self._stream_transport

    @property
    def executor(self) -> SandboxExecutor:
        if self._executor is None:
            self._executor = SandboxClient(
                self.settings.endpoints, transport=self._http_transport
            )
        return self._executor

    @property
    def auth_client(self) -> AuthClient:
        if self._auth_client is None:
            self._auth_client = AuthClient(
                self.settings.endpoints, transport=self._http_transport
            )
        return self._auth_client

    def create_chat_controller(self, *, persist: bool = True) -> ChatController:
        """Return a controller wired to the configured collaborators.

        With ``persist`` the controller restores and saves the input draft
        and model configuration through :attr:`config`.
        """
        config = self.config if persist else None
        language_model = (
            config.get_language_model() if config is not None else self.settings.llm
        )
        return ChatController(
            transport=self.stream_transport,
            executor=self.executor,
            session_gate=self._session_gate,
            language_model=language_model,
            selected_template=self.settings.ui.selected_template,
            config=config,
            analytics=self._analytics,
        )

    async def check_endpoint(self) -> dict[str, Any]:
        """Probe the web application and report ``{"ok": bool, ...}``."""
        endpoints = self.settings.endpoints
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                base_url=endpoints.base_url,
                timeout=httpx.Timeout(endpoints.timeout_seconds),
                transport=self._http_transport,
            ) as client:
                resp = await client.get("/")
        except httpx.HTTPError as exc:
            result: dict[str, Any] = {"ok": False, "error": str(exc) or type(exc).__name__}
        else:
            result = {"ok": resp.status_code < 500, "status": resp.status_code}
        log_event("ENDPOINT_CHECK", {"base_url": endpoints.base_url, **result}, start_time=start)
        return result


__all__ = ["ApplicationContext"]
