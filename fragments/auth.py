"""Session identity used to scope sandbox execution."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Protocol

import httpx

from .llm.constants import ANONYMOUS_USER_ID
from .settings import EndpointSettings
from .telemetry import log_event


@dataclass(frozen=True, slots=True)
class Session:
    """Authenticated user as reported by the identity provider."""

    user_id: str
    access_token: str | None = None
    team_id: str | None = None
    tier: str | None = None


class SessionGate(Protocol):
    """Supply the current session, if any."""

    def current_session(self) -> Session | None:  # pragma: no cover - protocol
        """Return the signed-in session or ``None``."""


class StaticSessionGate:
    """In-process gate holding whatever session was last signed in."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    def current_session(self) -> Session | None:
        return self._session

    def sign_in(self, session: Session) -> None:
        self._session = session

    def sign_out(self) -> None:
        self._session = None


def resolve_user_id(gate: SessionGate | None) -> str:
    """Return the session user id, or the anonymous sentinel."""
    session = gate.current_session() if gate is not None else None
    if session is None or not session.user_id:
        return ANONYMOUS_USER_ID
    return session.user_id


def resolve_tier(gate: SessionGate | None) -> str | None:
    session = gate.current_session() if gate is not None else None
    return session.tier if session is not None else None


class AuthClient:
    """Exchange a provider access token with the web application."""

    def __init__(
        self,
        settings: EndpointSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    async def exchange(self, access_token: str) -> bool:
        """Return ``True`` when the application accepted *access_token*.

        The provider access token is posted as ``{"supabaseAccessToken": ...}``,
        the field the auth route reads; it is not sent as ``accessToken``.
        """
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                base_url=self.settings.base_url,
                timeout=httpx.Timeout(self.settings.timeout_seconds),
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    self.settings.auth_path,
                    json={"supabaseAccessToken": access_token},
                )
        except httpx.HTTPError as exc:
            log_event("AUTH_EXCHANGE", {"ok": False, "error": str(exc)}, start_time=start)
            return False
        ok = resp.is_success
        log_event("AUTH_EXCHANGE", {"ok": ok, "status": resp.status_code}, start_time=start)
        return ok


__all__ = [
    "AuthClient",
    "Session",
    "SessionGate",
    "StaticSessionGate",
    "resolve_tier",
    "resolve_user_id",
]
