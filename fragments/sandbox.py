"""Client for the remote sandbox that runs generated fragments."""

from __future__ import annotations

import json
import time
from collections.abc import Mapping
from typing import Any, Protocol

import httpx

from .schema import ExecutionResult, Fragment, parse_execution_result
from .settings import EndpointSettings
from .telemetry import log_debug_payload, log_event


class SandboxExecutionError(RuntimeError):
    """Sandbox call failed or answered with a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": type(self).__name__, "message": self.message}
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


class SandboxExecutor(Protocol):
    """Run a completed fragment on behalf of *user_id*."""

    async def execute(
        self, fragment: Fragment, user_id: str
    ) -> ExecutionResult:  # pragma: no cover - protocol
        """Return the execution result or raise :class:`SandboxExecutionError`."""


class SandboxClient:
    """Post fragments to the sandbox route of the web application."""

    def __init__(
        self,
        settings: EndpointSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport

    async def _request_async(
        self, method: str, path: str, *, json_body: Any | None = None
    ) -> httpx.Response:
        async with httpx.AsyncClient(
            base_url=self.settings.base_url,
            timeout=httpx.Timeout(self.settings.timeout_seconds),
            transport=self._transport,
        ) as client:
            return await client.request(method, path, json=json_body)

    async def execute(self, fragment: Fragment, user_id: str) -> ExecutionResult:
        request_body = {"fragment": fragment.to_payload(), "userID": user_id}
        start = time.monotonic()
        log_event(
            "SANDBOX_REQUEST",
            {"template": fragment.template, "user_id": user_id},
        )
        log_debug_payload(
            "SANDBOX_REQUEST",
            {"direction": "outbound", "path": self.settings.sandbox_path, "body": request_body},
        )
        try:
            resp = await self._request_async(
                "POST", self.settings.sandbox_path, json_body=request_body
            )
        except httpx.HTTPError as exc:
            error = SandboxExecutionError(str(exc) or type(exc).__name__)
            log_event("SANDBOX_RESULT", {"error": error.to_payload()}, start_time=start)
            raise error from exc

        body = resp.text
        log_debug_payload(
            "SANDBOX_RESPONSE",
            {"direction": "inbound", "status": resp.status_code, "body": body},
        )
        if not resp.is_success:
            error = SandboxExecutionError(
                body.strip() or f"Sandbox request failed with status {resp.status_code}",
                status_code=resp.status_code,
            )
            log_event("SANDBOX_RESULT", {"error": error.to_payload()}, start_time=start)
            raise error
        try:
            data = json.loads(body or "{}")
        except ValueError as exc:
            error = SandboxExecutionError(
                "Sandbox returned invalid JSON", status_code=resp.status_code
            )
            log_event("SANDBOX_RESULT", {"error": error.to_payload()}, start_time=start)
            raise error from exc
        try:
            if not isinstance(data, Mapping):
                raise ValueError("payload is not an object")
            result = parse_execution_result(data)
        except ValueError as exc:
            error = SandboxExecutionError(
                "Sandbox returned an unexpected payload", status_code=resp.status_code
            )
            log_event("SANDBOX_RESULT", {"error": error.to_payload()}, start_time=start)
            raise error from exc
        log_event(
            "SANDBOX_RESULT",
            {"ok": True, "sbx_id": result.sbx_id, "template": result.template},
            start_time=start,
        )
        return result


__all__ = ["SandboxClient", "SandboxExecutionError", "SandboxExecutor"]
