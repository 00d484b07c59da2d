"""Structured telemetry events written through the ``fragments`` logger."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from .log import current_cycle_id, logger
from .util.json import make_json_safe

# Compared after lower-casing and dropping ``_`` and ``-``, so ``apiKey``,
# ``api_key`` and ``API-KEY`` all match ``apikey``.
SENSITIVE_KEYS = frozenset(
    {
        "authorization",
        "token",
        "secret",
        "password",
        "apikey",
        "accesstoken",
        "supabaseaccesstoken",
        "cookie",
    }
)

REDACTED = "[REDACTED]"


def _normalise_key(key: str) -> str:
    return key.lower().replace("_", "").replace("-", "")


def is_sensitive_key(key: Any) -> bool:
    return isinstance(key, str) and _normalise_key(key) in SENSITIVE_KEYS


def _redact(value: Any) -> Any:
    if isinstance(value, Mapping):
        # empty secrets stay visible so a missing key is obvious in the log
        return {
            key: REDACTED if is_sensitive_key(key) and item else _redact(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return type(value)(_redact(item) for item in value)
    return value


def sanitize(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return a deep copy of *data* with sensitive keys replaced by ``[REDACTED]``."""
    return _redact(dict(data))


def _prepare(payload: Any) -> Any:
    if payload is None:
        return {}
    if isinstance(payload, (str, bytes, bytearray)):
        return make_json_safe(payload)
    if isinstance(payload, Mapping):
        return make_json_safe(sanitize(payload))
    if isinstance(payload, Sequence):
        return make_json_safe(_redact(list(payload)))
    return make_json_safe(payload)


def _encoded_size(payload: Any) -> int:
    if not payload:
        return 0
    return len(json.dumps(payload, ensure_ascii=False).encode("utf-8"))


def log_event(
    event: str,
    payload: Mapping[str, Any] | None = None,
    *,
    start_time: float | None = None,
    level: int = logging.INFO,
) -> None:
    """Emit *event* with a redacted, JSON-safe *payload*.

    The record carries ``size_bytes`` of the encoded payload and, when
    *start_time* (a :func:`time.monotonic` value) is given, ``duration_ms``.
    Events logged inside :func:`fragments.log.cycle_scope` also carry the
    ``cycle_id`` of the submission they belong to.
    """
    safe_payload = _prepare(payload)
    data: dict[str, Any] = {
        "event": event,
        "payload": safe_payload,
        "size_bytes": _encoded_size(safe_payload),
    }
    if start_time is not None:
        data["duration_ms"] = int((time.monotonic() - start_time) * 1000)
    cycle_id = current_cycle_id()
    if cycle_id is not None:
        data["cycle_id"] = cycle_id
    logger.log(level, event, extra={"json": data})


def log_debug_payload(
    event: str,
    payload: Mapping[str, Any] | Sequence[Any] | str | None = None,
) -> None:
    """Log the full *payload* at DEBUG level; skipped when DEBUG is off."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    safe_payload = _prepare(payload)
    logger.debug(
        "%s %s",
        event,
        json.dumps(safe_payload, ensure_ascii=False),
        extra={"json": {"event": event, "level": "DEBUG", "payload": safe_payload}},
    )


__all__ = [
    "REDACTED",
    "SENSITIVE_KEYS",
    "is_sensitive_key",
    "log_debug_payload",
    "log_event",
    "sanitize",
]
