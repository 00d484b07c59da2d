"""Logging helpers for completion-stream interactions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from ..telemetry import log_debug_payload, log_event

__all__ = ["log_request", "log_response", "summarize_request"]

_IMAGE_PLACEHOLDER = "<image elided from log>"


def summarize_request(payload: Mapping[str, Any]) -> dict[str, Any]:
    """Return a compact description of a chat request for the INFO log."""
    messages = payload.get("messages")
    model = payload.get("model")
    config = payload.get("config")
    template = payload.get("template")
    summary: dict[str, Any] = {
        "message_count": len(messages) if isinstance(messages, Sequence) else 0,
        "templates": sorted(template) if isinstance(template, Mapping) else [],
    }
    if isinstance(model, Mapping):
        summary["model"] = model.get("id")
    elif isinstance(config, Mapping):
        summary["model"] = config.get("model")
    return summary


def _elide_images(payload: Mapping[str, Any]) -> dict[str, Any]:
    prepared = dict(payload)
    messages = payload.get("messages")
    if not isinstance(messages, Sequence):
        return prepared
    elided: list[Any] = []
    for message in messages:
        if not isinstance(message, Mapping):
            elided.append(message)
            continue
        content = message.get("content")
        if isinstance(content, Sequence) and not isinstance(content, str):
            parts = [
                {**part, "image": _IMAGE_PLACEHOLDER}
                if isinstance(part, Mapping) and part.get("type") == "image"
                else part
                for part in content
            ]
            elided.append({**message, "content": parts})
        else:
            elided.append(message)
    prepared["messages"] = elided
    return prepared


def log_request(payload: Mapping[str, Any], *, handle_id: int | None = None) -> None:
    """Record telemetry for an outbound completion request."""
    summary = summarize_request(payload)
    if handle_id is not None:
        summary["handle_id"] = handle_id
    log_event("LLM_REQUEST", summary)
    log_debug_payload("LLM_REQUEST", _elide_images(payload))


def log_response(
    payload: Mapping[str, Any], *, start_time: float | None = None
) -> None:
    """Record telemetry for the terminal event of a completion stream."""
    log_event("LLM_RESPONSE", payload, start_time=start_time)
    log_debug_payload("LLM_RESPONSE", {"direction": "inbound", **payload})
