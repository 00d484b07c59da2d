"""Utilities for hashing JSON-compatible values."""
from __future__ import annotations

from hashlib import sha256
from typing import Any

from .json import canonical_dumps


def fingerprint(value: Any, length: int | None = None) -> str:
    """Return the SHA-256 hex digest of the canonical JSON form of *value*.

    Parameters
    ----------
    value:
        Any value accepted by :func:`~fragments.util.json.canonical_dumps`.
        Mappings that differ only in key order produce the same digest.
    length:
        Optional number of hex characters to keep; the full digest is
        returned when omitted.
    """
    if length is not None and length <= 0:
        raise ValueError("length must be positive")
    digest = sha256(canonical_dumps(value).encode("utf-8")).hexdigest()
    if length is None:
        return digest
    return digest[:length]
