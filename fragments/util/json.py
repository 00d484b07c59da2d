"""JSON serialisation helpers."""

from __future__ import annotations

import base64
import json
from collections.abc import Callable, Mapping, Sequence
from typing import Any


def make_json_safe(
    value: Any,
    *,
    sort_sets: bool = True,
    default: Callable[[Any], Any] | None = None,
) -> Any:
    """Return a structure compatible with :func:`json.dumps`.

    Mappings and sequences are converted recursively. Pydantic models are
    dumped through ``model_dump`` and bytes are base64 encoded; anything else
    falls back to *default* (``repr`` when omitted).
    """

    if default is None:
        default = repr

    def _convert(item: Any) -> Any:
        if isinstance(item, Mapping):
            return {str(key): _convert(val) for key, val in item.items()}
        if isinstance(item, (str, int, float, bool)) or item is None:
            return item
        if isinstance(item, (bytes, bytearray)):
            return base64.b64encode(bytes(item)).decode("ascii")
        if isinstance(item, (list, tuple)):
            return [_convert(element) for element in item]
        if isinstance(item, (set, frozenset)):
            converted = [_convert(element) for element in item]
            if sort_sets:
                converted.sort(key=lambda element: json.dumps(element, sort_keys=True))
            return converted
        dump = getattr(item, "model_dump", None)
        if callable(dump):
            return _convert(dump(mode="json", by_alias=True, exclude_none=True))
        if isinstance(item, Sequence):
            return [_convert(element) for element in item]
        try:
            converted = default(item)
        except Exception:
            return repr(item)
        if converted is item:
            return repr(item)
        return _convert(converted)

    return _convert(value)


def canonical_dumps(value: Any) -> str:
    """Serialise *value* deterministically: sorted keys, compact separators."""

    return json.dumps(
        make_json_safe(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


__all__ = ["canonical_dumps", "make_json_safe"]
