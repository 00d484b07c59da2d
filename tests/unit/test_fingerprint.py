"""Tests for canonical JSON and fragment fingerprints."""

from __future__ import annotations

import pytest

from fragments.chat.reconciler import fragment_fingerprint
from fragments.schema import Fragment
from fragments.util.hashing import fingerprint
from fragments.util.json import canonical_dumps, make_json_safe

pytestmark = pytest.mark.unit


def test_canonical_dumps_ignores_key_order() -> None:
    assert canonical_dumps({"b": 1, "a": [1, 2]}) == canonical_dumps({"a": [1, 2], "b": 1})
    assert canonical_dumps({"b": 1, "a": 2}) == '{"a":2,"b":1}'


def test_fingerprint_is_deterministic() -> None:
    assert fingerprint({"code": "x"}) == fingerprint({"code": "x"})
    assert fingerprint({"code": "x"}) != fingerprint({"code": "y"})


def test_fingerprint_length_and_value() -> None:
    digest = fingerprint({"code": "x"}, length=16)
    assert len(digest) == 16
    assert fingerprint({"code": "x"}).startswith(digest)


def test_fingerprint_invalid_length() -> None:
    with pytest.raises(ValueError):
        fingerprint({"code": "x"}, length=0)


def test_fragment_fingerprint_ignores_unset_fields() -> None:
    first = Fragment(commentary="Here you go", code="console.log(1)")
    second = Fragment(code="console.log(1)", commentary="Here you go", title=None)
    assert fragment_fingerprint(first) == fragment_fingerprint(second)
    assert fragment_fingerprint(first) != fragment_fingerprint(
        Fragment(commentary="Here you go", code="console.log(2)")
    )


def test_make_json_safe_handles_models_sets_and_bytes() -> None:
    data = {
        "fragment": Fragment(code="x"),
        "tags": {"b", "a"},
        "raw": b"\x00\x01",
        "pair": (1, 2),
    }
    safe = make_json_safe(data)
    assert safe["fragment"] == {"code": "x"}
    assert safe["tags"] == ["a", "b"]
    assert isinstance(safe["raw"], str)
    assert safe["pair"] == [1, 2]
