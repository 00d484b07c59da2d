"""Command-line interface package for the fragments client.

:func:`main` is exposed through attribute access and imported lazily so that
``fragments.cli.main`` stays importable as a module.
"""

from importlib import import_module
from typing import Any


def __getattr__(name: str) -> Any:
    if name == "main":
        return import_module(".main", __name__).main
    raise AttributeError(f"module {__name__!r} has no attribute {name}")


__all__ = ["main"]
