"""Language-model streaming utilities."""

from typing import TYPE_CHECKING, Any

__all__ = ["ChatRequest", "StreamError", "StreamingObjectReceiver"]

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from .receiver import StreamingObjectReceiver
    from .transport import ChatRequest, StreamError


def __getattr__(name: str) -> Any:
    """Lazily expose heavy modules to avoid import cycles."""
    if name == "StreamingObjectReceiver":
        from .receiver import StreamingObjectReceiver

        return StreamingObjectReceiver
    if name in {"ChatRequest", "StreamError"}:
        from . import transport

        return getattr(transport, name)
    raise AttributeError(f"module 'fragments.llm' has no attribute {name!r}")
