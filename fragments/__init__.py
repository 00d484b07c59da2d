"""Client-side orchestrator for streamed code fragments and sandbox runs."""

__version__ = "0.1.0"
