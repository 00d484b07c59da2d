"""Pydantic models for streamed fragments and sandbox execution results."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

REQUIRED_FRAGMENT_FIELDS: tuple[str, ...] = (
    "commentary",
    "template",
    "title",
    "description",
    "additional_dependencies",
    "has_additional_dependencies",
    "install_dependencies_command",
    "file_path",
    "code",
)


class Fragment(BaseModel):
    """Structured output of the code-generation stream.

    Every field is optional because the same model describes partial
    snapshots; :meth:`is_complete` tells whether the model produced
    everything the schema asks for.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    commentary: str | None = None
    template: str | None = None
    title: str | None = None
    description: str | None = None
    additional_dependencies: list[str] | None = None
    has_additional_dependencies: bool | None = None
    install_dependencies_command: str | None = None
    port: int | None = None
    file_path: str | None = None
    code: str | None = None

    def is_empty(self) -> bool:
        """Return ``True`` when no field has been populated yet."""
        return not self.to_payload()

    def is_complete(self) -> bool:
        return all(getattr(self, name) is not None for name in REQUIRED_FRAGMENT_FIELDS)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON payload with unset fields omitted."""
        return self.model_dump(mode="json", exclude_none=True)


class ExecutionResult(BaseModel):
    """Opaque sandbox outcome; unknown keys are preserved as extras."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    sbx_id: str | None = Field(None, alias="sbxId")
    template: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ExecutionResultWeb(ExecutionResult):
    """Result of a template that serves a web preview."""

    url: str


class ExecutionResultInterpreter(ExecutionResult):
    """Result of running code in the code-interpreter template."""

    stdout: list[str] = Field(default_factory=list)
    stderr: list[str] = Field(default_factory=list)
    runtime_error: dict[str, Any] | None = Field(None, alias="runtimeError")
    cell_results: list[Any] = Field(default_factory=list, alias="cellResults")


def parse_execution_result(data: Mapping[str, Any]) -> ExecutionResult:
    """Build the matching :class:`ExecutionResult` variant for *data*."""
    if "url" in data:
        return ExecutionResultWeb.model_validate(dict(data))
    if any(key in data for key in ("stdout", "stderr", "runtimeError", "cellResults")):
        return ExecutionResultInterpreter.model_validate(dict(data))
    return ExecutionResult.model_validate(dict(data))


__all__ = [
    "ExecutionResult",
    "ExecutionResultInterpreter",
    "ExecutionResultWeb",
    "Fragment",
    "REQUIRED_FRAGMENT_FIELDS",
    "parse_execution_result",
]
