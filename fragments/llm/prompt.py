"""System prompt offered to the model for a set of templates."""

from __future__ import annotations

from collections.abc import Mapping

from ..catalog import TemplateDefinition
from ..schema import REQUIRED_FRAGMENT_FIELDS

_PREAMBLE = (
    "You are a skilled software engineer.\n"
    "You do not make mistakes.\n"
    "Generate a fragment.\n"
    "You can install additional dependencies.\n"
    "Do not touch project dependencies files like package.json, "
    "package-lock.json, requirements.txt, etc.\n"
    "Do not wrap code in backticks.\n"
    "Always break the lines correctly.\n"
)


def templates_to_prompt(templates: Mapping[str, TemplateDefinition]) -> str:
    """Return one numbered line per template."""
    lines = []
    for index, (template_id, template) in enumerate(templates.items(), start=1):
        dependencies = ", ".join(template.lib)
        lines.append(
            f'{index}. {template_id}: "{template.instructions}". '
            f"File: {template.file or 'none'}. "
            f"Dependencies installed: {dependencies}. "
            f"Port: {template.port or 'none'}."
        )
    return "\n".join(lines)


def build_system_prompt(templates: Mapping[str, TemplateDefinition]) -> str:
    """Describe the fragment contract plus the templates the model may use."""
    fields = ", ".join(REQUIRED_FRAGMENT_FIELDS + ("port",))
    return (
        f"{_PREAMBLE}"
        "Reply with a single JSON object with the keys: "
        f"{fields}.\n"
        "You can use one of the following templates:\n"
        f"{templates_to_prompt(templates)}"
    )


__all__ = ["build_system_prompt", "templates_to_prompt"]
