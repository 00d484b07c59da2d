"""Command implementations for the CLI interface."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from typing import Any, Callable

from fragments.application import ApplicationContext
from fragments.auth import Session, StaticSessionGate
from fragments.catalog import PRO_TIER, filter_models, load_models, load_templates, templates_to_wire
from fragments.llm.constants import AUTO_TEMPLATE
from fragments.log import install_exception_hooks
from fragments.messages import message_to_dict


@dataclass
class Command:
    """Describe a CLI command and its argument handler."""

    func: Callable[[argparse.Namespace], int | None]
    help: str
    add_arguments: Callable[[argparse.ArgumentParser], None]


def _write_json(data: Any) -> None:
    sys.stdout.write(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True) + "\n")


def build_context(args: argparse.Namespace) -> ApplicationContext:
    """Return the application context for *args*; replaced in tests."""
    gate = StaticSessionGate()
    user = getattr(args, "user", None)
    if user:
        gate.sign_in(Session(user_id=user, tier=getattr(args, "tier", None)))
    return ApplicationContext(settings=args.app_settings, session_gate=gate)


async def _run_chat(args: argparse.Namespace) -> dict[str, Any]:
    install_exception_hooks(asyncio.get_running_loop())
    context = build_context(args)
    controller = context.create_chat_controller(persist=False)
    language_model = controller.language_model
    if args.model:
        language_model = language_model.model_copy(update={"model": args.model})
    await controller.submit(
        args.prompt,
        args.image or (),
        template=args.template,
        model=language_model,
    )
    outcome = await controller.wait()
    snapshot = controller.snapshot()
    return {
        "state": snapshot.state.value,
        "outcome": outcome.value if outcome is not None else None,
        "error": snapshot.error_message,
        "rate_limited": snapshot.is_rate_limited,
        "messages": [message_to_dict(message) for message in snapshot.messages],
        "result": snapshot.result.to_payload() if snapshot.result is not None else None,
    }


def cmd_chat(args: argparse.Namespace) -> int:
    """Submit one prompt and print the transcript and execution result."""
    report = asyncio.run(_run_chat(args))
    _write_json(report)
    return 1 if report["error"] else 0


def add_chat_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``chat`` command."""
    p.add_argument("prompt", help="request sent to the model")
    p.add_argument("--template", default=None, help=f"template id or {AUTO_TEMPLATE!r}")
    p.add_argument("--model", default=None, help="model id overriding the settings")
    p.add_argument(
        "--image",
        action="append",
        default=[],
        help="image file to attach (repeatable)",
    )
    p.add_argument("--user", default=None, help="user id used for the sandbox")
    p.add_argument("--tier", default=None, help="team tier of --user")


def cmd_models(args: argparse.Namespace) -> None:
    """List the models available for a tier."""
    models = filter_models(load_models(), tier=args.tier)
    _write_json([model.to_wire() for model in models])


def add_models_arguments(p: argparse.ArgumentParser) -> None:
    """Configure parser for the ``models`` command."""
    p.add_argument(
        "--tier",
        default=None,
        help=f"team tier; {PRO_TIER!r} lists every model",
    )


def cmd_templates(args: argparse.Namespace) -> None:
    _write_json(templates_to_wire(load_templates()))


def cmd_check(args: argparse.Namespace) -> int:
    """Verify that the configured web application answers."""
    result = asyncio.run(build_context(args).check_endpoint())
    _write_json(result)
    return 0 if result.get("ok") else 1


def _no_arguments(p: argparse.ArgumentParser) -> None:
    return None


COMMANDS: dict[str, Command] = {
    "chat": Command(cmd_chat, "submit a prompt and run the fragment", add_chat_arguments),
    "models": Command(cmd_models, "list available models", add_models_arguments),
    "templates": Command(cmd_templates, "list sandbox templates", _no_arguments),
    "check": Command(cmd_check, "verify the application endpoint", _no_arguments),
}
