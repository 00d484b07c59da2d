"""Entry point for the command-line interface."""

from __future__ import annotations

import argparse
import logging

from fragments.log import configure_logging
from fragments.settings import AppSettings, load_app_settings

from .commands import COMMANDS


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fragments",
        description="Generate code fragments and run them in a sandbox",
    )
    parser.add_argument("--settings", help="JSON or TOML settings file")
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="log at DEBUG level on the console",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    for name, command in COMMANDS.items():
        sub = commands.add_parser(name, help=command.help)
        command.add_arguments(sub)
        sub.set_defaults(func=command.func)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return its exit status."""
    args = build_parser().parse_args(argv)
    settings = load_app_settings(args.settings) if args.settings else AppSettings()
    configure_logging(logging.DEBUG if args.verbose else settings.ui.log_level)
    args.app_settings = settings
    return args.func(args) or 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
