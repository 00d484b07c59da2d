"""Tests for cli."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import httpx
import pytest

from fragments.application import ApplicationContext
from fragments.cli import commands
from fragments.cli.main import main
from fragments.catalog import FREE_MODEL_IDS
from fragments.llm.transport import StreamError
from tests.fakes import RecordingExecutor, ScriptedTransport

pytestmark = pytest.mark.integration

TODO_FRAGMENT = {"commentary": "Here you go", "code": "console.log(1)", "template": "nextjs"}


def run_cli(argv: list[str]) -> int:
    return main(argv)


@pytest.fixture
def fake_context(monkeypatch: pytest.MonkeyPatch):
    """Route the CLI through scripted collaborators instead of the network."""
    transport = ScriptedTransport()
    executor = RecordingExecutor()
    original = commands.build_context

    def build(args: argparse.Namespace) -> ApplicationContext:
        real = original(args)
        return ApplicationContext(
            settings=args.app_settings,
            session_gate=real.session_gate,
            stream_transport=transport,
            executor=executor,
        )

    monkeypatch.setattr(commands, "build_context", build)
    return transport, executor


def test_cli_chat_prints_transcript_and_result(fake_context, capsys):
    transport, executor = fake_context
    transport.scripts.append([json.dumps(TODO_FRAGMENT)])

    code = run_cli(["chat", "build a todo app", "--user", "user-7"])

    assert code == 0
    report = json.loads(capsys.readouterr().out)
    assert report["state"] == "idle"
    assert report["outcome"] == "executed"
    assert report["error"] is None
    assert [message["role"] for message in report["messages"]] == ["user", "assistant"]
    assert report["result"] == {"sbxId": "sbx-1", "template": "nextjs"}
    assert executor.calls[0][1] == "user-7"


def test_cli_chat_reports_rate_limit(fake_context, capsys):
    transport, executor = fake_context
    transport.scripts.append([StreamError("Rate limit exceeded")])

    code = run_cli(["chat", "build a todo app"])

    assert code == 1
    report = json.loads(capsys.readouterr().out)
    assert report["state"] == "rate_limited"
    assert report["rate_limited"] is True
    assert report["error"] == "Rate limit exceeded"
    assert len(report["messages"]) == 1
    assert executor.calls == []


def test_cli_chat_uses_template_and_model(fake_context, capsys):
    transport, _ = fake_context
    transport.scripts.append([json.dumps(TODO_FRAGMENT)])

    run_cli(
        [
            "chat",
            "build a todo app",
            "--template",
            "nextjs-developer",
            "--model",
            "gpt-4o-mini",
        ]
    )
    capsys.readouterr()

    request = transport.requests[0]
    assert list(request.templates) == ["nextjs-developer"]
    assert request.config.model == "gpt-4o-mini"
    assert request.model.id == "gpt-4o-mini"


def test_cli_models_by_tier(capsys):
    run_cli(["models"])
    free = {model["id"] for model in json.loads(capsys.readouterr().out)}
    run_cli(["models", "--tier", "pro"])
    everything = {model["id"] for model in json.loads(capsys.readouterr().out)}

    assert free <= FREE_MODEL_IDS
    assert "o1" in everything - free


def test_cli_templates(capsys):
    run_cli(["templates"])
    templates = json.loads(capsys.readouterr().out)
    assert "code-interpreter-v1" in templates
    assert templates["nextjs-developer"]["file"] == "pages/index.tsx"


def test_cli_check_reports_unreachable_endpoint(monkeypatch, tmp_path: Path, capsys):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def build(args: argparse.Namespace) -> ApplicationContext:
        return ApplicationContext(
            settings=args.app_settings,
            http_transport=httpx.MockTransport(handler),
        )

    monkeypatch.setattr(commands, "build_context", build)
    settings_path = tmp_path / "settings.json"
    settings_path.write_text(
        json.dumps({"endpoints": {"base_url": "http://app.test/"}}), encoding="utf-8"
    )

    code = run_cli(["--settings", str(settings_path), "check"])

    assert code == 1
    result = json.loads(capsys.readouterr().out)
    assert result == {"ok": False, "error": "connection refused"}
