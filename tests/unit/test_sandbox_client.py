from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from fragments.sandbox import SandboxClient, SandboxExecutionError
from fragments.schema import (
    ExecutionResult,
    ExecutionResultInterpreter,
    ExecutionResultWeb,
    Fragment,
)
from fragments.settings import EndpointSettings

pytestmark = pytest.mark.unit

FRAGMENT = Fragment(commentary="Here you go", code="console.log(1)", template="nextjs-developer")


def _client(handler) -> SandboxClient:
    return SandboxClient(
        EndpointSettings(base_url="http://app.test"),
        transport=httpx.MockTransport(handler),
    )


def test_execute_posts_fragment_and_user_and_parses_web_result() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json={"sbxId": "sbx-1", "template": "nextjs-developer", "url": "https://sbx.test"},
        )

    result = asyncio.run(_client(handler).execute(FRAGMENT, "user-7"))

    assert isinstance(result, ExecutionResultWeb)
    assert result.url == "https://sbx.test"
    assert result.sbx_id == "sbx-1"
    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/api/sandbox"
    assert json.loads(request.content) == {
        "fragment": {
            "commentary": "Here you go",
            "code": "console.log(1)",
            "template": "nextjs-developer",
        },
        "userID": "user-7",
    }


def test_execute_parses_interpreter_result() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "sbxId": "sbx-2",
                "template": "code-interpreter-v1",
                "stdout": ["1\n"],
                "stderr": [],
                "cellResults": [{"text": "1"}],
            },
        )

    result = asyncio.run(_client(handler).execute(FRAGMENT, "anonymous"))

    assert isinstance(result, ExecutionResultInterpreter)
    assert result.stdout == ["1\n"]
    assert result.cell_results == [{"text": "1"}]
    assert result.runtime_error is None


def test_unknown_keys_are_preserved() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"sbxId": "sbx-3", "extra": {"a": 1}})

    result = asyncio.run(_client(handler).execute(FRAGMENT, "anonymous"))

    assert type(result) is ExecutionResult
    assert result.to_payload() == {"sbxId": "sbx-3", "extra": {"a": 1}}


def test_non_success_status_raises_with_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="sandbox quota exceeded")

    with pytest.raises(SandboxExecutionError) as excinfo:
        asyncio.run(_client(handler).execute(FRAGMENT, "anonymous"))

    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "sandbox quota exceeded"


def test_empty_error_body_falls_back_to_status() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(SandboxExecutionError, match="status 503"):
        asyncio.run(_client(handler).execute(FRAGMENT, "anonymous"))


@pytest.mark.parametrize("body", ["not json", "[1, 2]"])
def test_unusable_body_raises(body: str) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text=body)

    with pytest.raises(SandboxExecutionError) as excinfo:
        asyncio.run(_client(handler).execute(FRAGMENT, "anonymous"))

    assert excinfo.value.status_code == 200


def test_network_error_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(SandboxExecutionError, match="timed out") as excinfo:
        asyncio.run(_client(handler).execute(FRAGMENT, "anonymous"))

    assert excinfo.value.status_code is None
    assert excinfo.value.to_payload() == {
        "type": "SandboxExecutionError",
        "message": "timed out",
    }
