from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from fragments.auth import (
    AuthClient,
    Session,
    StaticSessionGate,
    resolve_tier,
    resolve_user_id,
)
from fragments.settings import EndpointSettings

pytestmark = pytest.mark.unit


def test_resolve_user_id_defaults_to_anonymous() -> None:
    assert resolve_user_id(None) == "anonymous"
    gate = StaticSessionGate()
    assert resolve_user_id(gate) == "anonymous"
    gate.sign_in(Session(user_id="user-1", tier="pro"))
    assert resolve_user_id(gate) == "user-1"
    assert resolve_tier(gate) == "pro"
    gate.sign_out()
    assert resolve_user_id(gate) == "anonymous"
    assert resolve_tier(gate) is None


def test_empty_user_id_counts_as_anonymous() -> None:
    assert resolve_user_id(StaticSessionGate(Session(user_id=""))) == "anonymous"


@pytest.mark.parametrize(("status", "expected"), [(200, True), (401, False)])
def test_exchange_reports_acceptance(status: int, expected: bool) -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status)

    client = AuthClient(EndpointSettings(), transport=httpx.MockTransport(handler))

    assert asyncio.run(client.exchange("token-123")) is expected
    assert seen[0].url.path == "/api/auth"
    assert json.loads(seen[0].content) == {"supabaseAccessToken": "token-123"}


def test_exchange_network_failure_returns_false() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    client = AuthClient(EndpointSettings(), transport=httpx.MockTransport(handler))

    assert asyncio.run(client.exchange("token")) is False
