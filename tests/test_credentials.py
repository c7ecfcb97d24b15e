"""Tests for the client-credentials token cache."""

from __future__ import annotations

import httpx
import pytest

from conftest import make_config
from driveconnector.graph.credentials import Credential, CredentialCache
from driveconnector.graph.errors import UpstreamAuthError, UpstreamConnectionError


class _Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.mark.asyncio
async def test_token_reused_while_fresh(fake_graph):
    clock = _Clock()
    async with fake_graph.client() as http:
        cache = CredentialCache(make_config().graph, http, now_fn=clock)
        first = await cache.get_token()
        clock.now += 60
        second = await cache.get_token()

    assert first == second == "token-1"
    assert fake_graph.token_calls == 1
    assert cache.exchange_count == 1


@pytest.mark.asyncio
async def test_token_refreshed_inside_safety_margin(fake_graph):
    clock = _Clock()
    async with fake_graph.client() as http:
        cache = CredentialCache(make_config().graph, http, now_fn=clock)
        await cache.get_token()
        # 3600s lifetime: at +3540 exactly 60s remain, which is not enough.
        clock.now += 3540
        refreshed = await cache.get_token()

    assert refreshed == "token-2"
    assert fake_graph.token_calls == 2


@pytest.mark.asyncio
async def test_exchange_posts_client_credentials_form():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.content.decode()
        return httpx.Response(200, json={"access_token": "abc"})

    clock = _Clock(500.0)
    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        cache = CredentialCache(make_config().graph, http, now_fn=clock)
        assert await cache.get_token() == "abc"

    assert seen["url"] == "https://login.microsoftonline.com/tenant-1/oauth2/v2.0/token"
    assert "grant_type=client_credentials" in seen["body"]
    assert "client_id=client-1" in seen["body"]
    assert "scope=https%3A%2F%2Fgraph.microsoft.com%2F.default" in seen["body"]
    # expires_in omitted: default lifetime of one hour.
    assert cache.credential == Credential(token="abc", expires_at=500 + 3600)


@pytest.mark.asyncio
async def test_rejected_exchange_raises_auth_error(fake_graph):
    fake_graph.token_response = httpx.Response(401, text='{"error":"invalid_client"}')
    async with fake_graph.client() as http:
        cache = CredentialCache(make_config().graph, http)
        with pytest.raises(UpstreamAuthError) as excinfo:
            await cache.get_token()

    assert excinfo.value.status_code == 401
    assert str(excinfo.value).startswith("Token error: 401")
    assert "invalid_client" in str(excinfo.value)
    assert cache.credential is None


@pytest.mark.asyncio
async def test_missing_access_token_raises_auth_error(fake_graph):
    fake_graph.token_response = httpx.Response(200, json={"token_type": "Bearer"})
    async with fake_graph.client() as http:
        cache = CredentialCache(make_config().graph, http)
        with pytest.raises(UpstreamAuthError, match="access_token"):
            await cache.get_token()


@pytest.mark.asyncio
async def test_unreachable_token_endpoint_raises_connection_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
        cache = CredentialCache(make_config().graph, http)
        with pytest.raises(UpstreamConnectionError):
            await cache.get_token()


def test_credential_freshness_margin():
    credential = Credential(token="t", expires_at=1000)
    assert credential.is_fresh(now=900, margin=60) is True
    assert credential.is_fresh(now=940, margin=60) is False
