"""
Tests for the HTTP surface (server.create_app + driveconnector.mcp.api).

Uses httpx.AsyncClient with ASGITransport; ConnectorServices are built over
a MockTransport Graph and bound to app.state directly.
"""

from __future__ import annotations

import httpx
import pytest

from conftest import API_KEY, drive_item, make_config
from driveconnector.services import ConnectorServices
from server import create_app

AUTH = {"Authorization": f"Bearer {API_KEY}"}


async def _services(fake_graph, recording_sleep, **config_kwargs) -> ConnectorServices:
    return ConnectorServices.build(
        make_config(**config_kwargs),
        http_client=fake_graph.client(),
        sleep_fn=recording_sleep,
    )


def _client(app) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_health_and_version_are_public():
    app = create_app()
    async with _client(app) as client:
        health = await client.get("/health", headers={"Accept": "application/json"})
        version = await client.get("/version")

    assert health.status_code == 200
    assert health.json()["ok"] is True
    assert health.json()["accept"] == "application/json"
    assert version.json() == {"name": "sharepoint-drive-connector", "version": "1.1.1"}


@pytest.mark.asyncio
async def test_mcp_help_is_public():
    app = create_app()
    async with _client(app) as client:
        resp = await client.get("/mcp/help")
    body = resp.json()
    assert resp.status_code == 200
    assert body["example"]["endpoint"] == "POST /mcp"
    assert [m["method"] for m in body["example"]["body"]] == ["initialize", "tools/call"]


@pytest.mark.asyncio
async def test_mcp_returns_503_before_services_bound():
    app = create_app()
    async with _client(app) as client:
        resp = await client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"}, headers=AUTH)
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_mcp_requires_bearer_key(fake_graph, recording_sleep):
    services = await _services(fake_graph, recording_sleep)
    app = create_app(services=services)
    app.state.services = services
    async with _client(app) as client:
        missing = await client.post("/mcp", json={"jsonrpc": "2.0", "id": 1, "method": "ping"})
        wrong = await client.post(
            "/mcp",
            json={"jsonrpc": "2.0", "id": 1, "method": "ping"},
            headers={"Authorization": "Bearer nope"},
        )
    await services.http_client.aclose()

    assert missing.status_code == 401
    assert missing.json() == {"error": "Unauthorized"}
    assert wrong.status_code == 401


@pytest.mark.asyncio
async def test_mcp_batch_search_end_to_end(fake_graph, recording_sleep):
    fake_graph.add("search(", httpx.Response(200, json={"value": [drive_item("a", "Budget.xlsx")]}))
    services = await _services(fake_graph, recording_sleep)
    app = create_app(services=services)
    app.state.services = services
    batch = [
        {"jsonrpc": "2.0", "id": "init", "method": "initialize", "params": {"protocolVersion": "2024-11-05"}},
        {"jsonrpc": "2.0", "id": "1", "method": "tools/call", "params": {"name": "search", "arguments": {"query": "Budget"}}},
    ]
    async with _client(app) as client:
        resp = await client.post("/mcp", json=batch, headers=AUTH)
    await services.http_client.aclose()

    assert resp.status_code == 200
    body = resp.json()
    assert [entry["id"] for entry in body] == ["init", "1"]
    result = body[1]["result"]
    assert result["content"][0]["text"] == "Found 1 item(s). Showing up to 20."
    assert result["structuredContent"]["results"][0]["id"] == "a"


@pytest.mark.asyncio
async def test_mcp_parse_error_is_http_200(fake_graph, recording_sleep):
    services = await _services(fake_graph, recording_sleep)
    app = create_app(services=services)
    app.state.services = services
    async with _client(app) as client:
        resp = await client.post(
            "/mcp",
            content=b"{broken",
            headers={**AUTH, "Content-Type": "application/json"},
        )
    await services.http_client.aclose()

    assert resp.status_code == 200
    assert resp.json()["error"]["code"] == -32700


@pytest.mark.asyncio
async def test_download_proxy(fake_graph, recording_sleep):
    fake_graph.add(
        "/items/item-1/content",
        httpx.Response(200, content=b"PDFDATA", headers={"Content-Type": "application/pdf"}),
    )
    services = await _services(fake_graph, recording_sleep)
    app = create_app(services=services)
    app.state.services = services
    async with _client(app) as client:
        ok = await client.get("/items/item-1/content", headers=AUTH)
        missing = await client.get("/items/nope/content", headers=AUTH)
        unauthorized = await client.get("/items/item-1/content")
    await services.http_client.aclose()

    assert ok.status_code == 200
    assert ok.content == b"PDFDATA"
    assert ok.headers["content-type"] == "application/pdf"
    assert missing.status_code == 404
    assert unauthorized.status_code == 401


@pytest.mark.asyncio
async def test_fetch_link_is_served_by_download_proxy(fake_graph, recording_sleep):
    async def chunks():
        yield b"PK\x03\x04"
        yield b"slides"

    fake_graph.add("/items/bin-1", httpx.Response(200, json=drive_item("bin-1", "deck.pptx", mime_type="application/vnd.ms-powerpoint")))
    fake_graph.add(
        "/items/bin-1/content",
        lambda request: httpx.Response(
            200,
            content=chunks(),
            headers={
                "Content-Type": "application/vnd.ms-powerpoint",
                "Content-Disposition": "attachment; filename=\"deck.pptx\"",
            },
        ),
    )
    config = make_config()
    config.server.public_base_url = "http://test"
    services = ConnectorServices.build(config, http_client=fake_graph.client(), sleep_fn=recording_sleep)
    app = create_app(services=services)
    app.state.services = services
    batch = [
        {"jsonrpc": "2.0", "id": "init", "method": "initialize", "params": {}},
        {"jsonrpc": "2.0", "id": "1", "method": "tools/call", "params": {"name": "fetch", "arguments": {"id": "bin-1"}}},
    ]
    async with _client(app) as client:
        rpc = await client.post("/mcp", json=batch, headers=AUTH)
        link = rpc.json()[1]["result"]["content"][1]
        download = await client.get(link["uri"], headers=AUTH)
    await services.http_client.aclose()

    assert link["uri"] == "http://test/items/bin-1/content"
    assert download.status_code == 200
    assert download.content == b"PK\x03\x04slides"
    assert download.headers["content-type"] == "application/vnd.ms-powerpoint"
    assert download.headers["content-disposition"] == "attachment; filename=\"deck.pptx\""


@pytest.mark.asyncio
async def test_lifespan_binds_and_releases_services(fake_graph, recording_sleep):
    services = await _services(fake_graph, recording_sleep)
    app = create_app(services=services)
    async with app.router.lifespan_context(app):
        assert app.state.services is services
    assert app.state.services is None
    await services.http_client.aclose()
