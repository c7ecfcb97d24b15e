"""Shared fixtures: an in-memory Graph drive served through httpx.MockTransport."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

from driveconnector.core.config import ConnectorConfig, GraphConfig, ServerConfig

RouteResponse = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]

API_KEY = "test-key"


def make_config(folder_item_id: Optional[str] = None, **overrides) -> ConnectorConfig:
    return ConnectorConfig(
        graph=GraphConfig(
            tenant_id="tenant-1",
            client_id="client-1",
            client_secret="secret-1",
            drive_id="drive-1",
            folder_item_id=folder_item_id,
        ),
        server=ServerConfig(api_key=API_KEY),
        **overrides,
    )


def drive_item(
    item_id: str,
    name: str,
    *,
    mime_type: Optional[str] = "text/plain",
    size: Optional[int] = 10,
    folder: bool = False,
    **extra,
) -> dict:
    payload = {
        "id": item_id,
        "name": name,
        "webUrl": f"https://contoso.sharepoint.com/Shared%20Documents/{name}",
        "lastModifiedDateTime": "2024-05-01T10:00:00Z",
        "parentReference": {"path": "/drive/root:/Reports"},
    }
    if size is not None:
        payload["size"] = size
    if folder:
        payload["folder"] = {"childCount": 3}
    else:
        payload["file"] = {"mimeType": mime_type} if mime_type else {}
    payload.update(extra)
    return payload


class FakeGraph:
    """
    Token endpoint plus path-routed Graph responses.

    Routes match when their key is a substring of the decoded request path,
    longest key first. Each route holds a queue; the last response repeats.
    """

    def __init__(self) -> None:
        self.token_calls = 0
        self.token_response: Optional[httpx.Response] = None
        self.requests: List[httpx.Request] = []
        self.routes: Dict[str, List[RouteResponse]] = {}

    def add(self, key: str, *responses: RouteResponse) -> "FakeGraph":
        self.routes.setdefault(key, []).extend(responses)
        return self

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/oauth2/v2.0/token"):
            self.token_calls += 1
            if self.token_response is not None:
                return self.token_response
            return httpx.Response(
                200,
                json={"access_token": f"token-{self.token_calls}", "expires_in": 3600},
            )

        self.requests.append(request)
        path = request.url.path
        for key in sorted(self.routes, key=len, reverse=True):
            if key in path:
                queue = self.routes[key]
                result = queue.pop(0) if len(queue) > 1 else queue[0]
                if isinstance(result, Exception):
                    raise result
                if callable(result):
                    return result(request)
                return result
        return httpx.Response(404, json={"error": {"code": "itemNotFound", "message": "The resource could not be found."}})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), follow_redirects=True)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def clean_connector_env(monkeypatch):
    for name in (
        "TENANT_ID",
        "CLIENT_ID",
        "CLIENT_SECRET",
        "DRIVE_ID",
        "FOLDER_ITEM_ID",
        "MCP_API_KEY",
        "PORT",
        "CONNECTOR_HOST",
        "CONNECTOR_LOG_LEVEL",
        "CONNECTOR_LOG_FILE",
        "CONNECTOR_CACHE_TTL_SECONDS",
        "CONNECTOR_CACHE_MAX_ENTRIES",
        "CONNECTOR_MAX_RETRIES",
        "CONNECTOR_GRAPH_TIMEOUT_SECONDS",
        "CONNECTOR_CORS_ORIGINS",
        "CONNECTOR_PUBLIC_BASE_URL",
        "CONNECTOR_DEFAULT_TOP",
        "CONNECTOR_MAX_TOP",
        "CONNECTOR_MAX_FETCH_IDS",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
