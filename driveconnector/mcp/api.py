"""
MCP HTTP Surface: FastAPI Router
================================

  POST   /mcp                      - JSON-RPC request or batch (Bearer MCP_API_KEY)
  GET    /mcp/help                 - usage example for clients
  GET    /items/{item_id}/content  - authenticated, streamed download proxy for fetch links

The router reads ConnectorServices from ``app.state.services``; ``server.py``
binds it during lifespan startup.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from driveconnector.core.security import verify_api_key
from driveconnector.graph.errors import UpstreamError, UpstreamRequestError
from driveconnector.mcp.definitions import ToolName
from driveconnector.mcp.protocol import DEFAULT_PROTOCOL_VERSION
from driveconnector.services import ConnectorServices

logger = logging.getLogger("DriveConnector.mcp.api")

mcp_router = APIRouter(tags=["mcp"])


class UnauthorizedError(Exception):
    """Raised by the auth dependency; rendered as 401 {"error": "Unauthorized"}."""


async def unauthorized_handler(request: Request, exc: UnauthorizedError) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"error": "Unauthorized"},
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _get_services(request: Request) -> ConnectorServices:
    """Return the bound services or raise HTTP 503."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=503,
            detail="Connector services are not initialised. Check server lifespan configuration.",
        )
    return services


_security = HTTPBearer(auto_error=False)


async def _verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_security),
    services: ConnectorServices = Depends(_get_services),
) -> None:
    token = credentials.credentials if credentials else None
    if not verify_api_key(token, services.config.server.api_key):
        logger.warning("Rejected request with missing or invalid bearer token")
        raise UnauthorizedError()


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@mcp_router.post("/mcp", dependencies=[Depends(_verify_token)])
async def mcp_endpoint(
    request: Request,
    services: ConnectorServices = Depends(_get_services),
) -> JSONResponse:
    """
    Process one JSON-RPC request object or batch.

    Protocol-level failures are returned as JSON-RPC error envelopes with
    HTTP 200; the body is parsed here so malformed JSON becomes -32700.
    """
    body = await request.body()
    result = await services.engine.handle_body(body)
    return JSONResponse(content=result)


@mcp_router.get("/mcp/help")
async def mcp_help() -> Dict[str, Any]:
    return {
        "usage": "Send batch requests with initialization + method call",
        "example": {
            "endpoint": "POST /mcp",
            "headers": {
                "Authorization": "Bearer YOUR_API_KEY",
                "Accept": "application/json, text/event-stream",
                "Content-Type": "application/json",
            },
            "body": [
                {
                    "jsonrpc": "2.0",
                    "id": "init",
                    "method": "initialize",
                    "params": {
                        "clientInfo": {"name": "your-client", "version": "1.0.0"},
                        "protocolVersion": DEFAULT_PROTOCOL_VERSION,
                        "capabilities": {},
                    },
                },
                {
                    "jsonrpc": "2.0",
                    "id": "1",
                    "method": "tools/call",
                    "params": {
                        "name": "search",
                        "arguments": {"query": "your search query", "top": 5},
                    },
                },
            ],
        },
        "tools": [name.value for name in ToolName],
        "note": "Each request body is its own session: include initialize before tools/list or tools/call.",
    }


@mcp_router.get("/items/{item_id}/content", dependencies=[Depends(_verify_token)])
async def download_item(
    item_id: str,
    services: ConnectorServices = Depends(_get_services),
) -> StreamingResponse:
    """Stream item content fetched with the server credentials."""
    try:
        upstream = await services.graph.open_download(item_id)
    except UpstreamRequestError as exc:
        status_code = exc.status_code if exc.status_code and 400 <= exc.status_code < 500 else 502
        logger.warning("Download of %s failed: %s", item_id, exc.detail)
        raise HTTPException(status_code=status_code, detail=exc.detail)
    except UpstreamError as exc:
        logger.warning("Download of %s failed: %s", item_id, exc.detail)
        raise HTTPException(status_code=502, detail=exc.detail)

    # Content-Length is not forwarded: aiter_bytes yields decoded content.
    headers = {}
    disposition = upstream.headers.get("content-disposition")
    if disposition:
        headers["Content-Disposition"] = disposition
    tasks = BackgroundTasks()
    tasks.add_task(upstream.aclose)
    return StreamingResponse(
        upstream.aiter_bytes(),
        media_type=upstream.headers.get("content-type", "application/octet-stream"),
        headers=headers,
        background=tasks,
    )
