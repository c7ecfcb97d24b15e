"""
JSON-RPC session engine.

One POST body is one session: a fresh ProtocolSession starts UNINITIALIZED,
``initialize`` moves it to INITIALIZED, and entries are processed strictly in
input order so an ``initialize`` later in a batch never unlocks an earlier
entry. Every entry gets exactly one response envelope in its slot; a
failure in one entry never affects its neighbours.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from driveconnector.mcp.errors import (
    InvalidParamsError,
    MethodNotFoundError,
    ProtocolError,
    ProtocolSequenceError,
)
from driveconnector.mcp.protocol import (
    INTERNAL_ERROR,
    INVALID_REQUEST,
    PARSE_ERROR,
    SERVER_NAME,
    error_envelope,
    negotiate_protocol_version,
    result_envelope,
)
from driveconnector.mcp.tools import ToolRegistry
from driveconnector.version import __version__

logger = logging.getLogger("DriveConnector.mcp.session")

Envelope = Dict[str, Any]


@dataclass
class ProtocolSession:
    initialized: bool = False
    protocol_version: Optional[str] = None
    client_info: Dict[str, Any] = field(default_factory=dict)


class SessionEngine:
    def __init__(
        self,
        registry: ToolRegistry,
        *,
        server_name: str = SERVER_NAME,
        server_version: str = __version__,
        instructions: Optional[str] = None,
    ) -> None:
        self._registry = registry
        self._server_name = server_name
        self._server_version = server_version
        self._instructions = instructions
        self._methods: Dict[str, Callable[[ProtocolSession, Dict[str, Any]], Awaitable[Dict[str, Any]]]] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }

    async def handle_body(self, body: Union[bytes, str]) -> Union[Envelope, List[Envelope]]:
        """Decode a raw request body and process it; malformed JSON yields a -32700 envelope."""
        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.warning("[MCP] Parse error: %s", exc)
            return error_envelope(None, PARSE_ERROR, "Parse error")
        return await self.handle_payload(payload)

    async def handle_payload(self, payload: Any) -> Union[Envelope, List[Envelope]]:
        """Process a single request object or a batch; output mirrors the input shape."""
        session = ProtocolSession()
        if isinstance(payload, list):
            if not payload:
                return error_envelope(None, INVALID_REQUEST, "Invalid Request: empty batch")
            responses = []
            for message in payload:
                responses.append(await self._process(session, message))
            return responses
        return await self._process(session, payload)

    async def _process(self, session: ProtocolSession, message: Any) -> Envelope:
        if not isinstance(message, dict):
            return error_envelope(None, INVALID_REQUEST, "Invalid Request: expected an object")

        msg_id = message.get("id")
        method = message.get("method")
        if not isinstance(method, str) or not method:
            return error_envelope(msg_id, INVALID_REQUEST, "Invalid Request: missing method")

        params = message.get("params")
        if params is None:
            params = {}

        logger.info("[MCP] Processing method: %s", method)
        try:
            if not isinstance(params, dict):
                raise InvalidParamsError("Invalid params: params must be an object")
            handler = self._methods.get(method)
            if handler is None:
                raise MethodNotFoundError(f"Method not found: {method}")
            result = await handler(session, params)
        except ProtocolError as exc:
            logger.info("[MCP] %s failed (%d): %s", method, exc.code, exc.message)
            return error_envelope(msg_id, exc.code, exc.message)
        except Exception as exc:
            logger.exception("[MCP] Unexpected failure in %s", method)
            return error_envelope(msg_id, INTERNAL_ERROR, str(exc) or "Internal error")
        return result_envelope(msg_id, result)

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    @staticmethod
    def _require_initialized(session: ProtocolSession) -> None:
        if not session.initialized:
            raise ProtocolSequenceError("Not initialized")

    async def _initialize(self, session: ProtocolSession, params: Dict[str, Any]) -> Dict[str, Any]:
        if session.initialized:
            raise ProtocolSequenceError("Already initialized")
        client_info = params.get("clientInfo")
        if client_info is not None and not isinstance(client_info, dict):
            raise InvalidParamsError("Invalid params: clientInfo must be an object")

        session.initialized = True
        session.protocol_version = negotiate_protocol_version(params.get("protocolVersion"))
        session.client_info = client_info or {}

        result: Dict[str, Any] = {
            "protocolVersion": session.protocol_version,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": self._server_name, "version": self._server_version},
        }
        if self._instructions:
            result["instructions"] = self._instructions
        return result

    async def _ping(self, session: ProtocolSession, params: Dict[str, Any]) -> Dict[str, Any]:
        return {}

    async def _list_tools(self, session: ProtocolSession, params: Dict[str, Any]) -> Dict[str, Any]:
        self._require_initialized(session)
        return {"tools": self._registry.list_tools()}

    async def _call_tool(self, session: ProtocolSession, params: Dict[str, Any]) -> Dict[str, Any]:
        self._require_initialized(session)
        name = params.get("name")
        if not isinstance(name, str) or not name:
            raise InvalidParamsError("Invalid params: tools/call requires non-empty string name")
        return await self._registry.invoke(name, params.get("arguments"))
