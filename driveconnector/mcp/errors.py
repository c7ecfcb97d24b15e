"""
Protocol and tool exceptions. Each carries the JSON-RPC error code it maps to.
"""

from __future__ import annotations

from .protocol import INTERNAL_ERROR, INVALID_PARAMS, INVALID_REQUEST, METHOD_NOT_FOUND


class ProtocolError(Exception):
    """Base class for failures reported to the client as a JSON-RPC error."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class InvalidRequestError(ProtocolError):
    code = INVALID_REQUEST


class ProtocolSequenceError(InvalidRequestError):
    """A method arrived before ``initialize``, or ``initialize`` arrived twice."""


class MethodNotFoundError(ProtocolError):
    code = METHOD_NOT_FOUND


class ToolNotFoundError(MethodNotFoundError):
    def __init__(self, name: str) -> None:
        self.tool_name = name
        super().__init__(f"Tool not found: {name}")


class InvalidParamsError(ProtocolError):
    code = INVALID_PARAMS


class ToolHandlerError(ProtocolError):
    """Any exception raised inside a tool handler."""

    code = INTERNAL_ERROR
