from driveconnector.mcp.definitions import ToolName
from driveconnector.mcp.errors import (
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ProtocolError,
    ProtocolSequenceError,
    ToolHandlerError,
    ToolNotFoundError,
)
from driveconnector.mcp.session import ProtocolSession, SessionEngine
from driveconnector.mcp.tools import DriveTools, ToolDefinition, ToolRegistry

__all__ = [
    "ToolName",
    "ToolDefinition",
    "ToolRegistry",
    "DriveTools",
    "ProtocolSession",
    "SessionEngine",
    "ProtocolError",
    "InvalidRequestError",
    "ProtocolSequenceError",
    "MethodNotFoundError",
    "ToolNotFoundError",
    "InvalidParamsError",
    "ToolHandlerError",
]
