"""
SharePoint Drive Connector: read-only MCP tools over a document library
"""

from driveconnector.core.config import ConfigError, ConnectorConfig
from driveconnector.services import ConnectorServices
from driveconnector.version import __version__

__all__ = [
    "__version__",
    "ConnectorConfig",
    "ConfigError",
    "ConnectorServices",
]
