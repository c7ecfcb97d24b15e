"""
Drive Connector Configuration
-----------------------------
Centralized configuration for the connector components.
Loads from environment variables and YAML config files.

The deployment contract keeps the original variable names
(TENANT_ID, CLIENT_ID, CLIENT_SECRET, DRIVE_ID, FOLDER_ITEM_ID,
MCP_API_KEY, PORT); tuning knobs use the CONNECTOR_ prefix.
"""

import os
import logging
from typing import Optional, List
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("DriveConnector.Config")

REQUIRED_ENV_VARS = ("TENANT_ID", "CLIENT_ID", "CLIENT_SECRET", "DRIVE_ID", "MCP_API_KEY")


class ConfigError(ValueError):
    """Raised when required configuration is missing or unusable."""


def _env_int(name: str, default: int, min_value: Optional[int] = None) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %d", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("%s=%d is below %d; clamping", name, value, min_value)
        return min_value
    return value


def _env_float(name: str, default: float, min_value: Optional[float] = None) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r; using %.1f", name, raw, default)
        return default
    if min_value is not None and value < min_value:
        logger.warning("%s=%.3f is below %.3f; clamping", name, value, min_value)
        return min_value
    return value


def _env_list(name: str) -> List[str]:
    raw = os.environ.get(name, "")
    return [part.strip() for part in raw.split(",") if part.strip()]


class GraphConfig(BaseModel):
    """Upstream repository (Microsoft Graph drive) configuration."""
    tenant_id: str
    client_id: str
    client_secret: str
    drive_id: str
    folder_item_id: Optional[str] = None
    authority_url: str = "https://login.microsoftonline.com"
    api_base_url: str = "https://graph.microsoft.com/v1.0"
    scope: str = "https://graph.microsoft.com/.default"
    timeout_seconds: float = 30.0

    @property
    def token_url(self) -> str:
        return f"{self.authority_url.rstrip('/')}/{self.tenant_id}/oauth2/v2.0/token"


class RetryConfig(BaseModel):
    """Backoff policy for upstream calls."""
    max_retries: int = Field(default=3, ge=1)
    base_delay_ms: float = 1000.0
    max_delay_ms: float = 30000.0
    max_jitter_ms: float = 1000.0


class CacheConfig(BaseModel):
    """Search result cache configuration."""
    ttl_seconds: float = 300.0
    max_entries: int = Field(default=256, ge=1)


class ToolsConfig(BaseModel):
    """Tool contract limits; advertised schemas and argument validation both read these."""
    default_top: int = Field(default=20, ge=1)
    max_top: int = Field(default=50, ge=1)
    inline_max_bytes: int = 1_000_000
    preview_max_chars: int = 500
    max_fetch_ids: int = Field(default=10, ge=1)


class ServerConfig(BaseModel):
    """FastAPI server configuration."""
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "info"
    log_file: Optional[str] = None
    api_key: str
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    # Externally reachable base of this server; fetch links point at its /items proxy.
    public_base_url: Optional[str] = None


class ConnectorConfig(BaseModel):
    """Root configuration for the connector."""
    graph: GraphConfig
    server: ServerConfig
    retry: RetryConfig = Field(default_factory=RetryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @classmethod
    def from_env(cls) -> "ConnectorConfig":
        """
        Load configuration from environment variables.

        Required:
        - TENANT_ID / CLIENT_ID / CLIENT_SECRET: client-credentials app registration
        - DRIVE_ID: document library to expose
        - MCP_API_KEY: shared key expected on POST /mcp

        Optional:
        - FOLDER_ITEM_ID: restrict search to a folder sub-tree
        - PORT / CONNECTOR_HOST: server binding
        - CONNECTOR_LOG_LEVEL / CONNECTOR_LOG_FILE: logging
        - CONNECTOR_CACHE_TTL_SECONDS / CONNECTOR_CACHE_MAX_ENTRIES: search cache
        - CONNECTOR_MAX_RETRIES: upstream attempt ceiling
        - CONNECTOR_GRAPH_TIMEOUT_SECONDS: per-request upstream timeout
        - CONNECTOR_CORS_ORIGINS: comma separated allowed origins
        - CONNECTOR_PUBLIC_BASE_URL: base for download links served by /items/{id}/content
        - CONNECTOR_DEFAULT_TOP / CONNECTOR_MAX_TOP / CONNECTOR_MAX_FETCH_IDS: tool limits
        """
        missing = [name for name in REQUIRED_ENV_VARS if not os.environ.get(name, "").strip()]
        if missing:
            raise ConfigError(f"Missing required env vars ({', '.join(missing)})")

        cors_origins = _env_list("CONNECTOR_CORS_ORIGINS") or ["*"]

        return cls(
            graph=GraphConfig(
                tenant_id=os.environ["TENANT_ID"].strip(),
                client_id=os.environ["CLIENT_ID"].strip(),
                client_secret=os.environ["CLIENT_SECRET"],
                drive_id=os.environ["DRIVE_ID"].strip(),
                folder_item_id=os.environ.get("FOLDER_ITEM_ID", "").strip() or None,
                timeout_seconds=_env_float("CONNECTOR_GRAPH_TIMEOUT_SECONDS", 30.0, min_value=1.0),
            ),
            server=ServerConfig(
                host=os.environ.get("CONNECTOR_HOST", "0.0.0.0"),
                port=_env_int("PORT", 3000, min_value=1),
                log_level=os.environ.get("CONNECTOR_LOG_LEVEL", "info"),
                log_file=os.environ.get("CONNECTOR_LOG_FILE") or None,
                api_key=os.environ["MCP_API_KEY"],
                cors_origins=cors_origins,
                public_base_url=os.environ.get("CONNECTOR_PUBLIC_BASE_URL", "").strip() or None,
            ),
            retry=RetryConfig(
                max_retries=_env_int("CONNECTOR_MAX_RETRIES", 3, min_value=1),
            ),
            cache=CacheConfig(
                ttl_seconds=_env_float("CONNECTOR_CACHE_TTL_SECONDS", 300.0, min_value=0.0),
                max_entries=_env_int("CONNECTOR_CACHE_MAX_ENTRIES", 256, min_value=1),
            ),
            tools=ToolsConfig(
                default_top=_env_int("CONNECTOR_DEFAULT_TOP", 20, min_value=1),
                max_top=_env_int("CONNECTOR_MAX_TOP", 50, min_value=1),
                max_fetch_ids=_env_int("CONNECTOR_MAX_FETCH_IDS", 10, min_value=1),
            ),
        )

    @classmethod
    def from_yaml(cls, path: str) -> "ConnectorConfig":
        """Load configuration from a YAML file."""
        import yaml
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            logger.warning("Config file not found: %s; using environment", path)
            return cls.from_env()
        if not isinstance(data, dict):
            raise ConfigError(f"Invalid config file {path}: expected a mapping at the top level")
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigError(f"Invalid config file {path}: {e}") from e

    @property
    def search_scope(self) -> str:
        if self.graph.folder_item_id:
            return f"folder {self.graph.folder_item_id}"
        return "drive root"


def load_environment(path: Optional[str] = None) -> bool:
    """
    Load a .env file into os.environ without overriding variables already set.

    Searches upward from the working directory when ``path`` is not given.
    Returns True when a file was loaded.
    """
    from dotenv import find_dotenv, load_dotenv
    dotenv_path = path or find_dotenv(usecwd=True)
    if not dotenv_path:
        return False
    loaded = load_dotenv(dotenv_path, override=False)
    if loaded:
        logger.debug("Loaded environment from %s", dotenv_path)
    return loaded
