"""
Wiring for one running connector.

ConnectorServices owns the shared httpx client and everything built on it:
credential cache, Graph client, query cache, tool registry and session
engine. ``server.py`` builds one during lifespan startup and closes it on
shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from driveconnector.cache.query_cache import QueryCache
from driveconnector.core.config import ConnectorConfig
from driveconnector.graph.client import GraphClient
from driveconnector.graph.credentials import CredentialCache
from driveconnector.graph.retry import RetryPolicy
from driveconnector.mcp.session import SessionEngine
from driveconnector.mcp.tools import DriveTools, ToolRegistry

logger = logging.getLogger("DriveConnector.services")


@dataclass
class ConnectorServices:
    config: ConnectorConfig
    http_client: httpx.AsyncClient
    credentials: CredentialCache
    graph: GraphClient
    cache: QueryCache
    registry: ToolRegistry
    engine: SessionEngine
    owns_http_client: bool = True

    @classmethod
    def build(
        cls,
        config: ConnectorConfig,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep_fn: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> "ConnectorServices":
        owns_client = http_client is None
        if http_client is None:
            http_client = httpx.AsyncClient(
                follow_redirects=True,
                timeout=config.graph.timeout_seconds,
            )

        credentials = CredentialCache(config.graph, http_client)
        graph = GraphClient(
            config.graph,
            credentials,
            http_client,
            retry_policy=retry_policy or RetryPolicy.from_config(config.retry),
            sleep_fn=sleep_fn,
        )
        cache = QueryCache.from_config(graph.search_items, config.cache)
        registry = DriveTools(
            graph, cache, config.tools, link_base_url=config.server.public_base_url,
        ).build_registry()
        engine = SessionEngine(
            registry,
            instructions=f"Read-only access to a SharePoint document library ({config.search_scope}). "
            "Use search to find items, then fetch with an item id for content.",
        )
        logger.info("Connector services ready (drive=%s, scope=%s)", config.graph.drive_id, config.search_scope)
        return cls(
            config=config,
            http_client=http_client,
            credentials=credentials,
            graph=graph,
            cache=cache,
            registry=registry,
            engine=engine,
            owns_http_client=owns_client,
        )

    async def aclose(self) -> None:
        self.cache.clear()
        if self.owns_http_client:
            await self.http_client.aclose()
