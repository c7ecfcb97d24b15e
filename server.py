#!/usr/bin/env python3
"""
SharePoint Drive Connector: MCP Server
======================================

Architecture:
- Transport: FastAPI over HTTP, one JSON-RPC request or batch per POST /mcp
- Session: per-body ProtocolSession (initialize before tools/*)
- Tools: search (cached, de-duplicated) and fetch (inline text or link)
- Upstream: Microsoft Graph drive API via httpx with client-credentials
  token cache and Retry-After aware backoff

Usage:
    python server.py                          # Start server on 0.0.0.0:3000
    python server.py --port 8080              # Custom port
    python server.py --config connector.yaml  # Load settings from YAML
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from driveconnector.core.config import ConfigError, ConnectorConfig, load_environment
from driveconnector.core.logging import setup_logging
from driveconnector.mcp.api import UnauthorizedError, mcp_router, unauthorized_handler
from driveconnector.mcp.protocol import SERVER_NAME
from driveconnector.services import ConnectorServices
from driveconnector.version import __version__

logger = logging.getLogger("DriveConnector.Server")


def create_app(
    config: Optional[ConnectorConfig] = None,
    services: Optional[ConnectorServices] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    ``services`` is bound as-is (tests inject one over a mock transport);
    otherwise they are built from ``config``, or from the environment when
    no config is given, during lifespan startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Drive Connector starting...")
        owned: Optional[ConnectorServices] = None
        try:
            bound = services
            if bound is None:
                owned = ConnectorServices.build(config or ConnectorConfig.from_env())
                bound = owned
            app.state.services = bound
            yield
        finally:
            logger.info("Shutting down Drive Connector...")
            app.state.services = None
            if owned is not None:
                await owned.aclose()
            logger.info("Drive Connector stopped.")

    app = FastAPI(
        title="SharePoint Drive Connector",
        description="Read-only MCP tools over a SharePoint document library",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = None

    cors_origins = ["*"]
    if config is not None:
        cors_origins = config.server.cors_origins
    elif services is not None:
        cors_origins = services.config.server.cors_origins
    # Bearer-token auth only; no cookies.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "Accept"],
    )
    app.add_exception_handler(UnauthorizedError, unauthorized_handler)

    # Public endpoints, no auth.
    @app.get("/health")
    async def health(request: Request):
        return {
            "ok": True,
            "accept": request.headers.get("accept"),
            "contentType": request.headers.get("content-type"),
        }

    @app.get("/version")
    async def version():
        return {"name": SERVER_NAME, "version": __version__}

    app.include_router(mcp_router)
    return app


# .env must be applied before the module-level app (uvicorn server:app) reads the environment.
load_environment()
app = create_app()


# --- Main ---

def main():
    load_environment()

    parser = argparse.ArgumentParser(description="SharePoint Drive Connector (MCP)")
    parser.add_argument("--config", default=None, help="YAML config file (defaults to environment)")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--log-level", default=None, help="Logging level (debug, info, warning, error)")
    args = parser.parse_args()

    try:
        config = ConnectorConfig.from_yaml(args.config) if args.config else ConnectorConfig.from_env()
    except ConfigError as e:
        setup_logging()
        logger.error("%s", e)
        sys.exit(1)

    log_level = args.log_level or config.server.log_level
    setup_logging(log_level, config.server.log_file)

    host = args.host or config.server.host
    port = args.port or config.server.port
    logger.info("Starting Drive Connector on %s:%d (search scope: %s)", host, port, config.search_scope)
    logger.info("See /mcp/help for usage examples")

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
