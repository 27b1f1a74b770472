"""FastAPI application and routes."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response

from ghconnector import __version__
from ghconnector.connector import Delivery, GitHubConnector
from ghconnector.env import get_settings
from ghconnector.server.loader import register_from_config

logger = logging.getLogger(__name__)


def create_app(connector: GitHubConnector) -> FastAPI:
    """Create the webhook application for a connector.

    Startup reconciles webhooks and fails (aborting startup) on a bad base
    URL or any repository that could not be reconciled.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager."""
        webhooks = await connector.start()
        logger.info(f"GitHub connector started ({len(webhooks)} webhooks in place)")

        yield

        connector.stop()
        logger.info("GitHub connector stopped")

    app = FastAPI(
        title="ghconnector",
        description="GitHub webhook connector",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.connector = connector

    @app.get("/")
    async def root():
        """Health check endpoint."""
        return {"status": "ok", "version": __version__}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "subscriptions": len(connector.subscriptions)}

    @app.post(connector.webhook_path)
    async def webhook(request: Request):
        """Handle GitHub webhook deliveries."""
        delivery = Delivery(headers=dict(request.headers), body=await request.body())

        if not await connector.handle(delivery):
            return Response(status_code=401)

        return Response(status_code=200)

    return app


def build_app() -> FastAPI:
    """App factory for uvicorn: connector and subscriptions from config."""
    connector = GitHubConnector(get_settings())
    register_from_config(connector, connector.settings.subscriptions)
    return create_app(connector)
