"""beatkeeper application entry point (FastAPI).

Architecture:
- FastAPI for the Slack webhook, the Spotify OAuth flow and health checks
- Async SQLAlchemy for authorizations and the save ledger
- Mentions processed as detached asyncio tasks after the webhook acks
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from sqlalchemy import text

from beatkeeper.config import settings
from beatkeeper.core.services import Services, build_services
from beatkeeper.db.session import AsyncSessionLocal, close_db, db_session
from beatkeeper.slack.routes import router as slack_router
from beatkeeper.spotify.routes import router as spotify_router

logger = structlog.get_logger()


def configure_logging() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer()
            if settings.env == "production"
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(settings.log_level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


# ═══════════════════════════════════════════════════════════════════════════════
# FASTAPI APP
# ═══════════════════════════════════════════════════════════════════════════════

def create_app(services: Services | None = None) -> FastAPI:
    """Build the app. Tests pass prebuilt services; production builds them at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_starting", env=settings.env)
        owns_services = services is None
        app.state.services = services or build_services(settings, AsyncSessionLocal)

        yield

        logger.info("app_shutting_down", in_flight=app.state.services.runner.in_flight)
        await app.state.services.runner.drain()
        if owns_services:
            await close_db()

    app = FastAPI(
        title="beatkeeper",
        version="0.1.0",
        description="Save Spotify tracks from Slack threads by mentioning the app",
        lifespan=lifespan,
    )
    app.include_router(slack_router)
    app.include_router(spotify_router)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "beatkeeper"}

    @app.get("/health/db")
    async def health_db() -> dict[str, str]:
        """Database health check."""
        try:
            async with db_session(app.state.services.session_factory) as db:
                await db.execute(text("SELECT 1"))
            return {"status": "ok", "database": "connected"}
        except Exception as e:
            logger.error("db_health_check_failed", error=str(e))
            return {"status": "error", "database": "disconnected"}

    return app


configure_logging()
api = create_app()


# ═══════════════════════════════════════════════════════════════════════════════
# MAIN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════════════

def main() -> None:
    """Serve the HTTP app with uvicorn."""
    import uvicorn

    logger.info("starting_beatkeeper", host=settings.host, port=settings.port)
    uvicorn.run(api, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
