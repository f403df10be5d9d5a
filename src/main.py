"""FastAPI application entry point — wires everything together.

Usage:
    python -m src.main

Creates the gateway and AI clients, the repositories and the in-memory
session registry, then serves the analysis API.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from src.api import analyses, catalog, maintenance, sessions
from src.config import settings
from src.events.audit import audit_on_event
from src.events.emitter import start_event_system, stop_event_system, subscribe, unsubscribe
from src.integrations.ai.client import AIExtractionClient
from src.integrations.gateway.client import DataGatewayClient
from src.store.analyses import AnalysisRepository
from src.store.catalog import CatalogRepository
from src.workflow.registry import SessionRegistry

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting drawing analyzer (env=%s)", settings.environment)

    # 1. Event system + audit subscriber
    subscribe(audit_on_event)
    await start_event_system()
    logger.info("Event system started")

    # 2. External clients
    gateway = DataGatewayClient()
    ai_client = AIExtractionClient()
    logger.info("Gateway client ready (%s)", settings.gateway.gateway_base_url)

    # 3. Repositories + sessions
    app.state.analyses = AnalysisRepository(gateway)
    app.state.catalog = CatalogRepository(gateway)
    app.state.ai_client = ai_client
    app.state.sessions = SessionRegistry(app.state.analyses)

    try:
        yield
    finally:
        # Shutdown in reverse order
        logger.info("Shutting down drawing analyzer...")

        await app.state.sessions.close_all()
        logger.info("Sessions closed")

        await ai_client.close()
        await gateway.close()
        logger.info("HTTP clients closed")

        await stop_event_system()
        unsubscribe(audit_on_event)
        logger.info("Event system stopped")

    logger.info("Drawing analyzer shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Technical Drawing Analyzer API",
    description="AI extraction, bar-yield calculation and versioned analyses for technical drawings",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(sessions.router)
app.include_router(analyses.router)
app.include_router(catalog.router)
app.include_router(maintenance.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "app_identifier": settings.gateway.app_identifier,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
