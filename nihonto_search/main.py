"""
Nihonto Search — Application Entrypoint

Configures structlog, creates the async SQLAlchemy engine, and wires the
listing store, artisan registry client and browse service into a FastAPI app.

Run via:
    uvicorn nihonto_search.main:app
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from nihonto_search.api.routes import router
from nihonto_search.config import settings
from nihonto_search.entitlements import EntitlementProvider, header_entitlements
from nihonto_search.search.artisan import HttpArtisanRegistry
from nihonto_search.service import BrowseService
from nihonto_search.store.sql import SqlListingStore


# ---------------------------------------------------------------------------
# Structlog Configuration
# ---------------------------------------------------------------------------


def _configure_logging(log_level: str = "INFO") -> None:
    """
    Set up structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    # stdlib logging for third-party libraries (uvicorn, sqlalchemy, httpx)
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Database Setup
# ---------------------------------------------------------------------------


def create_db_engine(database_url: str | None = None) -> tuple[Any, async_sessionmaker[AsyncSession]]:
    """
    Create SQLAlchemy async engine and session factory.

    Args:
        database_url: Override for settings.DATABASE_URL.

    Returns:
        (engine, session_factory) tuple.
    """
    logger = structlog.get_logger(__name__)
    url = database_url or settings.DATABASE_URL

    logger.info("database_engine_initializing", dialect=url.split(":", 1)[0])

    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if url.startswith("postgresql"):
        options.update(pool_size=5, max_overflow=10)

    engine = create_async_engine(url, **options)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("database_engine_ready")
    return engine, session_factory


# ---------------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------------


def create_app(
    database_url: str | None = None,
    entitlement_provider: EntitlementProvider = header_entitlements,
) -> FastAPI:
    """
    Build the FastAPI app.

    Startup order:
    1. Configure logging (structlog JSON)
    2. Create async database engine and session factory
    3. Open the artisan registry client
    4. Build the browse service
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        _configure_logging(log_level=settings.LOG_LEVEL)
        logger = structlog.get_logger(__name__)
        logger.info("nihonto_search_startup_begin", version="0.1.0")

        if not settings.ARTISAN_REGISTRY_API_KEY:
            logger.warning("config_artisan_registry_api_key_missing", note="using empty API key")

        engine, session_factory = create_db_engine(database_url)
        store = SqlListingStore(session_factory)

        async with HttpArtisanRegistry() as registry:
            app.state.store = store
            app.state.browse_service = BrowseService(store, registry=registry)
            app.state.entitlement_provider = entitlement_provider
            logger.info("nihonto_search_ready")
            try:
                yield
            finally:
                await engine.dispose()
                logger.info("nihonto_search_shutdown_complete")

    app = FastAPI(title="Nihonto Search", version="0.1.0", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()
