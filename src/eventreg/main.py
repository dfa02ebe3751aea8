"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy import text
from starlette.exceptions import HTTPException

from eventreg.api import events, registrations
from eventreg.api.errors import (
    APIError,
    RequestIDMiddleware,
    api_error_handler,
    generic_exception_handler,
    http_exception_handler,
    invalid_cursor_handler,
    store_unavailable_handler,
    validation_exception_handler,
)
from eventreg.config import settings
from eventreg.db import init_db
from eventreg.db.database import async_session
from eventreg.services.cache import CountCache
from eventreg.services.errors import InvalidCursorError, TransientStoreError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler.

    Owns the process-wide count cache: created before the first request,
    closed after the last one.
    """
    await init_db()
    app.state.count_cache = CountCache()
    logger.info("Count cache ready (ttl=%ss)", app.state.count_cache.ttl)
    yield
    app.state.count_cache.close()


app = FastAPI(
    title="Eventreg",
    description="Event registration with cursor pagination and streaming export",
    version="0.1.0",
    lifespan=lifespan,
)

# Request ID middleware (must be added first to wrap all other middleware)
app.add_middleware(RequestIDMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "Content-Disposition"],
)

# Exception handlers
app.add_exception_handler(APIError, api_error_handler)
app.add_exception_handler(InvalidCursorError, invalid_cursor_handler)
app.add_exception_handler(TransientStoreError, store_unavailable_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(ValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# API v1 router
api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(events.router, prefix="/events", tags=["events"])
api_v1.include_router(registrations.router, prefix="/registrations", tags=["registrations"])

app.include_router(api_v1)


@app.get("/health")
async def health() -> dict[str, str]:
    """Basic health check endpoint (liveness probe)."""
    return {"status": "healthy"}


@app.get("/health/ready")
async def health_ready() -> dict[str, str | bool]:
    """Readiness probe - verifies database connectivity."""
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "ready", "database": True}
    except Exception as e:
        logger.warning("Readiness check failed: %s", e)
        return {"status": "not_ready", "database": False, "error": str(e)}


@app.get("/health/live")
async def health_live() -> dict[str, str]:
    """Liveness probe - basic check that app is running."""
    return {"status": "alive"}


def run() -> None:
    """Run the API server with uvicorn."""
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(
        "eventreg.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.api_reload,
    )
