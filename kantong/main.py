"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — logging, table creation, scheduled jobs, cleanup
  2. CORS middleware — allows frontend origins to make cross-origin requests
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn kantong.main:app --reload

Every endpoint except /health identifies the user by the X-User-Id header,
which the chat transport fills with the sender's handle.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import kantong.models  # noqa: F401
from kantong.config import settings
from kantong.database import Base, engine
from kantong.exceptions import register_exception_handlers
from kantong.jobs.scheduler import register_jobs, scheduler
from kantong.logging_config import configure_logging
from kantong.routers import (
    adjustments,
    businesses,
    chat,
    reports,
    transactions,
    transfers,
    wallets,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      Configures logging, creates any missing tables and, unless
      ENABLE_SCHEDULER is off, starts the backup and session-eviction jobs.

    Shutdown:
      Stops the scheduler and disposes of the database engine.
    """
    # --- Startup ---
    configure_logging()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if settings.ENABLE_SCHEDULER:
        register_jobs()
        scheduler.start()
        logger.info("Scheduler started with %d job(s)", len(scheduler.get_jobs()))
    yield
    # --- Shutdown ---
    if scheduler.running:
        scheduler.shutdown(wait=False)
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Personal wallet ledger with a chat interface and a small-business book",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------

register_exception_handlers(app)

# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(wallets.router, prefix="/wallets", tags=["Wallets"])
app.include_router(transactions.router, prefix="/transactions", tags=["Transactions"])
app.include_router(transfers.router, prefix="/transfers", tags=["Transfers"])
app.include_router(adjustments.router, prefix="/adjustments", tags=["Adjustments"])
app.include_router(reports.router, prefix="/reports", tags=["Reports"])
app.include_router(businesses.router, prefix="/businesses", tags=["Businesses"])
app.include_router(chat.router, prefix="/chat", tags=["Chat"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness probe for deployment tooling."""
    return {"status": "ok", "version": settings.APP_VERSION}
