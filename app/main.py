"""
FastAPI application for the Funding Bank API.

Wiring, in order:
  1. Logging for the "app" logger, configured from settings
  2. Lifespan: create tables on startup, dispose the engine on shutdown
  3. CORS for the configured frontend origins
  4. Exception handlers turning BankAPIError into JSON error bodies
  5. Routers for auth, accounts, and funding / transactions

Run locally with:
    uvicorn app.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import settings
from app.database import engine, Base
from app.exceptions import register_exception_handlers
from app.logging_config import setup_logging
from app.routers import accounts, auth, transactions

from app import models  # noqa: F401  (registers every table on Base.metadata)

setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup creates any missing tables (there are no migrations).
    Shutdown closes every pooled connection.
    """
    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        # SQLite won't create the parent directory of a file database
        Path(engine.url.database).parent.mkdir(parents=True, exist_ok=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    await engine.dispose()


# Create the FastAPI application instance
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Banking REST API for opening accounts and funding them from cards or bank accounts",
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

app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
app.include_router(accounts.router, prefix="/accounts", tags=["Accounts"])
app.include_router(transactions.router, prefix="/accounts", tags=["Transactions"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """Liveness check; touches no database."""
    return {"status": "ok", "version": settings.APP_VERSION}
