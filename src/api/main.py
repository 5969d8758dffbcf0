import logging
import os
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import get_settings
from src.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules on startup (fail-fast)
    try:
        load_rules(settings.rules_path)
        logger.info("Rules loaded from %s", settings.rules_path)
    except (FileNotFoundError, ValueError):
        logger.critical("Rules load failed", exc_info=True)
        sys.exit(1)

    if settings.auto_migrate:
        os.makedirs(settings.data_dir, exist_ok=True)
        applied = SQLiteMigrator(settings.db_path, settings.migrations_dir).run_migrations()
        if applied:
            logger.info("Applied %d migration(s)", len(applied))

    if settings.admin_password is None:
        logger.warning("ADMIN_DASHBOARD_PASSWORD is not set; admin login is disabled")

    yield
    # Shutdown cleanup if needed


app = FastAPI(
    title="Tool Hub Telemetry API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from src.api.routes import admin, events  # noqa: E402

app.include_router(events.router, tags=["Events"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])


# CORS (tool pages are served from another origin)
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "telemetry"}
