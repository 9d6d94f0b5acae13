import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tour_engine.adapters.sqlite.migrator import SQLiteMigrator
from tour_engine.api.deps import get_settings
from tour_engine.app_shell.config import validate_ops_rules
from tour_engine.rules.loader import load_rules

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = get_settings()

    # Load rules, check the environment and migrate on startup (fail-fast)
    try:
        rules = load_rules(settings.rules_path)
        validate_ops_rules(rules)
        settings.data_dir.mkdir(parents=True, exist_ok=True)
        applied = SQLiteMigrator(settings.db_path, str(settings.migrations_dir)).run_migrations()
        logger.info("Rules loaded from %s; %d migrations applied", settings.rules_path, len(applied))
    except Exception:
        logger.critical("Startup failed", exc_info=True)
        sys.exit(1)

    yield
    # Shutdown cleanup if needed


app = FastAPI(
    title="Tour Engagement Engine API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# --- Routers ---
from tour_engine.api.routes import tour_analytics, tours  # noqa: E402

app.include_router(tour_analytics.router, prefix="/api/tours/analytics", tags=["Tour Analytics"])
app.include_router(tours.router, prefix="/api/tours", tags=["Tours"])


# CORS (Allow Frontend)
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
    return {"status": "ok", "service": "api"}
