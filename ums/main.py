"""
FastAPI application factory and entry point.

This module creates and configures the FastAPI application:
  1. Lifespan manager — logging setup, table creation, role/admin seeding
  2. CORS middleware — allows frontend origins to make credentialed requests
  3. Exception handlers — maps domain errors to HTTP responses
  4. Router registration — mounts all API endpoint groups

Running locally:
    uvicorn ums.main:app --reload

The --reload flag watches for file changes and restarts automatically,
which is ideal for development but should not be used in production.
"""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ums.config import settings
from ums.database import AsyncSessionLocal, Base, engine
from ums.exceptions import register_exception_handlers
from ums.logging import configure_logging, get_logger
from ums.routers import admin, auth, dev, me
from ums.services import bootstrap, mail_service

logger = get_logger(__name__)


def _ensure_sqlite_dir(url: str) -> None:
    """Create the parent directory of a file-backed SQLite database."""
    prefix = "sqlite+aiosqlite:///"
    if url.startswith(prefix) and url != prefix:
        path = url[len(prefix):]
        if path and path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
      Configures structlog, creates all tables if they don't exist, then
      seeds the built-in roles and (on an empty database) the first admin.
      Skipped entirely when DB_ENABLED is off.

    Shutdown:
      Waits for queued SMTP deliveries, then disposes of the database
      engine, closing all connections cleanly.
    """
    # --- Startup ---
    configure_logging(settings)
    if settings.DB_ENABLED:
        _ensure_sqlite_dir(settings.DATABASE_URL)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        async with AsyncSessionLocal() as session:
            await bootstrap.run(session)
            await session.commit()
    else:
        logger.warning("database_disabled")
    logger.info("app_started", environment=settings.ENVIRONMENT, version=settings.APP_VERSION)
    yield
    # --- Shutdown ---
    await mail_service.drain()
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="User management API with cookie sessions, CSRF protection, "
                "email verification, password reset and role-based admin tools",
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

# Credentialed CORS: the session travels as a cookie
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
app.include_router(me.router, tags=["Me"])
app.include_router(admin.router, prefix="/admin", tags=["Admin"])

# The outbox exposes live one-time tokens
if not settings.is_production:
    app.include_router(dev.router, prefix="/dev", tags=["Dev"])


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for deployment probes (Kubernetes, Docker, etc.).

    Returns a simple JSON response indicating the service is running.
    """
    return {"status": "ok", "version": settings.APP_VERSION}
