"""
main.py — flyerwizard FastAPI application entry point.

Start with: uvicorn flyerwizard.main:app --reload --port 8000
(run from the repository root)
"""
import logging
import os
import subprocess
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from starlette.exceptions import HTTPException as StarletteHTTPException

from flyerwizard.config import settings
from flyerwizard.errors import WizardError

# ---------------------------------------------------------------------------
# Logging — configured before anything else
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


def _run_migrations() -> None:
    package_dir = os.path.dirname(os.path.abspath(__file__))
    result = subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        capture_output=True,
        text=True,
        cwd=package_dir,
    )
    if result.returncode != 0:
        logger.error("Alembic migration failed:\n%s", result.stderr)
        raise RuntimeError(f"Alembic migration failed: {result.stderr}")
    msg = result.stdout.strip() or "No pending migrations"
    logger.info("Alembic: %s", msg)


# ---------------------------------------------------------------------------
# Lifespan — startup & shutdown hooks
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup:
      1. Run Alembic migrations (skipped when RUN_MIGRATIONS_ON_STARTUP=false)
      2. Initialize Redis connection pool
      3. Build the product search service and the wizard service
    Shutdown:
      1. Close Redis pool
      2. Dispose the database engine
    """
    # --- 1. Database: run Alembic migrations ---
    if settings.run_migrations_on_startup:
        _run_migrations()

    # --- 2. Redis: initialize connection pool ---
    from flyerwizard.cache import create_redis_pool
    app.state.redis = await create_redis_pool()

    # --- 3. Services: search opens its own sessions for concurrent per-item queries ---
    from flyerwizard.database import AsyncSessionLocal
    from flyerwizard.search.service import ProductSearchService
    from flyerwizard.wizard.service import WizardService

    app.state.search_service = ProductSearchService(AsyncSessionLocal)
    app.state.wizard_service = WizardService(app.state.redis, app.state.search_service)
    logger.info("Wizard service ready (max_stores=%d)", app.state.wizard_service.max_stores)

    logger.info("flyerwizard v%s starting up", settings.app_version)
    yield

    # --- Shutdown ---
    await app.state.redis.aclose()
    logger.info("Redis connection pool closed")

    from flyerwizard.database import async_engine
    await async_engine.dispose()
    logger.info("flyerwizard shutting down")


# ---------------------------------------------------------------------------
# FastAPI application instance
# ---------------------------------------------------------------------------
app = FastAPI(
    title="flyerwizard API",
    version=settings.app_version,
    description=(
        "Migration wizard for shopping lists whose flyer offers have expired. "
        "Suggests ranked replacement offers across at most two stores and commits the "
        "user's decisions atomically."
    ),
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
)

# ---------------------------------------------------------------------------
# CORS middleware — restricted to frontend origins from settings
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error response helper
# ---------------------------------------------------------------------------
def _make_error_response(
    code: str,
    message: str,
    details: list[dict[str, Any]] | None = None,
    status_code: int = 500,
) -> JSONResponse:
    """Build a standard {error: {code, message, details}} response."""
    body = {
        "error": {
            "code": code,
            "message": message,
            "details": details or [],
        }
    }
    return JSONResponse(status_code=status_code, content=body)


# ---------------------------------------------------------------------------
# Global exception handlers — registered BEFORE routers
# ---------------------------------------------------------------------------
@app.exception_handler(WizardError)
async def wizard_error_handler(request: Request, exc: WizardError) -> JSONResponse:
    """Domain errors carry their own code and HTTP status."""
    if exc.status_code >= 500:
        logger.error("Wizard error on %s %s: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("Wizard %s on %s %s", exc.code, request.method, request.url.path)
    return _make_error_response(
        code=exc.code,
        message=exc.message,
        details=exc.details,
        status_code=exc.status_code,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Converts Pydantic / FastAPI 422 validation errors to standard format.
    Returns ALL field violations in one response.
    """
    details = []
    for error in exc.errors():
        # Build dot-notation field path, excluding the top-level 'body' loc
        field = ".".join(str(loc) for loc in error["loc"] if loc != "body")
        details.append({"field": field or None, "issue": error["msg"]})
    return _make_error_response(
        code="VALIDATION_ERROR",
        message="Request validation failed",
        details=details,
        status_code=422,
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """
    Converts FastAPI HTTPException to standard error format with semantic code.
    """
    code_map = {
        400: "BAD_REQUEST",
        404: "NOT_FOUND",
        405: "METHOD_NOT_ALLOWED",
        409: "CONFLICT",
        422: "VALIDATION_ERROR",
        429: "RATE_LIMIT_EXCEEDED",
    }
    code = code_map.get(exc.status_code, f"HTTP_{exc.status_code}")
    return _make_error_response(
        code=code,
        message=str(exc.detail),
        status_code=exc.status_code,
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(
    request: Request, exc: Exception
) -> JSONResponse:
    """
    Catch-all for unexpected errors.
    DEBUG=true  → includes exception type & message in details (dev only).
    DEBUG=false → generic message; full traceback logged server-side only.
    """
    logger.error(
        "Unhandled exception on %s %s",
        request.method,
        request.url.path,
        exc_info=True,
    )
    if settings.debug:
        details = [{"issue": f"{type(exc).__name__}: {exc}"}]
        message = "An unexpected error occurred (debug details included)"
    else:
        details = []
        message = "An unexpected error occurred"
    return _make_error_response(
        code="INTERNAL_ERROR",
        message=message,
        details=details,
        status_code=500,
    )


# ---------------------------------------------------------------------------
# Health + metrics endpoints (no auth required)
# ---------------------------------------------------------------------------
@app.get("/api/health", tags=["System"])
async def health_check() -> dict:
    """Returns service health status for load balancers and deployment pipelines."""
    return {
        "status": "ok",
        "version": settings.app_version,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


app.mount("/metrics", make_asgi_app())


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from flyerwizard.wizard.routes import router as wizard_router  # noqa: E402

app.include_router(wizard_router)
