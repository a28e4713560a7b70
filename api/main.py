"""
api/main.py -- FastAPI application entry point for SensorHub.

Run with:  uvicorn asgi:app --reload
           python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware     -- adds CORS headers for allowed browser origins
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter

Lifespan builds the stores, the token issuer, the revocation registry and
AuthService at startup, starts the revocation sweeper, and tears all of it
down symmetrically at shutdown.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from api.routes.v1.locations import router as locations_router
from api.routes.v1.measurements import router as measurements_router
from api.routes.v1.sensors import router as sensors_router
from auth.revocation import RevocationRegistry, run_revocation_sweeper
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenIssuer
from core.config import get_settings
from core.errors import AppError
from telemetry.store import TelemetryStore

APP_VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.DEBUG if get_settings().debug else logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("sensorhub.api")

# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build application-level resources, and tear them down on shutdown.

    Startup order:
      1. Stores -- AuthService and the API-key dependency need both.
      2. Token issuer and revocation registry.
      3. AuthService, which composes all of the above.
      4. Sweeper task last -- it references the registry.
    """
    settings = get_settings()
    logger.info("SensorHub API starting up")
    app.state.accounts = AccountStore()
    app.state.telemetry = TelemetryStore()
    logger.info("Stores initialized (accounts present=%s)", app.state.accounts.has_accounts())
    app.state.revocations = RevocationRegistry()
    app.state.auth_service = AuthService(
        accounts=app.state.accounts,
        tokens=TokenIssuer(settings.secret_key, ttl_seconds=settings.token_expire_seconds),
        revocations=app.state.revocations,
        telemetry=app.state.telemetry,
    )
    app.state.sweeper_task = asyncio.create_task(
        run_revocation_sweeper(app.state.revocations, settings.revocation_sweep_seconds)
    )

    yield

    app.state.sweeper_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await app.state.sweeper_task
    app.state.telemetry.close()
    app.state.accounts.close()
    logger.info("SensorHub API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="SensorHub API",
    description="Multi-user sensor telemetry: accounts, locations, sensors and measurements.",
    version=APP_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Authorization", "X-API-Key"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(locations_router, prefix="/api", tags=["Locations"])
app.include_router(sensors_router, prefix="/api", tags=["Sensors"])
app.include_router(measurements_router, prefix="/api", tags=["Measurements"])
app.include_router(admin_router, prefix="/api", tags=["Admin"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(message=message, code=code, detail=detail).model_dump(),
    )


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Map any domain error to its status code and stable error code."""
    response = _error(exc.status_code, exc.code, exc.message, exc.detail)
    if exc.status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429; Retry-After tells clients how many seconds to wait."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(429, "rate_limited", "Too many requests.", str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error(422, "validation_error", "Request validation failed.", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Structured error for FastAPI/Starlette HTTP exceptions (404 on unknown paths, 405...)."""
    return _error(exc.status_code, f"http_{exc.status_code}", str(exc.detail))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit and no auth -- load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse, tags=["Health"])
def health(request: Request) -> JSONResponse:
    """Report liveness plus a database round-trip through both stores."""
    try:
        request.app.state.accounts.ping()
        request.app.state.telemetry.ping()
        database = "ok"
    except Exception:
        logger.exception("Health check: database unreachable")
        database = "unavailable"
    healthy = database == "ok"
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        version=APP_VERSION,
        components={"app": "ok", "database": database},
    )
    return JSONResponse(status_code=200 if healthy else 503, content=body.model_dump())
