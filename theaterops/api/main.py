"""TheaterOps FastAPI application: entry point.

Start with:
    uvicorn theaterops.api.main:app --reload --host 0.0.0.0 --port 8000

Identity comes from the upstream auth gateway as X-User-Id / X-User-Role
headers. Set SERVICE_API_KEY to additionally require X-Api-Key on /api/v1.
"""
from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.exc import DBAPIError

from theaterops.config.booking import load_booking_config
from theaterops.core.exceptions import ExternalServiceError, ProjectError
from theaterops.core.logger import configure
from theaterops.infra.database.engine import (
    build_engine,
    build_session_factory,
    close_engine,
    ensure_database_exists,
    init_db,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # ── Startup ──────────────────────────────────────────────────
    configure()

    await ensure_database_exists()
    engine = build_engine()
    session_factory = build_session_factory(engine)
    await init_db()

    app.state.session_factory = session_factory
    app.state.booking_config = load_booking_config()
    logger.info(
        "API: booking ledger ready (lock TTL %ss, max %d locks per user)",
        app.state.booking_config.lock_ttl_seconds, app.state.booking_config.max_active_locks,
    )

    yield

    # ── Shutdown ─────────────────────────────────────────────────
    await close_engine()
    logger.info("API: engine disposed")


app = FastAPI(
    title="TheaterOps API",
    version="1.0.0",
    description="Operating theater booking, surgical case lifecycle, WHO checklists and doctor schedule blocks.",
    lifespan=lifespan,
)

# Rate limiter, configurable via API_RATE_LIMIT (default 120/minute)
_api_rate_limit = os.environ.get("API_RATE_LIMIT", "120/minute")
limiter = Limiter(key_func=get_remote_address, default_limits=[_api_rate_limit])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

_allowed_origins = os.environ.get(
    "CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Optional service key ─────────────────────────────────────────
# If SERVICE_API_KEY is unset the check is skipped (dev/open mode).
_SERVICE_API_KEY = os.environ.get("SERVICE_API_KEY", "").strip() or None


@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    if _SERVICE_API_KEY and request.url.path.startswith("/api/v1"):
        if request.headers.get("X-Api-Key") != _SERVICE_API_KEY:
            return JSONResponse(
                status_code=401,
                content={"error": {"message": "Unauthorized: set X-Api-Key header", "code": "UNAUTHORIZED", "http_status": 401}},
            )
    return await call_next(request)


# ── Error mapping ────────────────────────────────────────────────

@app.exception_handler(ProjectError)
async def project_error_handler(request: Request, exc: ProjectError):
    if exc.http_status >= 500:
        logger.error("API: %s on %s %s: %s", exc.code, request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.http_status, content={"error": exc.to_dict()})


@app.exception_handler(DBAPIError)
async def database_error_handler(request: Request, exc: DBAPIError):
    logger.exception("API: database failure on %s %s", request.method, request.url.path)
    err = ExternalServiceError("Database unavailable, retry later", cause=exc)
    return JSONResponse(status_code=err.http_status, content={"error": err.to_dict()})


# ── Routers ───────────────────────────────────────────────────────
from theaterops.api.routers import checklists, schedule_blocks, surgical_cases, theater_bookings  # noqa: E402

app.include_router(theater_bookings.router, prefix="/api/v1")
app.include_router(surgical_cases.router, prefix="/api/v1")
app.include_router(checklists.router, prefix="/api/v1")
app.include_router(schedule_blocks.router, prefix="/api/v1")


@app.get("/health", tags=["health"])
async def health():
    return {"status": "ok"}
