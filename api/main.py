"""
api/main.py -- FastAPI application entry point for Beer Diary.

Builds the app, its stores and its middleware chain. The HTML routes live in
web/routes.py and are mounted by asgi.py.

Run with:  uvicorn asgi:app --reload

Middleware chain (outermost to innermost, i.e. the order a request meets them):
  1. log_requests       -- method, path, status, latency for every request
  2. SlowAPIMiddleware  -- enforces per-route rate limits from api.limiter
  3. SessionMiddleware  -- decodes/encodes the signed session cookie
  4. identity           -- resolves the session token into request.state.current_user

Starlette makes the most recently added middleware the outermost one, so the
registrations below appear innermost-first.

Lifespan builds one SQLAlchemy Engine and hands it to every store, starts the
expired-session purge task, and tears both down symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException
from starlette.middleware.sessions import SessionMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from auth.dependencies import attach_identity
from auth.models import ANONYMOUS
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings
from core.database import create_db_engine, ping
from diary.store import DiaryStore

VERSION = "1.0.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("beerdiary.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI) -> None:
    """Delete expired sessions every SESSION_PURGE_INTERVAL_SECONDS.

    resolve_session() already ignores expired rows; this only keeps the table
    from growing with sessions nobody ever came back to. A failed sweep is
    logged and the next one still runs. CancelledError from task.cancel()
    during shutdown is not an Exception, so it still ends the loop.
    """
    while True:
        await asyncio.sleep(_settings.session_purge_interval_seconds)
        try:
            removed = await run_in_threadpool(app.state.sessions.purge_expired)
        except Exception:
            logger.exception("Session purge failed")
            continue
        if removed:
            logger.info("Purged %d expired sessions", removed)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The engine is created first because every store needs it.
    """
    logger.info("Beer Diary starting up")
    engine = create_db_engine(_settings.database_url)
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.sessions = SessionManager(engine, ttl_seconds=_settings.session_ttl_seconds)
    app.state.diary = DiaryStore(engine)
    logger.info("Stores initialized (session_ttl=%ds)", _settings.session_ttl_seconds)
    app.state.purge_task = asyncio.create_task(_purge_loop(app))

    yield

    app.state.purge_task.cancel()
    engine.dispose()
    logger.info("Beer Diary shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Beer Diary",
    description="Tasting notes and comments for registered users.",
    version=VERSION,
    lifespan=lifespan,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
)

# ---------------------------------------------------------------------------
# Middleware chain (registered innermost-first, see module docstring)
# ---------------------------------------------------------------------------


@app.middleware("http")
async def identity(request: Request, call_next):
    """Attach the request's identity before any route runs.

    Store calls are synchronous, so they run in the threadpool. A store
    failure here degrades to an anonymous request instead of a crash; the
    route's own guard then decides whether that means a redirect.
    """
    try:
        await run_in_threadpool(attach_identity, request)
    except SQLAlchemyError:
        logger.exception("Session lookup failed on %s %s", request.method, request.url.path)
        request.state.current_user = ANONYMOUS
    return await call_next(request)


# The session cookie is signed with SECRET_KEY (itsdangerous) and only ever
# carries the opaque session token. max_age matches the server-side TTL.
app.add_middleware(
    SessionMiddleware,
    secret_key=_settings.secret_key,
    session_cookie="beerdiary_session",
    max_age=_settings.session_ttl_seconds,
    same_site="lax",
    https_only=_settings.secure_cookies,
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
# Exception handlers
#
# /api/ paths get the JSON ErrorResponse envelope. Browser paths get a short
# HTML page or a redirect. Neither ever includes raw exception detail.
# ---------------------------------------------------------------------------

_ERROR_PAGE = (
    "<!doctype html><html><head><title>Beer Diary</title></head><body>"
    "<h1>{title}</h1><p>{message}</p><p><a href=\"/beers\">Back to all beers</a></p>"
    "</body></html>"
)


def _is_api(request: Request) -> bool:
    return request.url.path.startswith("/api/")


def _error(request: Request, status_code: int, code: str, title: str, message: str) -> Response:
    if _is_api(request):
        return JSONResponse(
            status_code=status_code,
            content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
        )
    return HTMLResponse(_ERROR_PAGE.format(title=title, message=message), status_code=status_code)


@app.exception_handler(RateLimitExceeded)
def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    """Return 429 with Retry-After when a rate limit is exceeded.

    Synchronous on purpose: SlowAPIMiddleware calls this handler directly and
    returns its result without awaiting it.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = _error(request, 429, "rate_limited", "Slow down", "Too many attempts. Try again in a minute.")
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
    """Malformed path or query parameters.

    For browser routes this is almost always a hand-typed URL such as
    /beers/not-a-number, which is just another way of asking for a beer that
    does not exist -- send the user back to the listing.
    """
    if _is_api(request):
        return JSONResponse(
            status_code=422,
            content=ErrorResponse(
                error=ErrorDetail(
                    code="validation_error",
                    message="Request validation failed.",
                    detail=str(exc.errors()),
                )
            ).model_dump(),
        )
    return RedirectResponse("/beers", status_code=302)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> Response:
    """Starlette's HTTPException also covers FastAPI's subclass and the router's own 404/405."""
    if exc.status_code == 404:
        return _error(request, 404, "not_found", "Not found", "That page does not exist.")
    return _error(request, exc.status_code, f"http_{exc.status_code}", "Error", str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def store_unavailable_handler(request: Request, exc: SQLAlchemyError) -> Response:
    """Persistence failure: log the traceback, show the user a generic page."""
    logger.error("Store error on %s %s", request.method, request.url.path, exc_info=exc)
    return _error(
        request, 503, "store_unavailable", "Temporarily unavailable", "We could not reach the diary. Please try again."
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> Response:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error(request, 500, "internal_error", "Something went wrong", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No rate limit -- health checks from load balancers must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health")
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and whether the database answers."""
    db_ok = ping(request.app.state.engine)
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=VERSION,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
