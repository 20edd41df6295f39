"""
Protocol Distribution Tracker - FastAPI Application

Tracks serialized protocol codes from issue through delivery to use
(terpakai), with a per-partner stock ledger and an activity audit trail.

Hardening:
- Session-cookie authentication with role gates on every protected route
- Login rate limiting (can be disabled in test mode)
- Exception handlers that map the error taxonomy to JSON for API callers
  and plain text / redirects for browsers
- Unexpected exceptions are logged to the durable error log and answered
  with a 500 while the process keeps serving
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, RedirectResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from tracker.app.core.config import get_settings
from tracker.app.core.logging_config import configure_logging
from tracker.app.db.migrate import check_db_security, ensure_schema
from tracker.app.errors import TrackerError, Unauthenticated
from tracker.app.routes import (
    auth,
    barcodes,
    dashboard,
    events,
    health,
    partners,
    protocols,
    stock,
    users,
)
from tracker.app.security.auth import (
    LOGIN_PATH,
    clear_session_cookie,
    client_ip,
    session_subject,
    wants_json,
)
from tracker.app.security.limits import limiter
from tracker.app.services.users import bootstrap_admin_user

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle management for the FastAPI app.

    On startup:
    - Configure logging (console + durable error log)
    - Bring the schema to the latest migration
    - Validate database security configuration
    - Seed the initial admin account
    """
    settings = get_settings()
    configure_logging(settings)

    ensure_schema()

    security_status = check_db_security()
    # Warn if security is not optimal (but don't fail startup)
    if not security_status.get("wal_enabled"):
        logger.warning("Database WAL mode not enabled")
    if not security_status.get("permissions_secure"):
        logger.warning("Database file permissions may not be secure")
    if not security_status.get("outside_repo"):
        logger.warning("Database file lives inside the source tree")

    bootstrap_admin_user()
    logger.info("%s %s started", settings.PROJECT_NAME, settings.VERSION)

    yield

    logger.info("%s shutting down", settings.PROJECT_NAME)


app = FastAPI(
    title="Protocol Distribution Tracker",
    description="Distribution, stock ledger and audit trail for serialized protocol codes",
    version=get_settings().VERSION,
    lifespan=lifespan,
    debug=False,
)

# Register rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(
        "%s %s - Session: %s - IP: %s",
        request.method,
        request.url.path,
        session_subject(request),
        client_ip(request),
    )
    return await call_next(request)


def _error_response(request: Request, status_code: int, message: str):
    if wants_json(request):
        return JSONResponse(status_code=status_code, content={"error": message})
    return PlainTextResponse(message, status_code=status_code)


@app.exception_handler(TrackerError)
async def tracker_error_handler(request: Request, exc: TrackerError):
    """Render taxonomy errors for API callers (JSON) or browsers."""
    if isinstance(exc, Unauthenticated):
        if wants_json(request):
            response = JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": exc.message, "redirect": LOGIN_PATH},
            )
        else:
            response = RedirectResponse(LOGIN_PATH, status_code=status.HTTP_303_SEE_OTHER)
        if exc.destroy_session:
            clear_session_cookie(response)
        return response

    return _error_response(request, exc.status_code, exc.message)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return _error_response(request, exc.status_code, message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Handle validation errors without echoing the request body.

    Only field paths and messages are returned.
    """
    errors = []
    for error in exc.errors():
        errors.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "type": error["type"],
            "message": error["msg"],
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "Request validation failed", "details": errors},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Catch-all: log to the durable error log and answer 500."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(
        request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"
    )


# Register routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(dashboard.router)
app.include_router(protocols.router)
app.include_router(partners.router)
app.include_router(users.router)
app.include_router(stock.router)
app.include_router(barcodes.router)
app.include_router(events.router)
