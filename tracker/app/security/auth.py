"""
Session-cookie authentication and role-based authorization.

The session cookie carries a signed, expiring JWT (python-jose) with two
claims that matter: ``sub`` (user id) and ``kind``:

- ``superuser``: the configured legacy credential pair. Resolved from the
  token alone; never touches the users table.
- ``stored``: a row in ``users``. Re-read on every request so that a
  deactivated or deleted user loses access immediately; a failed lookup
  destroys the session.

Identity is resolved once per request into an immutable ``RequestContext``
that handlers pass to services as the acting user.

Roles:
- admin: everything, including user management and ledger repair
- operator: dashboard, protocol and partner management
- distribusi: scanner and stock lookups
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.responses import Response
from jose import JWTError, jwt

from tracker.app.core.config import get_settings
from tracker.app.errors import Unauthenticated, Unauthorized
from tracker.app.models.identity import (
    SUPERUSER_ID,
    Identity,
    RequestContext,
    superuser_identity,
)
from tracker.app.services.users import get_active_identity

logger = logging.getLogger(__name__)

LOGIN_PATH = "/login"


def create_session_token(identity: Identity, expires_in_seconds: Optional[int] = None) -> str:
    """Sign a session token for ``identity``."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    ttl = expires_in_seconds if expires_in_seconds is not None else settings.SESSION_MAX_AGE_SECONDS

    payload = {
        "sub": str(identity.user_id),
        "kind": identity.kind,
        "iat": int(now.timestamp()),
        "exp": int(now.timestamp()) + ttl,
    }
    if identity.kind == "superuser":
        payload["username"] = identity.username

    return jwt.encode(payload, settings.SESSION_SECRET_KEY, algorithm=settings.SESSION_ALGORITHM)


def decode_session_token(token: str) -> dict:
    """
    Decode and validate a session token.

    Raises:
        Unauthenticated: bad signature, expired, or missing claims (the
            session is marked for destruction)
    """
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.SESSION_SECRET_KEY,
            algorithms=[settings.SESSION_ALGORITHM],
            options={"require_exp": True, "require_sub": True},
        )
    except JWTError as e:
        logger.info("Rejected session token: %s", e)
        raise Unauthenticated("Session expired", destroy_session=True)


def wants_json(request: Request) -> bool:
    """True for API/XHR callers, which get JSON errors instead of redirects."""
    accept = request.headers.get("accept", "")
    return (
        "json" in accept
        or request.headers.get("x-requested-with", "").lower() == "xmlhttprequest"
        or request.url.path.startswith("/api/")
    )


def resolve_identity(request: Request) -> Identity:
    """
    Resolve the caller's identity from the session cookie.

    Raises:
        Unauthenticated: no session, or a session that no longer maps to an
            active identity
    """
    settings = get_settings()
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if not token:
        raise Unauthenticated("Authentication required")

    payload = decode_session_token(token)
    kind = payload.get("kind")

    if kind == "superuser":
        if payload.get("sub") != str(SUPERUSER_ID) or payload.get("username") != settings.SUPERUSER_USERNAME:
            raise Unauthenticated("Session expired", destroy_session=True)
        return superuser_identity(settings.SUPERUSER_USERNAME)

    if kind == "stored":
        try:
            user_id = int(payload["sub"])
        except (KeyError, ValueError):
            raise Unauthenticated("Session expired", destroy_session=True)
        identity = get_active_identity(user_id)
        if identity is None:
            logger.info("Session for inactive or missing user %s destroyed", user_id)
            raise Unauthenticated("Session expired", destroy_session=True)
        return identity

    raise Unauthenticated("Session expired", destroy_session=True)


def optional_identity(request: Request) -> Optional[Identity]:
    """Identity if the request carries a valid session, else None."""
    try:
        return resolve_identity(request)
    except Unauthenticated:
        return None


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def build_context(request: Request, identity: Identity) -> RequestContext:
    return RequestContext(
        identity=identity,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


def get_request_context(request: Request) -> RequestContext:
    """
    Dependency: authenticated request context.

    Usage:
        @router.get("/api/stock")
        def stock(ctx: RequestContext = Depends(get_request_context)):
            ...
    """
    return build_context(request, resolve_identity(request))


def require_role(*roles: str) -> Callable[..., RequestContext]:
    """
    Dependency factory for role-based access control.

    Usage:
        @router.get("/users")
        def users_page(ctx: RequestContext = Depends(require_role("admin"))):
            ...
    """

    def role_checker(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not ctx.identity.has_role(*roles):
            logger.info(
                "Role %s denied on route requiring %s", ctx.identity.role, ", ".join(roles)
            )
            raise Unauthorized()
        return ctx

    return role_checker


def set_session_cookie(response: Response, identity: Identity) -> None:
    settings = get_settings()
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=create_session_token(identity),
        max_age=settings.SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=settings.SESSION_COOKIE_SECURE,
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(get_settings().SESSION_COOKIE_NAME, path="/")


def landing_path(identity: Identity) -> str:
    """Where a freshly logged-in user is sent."""
    return "/scanner" if identity.role == "distribusi" else "/dashboard"


def session_subject(request: Request) -> str:
    """Session user id for request logs ("none" without a valid session)."""
    token = request.cookies.get(get_settings().SESSION_COOKIE_NAME)
    if not token:
        return "none"
    try:
        return str(decode_session_token(token).get("sub", "none"))
    except Unauthenticated:
        return "invalid"
