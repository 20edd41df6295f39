"""
Login, logout and the root redirect.
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse

from tracker.app.core.config import get_settings
from tracker.app.errors import InvalidInput
from tracker.app.routes.forms import read_payload
from tracker.app.security.auth import (
    LOGIN_PATH,
    build_context,
    clear_session_cookie,
    client_ip,
    landing_path,
    optional_identity,
    set_session_cookie,
    wants_json,
)
from tracker.app.security.limits import limiter
from tracker.app.services.activity import log_activity
from tracker.app.services.users import authenticate

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])


@router.get("/login")
def login_page(request: Request):
    """Login view context; already-authenticated callers are sent on."""
    identity = optional_identity(request)
    if identity:
        return RedirectResponse(landing_path(identity), status_code=303)
    return {"page": "login", "error": request.query_params.get("error")}


@router.post("/login")
@limiter.limit(get_settings().LOGIN_RATE_LIMIT)
async def login(request: Request):
    """
    Check credentials and start a session.

    Success redirects by role (distribusi -> /scanner, others ->
    /dashboard). Browser failures go back to the login page with the
    message; API failures get a 400 JSON error.
    """
    payload = await read_payload(request)
    try:
        identity = authenticate(
            payload.get("username"),
            payload.get("password"),
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except InvalidInput as e:
        if wants_json(request):
            raise
        return RedirectResponse(f"{LOGIN_PATH}?error={quote(e.message)}", status_code=303)

    response = RedirectResponse(landing_path(identity), status_code=303)
    set_session_cookie(response, identity)
    return response


@router.get("/logout")
def logout(request: Request):
    identity = optional_identity(request)
    if identity:
        log_activity(build_context(request, identity), "logout", target_type="user", target_id=identity.user_id)
    response = RedirectResponse(LOGIN_PATH, status_code=303)
    clear_session_cookie(response)
    return response


@router.get("/")
def root(request: Request):
    if optional_identity(request):
        return RedirectResponse("/dashboard", status_code=303)
    return RedirectResponse(LOGIN_PATH, status_code=303)
