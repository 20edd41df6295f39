"""
User management endpoints (admin only).
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from tracker.app.models.identity import ROLES, RequestContext
from tracker.app.models.protocol import UserCreate
from tracker.app.routes.forms import read_payload, to_model
from tracker.app.security.auth import require_role, wants_json
from tracker.app.services.activity import recent_activity
from tracker.app.services.users import (
    create_user,
    list_users,
    reset_password,
    toggle_user_status,
)

router = APIRouter(tags=["users"])

RECENT_ACTIVITY_LIMIT = 20


@router.get("/users")
def users_page(ctx: RequestContext = Depends(require_role("admin"))):
    return {
        "page": "users",
        "user": {"username": ctx.identity.username, "role": ctx.identity.role},
        "users": list_users(),
        "roles": list(ROLES),
        "recentActivity": recent_activity(RECENT_ACTIVITY_LIMIT),
    }


@router.post("/users")
async def add_user(request: Request, ctx: RequestContext = Depends(require_role("admin"))):
    """Body: username, email, full_name, role, password, confirm_password."""
    payload = await read_payload(request)
    user_id = await run_in_threadpool(create_user, to_model(UserCreate, payload), ctx)
    if wants_json(request):
        return {"success": True, "id": user_id}
    return RedirectResponse("/users", status_code=303)


@router.post("/users/{user_id}/toggle-status")
def toggle_user(user_id: int, ctx: RequestContext = Depends(require_role("admin"))):
    return toggle_user_status(user_id, ctx)


@router.post("/users/{user_id}/reset-password")
async def reset_user_password(
    user_id: int,
    request: Request,
    ctx: RequestContext = Depends(require_role("admin")),
):
    """Body: newPassword (at least 6 characters)."""
    payload = await read_payload(request)
    new_password = payload.get("newPassword")
    if new_password is not None:
        new_password = str(new_password)
    return await run_in_threadpool(reset_password, user_id, new_password, ctx)
