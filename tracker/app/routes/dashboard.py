"""
Dashboard, create-protocol page and reporting endpoints.

Page routes return their view context as JSON.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from tracker.app.errors import InvalidInput
from tracker.app.models.identity import RequestContext
from tracker.app.routes.forms import read_payload
from tracker.app.security.auth import get_request_context, require_role
from tracker.app.services.activity import log_activity
from tracker.app.services.provinces import PROVINCES
from tracker.app.services.reporting import build_dashboard, rollup_daily

router = APIRouter(tags=["dashboard"])


def _user_view(ctx: RequestContext) -> dict:
    identity = ctx.identity
    return {
        "id": identity.user_id,
        "username": identity.username,
        "full_name": identity.full_name,
        "role": identity.role,
    }


@router.get("/dashboard")
def dashboard(
    period: Optional[str] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    success: Optional[str] = None,
    ctx: RequestContext = Depends(require_role("admin", "operator")),
):
    """
    Aggregated dashboard for a period (today by default).

    Query:
        period: week | month | custom | (anything else: today)
        start_date, end_date: YYYY-MM-DD, both required for custom
    """
    log_activity(ctx, "view_dashboard")
    view = build_dashboard(period, start_date, end_date)
    view.update(
        {
            "page": "dashboard",
            "user": _user_view(ctx),
            "provinces": PROVINCES,
            "successMessage": success,
        }
    )
    return view


@router.get("/create-protocol")
def create_protocol_page(
    success: Optional[str] = None,
    ctx: RequestContext = Depends(require_role("admin", "operator")),
):
    log_activity(ctx, "view_create_protocol")
    return {
        "page": "create-protocol",
        "user": _user_view(ctx),
        "provinces": PROVINCES,
        "successMessage": success,
    }


@router.get("/api/provinces")
def provinces(ctx: RequestContext = Depends(get_request_context)):
    return PROVINCES


@router.post("/api/analytics/rollup")
async def analytics_rollup(
    request: Request,
    ctx: RequestContext = Depends(require_role("admin")),
):
    """Recompute one day's analytics_daily row (body ``date``, default today)."""
    payload = await read_payload(request)
    raw = payload.get("date")
    day = None
    if raw:
        try:
            day = date.fromisoformat(str(raw))
        except ValueError:
            raise InvalidInput("date must be a date (YYYY-MM-DD)")
    return await run_in_threadpool(rollup_daily, day)
