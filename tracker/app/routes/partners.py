"""
Partner (mitra) management endpoints.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from tracker.app.models.identity import RequestContext
from tracker.app.models.protocol import PartnerCreate
from tracker.app.routes.forms import read_payload, to_model
from tracker.app.security.auth import get_request_context, require_role, wants_json
from tracker.app.services.partners import (
    create_partner,
    list_partners,
    partners_by_province,
    toggle_partner_status,
)
from tracker.app.services.provinces import PROVINCES

router = APIRouter(tags=["partners"])


@router.get("/partner")
def partners_page(ctx: RequestContext = Depends(require_role("admin", "operator"))):
    return {
        "page": "partners",
        "user": {"username": ctx.identity.username, "role": ctx.identity.role},
        "partner": list_partners(),
        "provinces": PROVINCES,
    }


@router.post("/partner")
async def add_partner(
    request: Request,
    ctx: RequestContext = Depends(require_role("admin", "operator")),
):
    payload = await read_payload(request)
    partner = await run_in_threadpool(create_partner, to_model(PartnerCreate, payload), ctx)
    if wants_json(request):
        return {"success": True, "partner": partner}
    return RedirectResponse("/partner", status_code=303)


@router.post("/partner/{partner_id}/toggle-status")
def toggle_partner(
    partner_id: int,
    request: Request,
    ctx: RequestContext = Depends(require_role("admin")),
):
    is_active = toggle_partner_status(partner_id, ctx)
    if wants_json(request):
        return {"success": True, "is_active": is_active}
    return RedirectResponse("/partner", status_code=303)


@router.get("/api/partner/{province_code}")
def partners_for_province(
    province_code: str,
    ctx: RequestContext = Depends(get_request_context),
):
    """Active partners in a province, for the create-protocol form."""
    return partners_by_province(province_code)


@router.post("/api/partner")
async def add_partner_api(
    request: Request,
    ctx: RequestContext = Depends(require_role("admin", "operator")),
):
    payload = await read_payload(request)
    partner = await run_in_threadpool(create_partner, to_model(PartnerCreate, payload), ctx)
    return {"success": True, "partner": partner}
