"""
Protocol endpoints: batch creation, status changes, scanner lookups and
patient data.
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from tracker.app.models.identity import RequestContext
from tracker.app.models.protocol import PatientData
from tracker.app.routes.forms import read_payload, to_model
from tracker.app.security.auth import get_request_context, require_role, wants_json
from tracker.app.services import lifecycle
from tracker.app.services.patients import get_patient_data, update_patient_data

router = APIRouter(tags=["protocols"])


@router.post("/protocols")
async def create_protocols(
    request: Request,
    ctx: RequestContext = Depends(require_role("admin", "operator")),
):
    """
    Create a batch of protocols.

    Body (form or JSON): province, partner_id, quantity (1-100).
    Browsers are redirected to the dashboard with a success message; API
    callers get the generated codes.
    """
    payload = await read_payload(request)
    codes = await run_in_threadpool(
        lifecycle.create_batch,
        payload.get("province"),
        payload.get("partner_id"),
        payload.get("quantity"),
        ctx,
    )
    message = f"{len(codes)} protocol(s) created successfully!"

    if wants_json(request):
        return {"success": True, "message": message, "codes": codes}
    return RedirectResponse(f"/dashboard?success={quote(message)}", status_code=303)


@router.post("/protocols/{protocol_id}/status")
async def update_status(
    protocol_id: int,
    request: Request,
    ctx: RequestContext = Depends(require_role("admin", "operator")),
):
    payload = await read_payload(request)
    protocol = await run_in_threadpool(
        lifecycle.transition_status, protocol_id, payload.get("status"), ctx
    )
    if wants_json(request):
        return {"success": True, "protocol": protocol}
    return RedirectResponse("/dashboard", status_code=303)


@router.get("/scan/{code}")
def scan(code: str, ctx: RequestContext = Depends(get_request_context)):
    """Protocol lookup for the scanner, with an id-ID formatted timestamp."""
    return lifecycle.lookup_protocol(code)


@router.get("/scanner")
def scanner_page(ctx: RequestContext = Depends(get_request_context)):
    return {
        "page": "scanner",
        "user": {
            "id": ctx.identity.user_id,
            "username": ctx.identity.username,
            "full_name": ctx.identity.full_name,
            "role": ctx.identity.role,
        },
    }


@router.post("/api/confirm-usage/{code}")
async def confirm_usage(
    code: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
):
    """Scanner confirmation. Body: ``action`` = mark_terpakai | mark_delivered."""
    payload = await read_payload(request)
    return await run_in_threadpool(
        lifecycle.confirm_usage, code, payload.get("action"), ctx
    )


@router.post("/api/update-patient-data/{code}")
async def save_patient_data(
    code: str,
    request: Request,
    ctx: RequestContext = Depends(get_request_context),
):
    payload = await read_payload(request)
    data = to_model(PatientData, payload)
    return await run_in_threadpool(update_patient_data, code, data, ctx)


@router.get("/api/patient-data/{code}")
def patient_data(code: str, ctx: RequestContext = Depends(get_request_context)):
    return get_patient_data(code)
