"""
Stock ledger endpoints.
"""

from typing import List

from fastapi import APIRouter, Depends

from tracker.app.models.identity import RequestContext
from tracker.app.models.protocol import ReconcileReport, StockSnapshot
from tracker.app.security.auth import get_request_context, require_role
from tracker.app.services import ledger
from tracker.app.services.activity import log_activity

router = APIRouter(prefix="/api/stock", tags=["stock"])


@router.get("", response_model=List[StockSnapshot])
def stock(ctx: RequestContext = Depends(get_request_context)) -> List[StockSnapshot]:
    """Per-partner ledger counters for every active partner."""
    return ledger.stock_snapshot()


@router.get("/reconcile", response_model=ReconcileReport)
def reconcile_report(ctx: RequestContext = Depends(require_role("admin"))) -> ReconcileReport:
    """Compare each partner's ledger with its protocol rows (read only)."""
    return ledger.reconcile(repair=False)


@router.post("/reconcile", response_model=ReconcileReport)
def reconcile_repair(ctx: RequestContext = Depends(require_role("admin"))) -> ReconcileReport:
    """Overwrite drifted ledger rows with values recomputed from protocols."""
    report = ledger.reconcile(repair=True)
    if report.repaired:
        log_activity(
            ctx,
            "reconcile_stock",
            details=", ".join(d.partner_code for d in report.drifted),
        )
    return report
