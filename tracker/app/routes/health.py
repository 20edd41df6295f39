"""
Health check endpoint.
"""

import os
import time

from fastapi import APIRouter

router = APIRouter(tags=["health"])

_STARTED = time.monotonic()


@router.get("/healthz")
async def health_check():
    """Liveness probe (no auth)."""
    return {"status": "ok", "pid": os.getpid(), "uptime": time.monotonic() - _STARTED}
