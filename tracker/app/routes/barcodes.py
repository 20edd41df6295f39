"""
QR code images for protocol codes.
"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from tracker.app.errors import InternalError
from tracker.app.models.identity import RequestContext
from tracker.app.security.auth import get_request_context
from tracker.app.services.qr import DISPLAY_BOX_SIZE, DOWNLOAD_BOX_SIZE, generate_qr_png

logger = logging.getLogger(__name__)

router = APIRouter(tags=["barcodes"])


def _render(code: str, box_size: int) -> bytes:
    try:
        return generate_qr_png(code, box_size=box_size)
    except (ValueError, OSError) as e:
        logger.exception("QR code generation failed for %s", code)
        raise InternalError("QR code generation error", cause=e)


@router.get("/barcode/{code}.png")
def barcode(code: str, ctx: RequestContext = Depends(get_request_context)):
    return Response(content=_render(code, DISPLAY_BOX_SIZE), media_type="image/png")


@router.get("/download/barcode/{code}.png")
def download_barcode(code: str, ctx: RequestContext = Depends(get_request_context)):
    return Response(
        content=_render(code, DOWNLOAD_BOX_SIZE),
        media_type="image/png",
        headers={"Content-Disposition": f'attachment; filename="qrcode-{code}.png"'},
    )
