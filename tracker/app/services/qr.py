"""
QR code rendering for protocol codes.
"""

import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M

# Module size in pixels: on-screen preview vs. printable download.
DISPLAY_BOX_SIZE = 4
DOWNLOAD_BOX_SIZE = 8


def generate_qr_png(data: str, box_size: int = DISPLAY_BOX_SIZE) -> bytes:
    """Render ``data`` as a PNG QR code (error correction level M)."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=box_size,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return buffer.getvalue()
