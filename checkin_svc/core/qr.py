from __future__ import annotations
from io import BytesIO
import qrcode
from qrcode.constants import ERROR_CORRECT_M

def render_ticket_qr(scan_identifier: str, *, box_size: int = 10, border: int = 4) -> bytes:
    """PNG bytes of a QR code whose payload is exactly the ticket's scan identifier."""
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=box_size, border=border)
    qr.add_data(scan_identifier)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    b = BytesIO(); img.save(b, format="PNG")
    return b.getvalue()
