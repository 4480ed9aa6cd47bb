import base64
import io

import qrcode
from qrcode.constants import ERROR_CORRECT_M


def render_qr_code_data_url(data: str) -> str:
    """PNG do QR Code como data URL, pronto para <img src>."""
    qr = qrcode.QRCode(version=None, error_correction=ERROR_CORRECT_M, box_size=8, border=1)
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    encoded = base64.b64encode(buffer.getvalue()).decode()

    return f"data:image/png;base64,{encoded}"
