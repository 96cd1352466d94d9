"""QR code rendering for PIN login"""
import base64
import io
import json
from typing import Any, Dict

import qrcode
from qrcode.constants import ERROR_CORRECT_M

from app.core.logging_config import logger


def generate_qr_code(data: str, size: int = 256) -> str:
    """
    Render ``data`` as a PNG QR code.

    Returns a ``data:image/png;base64,...`` URL, or an empty string if
    rendering fails (the PIN itself is still usable).
    """
    try:
        qr = qrcode.QRCode(
            version=None,
            error_correction=ERROR_CORRECT_M,
            box_size=10,
            border=2
        )
        qr.add_data(data)
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        img = img.resize((size, size))

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode('utf-8')

    except Exception as e:
        logger.error(f"[QR] Error generating QR code: {e}")
        return ""


def pin_qr_payload(pin: str, session_id: str, expires_at: Any) -> Dict[str, Any]:
    """What a second device scans to find the PIN session"""
    return {
        "pin": pin,
        "sessionId": session_id,
        "expiresAt": expires_at.isoformat() + "Z" if hasattr(expires_at, "isoformat") else str(expires_at),
    }


def generate_pin_qr(pin: str, session_id: str, expires_at: Any) -> str:
    return generate_qr_code(json.dumps(pin_qr_payload(pin, session_id, expires_at)))
