# services/qr_code_service.py
"""
Renders the WhatsApp login challenge as a PNG data URL for the operator screen.
"""

import base64
import io
import logging

import qrcode


class QRCodeService:

    @staticmethod
    def to_data_url(payload):
        """Encode ``payload`` as a QR code and return it as ``data:image/png;base64,...``."""
        logger = logging.getLogger('qr_code_service')

        qr = qrcode.QRCode(
            version=None,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(payload)
        qr.make(fit=True)
        img = qr.make_image(fill_color="black", back_color="white")

        buffer = io.BytesIO()
        img.save(buffer, format='PNG')
        encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
        logger.debug(f"Rendered QR challenge ({len(encoded)} bytes)")
        return f"data:image/png;base64,{encoded}"
