# controllers/whatsapp.py
"""
WhatsApp-facing routes: login QR for the operator, and code scans that either
record attendance or notify a guardian group.
"""

import logging

from flask import Blueprint, jsonify

from schoolbell.extensions import get_session_supervisor
from schoolbell.services.qr_code_service import QRCodeService
from schoolbell.services.scan_service import ScanKind, ScanService
from . import json_body
from .attendance import scan_response

whatsapp_bp = Blueprint('whatsapp', __name__)

logger = logging.getLogger('whatsapp')


@whatsapp_bp.route('/get-qr', methods=['GET'])
def get_qr():
    """Current login challenge as a PNG data URL, or 404 when there is none."""
    challenge = get_session_supervisor().challenges.get_challenge()
    if not challenge:
        return jsonify({
            'success': False,
            'message': 'No hay QR disponible. Bot ya conectado.',
            'error_code': 'no_challenge'
        }), 404

    return jsonify({'success': True, 'qrImage': QRCodeService.to_data_url(challenge)})


@whatsapp_bp.route('/scan-qr', methods=['POST'])
def scan_qr():
    data = json_body()
    result = ScanService.process_code(data.get('qrCode'))
    logger.info(f"Code scanned: {result['kind']} for {result['student'].enrollment_id}")

    if result['kind'] == ScanKind.ATTENDANCE:
        body, status = scan_response(result['outcome'], result['record'], result['student'])
        return jsonify(body), status

    return jsonify({
        'success': True,
        'outcome': 'notified',
        'message': 'Mensaje enviado al grupo',
        'student': result['student'].to_dict()
    })


@whatsapp_bp.route('/buscar-qr-padre/<qr_code>', methods=['GET'])
def find_guardian(qr_code):
    """Older clients notify by guardian code directly."""
    student = ScanService.notify_guardian(qr_code)
    return jsonify({
        'success': True,
        'outcome': 'notified',
        'message': 'Mensaje enviado al grupo',
        'student': student.to_dict()
    })
