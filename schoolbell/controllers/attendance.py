# controllers/attendance.py
"""
Attendance routes: scan by enrollment id, manual entries and status corrections.
"""

import logging

from flask import Blueprint, jsonify

from schoolbell.services.attendance_service import AttendanceService, ScanOutcome
from schoolbell.services.scan_service import clean_code
from . import json_body

attendance_bp = Blueprint('attendance', __name__)

logger = logging.getLogger('attendance')


def scan_response(outcome, record, student):
    """Response body and status for a scan outcome."""
    verb = 'actualizada' if outcome == ScanOutcome.UPDATED else 'registrada'
    body = {
        'success': True,
        'outcome': outcome,
        'message': f'Asistencia {verb} como {record.category}',
        'student': student.to_dict(),
        'attendance': record.to_dict()
    }
    return body, 201 if outcome == ScanOutcome.CREATED else 200


@attendance_bp.route('/asistencia', methods=['POST'])
def record_attendance():
    """Register attendance by enrollment id (matrícula)."""
    data = json_body()
    subject_id = clean_code(data.get('matricula'), 'Matrícula inválida o ausente')

    outcome, record, student = AttendanceService.record_scan(subject_id)
    body, status = scan_response(outcome, record, student)
    return jsonify(body), status


@attendance_bp.route('/asistencias', methods=['GET'])
def list_attendance():
    records = AttendanceService.list_records()
    return jsonify([record.to_dict() for record in records])


@attendance_bp.route('/asistencias', methods=['POST'])
def create_manual_attendance():
    data = json_body()
    logger.info(f"Manual attendance requested for {data.get('matricula') or data.get('subject_id') or 'N/A'}")

    record = AttendanceService.record_manual(data)
    return jsonify({
        'success': True,
        'message': 'Asistencia creada',
        'attendance': record.to_dict()
    }), 201


@attendance_bp.route('/asistencias/<record_id>', methods=['PUT'])
def update_attendance(record_id):
    data = json_body()
    record = AttendanceService.update_status(record_id, data.get('status'))
    return jsonify({
        'success': True,
        'message': 'Asistencia actualizada',
        'attendance': record.to_dict()
    })
