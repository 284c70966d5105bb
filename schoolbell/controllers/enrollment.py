# controllers/enrollment.py
from flask import Blueprint, jsonify

from schoolbell.services.enrollment_service import EnrollmentService
from . import json_body

enrollment_bp = Blueprint('enrollment', __name__)


@enrollment_bp.route('/insert', methods=['POST'])
def insert():
    """Enroll a student and the guardian who picks them up."""
    data = json_body()
    student, guardian = EnrollmentService.enroll(data.get('student'), data.get('parent'))
    return jsonify({
        'success': True,
        'message': 'Insertado correctamente',
        'student': student.to_dict(),
        'parent': guardian.to_dict()
    }), 201
