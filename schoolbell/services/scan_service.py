# services/scan_service.py
"""
Routing of scanned codes.

A code is first looked up as a student enrollment id (attendance); otherwise as a
guardian code (pickup notification to the guardian's WhatsApp group).
"""

import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from schoolbell.errors import InvalidInput, NotFound, StorageUnavailable, SubjectNotFound
from schoolbell.extensions import db, get_dispatcher
from schoolbell.models.guardian import GuardianLink
from schoolbell.models.student import Student
from schoolbell.services.attendance_service import AttendanceService

MIN_CODE_LENGTH = 3


class ScanKind:
    ATTENDANCE = 'attendance'
    NOTIFICATION = 'notification'


def clean_code(code, message='Código QR inválido o ausente'):
    if not code or not isinstance(code, str) or len(code.strip()) < MIN_CODE_LENGTH:
        raise InvalidInput(message)
    return code.strip()


class ScanService:

    @staticmethod
    def process_code(code, now=None):
        """
        Record attendance or notify a guardian group depending on what ``code`` is.

        Returns:
            dict: ``kind`` plus ``student`` and, for attendance, ``outcome`` and ``record``
        """
        logger = logging.getLogger('scan_service')
        code = clean_code(code)

        try:
            student = db.session.query(Student).filter_by(enrollment_id=code).first()
        except SQLAlchemyError as e:
            logger.error(f"Database error resolving code {code}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        if student:
            outcome, record, student = AttendanceService.record_scan(code, now=now)
            return {
                'kind': ScanKind.ATTENDANCE,
                'outcome': outcome,
                'record': record,
                'student': student
            }

        student = ScanService.notify_guardian(code)
        return {'kind': ScanKind.NOTIFICATION, 'student': student}

    @staticmethod
    def notify_guardian(qr_code):
        """
        Send the pickup notice for the student linked to a guardian code.

        Returns:
            Student: the student the notice was about
        """
        logger = logging.getLogger('scan_service')
        qr_code = clean_code(qr_code, 'Código QR inválido')

        try:
            guardian = db.session.query(GuardianLink).filter_by(qr_code=qr_code).first()
            if not guardian:
                raise NotFound('Código QR no asociado a alumno ni padre')

            student = (
                db.session.query(Student)
                .filter_by(enrollment_id=guardian.student_enrollment_id)
                .first()
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error resolving guardian {qr_code}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        if not student:
            raise SubjectNotFound('Estudiante no encontrado para este padre')

        channel_id = guardian.channel_id or current_app.config.get('WHATSAPP_DEFAULT_GROUP_ID')
        get_dispatcher().send(channel_id, student)
        logger.info(f"Pickup notice sent for {student.enrollment_id} (guardian {qr_code})")
        return student
