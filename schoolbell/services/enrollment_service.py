# services/enrollment_service.py
"""
Enrollment of a student together with the guardian who picks them up.
"""

import logging
import re

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from schoolbell.errors import DuplicateKey, InvalidInput, StorageUnavailable
from schoolbell.extensions import db
from schoolbell.models.guardian import GuardianLink
from schoolbell.models.student import Student

PHONE_PATTERN = re.compile(r'^\d{10}$')

STUDENT_REQUIRED = ('nombreCompleto', 'matricula', 'grado', 'grupo', 'nivel')
GUARDIAN_REQUIRED = ('nombre', 'domicilio', 'qrCode')


class EnrollmentService:

    @staticmethod
    def enroll(student_data, guardian_data):
        """
        Create a student and its guardian link in one transaction.

        Returns:
            tuple: (Student, GuardianLink)

        Raises:
            InvalidInput: missing fields or malformed phone
            DuplicateKey: enrollment id or guardian code already registered
        """
        logger = logging.getLogger('enrollment_service')

        if not student_data or not guardian_data:
            raise InvalidInput('Faltan datos requeridos')
        missing = [key for key in STUDENT_REQUIRED if not student_data.get(key)]
        missing += [key for key in GUARDIAN_REQUIRED if not guardian_data.get(key)]
        if missing:
            raise InvalidInput('Faltan datos requeridos', missing=missing)

        phone = guardian_data.get('telefono')
        if phone and not PHONE_PATTERN.match(str(phone)):
            raise InvalidInput('Teléfono inválido, debe tener 10 dígitos')

        channel_id = guardian_data.get('grupoId') or guardian_data.get('channel_id')
        enrollment_id = str(student_data['matricula']).strip()
        qr_code = str(guardian_data['qrCode']).strip()

        try:
            if db.session.query(Student).filter_by(enrollment_id=enrollment_id).first():
                raise DuplicateKey('Matrícula ya registrada')
            if db.session.query(GuardianLink).filter_by(qr_code=qr_code).first():
                raise DuplicateKey('Código QR ya registrado')

            student = Student(
                enrollment_id=enrollment_id,
                full_name=student_data['nombreCompleto'],
                grade=str(student_data['grado']),
                group=str(student_data['grupo']),
                level=student_data.get('nivel'),
                qr_code=student_data.get('qrCode')
            )
            guardian = GuardianLink(
                qr_code=qr_code,
                student_enrollment_id=enrollment_id,
                full_name=guardian_data['nombre'],
                address=guardian_data.get('domicilio'),
                phone=phone or None,
                channel_id=channel_id or None
            )
            db.session.add(student)
            db.session.add(guardian)
            db.session.commit()

        except IntegrityError as e:
            db.session.rollback()
            logger.warning(f"Duplicate enrollment for {enrollment_id}: {str(e)}")
            raise DuplicateKey('Código QR o matrícula duplicados')
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error enrolling {enrollment_id}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        logger.info(f"Enrolled student {enrollment_id} with guardian code {qr_code}")
        return student, guardian
