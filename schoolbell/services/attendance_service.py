# services/attendance_service.py
"""
Attendance recording service.
Turns scans into at most one record per student per calendar day and handles the
administrative manual entry and status correction paths.
"""

import logging
import threading
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError

from schoolbell.errors import (
    InvalidInput,
    NotFound,
    StorageUnavailable,
    SubjectNotFound,
    WindowClosed,
)
from schoolbell.extensions import db
from schoolbell.models.attendance import AttendanceCategory, AttendanceRecord, AttendanceStatus
from schoolbell.models.student import Student
from schoolbell.services.attendance_policy import REJECTED, classify_moment


class ScanOutcome:
    CREATED = 'created'
    UPDATED = 'updated'


# Per-subject scan locks; the deployment runs a single process (see gunicorn_config.py)
_scan_locks = {}
_scan_locks_guard = threading.Lock()


def subject_lock(subject_id):
    """Return the lock serializing scans for ``subject_id``."""
    with _scan_locks_guard:
        lock = _scan_locks.get(subject_id)
        if lock is None:
            lock = _scan_locks[subject_id] = threading.Lock()
        return lock


def day_bounds(moment):
    """Return ``(local midnight, next local midnight)`` around ``moment``."""
    start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


def parse_timestamp(value):
    """Accept a datetime or an ISO 8601 string (a trailing ``Z`` is allowed)."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidInput('Fecha inválida o ausente')
    raw = value.strip()
    if raw.endswith('Z'):
        raw = raw[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise InvalidInput(f'Fecha inválida: {value}')
    if parsed.tzinfo is not None:
        # Records are kept in naive local time
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


class AttendanceService:
    """Service class for attendance recording operations."""

    @staticmethod
    def record_scan(subject_id, now=None):
        """
        Record a scan for a student, once per calendar day.

        Args:
            subject_id: Student enrollment id (matrícula)
            now: Scan time; defaults to the current local time

        Returns:
            tuple: (outcome, record, student) where outcome is ScanOutcome.CREATED
            or ScanOutcome.UPDATED

        Raises:
            SubjectNotFound, WindowClosed, StorageUnavailable
        """
        now = now or datetime.now()
        subject_id = (subject_id or '').strip()

        # Lookup and insert-or-update must not interleave for one subject
        with subject_lock(subject_id):
            return AttendanceService._apply_scan(subject_id, now)

    @staticmethod
    def _apply_scan(subject_id, now):
        logger = logging.getLogger('attendance_service')

        try:
            # Fresh transaction so the day lookup sees scans committed by other threads
            db.session.rollback()

            student = db.session.query(Student).filter_by(enrollment_id=subject_id).first()
            if not student:
                logger.warning(f"Attendance scan failed: student {subject_id} not found")
                raise SubjectNotFound()

            category = classify_moment(now)
            if category == REJECTED:
                logger.info(f"Attendance scan for {subject_id} rejected at {now.strftime('%H:%M')}")
                raise WindowClosed()

            day_start, next_day = day_bounds(now)
            existing = (
                db.session.query(AttendanceRecord)
                .filter(
                    and_(
                        AttendanceRecord.subject_id == subject_id,
                        AttendanceRecord.timestamp >= day_start,
                        AttendanceRecord.timestamp < next_day
                    )
                )
                .order_by(AttendanceRecord.timestamp.asc())
                .first()
            )

            if existing:
                existing.category = category
                existing.timestamp = now
                db.session.commit()
                logger.info(f"Attendance updated for {subject_id} as {category}")
                return ScanOutcome.UPDATED, existing, student

            record = AttendanceRecord(
                subject_id=subject_id,
                full_name=student.full_name,
                grade=student.grade,
                group=student.group,
                timestamp=now,
                status=AttendanceStatus.PRESENT,
                category=category
            )
            db.session.add(record)
            db.session.commit()
            logger.info(f"Attendance recorded for {subject_id} as {category}")
            return ScanOutcome.CREATED, record, student

        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error recording attendance for {subject_id}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

    @staticmethod
    def record_manual(fields):
        """
        Create an attendance record by hand, bypassing classification.

        Args:
            fields: dict with full_name (or nombre), grade (grado), group (grupo),
                timestamp (fecha), status and optional subject_id (matricula)

        Returns:
            AttendanceRecord: the stored record
        """
        logger = logging.getLogger('attendance_service')
        fields = fields or {}

        full_name = fields.get('full_name') or fields.get('nombre')
        grade = fields.get('grade') or fields.get('grado')
        group = fields.get('group') or fields.get('grupo')
        raw_timestamp = fields.get('timestamp') or fields.get('fecha')
        status = AttendanceStatus.normalize(fields.get('status'))

        if not full_name or not grade or not group or not raw_timestamp or not status:
            raise InvalidInput('Faltan datos o estado inválido')

        subject_id = (
            fields.get('subject_id')
            or fields.get('matricula')
            or current_app.config.get('ATTENDANCE_MANUAL_SENTINEL', 'N/A')
        )

        record = AttendanceRecord(
            subject_id=str(subject_id).strip(),
            full_name=str(full_name).strip(),
            grade=str(grade).strip(),
            group=str(group).strip(),
            timestamp=parse_timestamp(raw_timestamp),
            status=status,
            category=AttendanceCategory.MANUAL
        )

        try:
            record.save()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error creating manual attendance: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        logger.info(f"Manual attendance created for {record.subject_id} ({status})")
        return record

    @staticmethod
    def update_status(record_id, status):
        """
        Overwrite the status of an existing record.

        Raises:
            InvalidInput: status not in the fixed set
            NotFound: no record with ``record_id``
        """
        logger = logging.getLogger('attendance_service')

        normalized = AttendanceStatus.normalize(status)
        if not normalized:
            raise InvalidInput('Estado inválido')

        try:
            record = db.session.get(AttendanceRecord, record_id)
            if not record:
                raise NotFound('Asistencia no encontrada')

            record.status = normalized
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Database error updating attendance {record_id}: {str(e)}", exc_info=True)
            raise StorageUnavailable()

        logger.info(f"Attendance {record_id} status set to {normalized}")
        return record

    @staticmethod
    def list_records():
        """All attendance records, newest first."""
        logger = logging.getLogger('attendance_service')
        try:
            return (
                db.session.query(AttendanceRecord)
                .order_by(AttendanceRecord.timestamp.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Database error listing attendance: {str(e)}", exc_info=True)
            raise StorageUnavailable()
