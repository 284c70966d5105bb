# models/attendance.py
from sqlalchemy import Index

from schoolbell.extensions import db
from .base import BaseModel


class AttendanceStatus:
    PRESENT = 'present'
    ABSENT = 'absent'
    JUSTIFIED = 'justified'

    ALL = (PRESENT, ABSENT, JUSTIFIED)

    # Single-letter codes sent by the existing front end
    ALIASES = {
        'A': PRESENT,
        'F': ABSENT,
        'I': ABSENT,
        'J': JUSTIFIED,
    }

    @classmethod
    def normalize(cls, value):
        """Return the canonical status for ``value`` or None when it is not one."""
        if not isinstance(value, str):
            return None
        value = value.strip()
        if value in cls.ALIASES:
            return cls.ALIASES[value]
        value = value.lower()
        return value if value in cls.ALL else None


class AttendanceCategory:
    ON_TIME = 'on_time'
    LATE = 'late'
    OUT_OF_WINDOW = 'out_of_window'
    MANUAL = 'manual'

    ALL = (ON_TIME, LATE, OUT_OF_WINDOW, MANUAL)


class AttendanceRecord(BaseModel):
    __tablename__ = 'attendance_record'

    subject_id = db.Column(db.String(50), nullable=False)
    full_name = db.Column(db.String(160), nullable=False)
    grade = db.Column(db.String(10), nullable=False)
    group = db.Column('group_name', db.String(10), nullable=False)
    timestamp = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=AttendanceStatus.PRESENT)
    category = db.Column(db.String(20), nullable=False)

    __table_args__ = (
        # Day lookups on the scan path filter on both columns
        Index('idx_attendance_subject_timestamp', 'subject_id', 'timestamp'),
        Index('idx_attendance_timestamp', 'timestamp'),
    )

    def __repr__(self):
        return f'<AttendanceRecord {self.subject_id} {self.timestamp} {self.category}>'
