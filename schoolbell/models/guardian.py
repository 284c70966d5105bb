# models/guardian.py
from schoolbell.extensions import db
from .base import BaseModel


class GuardianLink(BaseModel):
    """A guardian's scannable code, the student it picks up and where to notify."""

    __tablename__ = 'guardian_link'

    qr_code = db.Column(db.String(120), unique=True, nullable=False)
    student_enrollment_id = db.Column(db.String(50), nullable=False, index=True)
    full_name = db.Column(db.String(160), nullable=False)
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(10), nullable=True)
    channel_id = db.Column(db.String(80), nullable=True)  # WhatsApp group; falls back to the default group

    def __repr__(self):
        return f'<GuardianLink {self.qr_code} -> {self.student_enrollment_id}>'
