# models/student.py
from sqlalchemy import Index

from schoolbell.extensions import db
from .base import BaseModel


class Student(BaseModel):
    __tablename__ = 'student'

    enrollment_id = db.Column(db.String(50), unique=True, nullable=False)  # matrícula
    full_name = db.Column(db.String(160), nullable=False)
    grade = db.Column(db.String(10), nullable=False)
    group = db.Column('group_name', db.String(10), nullable=False)
    level = db.Column(db.String(40), nullable=True)
    qr_code = db.Column(db.String(120), nullable=True)

    __table_args__ = (
        Index('idx_student_grade_group', 'grade', 'group_name'),
    )

    def __repr__(self):
        return f'<Student {self.enrollment_id} {self.full_name}>'
