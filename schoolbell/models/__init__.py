# models/__init__.py
from .base import BaseModel
from .user import User
from .student import Student
from .guardian import GuardianLink
from .attendance import AttendanceRecord, AttendanceStatus, AttendanceCategory

__all__ = [
    'BaseModel',
    'User',
    'Student',
    'GuardianLink',
    'AttendanceRecord',
    'AttendanceStatus',
    'AttendanceCategory'
]
