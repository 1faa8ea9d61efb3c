"""
Models package initialization
Import all models here to ensure they are registered with SQLAlchemy
"""

from ujian.models.user import User, UserRole, PRIVILEGED_ROLES
from ujian.models.content import Classroom, Exam
from ujian.models.session import Submission, SubmissionStatus, AppSettings, TERMINAL_STATUSES

__all__ = [
    "User",
    "UserRole",
    "PRIVILEGED_ROLES",
    "Classroom",
    "Exam",
    "Submission",
    "SubmissionStatus",
    "AppSettings",
    "TERMINAL_STATUSES",
]
