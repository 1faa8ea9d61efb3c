from sqlalchemy import Column, String, Text, DateTime, Integer, Float, JSON, UniqueConstraint
from ujian.database import Base
from ujian.utils import new_id, utcnow
import enum


class SubmissionStatus(str, enum.Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTED = "submitted"
    GRADED = "graded"


TERMINAL_STATUSES = (SubmissionStatus.SUBMITTED, SubmissionStatus.GRADED)


class Submission(Base):
    """One student's attempt at one exam"""
    __tablename__ = "submissions"
    __table_args__ = (
        # Guards concurrent starts for the same (exam, student)
        UniqueConstraint("exam_id", "student_id", name="uq_submission_exam_student"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    exam_id = Column(String(32), nullable=False, index=True)
    student_id = Column(String(32), nullable=False, index=True)
    class_id = Column(String(32), nullable=False, index=True)
    answers = Column(JSON, nullable=False, default=list)  # graded answers
    total_score = Column(Float, nullable=False, default=0)
    max_score = Column(Float, nullable=False, default=0)
    percentage = Column(Float, nullable=False, default=0)
    status = Column(String, nullable=False, default=SubmissionStatus.IN_PROGRESS.value, index=True)
    started_at = Column(DateTime(timezone=True), default=utcnow)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    graded_at = Column(DateTime(timezone=True), nullable=True)
    time_spent = Column(Integer, nullable=False, default=0)  # Seconds
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class AppSettings(Base):
    """Singleton row with owner-managed settings"""
    __tablename__ = "settings"

    id = Column(String(32), primary_key=True, default="global")
    gemini_api_key = Column(Text, nullable=False, default="")
    database_url = Column(Text, nullable=False, default="")
    app_name = Column(String, nullable=False, default="Web Ujian AI")
    updated_by = Column(String(32), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
