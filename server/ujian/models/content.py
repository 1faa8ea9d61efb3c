from sqlalchemy import Column, String, Text, DateTime, Integer, Boolean, JSON
from ujian.database import Base
from ujian.utils import new_id, utcnow


class Classroom(Base):
    """Class owned by a teacher; students join with the invite code"""
    __tablename__ = "classes"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    grade = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    teacher_id = Column(String(32), nullable=False, index=True)
    invite_code = Column(String(16), nullable=False, unique=True, index=True)
    students = Column(JSON, nullable=False, default=list)  # user ids
    exams = Column(JSON, nullable=False, default=list)  # exam ids
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class Exam(Base):
    """Timed exam belonging to one class"""
    __tablename__ = "exams"

    id = Column(String(32), primary_key=True, default=new_id)
    class_id = Column(String(32), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    duration = Column(Integer, nullable=False)  # Minutes
    questions = Column(JSON, nullable=False, default=list)
    is_published = Column(Boolean, nullable=False, default=False, index=True)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)
