from sqlalchemy import Column, String, DateTime, Boolean, JSON
from ujian.database import Base
from ujian.utils import new_id, utcnow
import enum


class UserRole(str, enum.Enum):
    OWNER = "owner"
    TEACHER = "teacher"
    STUDENT = "student"


PRIVILEGED_ROLES = (UserRole.OWNER, UserRole.TEACHER)


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    username = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    role = Column(String, nullable=False, index=True)
    password_hash = Column(String, nullable=True)  # owner/teacher only
    nisn = Column(String, nullable=True, unique=True)  # students only
    classes = Column(JSON, nullable=False, default=list)  # class ids
    last_active = Column(DateTime(timezone=True), default=utcnow)
    is_online = Column(Boolean, nullable=False, default=False)
    is_suspended = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)

    def __repr__(self):
        return f"<User {self.username} ({self.role})>"
