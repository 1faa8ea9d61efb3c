from pydantic import BaseModel, Field, StrictInt, StrictStr, field_validator, model_validator
from typing import Annotated, Optional, List, Dict, Union, Literal, Any
from datetime import datetime
from ujian.models.user import UserRole
from ujian.models.session import SubmissionStatus
from ujian.utils import ensure_utc


class Record(BaseModel):
    """Base for stored aggregates. Datetimes are always UTC-aware."""

    class Config:
        from_attributes = True

    @field_validator("*")
    @classmethod
    def _utc_datetimes(cls, value):
        if isinstance(value, datetime):
            return ensure_utc(value)
        return value


# Question Schemas
class MultipleChoiceQuestion(BaseModel):
    type: Literal["multiple_choice"] = "multiple_choice"
    question: str
    options: List[str] = Field(..., min_length=2)
    correct_answer: int = Field(..., ge=0)  # 0-based index
    points: float = Field(10, gt=0)

    @model_validator(mode="after")
    def _correct_answer_in_range(self):
        if self.correct_answer >= len(self.options):
            raise ValueError("correct_answer must index one of the options")
        return self


class FreeFormQuestion(BaseModel):
    type: Literal["essay", "math", "coding"]
    question: str
    key_answer: Optional[str] = None
    points: float = Field(10, gt=0)


Question = Annotated[Union[MultipleChoiceQuestion, FreeFormQuestion], Field(discriminator="type")]

# Fields a student must never see
ANSWER_KEY_FIELDS = {"key_answer", "correct_answer"}


def student_question_view(question: Union[MultipleChoiceQuestion, FreeFormQuestion]) -> Dict[str, Any]:
    return question.model_dump(mode="json", exclude=ANSWER_KEY_FIELDS)


class ExamSettings(BaseModel):
    shuffle_questions: bool = True
    shuffle_options: bool = True
    show_results: bool = True
    allow_review: bool = True


# Answer Schemas
class RawAnswer(BaseModel):
    """Answer as sent by the client: option index for multiple choice, text otherwise."""
    question_index: int = Field(..., ge=0)
    answer: Union[StrictInt, StrictStr, None] = None


class GradedAnswer(BaseModel):
    question_index: int
    question_type: str
    answer: Union[int, str, None] = None
    is_correct: bool = False
    score: float = 0
    ai_feedback: str = ""


# Stored records
class UserRecord(Record):
    id: str
    username: str
    email: Optional[str] = None
    role: UserRole
    password_hash: Optional[str] = None
    nisn: Optional[str] = None
    classes: List[str] = []
    last_active: Optional[datetime] = None
    is_online: bool = False
    is_suspended: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def public(self) -> "UserPublic":
        return UserPublic.model_validate(self.model_dump(exclude={"password_hash"}))

    def summary(self) -> "UserSummary":
        return UserSummary(id=self.id, username=self.username, email=self.email, role=self.role, nisn=self.nisn)


class ClassRecord(Record):
    id: str
    name: str
    subject: str
    grade: Optional[str] = None
    description: Optional[str] = None
    teacher_id: str
    invite_code: str
    students: List[str] = []
    exams: List[str] = []
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ExamRecord(Record):
    id: str
    class_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    questions: List[Question] = []
    is_published: bool = False
    settings: ExamSettings = ExamSettings()
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SubmissionRecord(Record):
    id: str
    exam_id: str
    student_id: str
    class_id: str
    answers: List[GradedAnswer] = []
    total_score: float = 0
    max_score: float = 0
    percentage: float = 0
    status: SubmissionStatus = SubmissionStatus.IN_PROGRESS
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    graded_at: Optional[datetime] = None
    time_spent: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class SettingsRecord(Record):
    id: str = "global"
    gemini_api_key: str = ""
    database_url: str = ""
    app_name: str = "Web Ujian AI"
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# User Schemas
class UserSummary(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    role: UserRole
    nisn: Optional[str] = None


class UserPublic(Record):
    id: str
    username: str
    email: Optional[str] = None
    role: UserRole
    nisn: Optional[str] = None
    classes: List[str] = []
    last_active: Optional[datetime] = None
    is_online: bool = False
    is_suspended: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserCreate(BaseModel):
    username: str = Field(..., min_length=1)
    email: Optional[str] = None
    password: Optional[str] = None
    role: UserRole
    nisn: Optional[str] = None


class UserUpdate(BaseModel):
    username: Optional[str] = None
    email: Optional[str] = None
    nisn: Optional[str] = None
    is_suspended: Optional[bool] = None


class SuspendResponse(BaseModel):
    message: str
    user: UserPublic


# Auth Schemas
class LoginRequest(BaseModel):
    username: Optional[str] = None
    password: Optional[str] = None
    nisn: Optional[str] = None
    role: UserRole


class LoginResponse(BaseModel):
    token: str
    user: UserSummary


# Class Schemas
class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1)
    subject: str = Field(..., min_length=1)
    grade: Optional[str] = None
    description: Optional[str] = None


class ClassUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    grade: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class JoinClassRequest(BaseModel):
    invite_code: str = Field(..., min_length=1)


class JoinClassResponse(BaseModel):
    message: str
    classroom: ClassRecord = Field(..., alias="class")

    class Config:
        populate_by_name = True


# Exam Schemas
class ExamCreate(BaseModel):
    class_id: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: Optional[int] = Field(None, gt=0)  # Minutes; derived from the window if omitted
    questions: List[Question] = Field(..., min_length=1)
    settings: Optional[ExamSettings] = None


class ExamUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[int] = Field(None, gt=0)
    questions: Optional[List[Question]] = Field(None, min_length=1)
    settings: Optional[ExamSettings] = None
    is_published: Optional[bool] = None


class StudentExamView(Record):
    """Exam as shown to a student: no answer keys."""
    id: str
    class_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    duration: int
    questions: List[Dict[str, Any]] = []
    settings: ExamSettings = ExamSettings()
    status: Optional[Literal["upcoming", "active", "completed"]] = None


class PublishResponse(BaseModel):
    message: str
    exam: ExamRecord


# Submission Schemas
class SubmissionStart(BaseModel):
    exam_id: str


class SubmissionSubmit(BaseModel):
    submission_id: str
    answers: List[RawAnswer]


class SubmitResult(BaseModel):
    submission_id: str
    score: float
    max_score: float
    percentage: float
    answers: List[GradedAnswer]


# Settings Schemas
class SettingsUpdate(BaseModel):
    gemini_api_key: Optional[str] = None
    database_url: Optional[str] = None
    app_name: Optional[str] = None


class SettingsResponse(SettingsRecord):
    current_storage_mode: str


class SettingsSaved(BaseModel):
    success: bool = True
    message: str
    settings: SettingsRecord


class TestDatabaseRequest(BaseModel):
    database_url: str = Field(..., min_length=1)


class TestDatabaseResponse(BaseModel):
    success: bool
    mode: str
    message: str


# Presence Schemas
class OnlineStatus(Record):
    id: str
    username: str
    nisn: Optional[str] = None
    is_online: bool
    last_active: Optional[datetime] = None


class ExamProgress(Record):
    submission_id: str
    student_id: str
    student_name: str
    exam_id: str
    exam_title: str
    started_at: Optional[datetime] = None
    answered_count: int = 0


class MessageResponse(BaseModel):
    message: str
