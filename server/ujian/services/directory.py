"""
Class/Exam Directory.

Aggregate-level operations on classes and exams with the ownership and
membership checks the rest of the system relies on.
"""
import logging
import math
import secrets
import string
from datetime import datetime
from typing import Callable, List, Optional, Union

from ujian.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ujian.models.user import UserRole
from ujian.schemas import (
    ClassCreate,
    ClassRecord,
    ClassUpdate,
    ExamCreate,
    ExamRecord,
    ExamSettings,
    ExamUpdate,
    JoinClassResponse,
    StudentExamView,
    UserPublic,
    UserRecord,
    student_question_view,
)
from ujian.storage import Gateway
from ujian.utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 8
INVITE_CODE_ATTEMPTS = 5


def generate_invite_code(length: int = INVITE_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def manages_class(user: UserRecord, classroom: Optional[ClassRecord]) -> bool:
    """Owners manage every class; teachers manage their own."""
    if user.role == UserRole.OWNER:
        return True
    return classroom is not None and user.role == UserRole.TEACHER and classroom.teacher_id == user.id


def is_member(user: UserRecord, classroom: Optional[ClassRecord]) -> bool:
    return classroom is not None and user.id in classroom.students


def exam_status(exam: ExamRecord, now: datetime) -> str:
    if now < exam.start_time:
        return "upcoming"
    if now > exam.end_time:
        return "completed"
    return "active"


def is_within_window(exam: ExamRecord, now: datetime) -> bool:
    return exam.start_time <= now <= exam.end_time


def student_exam_view(exam: ExamRecord, now: Optional[datetime] = None) -> StudentExamView:
    return StudentExamView(
        id=exam.id,
        class_id=exam.class_id,
        title=exam.title,
        description=exam.description,
        start_time=exam.start_time,
        end_time=exam.end_time,
        duration=exam.duration,
        questions=[student_question_view(q) for q in exam.questions],
        settings=exam.settings,
        status=exam_status(exam, now) if now is not None else None,
    )


class ClassDirectory:
    def __init__(self, gateway: Gateway):
        self.gateway = gateway

    def _get_or_404(self, class_id: str) -> ClassRecord:
        classroom = self.gateway.classes.get_by_id(class_id)
        if classroom is None:
            raise NotFound("Class not found")
        return classroom

    def _managed(self, user: UserRecord, class_id: str) -> ClassRecord:
        classroom = self._get_or_404(class_id)
        if not manages_class(user, classroom):
            raise Forbidden("Access denied")
        return classroom

    def create_class(self, teacher: UserRecord, data: ClassCreate) -> ClassRecord:
        values = {**data.model_dump(), "teacher_id": teacher.id, "students": [], "exams": []}
        for _ in range(INVITE_CODE_ATTEMPTS):
            code = generate_invite_code()
            if self.gateway.classes.find_by_invite_code(code) is not None:
                continue
            try:
                classroom = self.gateway.classes.create({**values, "invite_code": code})
            except Conflict:
                # Lost a race for the same code
                continue
            logger.info("🏫 Class %s created by %s (code %s)", classroom.name, teacher.username, code)
            return classroom
        raise Conflict("Could not generate a unique invite code, please retry")

    def list_classes(self, user: UserRecord) -> List[ClassRecord]:
        if user.role == UserRole.TEACHER:
            return self.gateway.classes.list({"teacher_id": user.id})
        if user.role == UserRole.STUDENT:
            return self.gateway.classes.list({"students": user.id})
        return self.gateway.classes.list()

    def get_class(self, user: UserRecord, class_id: str) -> ClassRecord:
        classroom = self._get_or_404(class_id)
        if not (manages_class(user, classroom) or is_member(user, classroom)):
            raise Forbidden("Access denied")
        return classroom

    def update_class(self, user: UserRecord, class_id: str, data: ClassUpdate) -> ClassRecord:
        self._managed(user, class_id)
        patch = data.model_dump(exclude_unset=True)
        for field in ("name", "subject"):
            if field in patch and not patch[field]:
                raise ValidationFailed(f"{field.capitalize()} cannot be empty")
        return self.gateway.classes.update(class_id, patch)

    def delete_class(self, user: UserRecord, class_id: str) -> None:
        self._managed(user, class_id)
        self.gateway.classes.delete(class_id)

    def join_class(self, student: UserRecord, invite_code: str) -> JoinClassResponse:
        classroom = self.gateway.classes.find_by_invite_code(invite_code)
        if classroom is None:
            raise NotFound("Invalid invite code")
        if not classroom.is_active:
            raise Conflict("This class is no longer active")
        if is_member(student, classroom):
            raise Conflict("You have already joined this class")

        updated = self.gateway.classes.enroll_student(classroom.id, student.id)
        logger.info("🎒 %s joined class %s", student.username, updated.name)
        return JoinClassResponse(message=f"Successfully joined {updated.name}", classroom=updated)

    def list_students(self, user: UserRecord, class_id: str) -> List[UserPublic]:
        classroom = self._managed(user, class_id)
        students = []
        for student_id in classroom.students:
            student = self.gateway.users.get_by_id(student_id)
            if student is not None:
                students.append(student.public())
        return students


class ExamDirectory:
    def __init__(self, gateway: Gateway, clock: Callable[[], datetime] = utcnow):
        self.gateway = gateway
        self.clock = clock

    def _get_or_404(self, exam_id: str) -> ExamRecord:
        exam = self.gateway.exams.get_by_id(exam_id)
        if exam is None:
            raise NotFound("Exam not found")
        return exam

    def _managed(self, user: UserRecord, exam_id: str) -> ExamRecord:
        exam = self._get_or_404(exam_id)
        if not manages_class(user, self.gateway.classes.get_by_id(exam.class_id)):
            raise Forbidden("Access denied")
        return exam

    @staticmethod
    def _check_window(start_time: datetime, end_time: datetime) -> None:
        if end_time <= start_time:
            raise ValidationFailed("End time must be after start time")

    def create_exam(self, user: UserRecord, data: ExamCreate) -> ExamRecord:
        classroom = self.gateway.classes.get_by_id(data.class_id)
        if classroom is None:
            raise NotFound("Class not found")
        if not manages_class(user, classroom):
            raise Forbidden("You can only create exams for your own classes")

        start_time = ensure_utc(data.start_time)
        end_time = ensure_utc(data.end_time)
        self._check_window(start_time, end_time)
        duration = data.duration or math.ceil((end_time - start_time).total_seconds() / 60)

        exam = self.gateway.exams.create({
            "class_id": data.class_id,
            "title": data.title,
            "description": data.description,
            "start_time": start_time,
            "end_time": end_time,
            "duration": duration,
            "questions": data.questions,
            "settings": data.settings or ExamSettings(),
            "is_published": False,
        })
        logger.info("📝 Exam %s created in class %s", exam.title, classroom.name)
        return exam

    def list_exams(self, user: UserRecord) -> List[Union[ExamRecord, StudentExamView]]:
        if user.role == UserRole.OWNER:
            return self.gateway.exams.list()
        if user.role == UserRole.TEACHER:
            class_ids = [c.id for c in self.gateway.classes.list({"teacher_id": user.id})]
            return self.gateway.exams.list({"class_id": class_ids})

        now = self.clock()
        exams = self.gateway.exams.list({"is_published": True, "class_id": list(user.classes)})
        return [student_exam_view(exam, now) for exam in exams]

    def get_exam(self, user: UserRecord, exam_id: str) -> Union[ExamRecord, StudentExamView]:
        exam = self._get_or_404(exam_id)
        classroom = self.gateway.classes.get_by_id(exam.class_id)
        if manages_class(user, classroom):
            return exam
        if user.role != UserRole.STUDENT or not is_member(user, classroom):
            raise Forbidden("Access denied")
        if not exam.is_published:
            raise NotFound("Exam not found")

        now = self.clock()
        if not is_within_window(exam, now):
            raise Conflict("Exam is not currently active")
        return student_exam_view(exam, now)

    def update_exam(self, user: UserRecord, exam_id: str, data: ExamUpdate) -> ExamRecord:
        exam = self._managed(user, exam_id)
        patch = data.model_dump(exclude_unset=True)
        for field in ("start_time", "end_time"):
            if patch.get(field) is not None:
                patch[field] = ensure_utc(patch[field])
        self._check_window(patch.get("start_time") or exam.start_time, patch.get("end_time") or exam.end_time)
        if "questions" in patch:
            patch["questions"] = data.questions
        if "settings" in patch:
            patch["settings"] = data.settings or ExamSettings()
        return self.gateway.exams.update(exam_id, {k: v for k, v in patch.items() if v is not None})

    def delete_exam(self, user: UserRecord, exam_id: str) -> None:
        self._managed(user, exam_id)
        self.gateway.exams.delete(exam_id)

    def publish_exam(self, user: UserRecord, exam_id: str) -> ExamRecord:
        self._managed(user, exam_id)
        exam = self.gateway.exams.update(exam_id, {"is_published": True})
        logger.info("📢 Exam %s published", exam.title)
        return exam
