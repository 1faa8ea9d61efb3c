"""
Presence tracking: heartbeats, online status and live exam progress.

Clients poll these endpoints; there is no push channel.
"""
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ujian.models.session import SubmissionStatus
from ujian.models.user import UserRole
from ujian.schemas import ExamProgress, OnlineStatus, UserRecord
from ujian.services.directory import manages_class
from ujian.storage import Gateway
from ujian.utils import ensure_utc, utcnow


class PresenceService:
    def __init__(self, gateway: Gateway, online_threshold_seconds: int = 30,
                 clock: Callable[[], datetime] = utcnow):
        self.gateway = gateway
        self.threshold = timedelta(seconds=online_threshold_seconds)
        self.clock = clock

    def heartbeat(self, user: UserRecord) -> None:
        self.gateway.users.update(user.id, {"last_active": self.clock(), "is_online": True})

    def is_online(self, user: UserRecord, now: datetime) -> bool:
        if not user.is_online or user.last_active is None:
            return False
        return now - ensure_utc(user.last_active) < self.threshold

    def online_status(self, class_id: Optional[str] = None) -> List[OnlineStatus]:
        filters = {"role": UserRole.STUDENT}
        if class_id:
            filters["classes"] = class_id
        now = self.clock()
        return [
            OnlineStatus(
                id=student.id,
                username=student.username,
                nisn=student.nisn,
                is_online=self.is_online(student, now),
                last_active=student.last_active,
            )
            for student in self.gateway.users.list(filters)
        ]

    def exam_progress(self, user: UserRecord, exam_id: Optional[str] = None) -> List[ExamProgress]:
        filters = {"status": SubmissionStatus.IN_PROGRESS}
        if exam_id:
            filters["exam_id"] = exam_id

        progress = []
        exams, classes, students = {}, {}, {}
        for submission in self.gateway.submissions.list(filters):
            if submission.class_id not in classes:
                classes[submission.class_id] = self.gateway.classes.get_by_id(submission.class_id)
            if not manages_class(user, classes[submission.class_id]):
                continue
            if submission.exam_id not in exams:
                exams[submission.exam_id] = self.gateway.exams.get_by_id(submission.exam_id)
            if submission.student_id not in students:
                students[submission.student_id] = self.gateway.users.get_by_id(submission.student_id)

            exam = exams[submission.exam_id]
            student = students[submission.student_id]
            progress.append(ExamProgress(
                submission_id=submission.id,
                student_id=submission.student_id,
                student_name=student.username if student else "Unknown",
                exam_id=submission.exam_id,
                exam_title=exam.title if exam else "Unknown",
                started_at=submission.started_at,
                answered_count=len(submission.answers),
            ))
        return progress
