"""
Submission State Machine.

    in_progress --submit--> graded

Grading runs inside the submit request, so ``submitted`` and ``graded`` are
reached in the same write. Both are terminal.
"""
import logging
import math
from datetime import datetime
from typing import Callable, List, Optional, Sequence

from ujian.errors import Conflict, Forbidden, NotFound
from ujian.models.session import SubmissionStatus, TERMINAL_STATUSES
from ujian.models.user import UserRole
from ujian.schemas import ExamRecord, RawAnswer, SubmissionRecord, SubmitResult, UserRecord
from ujian.services.directory import is_member, is_within_window, manages_class
from ujian.services.grading import GradingEngine, summarize
from ujian.storage import Gateway
from ujian.utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


class SubmissionService:
    def __init__(self, gateway: Gateway, engine: Optional[GradingEngine] = None,
                 clock: Callable[[], datetime] = utcnow):
        self.gateway = gateway
        self.engine = engine or GradingEngine()
        self.clock = clock

    def _find_existing(self, exam_id: str, student_id: str) -> Optional[SubmissionRecord]:
        existing = self.gateway.submissions.list({"exam_id": exam_id, "student_id": student_id})
        return existing[0] if existing else None

    def start(self, exam_id: str, student: UserRecord) -> SubmissionRecord:
        exam = self.gateway.exams.get_by_id(exam_id)
        if exam is None or not exam.is_published:
            raise NotFound("Exam not found")
        if not is_member(student, self.gateway.classes.get_by_id(exam.class_id)):
            raise Forbidden("You are not enrolled in this exam's class")

        now = self.clock()
        if not is_within_window(exam, now):
            raise Conflict("Exam is not currently active")

        existing = self._find_existing(exam.id, student.id)
        if existing is None:
            try:
                submission = self.gateway.submissions.create({
                    "exam_id": exam.id,
                    "student_id": student.id,
                    "class_id": exam.class_id,
                    "answers": [],
                    "status": SubmissionStatus.IN_PROGRESS,
                    "started_at": now,
                })
            except Conflict:
                # A concurrent start for the same pair won the insert
                existing = self._find_existing(exam.id, student.id)
                if existing is None:
                    raise
            else:
                logger.info("🚀 %s started exam %s", student.username, exam.title)
                return submission

        if existing.status in TERMINAL_STATUSES:
            raise Conflict("You have already submitted this exam")
        return existing

    def submit(self, submission_id: str, student: UserRecord, raw_answers: Sequence[RawAnswer]) -> SubmitResult:
        submission = self.gateway.submissions.get_by_id(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        if submission.student_id != student.id:
            raise Forbidden("Access denied")
        if submission.status in TERMINAL_STATUSES:
            raise Conflict("You have already submitted this exam")

        exam = self.gateway.exams.get_by_id(submission.exam_id)
        if exam is None:
            raise NotFound("Exam not found")

        graded = self.engine.grade(exam.questions, raw_answers)
        summary = summarize(exam.questions, graded)

        now = self.clock()
        started_at = ensure_utc(submission.started_at) if submission.started_at else now
        time_spent = max(0, math.floor((now - started_at).total_seconds()))

        self.gateway.submissions.update(
            submission.id,
            {
                "answers": graded,
                "total_score": summary.total_score,
                "max_score": summary.max_score,
                "percentage": summary.percentage,
                "status": SubmissionStatus.GRADED,
                "submitted_at": now,
                "graded_at": now,
                "time_spent": time_spent,
            },
            expected={"status": SubmissionStatus.IN_PROGRESS},
        )
        logger.info(
            "✅ %s submitted %s: %s/%s (%.2f%%)",
            student.username, exam.title, summary.total_score, summary.max_score, summary.percentage,
        )
        return SubmitResult(
            submission_id=submission.id,
            score=summary.total_score,
            max_score=summary.max_score,
            percentage=round(summary.percentage, 2),
            answers=graded,
        )

    def _exam_and_access(self, user: UserRecord, exam_id: str) -> ExamRecord:
        exam = self.gateway.exams.get_by_id(exam_id)
        if exam is None:
            raise NotFound("Exam not found")
        if not manages_class(user, self.gateway.classes.get_by_id(exam.class_id)):
            raise Forbidden("Access denied")
        return exam

    def list_for(self, user: UserRecord) -> List[SubmissionRecord]:
        if user.role == UserRole.STUDENT:
            return self.gateway.submissions.list({"student_id": user.id})
        if user.role == UserRole.TEACHER:
            class_ids = [c.id for c in self.gateway.classes.list({"teacher_id": user.id})]
            return self.gateway.submissions.list({"class_id": class_ids})
        return self.gateway.submissions.list()

    def get_for(self, user: UserRecord, submission_id: str) -> SubmissionRecord:
        submission = self.gateway.submissions.get_by_id(submission_id)
        if submission is None:
            raise NotFound("Submission not found")
        if submission.student_id == user.id:
            return submission
        if not manages_class(user, self.gateway.classes.get_by_id(submission.class_id)):
            raise Forbidden("Access denied")
        return submission

    def list_for_exam(self, user: UserRecord, exam_id: str) -> List[SubmissionRecord]:
        exam = self._exam_and_access(user, exam_id)
        return self.gateway.submissions.list({"exam_id": exam.id})
