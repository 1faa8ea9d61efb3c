import os
import threading
from datetime import timedelta

import pytest

os.environ.setdefault("SECRET_KEY", "test-secret-key")

from ujian.database import StorageBackend
from ujian.models.user import UserRole
from ujian.schemas import ClassCreate, ExamCreate, UserCreate
from ujian.services.directory import ClassDirectory, ExamDirectory
from ujian.services.users import UserAdmin
from ujian.storage import Gateway
from ujian.utils import utcnow


class FakeAssessment:
    def __init__(self, score, feedback="Looks good"):
        self.score = score
        self.feedback = feedback


class FakeGrader:
    """Stands in for the AI grader; records every call it receives."""

    def __init__(self, score=None, error=None):
        self.score = score
        self.error = error
        self.calls = []

    def assess_answer(self, question_type, question, key_answer, answer, max_points):
        self.calls.append((question_type, question, key_answer, answer, max_points))
        if self.error is not None:
            raise self.error
        if self.score is None:
            return None
        return FakeAssessment(self.score)


class BarrierGrader(FakeGrader):
    """Holds every caller until `parties` of them are grading at once."""

    def __init__(self, parties, score=8):
        super().__init__(score=score)
        self.barrier = threading.Barrier(parties, timeout=5)

    def assess_answer(self, *args):
        self.barrier.wait()
        return super().assess_answer(*args)


class FixedClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def remote_backend(tmp_path):
    backend = StorageBackend(f"sqlite:///{tmp_path / 'ujian.db'}", str(tmp_path / "local"))
    backend.connect()
    assert backend.is_remote
    yield backend
    backend.close()


@pytest.fixture
def local_backend(tmp_path):
    backend = StorageBackend("", str(tmp_path / "local"))
    backend.connect()
    return backend


@pytest.fixture
def gateway(remote_backend):
    return Gateway(remote_backend)


@pytest.fixture
def admin(gateway):
    return UserAdmin(gateway)


@pytest.fixture
def teacher(gateway, admin):
    created = admin.create_user(UserCreate(username="Bu Sari", password="rahasia123", role=UserRole.TEACHER))
    return gateway.users.get_by_id(created.id)


@pytest.fixture
def student(gateway, admin):
    created = admin.create_user(UserCreate(username="Andi", nisn="0012345678", role=UserRole.STUDENT))
    return gateway.users.get_by_id(created.id)


@pytest.fixture
def classroom(gateway, teacher):
    return ClassDirectory(gateway).create_class(teacher, ClassCreate(name="XII IPA 1", subject="Biologi"))


@pytest.fixture
def enrolled_student(gateway, classroom, student):
    ClassDirectory(gateway).join_class(student, classroom.invite_code)
    return gateway.users.get_by_id(student.id)


@pytest.fixture
def two_question_payload():
    return [
        {"type": "multiple_choice", "question": "2 + 2 = ?", "options": ["3", "4", "5"], "correct_answer": 1, "points": 10},
        {"type": "essay", "question": "Jelaskan fotosintesis.", "key_answer": "Cahaya menjadi energi kimia", "points": 10},
    ]


@pytest.fixture
def make_exam(gateway, teacher, classroom, two_question_payload):
    def _make(start=None, end=None, publish=True, questions=None):
        now = utcnow()
        directory = ExamDirectory(gateway)
        exam = directory.create_exam(teacher, ExamCreate(
            class_id=classroom.id,
            title="Ulangan Harian",
            start_time=start or now - timedelta(hours=1),
            end_time=end or now + timedelta(hours=1),
            questions=questions or two_question_payload,
        ))
        if publish:
            exam = directory.publish_exam(teacher, exam.id)
        return exam

    return _make
