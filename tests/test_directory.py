from datetime import timedelta

import pytest

from ujian.errors import Conflict, Forbidden, NotFound, ValidationFailed
from ujian.models.user import UserRole
from ujian.schemas import ClassCreate, ClassUpdate, ExamCreate, ExamUpdate, UserCreate
from ujian.services import directory as directory_module
from ujian.services.directory import ClassDirectory, ExamDirectory, exam_status
from ujian.utils import utcnow

from conftest import FixedClock


@pytest.fixture
def other_teacher(gateway, admin):
    created = admin.create_user(UserCreate(username="Pak Joko", password="rahasia456", role=UserRole.TEACHER))
    return gateway.users.get_by_id(created.id)


def test_invite_code_collision_is_retried(gateway, teacher, classroom, monkeypatch):
    codes = iter([classroom.invite_code, "NEWCODE1"])
    monkeypatch.setattr(directory_module, "generate_invite_code", lambda: next(codes))

    created = ClassDirectory(gateway).create_class(teacher, ClassCreate(name="XII IPA 2", subject="Kimia"))
    assert created.invite_code == "NEWCODE1"


def test_join_twice_is_rejected(gateway, classroom, enrolled_student):
    with pytest.raises(Conflict, match="already joined"):
        ClassDirectory(gateway).join_class(enrolled_student, classroom.invite_code)


def test_join_response_names_the_class(gateway, classroom, student):
    response = ClassDirectory(gateway).join_class(student, classroom.invite_code)
    assert response.message == "Successfully joined XII IPA 1"
    assert response.classroom.students == [student.id]


def test_classes_are_scoped_by_role(gateway, teacher, classroom, other_teacher, enrolled_student):
    directory = ClassDirectory(gateway)
    assert directory.list_classes(other_teacher) == []
    assert [c.id for c in directory.list_classes(enrolled_student)] == [classroom.id]

    with pytest.raises(Forbidden):
        directory.get_class(other_teacher, classroom.id)
    with pytest.raises(Forbidden):
        directory.update_class(other_teacher, classroom.id, ClassUpdate(name="Diambil"))
    assert [s.id for s in directory.list_students(teacher, classroom.id)] == [enrolled_student.id]


def test_exam_duration_defaults_to_window_length(make_exam):
    exam = make_exam()
    assert exam.duration == 120


def test_exam_window_must_be_positive(gateway, teacher, classroom, two_question_payload):
    now = utcnow()
    with pytest.raises(ValidationFailed):
        ExamDirectory(gateway).create_exam(teacher, ExamCreate(
            class_id=classroom.id, title="T", start_time=now, end_time=now, questions=two_question_payload,
        ))


def test_only_owning_teacher_manages_exams(gateway, make_exam, other_teacher):
    exam = make_exam()
    directory = ExamDirectory(gateway)
    with pytest.raises(Forbidden):
        directory.update_exam(other_teacher, exam.id, ExamUpdate(title="X"))
    with pytest.raises(Forbidden):
        directory.publish_exam(other_teacher, exam.id)


def test_update_exam_rejects_inverted_window(gateway, make_exam, teacher):
    exam = make_exam()
    with pytest.raises(ValidationFailed):
        ExamDirectory(gateway).update_exam(teacher, exam.id, ExamUpdate(end_time=exam.start_time - timedelta(minutes=1)))


def test_student_sees_exam_only_when_published_and_open(gateway, make_exam, enrolled_student):
    start = utcnow().replace(microsecond=0) + timedelta(hours=2)
    upcoming = make_exam(start=start, end=start + timedelta(hours=1))
    draft = make_exam(publish=False)

    with pytest.raises(Conflict):
        ExamDirectory(gateway).get_exam(enrolled_student, upcoming.id)
    with pytest.raises(NotFound):
        ExamDirectory(gateway).get_exam(enrolled_student, draft.id)

    view = ExamDirectory(gateway, clock=FixedClock(start)).get_exam(enrolled_student, upcoming.id)
    assert view.status == "active"
    assert all("correct_answer" not in q and "key_answer" not in q for q in view.questions)


def test_student_listing_labels_and_filters(gateway, make_exam, enrolled_student):
    make_exam(publish=False)
    published = make_exam()

    listed = ExamDirectory(gateway).list_exams(enrolled_student)
    assert [e.id for e in listed] == [published.id]
    assert listed[0].status == "active"


def test_exam_status_labels(make_exam):
    exam = make_exam()
    assert exam_status(exam, exam.start_time - timedelta(seconds=1)) == "upcoming"
    assert exam_status(exam, exam.start_time) == "active"
    assert exam_status(exam, exam.end_time) == "active"
    assert exam_status(exam, exam.end_time + timedelta(seconds=1)) == "completed"
