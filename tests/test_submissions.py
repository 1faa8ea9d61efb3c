import threading
from datetime import timedelta

import pytest

from ujian.errors import Conflict, ExternalServiceDegraded, Forbidden, NotFound
from ujian.models.session import SubmissionStatus
from ujian.models.user import UserRole
from ujian.schemas import RawAnswer, UserCreate
from ujian.services.grading import GradingEngine
from ujian.services.submissions import SubmissionService
from ujian.utils import utcnow

from conftest import BarrierGrader, FakeGrader, FixedClock


def _answers():
    return [RawAnswer(question_index=0, answer=1), RawAnswer(question_index=1, answer="x")]


def test_start_is_allowed_at_window_edges(gateway, make_exam, enrolled_student):
    start = utcnow().replace(microsecond=0) + timedelta(minutes=5)
    exam = make_exam(start=start, end=start + timedelta(minutes=30))

    assert SubmissionService(gateway, clock=FixedClock(start)).start(exam.id, enrolled_student).status == "in_progress"


def test_start_is_allowed_at_end_time(gateway, make_exam, enrolled_student):
    start = utcnow().replace(microsecond=0) - timedelta(minutes=30)
    end = start + timedelta(minutes=30)
    exam = make_exam(start=start, end=end)

    submission = SubmissionService(gateway, clock=FixedClock(end)).start(exam.id, enrolled_student)
    assert submission.started_at == end


@pytest.mark.parametrize("offset", [timedelta(seconds=-1), timedelta(minutes=31)])
def test_start_outside_window_is_rejected(gateway, make_exam, enrolled_student, offset):
    start = utcnow().replace(microsecond=0) + timedelta(hours=1)
    exam = make_exam(start=start, end=start + timedelta(minutes=30))

    with pytest.raises(Conflict, match="not currently active"):
        SubmissionService(gateway, clock=FixedClock(start + offset)).start(exam.id, enrolled_student)


def test_start_requires_published_exam(gateway, make_exam, enrolled_student):
    exam = make_exam(publish=False)
    with pytest.raises(NotFound):
        SubmissionService(gateway).start(exam.id, enrolled_student)


def test_start_requires_enrollment(gateway, make_exam, student):
    exam = make_exam()
    with pytest.raises(Forbidden):
        SubmissionService(gateway).start(exam.id, student)


def test_start_returns_existing_in_progress_submission(gateway, make_exam, enrolled_student):
    exam = make_exam()
    service = SubmissionService(gateway)

    first = service.start(exam.id, enrolled_student)
    second = service.start(exam.id, enrolled_student)

    assert first.id == second.id
    assert len(gateway.submissions.list({"exam_id": exam.id})) == 1


def test_duplicate_row_is_blocked_by_unique_constraint(gateway, make_exam, enrolled_student):
    exam = make_exam()
    SubmissionService(gateway).start(exam.id, enrolled_student)

    with pytest.raises(Conflict):
        gateway.submissions.create({
            "exam_id": exam.id,
            "student_id": enrolled_student.id,
            "class_id": exam.class_id,
            "status": SubmissionStatus.IN_PROGRESS,
        })


def test_submit_scenario_with_ai_unavailable(gateway, make_exam, enrolled_student):
    exam = make_exam()
    engine = GradingEngine(FakeGrader(error=ExternalServiceDegraded("down")))
    service = SubmissionService(gateway, engine)
    submission = service.start(exam.id, enrolled_student)

    result = service.submit(submission.id, enrolled_student, _answers())

    assert (result.score, result.max_score, result.percentage) == (15, 20, 75.0)
    assert [a.score for a in result.answers] == [10, 5]
    assert [a.is_correct for a in result.answers] == [True, False]

    stored = gateway.submissions.get_by_id(submission.id)
    assert stored.status == SubmissionStatus.GRADED
    assert stored.submitted_at is not None and stored.graded_at is not None
    assert stored.percentage == pytest.approx(stored.total_score / stored.max_score * 100)


def test_submit_records_time_spent(gateway, make_exam, enrolled_student):
    exam = make_exam()
    started = utcnow().replace(microsecond=0)
    clock = FixedClock(started)
    service = SubmissionService(gateway, clock=clock)
    submission = service.start(exam.id, enrolled_student)

    clock.now = started + timedelta(seconds=90, milliseconds=700)
    service.submit(submission.id, enrolled_student, _answers())

    assert gateway.submissions.get_by_id(submission.id).time_spent == 90


def test_resubmission_is_rejected(gateway, make_exam, enrolled_student):
    exam = make_exam()
    service = SubmissionService(gateway)
    submission = service.start(exam.id, enrolled_student)
    service.submit(submission.id, enrolled_student, _answers())

    with pytest.raises(Conflict):
        service.submit(submission.id, enrolled_student, _answers())
    with pytest.raises(Conflict, match="already submitted"):
        service.start(exam.id, enrolled_student)


def test_stale_submit_loses_to_the_first_write(gateway, make_exam, enrolled_student):
    exam = make_exam()
    submission = SubmissionService(gateway).start(exam.id, enrolled_student)
    gateway.submissions.update(submission.id, {"status": SubmissionStatus.GRADED})

    with pytest.raises(Conflict):
        gateway.submissions.update(
            submission.id, {"total_score": 1}, expected={"status": SubmissionStatus.IN_PROGRESS}
        )


def test_concurrent_submits_grade_once(gateway, make_exam, enrolled_student):
    exam = make_exam()
    grader = BarrierGrader(parties=2)
    service = SubmissionService(gateway, GradingEngine(grader))
    submission = service.start(exam.id, enrolled_student)
    results = []

    def submit():
        try:
            service.submit(submission.id, enrolled_student, _answers())
            results.append("ok")
        except Conflict:
            results.append("conflict")

    threads = [threading.Thread(target=submit) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(results) == ["conflict", "ok"]
    assert len(grader.calls) == 2
    stored = gateway.submissions.get_by_id(submission.id)
    assert stored.status == "graded"
    assert stored.total_score == 18


def test_only_the_owner_can_submit(gateway, make_exam, enrolled_student, teacher):
    exam = make_exam()
    service = SubmissionService(gateway)
    submission = service.start(exam.id, enrolled_student)

    with pytest.raises(Forbidden):
        service.submit(submission.id, teacher, _answers())


def test_submission_visibility(gateway, make_exam, enrolled_student, teacher, admin):
    exam = make_exam()
    service = SubmissionService(gateway)
    submission = service.start(exam.id, enrolled_student)

    assert [s.id for s in service.list_for(enrolled_student)] == [submission.id]
    assert [s.id for s in service.list_for(teacher)] == [submission.id]
    assert [s.id for s in service.list_for_exam(teacher, exam.id)] == [submission.id]
    assert service.get_for(teacher, submission.id).id == submission.id

    other = admin.create_user(UserCreate(username="Budi", nisn="0099", role=UserRole.STUDENT))
    with pytest.raises(Forbidden):
        service.get_for(gateway.users.get_by_id(other.id), submission.id)
