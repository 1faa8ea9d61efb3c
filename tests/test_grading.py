import math

import pytest

from ujian.errors import ExternalServiceDegraded, ValidationFailed
from ujian.schemas import FreeFormQuestion, MultipleChoiceQuestion, RawAnswer
from ujian.services.grading import (
    NOT_CONFIGURED_FEEDBACK,
    UNANSWERED_FEEDBACK,
    UNAVAILABLE_FEEDBACK,
    GradingEngine,
    summarize,
)

from conftest import FakeGrader


def _questions():
    return [
        MultipleChoiceQuestion(question="2 + 2 = ?", options=["3", "4", "5"], correct_answer=1, points=10),
        FreeFormQuestion(type="essay", question="Jelaskan fotosintesis.", points=10),
    ]


def _answers(mc=1, essay="x"):
    return [RawAnswer(question_index=0, answer=mc), RawAnswer(question_index=1, answer=essay)]


def test_multiple_choice_is_deterministic():
    engine = GradingEngine()
    first = engine.grade(_questions()[:1], [RawAnswer(question_index=0, answer=1)])
    second = engine.grade(_questions()[:1], [RawAnswer(question_index=0, answer=1)])
    assert first == second
    assert first[0].score == 10
    assert first[0].is_correct is True
    assert first[0].ai_feedback == "Correct!"


def test_multiple_choice_wrong_answer_scores_zero():
    grader = FakeGrader(score=10)
    graded = GradingEngine(grader).grade(_questions()[:1], [RawAnswer(question_index=0, answer=2)])
    assert graded[0].score == 0
    assert graded[0].is_correct is False
    assert graded[0].ai_feedback == "Incorrect"
    assert grader.calls == []


def test_unavailable_ai_gives_half_credit():
    graded = GradingEngine(FakeGrader(error=ExternalServiceDegraded("timeout"))).grade(_questions(), _answers())
    summary = summarize(_questions(), graded)

    assert graded[0].score == 10 and graded[0].is_correct
    assert graded[1].score == 5
    assert graded[1].is_correct is False
    assert graded[1].ai_feedback == UNAVAILABLE_FEEDBACK
    assert (summary.total_score, summary.max_score, summary.percentage) == (15, 20, 75.0)


def test_missing_credential_falls_back_without_a_call():
    graded = GradingEngine(None).grade(_questions(), _answers())
    assert graded[1].score == 5
    assert graded[1].ai_feedback == NOT_CONFIGURED_FEEDBACK


@pytest.mark.parametrize("ai_score, expected", [(-3, 0.0), (25, 10.0), (7.5, 7.5)])
def test_ai_scores_are_clamped(ai_score, expected):
    graded = GradingEngine(FakeGrader(score=ai_score)).grade(_questions(), _answers())
    assert graded[1].score == expected


@pytest.mark.parametrize("ai_score, passed", [(6, True), (5.99, False), (10, True), (0, False)])
def test_passing_threshold_is_sixty_percent(ai_score, passed):
    graded = GradingEngine(FakeGrader(score=ai_score)).grade(_questions(), _answers())
    assert graded[1].is_correct is passed


@pytest.mark.parametrize("grader", [FakeGrader(score=None), FakeGrader(score=math.nan), FakeGrader(score=math.inf)])
def test_unusable_ai_payload_falls_back(grader):
    graded = GradingEngine(grader).grade(_questions(), _answers())
    assert graded[1].score == 5
    assert graded[1].ai_feedback == UNAVAILABLE_FEEDBACK


def test_grader_receives_question_and_reference():
    grader = FakeGrader(score=8)
    questions = [FreeFormQuestion(type="math", question="1 + 1", key_answer="2", points=4)]
    GradingEngine(grader).grade(questions, [RawAnswer(question_index=0, answer="2")])
    assert grader.calls == [("math", "1 + 1", "2", "2", 4)]


def test_unanswered_questions_score_zero_without_ai_call():
    grader = FakeGrader(score=10)
    graded = GradingEngine(grader).grade(_questions(), [])
    assert [g.score for g in graded] == [0, 0]
    assert all(g.ai_feedback == UNANSWERED_FEEDBACK for g in graded)
    assert grader.calls == []


def test_one_graded_entry_per_question_in_order():
    graded = GradingEngine(FakeGrader(score=9)).grade(_questions(), list(reversed(_answers())))
    assert [g.question_index for g in graded] == [0, 1]
    assert [g.question_type for g in graded] == ["multiple_choice", "essay"]


@pytest.mark.parametrize("answers", [
    [RawAnswer(question_index=5, answer=1)],
    [RawAnswer(question_index=0, answer=1), RawAnswer(question_index=0, answer=2)],
    [RawAnswer(question_index=0, answer="B")],
    [RawAnswer(question_index=1, answer=3)],
])
def test_malformed_answers_are_rejected(answers):
    with pytest.raises(ValidationFailed):
        GradingEngine().grade(_questions(), answers)


def test_percentage_is_zero_without_points():
    summary = summarize([], [])
    assert summary.percentage == 0.0
    assert summary.max_score == 0
