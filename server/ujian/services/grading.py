"""
Grading Engine.

Scores a student's answers against an exam's questions:
- multiple_choice: deterministic index comparison, no external call
- essay / math / coding: AI assessment through the structured LLM service,
  with a partial-credit fallback whenever the AI cannot score the answer

Essay-type grading is not idempotent: the AI may score the same answer
differently across calls.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Protocol, Sequence, Union

from ujian.errors import ExternalServiceDegraded, ValidationFailed
from ujian.schemas import (
    FreeFormQuestion,
    GradedAnswer,
    MultipleChoiceQuestion,
    RawAnswer,
)

logger = logging.getLogger(__name__)

# Fixed scoring constants
PARTIAL_CREDIT_RATIO = 0.5
PASSING_RATIO = 0.6

MANUAL_REVIEW_NOTE = "Unscored by AI, needs manual review."
NOT_CONFIGURED_FEEDBACK = f"AI grading not configured. {MANUAL_REVIEW_NOTE}"
UNAVAILABLE_FEEDBACK = f"Auto-grading unavailable. {MANUAL_REVIEW_NOTE}"
UNANSWERED_FEEDBACK = "No answer submitted."

AnyQuestion = Union[MultipleChoiceQuestion, FreeFormQuestion]


@dataclass(frozen=True)
class MultipleChoiceAnswer:
    index: Optional[int]  # None means no option selected


@dataclass(frozen=True)
class FreeTextAnswer:
    text: str


ParsedAnswer = Union[MultipleChoiceAnswer, FreeTextAnswer]


class FreeFormGrader(Protocol):
    def assess_answer(self, question_type: str, question: str, key_answer: Optional[str],
                      answer: str, max_points: float): ...


@dataclass(frozen=True)
class GradeSummary:
    total_score: float
    max_score: float
    percentage: float


def parse_answers(questions: Sequence[AnyQuestion], raw_answers: Sequence[RawAnswer]) -> Dict[int, ParsedAnswer]:
    """Turn raw client answers into typed answers keyed by question index."""
    parsed: Dict[int, ParsedAnswer] = {}
    for raw in raw_answers:
        index = raw.question_index
        if index >= len(questions):
            raise ValidationFailed(f"Answer refers to unknown question {index}")
        if index in parsed:
            raise ValidationFailed(f"Question {index} answered more than once")

        question = questions[index]
        if isinstance(question, MultipleChoiceQuestion):
            if raw.answer is not None and not isinstance(raw.answer, int):
                raise ValidationFailed(f"Question {index} expects an option index")
            parsed[index] = MultipleChoiceAnswer(raw.answer)
        else:
            if raw.answer is not None and not isinstance(raw.answer, str):
                raise ValidationFailed(f"Question {index} expects a text answer")
            parsed[index] = FreeTextAnswer(raw.answer or "")
    return parsed


def summarize(questions: Sequence[AnyQuestion], graded: Sequence[GradedAnswer]) -> GradeSummary:
    total_score = sum(answer.score for answer in graded)
    max_score = sum(question.points for question in questions)
    percentage = (total_score / max_score * 100) if max_score > 0 else 0.0
    return GradeSummary(total_score=total_score, max_score=max_score, percentage=percentage)


class GradingEngine:
    """Per-question-type scoring. ``grader`` is None when no AI credential is configured."""

    def __init__(self, grader: Optional[FreeFormGrader] = None):
        self.grader = grader

    def grade(self, questions: Sequence[AnyQuestion], answers: Sequence[RawAnswer]) -> List[GradedAnswer]:
        parsed = parse_answers(questions, answers)
        graded = []
        for index, question in enumerate(questions):
            answer = parsed.get(index)
            if answer is None:
                graded.append(GradedAnswer(
                    question_index=index,
                    question_type=question.type,
                    ai_feedback=UNANSWERED_FEEDBACK,
                ))
            elif isinstance(answer, MultipleChoiceAnswer):
                graded.append(self._grade_multiple_choice(index, question, answer))
            else:
                graded.append(self._grade_free_form(index, question, answer))
        return graded

    @staticmethod
    def _grade_multiple_choice(index: int, question: MultipleChoiceQuestion,
                               answer: MultipleChoiceAnswer) -> GradedAnswer:
        is_correct = answer.index == question.correct_answer
        return GradedAnswer(
            question_index=index,
            question_type=question.type,
            answer=answer.index,
            is_correct=is_correct,
            score=question.points if is_correct else 0,
            ai_feedback="Correct!" if is_correct else "Incorrect",
        )

    def _grade_free_form(self, index: int, question: FreeFormQuestion, answer: FreeTextAnswer) -> GradedAnswer:
        if self.grader is None:
            return self._partial_credit(index, question, answer, NOT_CONFIGURED_FEEDBACK)

        try:
            result = self.grader.assess_answer(
                question.type, question.question, question.key_answer, answer.text, question.points
            )
            if result is None or not math.isfinite(result.score):
                raise ExternalServiceDegraded("AI returned no usable score")
        except ExternalServiceDegraded as e:
            logger.warning("⚠️ AI grading failed for question %s, awarding partial credit: %s", index, e)
            return self._partial_credit(index, question, answer, UNAVAILABLE_FEEDBACK)

        score = min(max(float(result.score), 0.0), question.points)
        return GradedAnswer(
            question_index=index,
            question_type=question.type,
            answer=answer.text,
            is_correct=score >= question.points * PASSING_RATIO,
            score=score,
            ai_feedback=result.feedback or "No feedback available.",
        )

    @staticmethod
    def _partial_credit(index: int, question: FreeFormQuestion, answer: FreeTextAnswer,
                        feedback: str) -> GradedAnswer:
        score = question.points * PARTIAL_CREDIT_RATIO
        return GradedAnswer(
            question_index=index,
            question_type=question.type,
            answer=answer.text,
            is_correct=score >= question.points * PASSING_RATIO,
            score=score,
            ai_feedback=feedback,
        )
