"""
Structured LLM Service.

Wraps an OpenAI-compatible chat endpoint (Gemini by default) with
structured outputs, used to score free-form exam answers.
"""
import logging
from typing import Optional, Type, TypeVar

from openai import OpenAI
from pydantic import BaseModel, Field

from ujian.config import settings
from ujian.errors import ExternalServiceDegraded
from ujian.services.prompt_management import get_prompt

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class FreeFormAssessment(BaseModel):
    score: float = Field(..., description="Score awarded for the student's answer")
    feedback: str = Field("", description="Brief feedback explaining the score")


class StructuredLLMService:
    """Service for generating structured outputs from LLMs."""

    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        # Single attempt per answer
        self.client = OpenAI(
            api_key=api_key,
            base_url=base_url or settings.ai_base_url,
            timeout=timeout if timeout is not None else settings.ai_timeout_seconds,
            max_retries=0,
        )
        self.model = model or settings.ai_model

    def generate_response(
        self,
        response_model: Type[T],
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.2,
        max_tokens: int = 1000
    ) -> T:
        """
        Generate a structured response ensuring it matches the Pydantic model.

        Raises ExternalServiceDegraded on any transport, timeout or parsing failure.
        """
        try:
            completion = self.client.chat.completions.parse(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                response_format=response_model,
                temperature=temperature,
                max_tokens=max_tokens
            )
            parsed = completion.choices[0].message.parsed
        except Exception as e:
            logger.warning("❌ Structured LLM generation error: %s", e)
            raise ExternalServiceDegraded(f"AI grading call failed: {e}") from e

        if parsed is None:
            raise ExternalServiceDegraded("Empty response from AI")
        return parsed

    def assess_answer(self, question_type: str, question: str, key_answer: Optional[str],
                      answer: str, max_points: float) -> FreeFormAssessment:
        """Score one free-form answer; the caller clamps and thresholds the result."""
        if key_answer:
            reference = f'Reference Answer: "{key_answer}"'
        else:
            reference = "No reference answer provided. Grade based on correctness and completeness."

        try:
            prompt = get_prompt(
                "free_form_grading",
                question_type=question_type,
                question=question,
                reference=reference,
                answer=answer,
                max_points=f"{max_points:g}",
            )
        except OSError as e:
            raise ExternalServiceDegraded(f"Grading prompt unavailable: {e}") from e
        return self.generate_response(
            response_model=FreeFormAssessment,
            system_prompt=prompt["system_prompt"],
            user_prompt=prompt["human_prompt"],
        )
