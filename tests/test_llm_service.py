import httpx
import openai
import pytest

from ujian.errors import ExternalServiceDegraded
from ujian.schemas import FreeFormQuestion, RawAnswer
from ujian.services.grading import UNAVAILABLE_FEEDBACK, GradingEngine
from ujian.services.llm_service import FreeFormAssessment, StructuredLLMService
from ujian.services.prompt_management import get_prompt


class _FakeCompletions:
    def __init__(self, parsed=None, error=None):
        self.parsed = parsed
        self.error = error
        self.calls = []

    def parse(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error

        class _Msg:
            parsed = self.parsed

        class _Choice:
            message = _Msg()

        class _Resp:
            choices = [_Choice()]

        return _Resp()


class _FakeClient:
    def __init__(self, completions):
        self.chat = type("chat", (), {"completions": completions})()


def _service(monkeypatch, **kwargs):
    completions = _FakeCompletions(**kwargs)
    service = StructuredLLMService("test-key", model="test-model")
    monkeypatch.setattr(service, "client", _FakeClient(completions))
    return service, completions


def _assess(service, answer="Tumbuhan mengubah cahaya menjadi energi kimia"):
    return service.assess_answer("essay", "Jelaskan fotosintesis.", "Cahaya menjadi energi kimia", answer, 10)


def test_assessment_is_returned(monkeypatch):
    service, completions = _service(monkeypatch, parsed=FreeFormAssessment(score=7, feedback="Cukup"))

    result = _assess(service)

    assert result.score == 7
    assert result.feedback == "Cukup"
    call = completions.calls[0]
    assert call["model"] == "test-model"
    assert call["response_format"] is FreeFormAssessment


def test_prompt_is_fully_rendered(monkeypatch):
    service, completions = _service(monkeypatch, parsed=FreeFormAssessment(score=7))

    _assess(service, answer="def f(d): return {k: v for k, v in d.items()}")

    system, user = completions.calls[0]["messages"]
    assert system["role"] == "system"
    assert "between 0 and 10" in system["content"]
    assert "Jelaskan fotosintesis." in user["content"]
    assert 'Reference Answer: "Cahaya menjadi energi kimia"' in user["content"]
    assert "{k: v for k, v in d.items()}" in user["content"]
    for placeholder in ("{question_type}", "{question}", "{reference}", "{answer}", "{max_points}"):
        assert placeholder not in system["content"] + user["content"]


@pytest.mark.parametrize("error", [
    openai.APITimeoutError(request=httpx.Request("POST", "http://test")),
    openai.APIConnectionError(request=httpx.Request("POST", "http://test")),
    ValueError("malformed structured output"),
])
def test_call_failures_are_degraded(monkeypatch, error):
    service, _ = _service(monkeypatch, error=error)

    with pytest.raises(ExternalServiceDegraded, match="AI grading call failed"):
        _assess(service)


def test_empty_parse_is_degraded(monkeypatch):
    service, _ = _service(monkeypatch, parsed=None)

    with pytest.raises(ExternalServiceDegraded, match="Empty response"):
        _assess(service)


def test_engine_falls_back_when_the_service_times_out(monkeypatch):
    service, completions = _service(
        monkeypatch, error=openai.APITimeoutError(request=httpx.Request("POST", "http://test"))
    )
    question = FreeFormQuestion(type="essay", question="Jelaskan fotosintesis.", points=10)

    [graded] = GradingEngine(service).grade([question], [RawAnswer(question_index=0, answer="Cahaya")])

    assert len(completions.calls) == 1
    assert graded.score == 5.0
    assert graded.is_correct is False
    assert graded.ai_feedback == UNAVAILABLE_FEEDBACK


def test_get_prompt_without_reference():
    prompt = get_prompt(
        "free_form_grading",
        question_type="math",
        question="1 + 1 = ?",
        reference="No reference answer provided.",
        answer="2",
        max_points="5",
    )

    assert "Grade the following math answer." in prompt["human_prompt"]
    assert "No reference answer provided." in prompt["human_prompt"]
    assert "between 0 and 5" in prompt["system_prompt"]


def test_get_prompt_keeps_unknown_placeholders():
    prompt = get_prompt("free_form_grading", question_type="essay")

    assert "{question}" in prompt["human_prompt"]
