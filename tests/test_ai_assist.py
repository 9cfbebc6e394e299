from __future__ import annotations

import json

import pytest
import requests

from app.core.errors import ProviderError
from app.schemas.ai import (
    UNAVAILABLE_MESSAGE,
    AnalyzePriorityIn,
    CheckDuplicatesIn,
    ExistingIssue,
    ImproveDescriptionIn,
    SuggestTitleIn,
)
from app.services import ai_assist
from app.services.ai_assist import IMPACT_SENTENCE, AssistGateway, GeminiProvider, strip_code_fences


class FakeProvider:
    def __init__(self, reply: str = "", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.prompts: list[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.reply


def _existing(n: int, status: str = "Pending") -> list[ExistingIssue]:
    return [
        ExistingIssue(id=f"issue-{i}", title=f"Pothole {i}", description="Hole", location="Elm St", status=status)
        for i in range(n)
    ]


def test_strip_code_fences() -> None:
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n["x"]\n```') == '["x"]'
    assert strip_code_fences(' {"a": 1} ') == '{"a": 1}'


def test_improve_description_capitalizes_and_appends_impact() -> None:
    provider = FakeProvider("the road has a large pothole that damages vehicles.")
    out = AssistGateway(provider).improve_description(
        ImproveDescriptionIn(description="pothole big", title="Pothole", category="Roads")
    )

    assert out.available is True
    assert out.improved_text.startswith("The road has a large pothole")
    assert out.improved_text.endswith(IMPACT_SENTENCE)
    assert "Category: Roads" in provider.prompts[0]


@pytest.mark.parametrize("provider", [FakeProvider(error=ProviderError("boom")), FakeProvider("   ")])
def test_improve_description_returns_original_on_failure(provider) -> None:
    out = AssistGateway(provider).improve_description(ImproveDescriptionIn(description="pothole big"))

    assert out.available is False
    assert out.improved_text == "pothole big"
    assert out.message == UNAVAILABLE_MESSAGE


def test_duplicate_check_with_no_candidates_skips_provider() -> None:
    provider = FakeProvider(error=AssertionError("must not be called"))
    out = AssistGateway(provider).check_duplicates(
        CheckDuplicatesIn(title="Pothole", description="Hole", existing_issues=[])
    )

    assert out.available is True
    assert out.is_duplicate is False
    assert out.confidence == 0
    assert provider.prompts == []


def test_duplicate_check_ignores_resolved_candidates() -> None:
    provider = FakeProvider(error=AssertionError("must not be called"))
    out = AssistGateway(provider).check_duplicates(
        CheckDuplicatesIn(title="Pothole", description="Hole", existing_issues=_existing(3, status="Resolved"))
    )
    assert (out.available, out.is_duplicate) == (True, False)
    assert provider.prompts == []


def test_duplicate_check_parses_fenced_reply_and_caps_candidates() -> None:
    reply = '```json\n{"isDuplicate": true, "matchedIssueId": "issue-2", "confidence": 140, "reason": "Same spot"}\n```'
    provider = FakeProvider(reply)
    out = AssistGateway(provider).check_duplicates(
        CheckDuplicatesIn(title="Pothole", description="Hole", location="Elm St", existing_issues=_existing(25))
    )

    assert out.available is True
    assert out.is_duplicate is True
    assert out.matched_issue_id == "issue-2"
    assert out.confidence == 100
    assert out.reason == "Same spot"
    assert "ID: issue-19" in provider.prompts[0]
    assert "ID: issue-20" not in provider.prompts[0]


def test_duplicate_check_drops_unknown_match_id() -> None:
    reply = json.dumps({"isDuplicate": True, "matchedIssueId": "made-up", "confidence": 80, "reason": "x"})
    out = AssistGateway(FakeProvider(reply)).check_duplicates(
        CheckDuplicatesIn(title="Pothole", description="Hole", existing_issues=_existing(2))
    )
    assert out.matched_issue_id is None


@pytest.mark.parametrize("reply", ["not json", '{"confidence": 10}', "[1, 2]"])
def test_duplicate_check_is_unavailable_on_bad_reply(reply) -> None:
    out = AssistGateway(FakeProvider(reply)).check_duplicates(
        CheckDuplicatesIn(title="Pothole", description="Hole", existing_issues=_existing(1))
    )
    assert out.available is False
    assert out.is_duplicate is False
    assert out.message == UNAVAILABLE_MESSAGE


def test_analyze_priority_parses_and_clamps() -> None:
    reply = json.dumps({
        "urgencyScore": 14,
        "sentiment": "Frustrated",
        "priority": "HIGH",
        "suggestedAction": "Send a repair crew",
        "estimatedImpact": "Hundreds of commuters",
    })
    out = AssistGateway(FakeProvider(reply)).analyze_priority(
        AnalyzePriorityIn(title="Pothole", description="Hole", category="Roads", upvote_count=12)
    )

    assert out.available is True
    assert out.urgency_score == 10
    assert out.sentiment == "frustrated"
    assert out.priority == "high"


def test_analyze_priority_timeout_returns_neutral_default() -> None:
    provider = FakeProvider(error=requests.Timeout("read timed out"))
    out = AssistGateway(provider).analyze_priority(
        AnalyzePriorityIn(title="Pothole", description="Hole", category="Roads")
    )

    assert out.available is False
    assert out.model_dump(exclude={"available", "message"}) == {
        "urgency_score": 5,
        "sentiment": "neutral",
        "priority": "medium",
        "suggested_action": "Review and assign to appropriate team",
        "estimated_impact": "Unknown",
    }


def test_analyze_priority_rejects_unknown_priority() -> None:
    reply = json.dumps({
        "urgencyScore": 3, "sentiment": "calm", "priority": "urgent-ish",
        "suggestedAction": "x", "estimatedImpact": "y",
    })
    out = AssistGateway(FakeProvider(reply)).analyze_priority(
        AnalyzePriorityIn(title="Pothole", description="Hole", category="Roads")
    )
    assert out.available is False
    assert out.priority == "medium"


def test_suggest_titles_keeps_three_strings() -> None:
    reply = '```json\n["Fix pothole on Elm Street now", "", 7, "Repair Elm St road surface", "Patch Elm road", "Extra"]\n```'
    out = AssistGateway(FakeProvider(reply)).suggest_titles(SuggestTitleIn(partial_title="pothole elm", category="Roads"))

    assert out.available is True
    assert out.suggestions == ["Fix pothole on Elm Street now", "Repair Elm St road surface", "Patch Elm road"]


@pytest.mark.parametrize(
    "provider", [FakeProvider('{"title": "x"}'), FakeProvider(error=ProviderError("quota exceeded"))]
)
def test_suggest_titles_unavailable_returns_empty_list(provider) -> None:
    out = AssistGateway(provider).suggest_titles(SuggestTitleIn(partial_title="pothole", category="Roads"))
    assert out.available is False
    assert out.suggestions == []


def test_gemini_provider_without_key_raises() -> None:
    with pytest.raises(ProviderError):
        GeminiProvider(None, "gemini-1.5-flash", 1.0).generate("hi")


class _Response:
    def __init__(self, body, status: int = 200) -> None:
        self.body = body
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.body


def test_gemini_provider_reads_candidate_text(monkeypatch) -> None:
    seen = {}

    def fake_post(url, params=None, json=None, timeout=None):
        seen.update(url=url, params=params, timeout=timeout)
        return _Response({"candidates": [{"content": {"parts": [{"text": "hello"}]}}]})

    monkeypatch.setattr(ai_assist.requests, "post", fake_post)

    assert GeminiProvider("k", "gemini-1.5-flash", 2.5).generate("hi") == "hello"
    assert seen["url"].endswith("/gemini-1.5-flash:generateContent")
    assert seen["params"] == {"key": "k"}
    assert seen["timeout"] == 2.5


@pytest.mark.parametrize(
    "response",
    [_Response({}, status=429), _Response({"candidates": []}), _Response({"candidates": [{"content": {"parts": [{"text": ""}]}}]})],
)
def test_gemini_provider_errors_become_provider_error(monkeypatch, response) -> None:
    monkeypatch.setattr(ai_assist.requests, "post", lambda *a, **kw: response)
    with pytest.raises(ProviderError):
        GeminiProvider("k", "gemini-1.5-flash", 1.0).generate("hi")


@pytest.mark.parametrize("score", ["NaN", "Infinity", "-Infinity"])
def test_analyze_priority_non_finite_score_falls_back(score) -> None:
    reply = (
        f'{{"urgencyScore": {score}, "sentiment": "neutral", "priority": "high", '
        '"suggestedAction": "Inspect", "estimatedImpact": "Street"}'
    )
    out = AssistGateway(FakeProvider(reply)).analyze_priority(
        AnalyzePriorityIn(title="Pothole", description="Hole", category="Roads")
    )
    assert out.available is False
    assert out.urgency_score == 5
    assert out.priority == "medium"


@pytest.mark.parametrize("confidence", ["NaN", "Infinity"])
def test_duplicate_check_non_finite_confidence_is_unavailable(confidence) -> None:
    reply = f'{{"isDuplicate": true, "matchedIssueId": "issue-0", "confidence": {confidence}, "reason": "x"}}'
    out = AssistGateway(FakeProvider(reply)).check_duplicates(
        CheckDuplicatesIn(title="Pothole", description="Hole", existing_issues=_existing(1))
    )
    assert out.available is False
    assert out.is_duplicate is False
    assert out.confidence == 0
