# File: app/services/ai_assist.py
"""AI assistance for issue reporting.

Four stateless helpers that shape a prompt, hand it to a text-generation
provider and parse the reply. All four are best-effort: any provider,
parsing or validation failure yields a typed result with ``available=False``
and a safe default, never an exception.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Literal, Optional, Protocol

import requests
from pydantic import BaseModel, Field, field_validator

from app.core.config import settings
from app.core.errors import ProviderError
from app.schemas.ai import (
    UNAVAILABLE_MESSAGE,
    AnalyzePriorityIn,
    CheckDuplicatesIn,
    DuplicateCheckOut,
    ImproveDescriptionIn,
    ImproveDescriptionOut,
    PriorityAnalysisOut,
    SuggestTitleIn,
    TitleSuggestionsOut,
)

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

MAX_DUPLICATE_CANDIDATES = 20
TITLE_SUGGESTIONS = 3
IMPACT_SENTENCE = (
    "This issue is affecting daily life and requires immediate attention "
    "from the concerned authorities."
)
PRIORITY_FALLBACK = {
    "urgency_score": 5,
    "sentiment": "neutral",
    "priority": "medium",
    "suggested_action": "Review and assign to appropriate team",
    "estimated_impact": "Unknown",
}

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class AIProvider(Protocol):
    def generate(self, prompt: str) -> str:
        """Return the model's text reply or raise ProviderError."""


class GeminiProvider:
    """Google Generative Language REST API (generateContent)."""

    def __init__(self, api_key: Optional[str], model: str, timeout: float):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise ProviderError("GEMINI_API_KEY is not configured")
        url = f"{GEMINI_BASE_URL}/{self.model}:generateContent"
        payload = {"contents": [{"parts": [{"text": prompt}]}]}
        try:
            r = requests.post(url, params={"key": self.api_key}, json=payload, timeout=self.timeout)
            r.raise_for_status()
            data = r.json()
        except requests.RequestException as e:
            raise ProviderError(f"Provider request failed: {e.__class__.__name__}") from e
        except ValueError as e:
            raise ProviderError("Provider returned a non-JSON body") from e
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Provider response had no candidate text") from e
        if not isinstance(text, str) or not text.strip():
            raise ProviderError("Provider returned empty text")
        return text


# ---- reply shapes the model is asked to produce ----

class _DuplicateReply(BaseModel):
    isDuplicate: bool
    matchedIssueId: Optional[str] = None
    confidence: float = Field(default=0, allow_inf_nan=False)
    reason: str = ""

    @field_validator("matchedIssueId", mode="before")
    @classmethod
    def _id(cls, v):
        if v is None or str(v).strip().lower() in ("", "null", "none"):
            return None
        return str(v).strip()


class _PriorityReply(BaseModel):
    urgencyScore: float = Field(allow_inf_nan=False)
    sentiment: str = "neutral"
    priority: Literal["low", "medium", "high", "critical"]
    suggestedAction: str = Field(min_length=1)
    estimatedImpact: str = Field(min_length=1)

    @field_validator("sentiment", "priority", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


def strip_code_fences(text: str) -> str:
    return _FENCE.sub("", text).strip()


def parse_json_reply(text: str):
    return json.loads(strip_code_fences(text))


def _clamp(value: float, low: int, high: int) -> int:
    return int(max(low, min(high, round(value))))


class AssistGateway:
    def __init__(self, provider: AIProvider):
        self.provider = provider

    def _ask(self, prompt: str) -> str:
        try:
            return self.provider.generate(prompt)
        except ProviderError:
            raise
        except Exception as e:
            # adapters may leak their own transport errors
            raise ProviderError(str(e) or e.__class__.__name__) from e

    def improve_description(self, body: ImproveDescriptionIn) -> ImproveDescriptionOut:
        context = []
        if body.title:
            context.append(f"Title: {body.title}")
        if body.category:
            context.append(f"Category: {body.category}")
        prompt = (
            "Rewrite the following civic issue report into proper professional English.\n\n"
            "Make it 3-4 full sentences.\n"
            "Explain the impact on residents.\n"
            "Do NOT reuse the original phrasing.\n\n"
            + ("\n".join(context) + "\n\n" if context else "")
            + f"Original:\n{body.description}\n"
        )
        try:
            text = self._ask(prompt).strip()
            if not text:
                raise ProviderError("Provider returned empty text")
        except ProviderError as e:
            logger.warning("improve_description unavailable: %s", e.message)
            return ImproveDescriptionOut(
                available=False, improved_text=body.description, message=UNAVAILABLE_MESSAGE
            )
        improved = f"{text[0].upper()}{text[1:]} {IMPACT_SENTENCE}"
        return ImproveDescriptionOut(available=True, improved_text=improved)

    def check_duplicates(self, body: CheckDuplicatesIn) -> DuplicateCheckOut:
        candidates = [
            i for i in body.existing_issues if (i.status or "").lower() != "resolved"
        ][:MAX_DUPLICATE_CANDIDATES]
        if not candidates:
            return DuplicateCheckOut(
                available=True, is_duplicate=False, confidence=0,
                reason="No existing issues to compare",
            )

        listing = "\n".join(
            f"{n}. ID: {i.id}\n"
            f"   Title: {i.title}\n"
            f"   Description: {i.description}\n"
            f"   Location: {i.location or 'Not specified'}\n"
            f"   Status: {i.status or 'Unknown'}"
            for n, i in enumerate(candidates, start=1)
        )
        prompt = (
            "Analyze if this new issue is a duplicate of any existing issues.\n\n"
            "NEW ISSUE:\n"
            f"Title: {body.title}\n"
            f"Description: {body.description}\n"
            f"Location: {body.location or 'Not specified'}\n\n"
            f"EXISTING ISSUES:\n{listing}\n\n"
            "Respond ONLY with valid JSON (no markdown, no backticks):\n"
            "{\n"
            '  "isDuplicate": true or false,\n'
            '  "matchedIssueId": "issue id or null",\n'
            '  "confidence": number from 0-100,\n'
            '  "reason": "brief explanation"\n'
            "}"
        )
        try:
            reply = _DuplicateReply.model_validate(parse_json_reply(self._ask(prompt)))
        except (ProviderError, ValueError) as e:
            logger.warning("check_duplicates unavailable: %s", e)
            return DuplicateCheckOut(available=False, message=UNAVAILABLE_MESSAGE)

        known_ids = {i.id for i in candidates}
        matched = reply.matchedIssueId if reply.isDuplicate and reply.matchedIssueId in known_ids else None
        return DuplicateCheckOut(
            available=True,
            is_duplicate=reply.isDuplicate,
            matched_issue_id=matched,
            confidence=_clamp(reply.confidence, 0, 100),
            reason=reply.reason,
        )

    def analyze_priority(self, body: AnalyzePriorityIn) -> PriorityAnalysisOut:
        prompt = (
            "Analyze this civic issue for priority and sentiment:\n\n"
            f"Title: {body.title}\n"
            f"Description: {body.description}\n"
            f"Category: {body.category}\n"
            f"Community Upvotes: {body.upvote_count}\n\n"
            "Respond ONLY with valid JSON (no markdown, no backticks):\n"
            "{\n"
            '  "urgencyScore": number from 1-10,\n'
            '  "sentiment": "frustrated" or "concerned" or "neutral" or "informative",\n'
            '  "priority": "low" or "medium" or "high" or "critical",\n'
            '  "suggestedAction": "brief recommendation for authorities",\n'
            '  "estimatedImpact": "description of how many people might be affected"\n'
            "}"
        )
        try:
            reply = _PriorityReply.model_validate(parse_json_reply(self._ask(prompt)))
        except (ProviderError, ValueError) as e:
            logger.warning("analyze_priority unavailable: %s", e)
            return PriorityAnalysisOut(available=False, message=UNAVAILABLE_MESSAGE, **PRIORITY_FALLBACK)
        return PriorityAnalysisOut(
            available=True,
            urgency_score=_clamp(reply.urgencyScore, 1, 10),
            sentiment=reply.sentiment,
            priority=reply.priority,
            suggested_action=reply.suggestedAction,
            estimated_impact=reply.estimatedImpact,
        )

    def suggest_titles(self, body: SuggestTitleIn) -> TitleSuggestionsOut:
        prompt = (
            f"Generate {TITLE_SUGGESTIONS} clear, concise issue titles for a "
            f'{body.category} problem based on: "{body.partial_title}"\n\n'
            "Requirements:\n"
            "- Each title should be 5-10 words\n"
            "- Clear and specific\n"
            "- Action-oriented\n\n"
            f"Return ONLY a JSON array of {TITLE_SUGGESTIONS} strings (no markdown, no backticks):\n"
            '["title 1", "title 2", "title 3"]'
        )
        try:
            data = parse_json_reply(self._ask(prompt))
            if not isinstance(data, list):
                raise ValueError("expected a JSON array of titles")
        except (ProviderError, ValueError) as e:
            logger.warning("suggest_titles unavailable: %s", e)
            return TitleSuggestionsOut(available=False, suggestions=[], message=UNAVAILABLE_MESSAGE)
        titles = [t.strip() for t in data if isinstance(t, str) and t.strip()]
        return TitleSuggestionsOut(available=True, suggestions=titles[:TITLE_SUGGESTIONS])


def get_assist_gateway() -> AssistGateway:
    return AssistGateway(
        GeminiProvider(settings.gemini_api_key, settings.gemini_model, settings.ai_timeout_seconds)
    )
