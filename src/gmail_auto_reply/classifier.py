"""Gemini-backed email classification and reply generation."""

from __future__ import annotations

import json
import logging
import re
import time

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .constants import ANALYSIS_BODY_LIMIT, CALL_TIMEOUT, CATEGORIES, GEMINI_API_BASE, GEMINI_MODEL
from .errors import ClassifierUnavailable, GenerationFailed
from .models import Classification

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?")
_CODE_BLOCK_RE = re.compile(r"```[\s\S]*?```")
_HEADING_RE = re.compile(r"#{1,6}\s")

DEFAULT_SYSTEM_PROMPT = (
    "You are a professional email assistant for a small digital services business. "
    "Answer in plain, natural English without markdown or code formatting."
)


class AnalysisPayload(BaseModel):
    """Shape of the JSON the model is asked to return."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str = "Personal"
    is_business: bool = Field(False, alias="isBusiness")
    priority: str = "medium"
    urgency: bool = False
    summary: str = ""
    suggested_reply: str | None = Field(None, alias="suggestedReply")
    confidence: float = Field(0.0, ge=0.0, le=1.0)

    def to_classification(self) -> Classification:
        return Classification(
            category=self.category,
            is_business=self.is_business,
            priority=self.priority,
            urgency=self.urgency,
            confidence=self.confidence,
            summary=self.summary,
            suggested_reply=self.suggested_reply,
        )


def fallback_classification(raw: str) -> Classification:
    """Verdict used when the model answered but not with usable JSON."""
    return Classification(
        category="Personal",
        is_business=False,
        priority="medium",
        urgency=False,
        confidence=0.5,
        summary=raw[:100],
    )


def parse_analysis(raw: str) -> Classification:
    content = _FENCE_RE.sub("", raw).strip()
    try:
        payload = AnalysisPayload.model_validate(json.loads(content))
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        logger.warning("Unusable analysis from model, using fallback: %s", exc)
        return fallback_classification(content)
    return payload.to_classification()


def clean_reply(text: str) -> str:
    """Strip markdown the model adds despite being asked not to."""
    text = _CODE_BLOCK_RE.sub("", text)
    text = text.replace("`", "").replace("**", "")
    text = _HEADING_RE.sub("", text)
    return text.strip()


class GeminiClient:
    """Minimal client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(
        self,
        api_key: str,
        model: str = GEMINI_MODEL,
        timeout: float = CALL_TIMEOUT,
        http_client: httpx.Client | None = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self._http = http_client or httpx.Client(timeout=timeout)

    def generate(self, prompt: str) -> str:
        """Return the text of the first candidate. Raises httpx errors or ValueError."""
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is not set")
        started = time.monotonic()
        resp = self._http.post(
            f"{GEMINI_API_BASE}/{self.model}:generateContent",
            params={"key": self.api_key},
            json={"contents": [{"parts": [{"text": prompt}]}]},
        )
        resp.raise_for_status()
        data = resp.json()
        candidates = data.get("candidates") or []
        if not candidates:
            raise ValueError("No candidates returned from Gemini")
        logger.debug("Gemini answered in %.0f ms", (time.monotonic() - started) * 1000)
        return candidates[0]["content"]["parts"][0]["text"]

    def close(self) -> None:
        self._http.close()


class GeminiClassifier:
    def __init__(self, client: GeminiClient, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> None:
        self.client = client
        self.system_prompt = system_prompt

    def analyze(self, subject: str, body: str, from_address: str) -> Classification:
        prompt = (
            f"{self.system_prompt}\n\n"
            "Analyze the following email and respond with a JSON object containing:\n"
            f"- category: one of ({', '.join(CATEGORIES)})\n"
            "- isBusiness: boolean\n"
            "- priority: (high, medium, low)\n"
            "- urgency: boolean\n"
            "- summary: short summary of the email\n"
            "- suggestedReply: a brief suggested reply\n"
            "- confidence: number between 0 and 1\n\n"
            "Email to analyze:\n"
            f"Subject: {subject}\nFrom: {from_address}\nBody: {body[:ANALYSIS_BODY_LIMIT]}\n\n"
            "Respond ONLY with valid JSON, without markdown formatting."
        )
        try:
            raw = self.client.generate(prompt)
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
            raise ClassifierUnavailable(str(exc)) from exc
        return parse_analysis(raw)


class GeminiReplyGenerator:
    def __init__(self, client: GeminiClient, system_prompt: str = DEFAULT_SYSTEM_PROMPT) -> None:
        self.client = client
        self.system_prompt = system_prompt

    def generate(self, content: str, classification: Classification) -> str:
        prompt = (
            f"{self.system_prompt}\n\n"
            "Write a reply to the email below. Write only the email body, as a person "
            "would type it in Gmail: friendly, professional, at most 150 words.\n\n"
            f"The email was classified as {classification.category} "
            f"(priority {classification.priority}). Summary: {classification.summary}\n\n"
            f"Email to reply to:\n{content}"
        )
        try:
            reply = clean_reply(self.client.generate(prompt))
        except (httpx.HTTPError, ValueError, KeyError, IndexError) as exc:
            raise GenerationFailed(str(exc)) from exc
        if not reply:
            raise GenerationFailed("Model returned an empty reply")
        return reply
