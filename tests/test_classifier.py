"""Tests for the Gemini classifier and reply generator."""

import json

import httpx
import pytest

from conftest import business_classification
from gmail_auto_reply.classifier import (
    GeminiClassifier,
    GeminiClient,
    GeminiReplyGenerator,
    clean_reply,
    parse_analysis,
)
from gmail_auto_reply.errors import ClassifierUnavailable, GenerationFailed


def _client(handler) -> GeminiClient:
    return GeminiClient("test-key", http_client=httpx.Client(transport=httpx.MockTransport(handler)))


def _answer(text: str) -> httpx.Response:
    return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})


ANALYSIS = {
    "category": "Pricing Question",
    "isBusiness": True,
    "priority": "high",
    "urgency": False,
    "summary": "Wants a website quote",
    "suggestedReply": "Our websites start at $99.",
    "confidence": 0.92,
}


def test_analyze_parses_json_answer():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return _answer(json.dumps(ANALYSIS))

    result = GeminiClassifier(_client(handler)).analyze("Quote", "How much for a website?", "jane@client.example")

    assert result.category == "Pricing Question"
    assert result.is_business is True
    assert result.confidence == 0.92
    assert result.suggested_reply == "Our websites start at $99."
    assert "key=test-key" in seen["url"]
    assert "How much for a website?" in seen["body"]["contents"][0]["parts"][0]["text"]


def test_analyze_truncates_long_bodies():
    prompts = []

    def handler(request: httpx.Request) -> httpx.Response:
        prompts.append(json.loads(request.content)["contents"][0]["parts"][0]["text"])
        return _answer(json.dumps(ANALYSIS))

    GeminiClassifier(_client(handler)).analyze("Quote", "x" * 5000, "jane@client.example")

    assert "x" * 2000 in prompts[0]
    assert "x" * 2001 not in prompts[0]


def test_parse_analysis_strips_code_fences():
    result = parse_analysis("```json\n" + json.dumps(ANALYSIS) + "\n```")
    assert result.category == "Pricing Question"


def test_parse_analysis_falls_back_on_garbage():
    result = parse_analysis("I think this is a business email.")
    assert result.is_business is False
    assert result.category == "Personal"
    assert result.confidence == 0.5


def test_parse_analysis_rejects_out_of_range_confidence():
    result = parse_analysis(json.dumps({**ANALYSIS, "confidence": 1.7}))
    assert result.is_business is False


def test_http_error_raises_classifier_unavailable():
    client = _client(lambda request: httpx.Response(503, json={"error": {"message": "overloaded"}}))
    with pytest.raises(ClassifierUnavailable):
        GeminiClassifier(client).analyze("s", "b", "f")


def test_no_candidates_raises_classifier_unavailable():
    client = _client(lambda request: httpx.Response(200, json={"candidates": []}))
    with pytest.raises(ClassifierUnavailable):
        GeminiClassifier(client).analyze("s", "b", "f")


def test_missing_api_key_raises_classifier_unavailable():
    client = GeminiClient("", http_client=httpx.Client(transport=httpx.MockTransport(lambda r: _answer("{}"))))
    with pytest.raises(ClassifierUnavailable):
        GeminiClassifier(client).analyze("s", "b", "f")


def test_generate_cleans_markdown():
    client = _client(lambda request: _answer("## Hello\n**Thanks** for your `inquiry`!\n```python\nprint()\n```"))
    reply = GeminiReplyGenerator(client).generate("Subject: Hi", business_classification())
    assert reply == "Hello\nThanks for your inquiry!"


def test_generate_failure_raises_generation_failed():
    client = _client(lambda request: httpx.Response(500))
    with pytest.raises(GenerationFailed):
        GeminiReplyGenerator(client).generate("Subject: Hi", business_classification())


def test_empty_reply_is_a_failure():
    client = _client(lambda request: _answer("```\n```"))
    with pytest.raises(GenerationFailed):
        GeminiReplyGenerator(client).generate("Subject: Hi", business_classification())


def test_clean_reply_plain_text_untouched():
    assert clean_reply("  Best regards,\nTeam  ") == "Best regards,\nTeam"
