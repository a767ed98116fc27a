from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from adapters.openai_analyzer import (
    AnalyzerError,
    OpenAIAnalyzer,
    SYSTEM_PROMPT,
    parse_analysis,
    response_format,
)


def _payload(**overrides) -> dict:
    payload = {
        "support_status": "bug_report",
        "tone": "frustrated",
        "priority": "high",
        "sentiment": {"score": -0.7, "confidence": 0.9},
        "topics": ["login"],
        "needs_response": True,
        "summary": "Login fails",
        "suggested_actions": ["Check auth logs"],
        "customer_mood": {"description": "Annoyed", "emoji": "😠"},
        "technical_details": {
            "has_code": False,
            "has_error": True,
            "has_screenshot": False,
            "mentions_version": True,
        },
    }
    payload.update(overrides)
    return payload


class FakeCompletions:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.kwargs: dict = {}

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        return self.response


def _client(completions: FakeCompletions) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _response(content, usage=(120, 80, 200)) -> SimpleNamespace:
    prompt, completion, total = usage
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total),
    )


def test_parse_valid_analysis() -> None:
    analysis = parse_analysis(json.dumps(_payload()), include_routing=False)

    assert analysis.support_status == "bug_report"
    assert analysis.topics == ("login",)
    assert analysis.technical_details.mentions_version is True
    assert analysis.team_routing is None


def test_parse_clamps_out_of_range_numbers() -> None:
    raw = _payload(
        sentiment={"score": -3.0, "confidence": 1.4},
        team_routing={"recommended_destination": " Engineering ", "confidence": 2.0, "reasoning": "bug"},
    )

    analysis = parse_analysis(json.dumps(raw), include_routing=True)

    assert analysis.sentiment.score == -1.0
    assert analysis.sentiment.confidence == 1.0
    assert analysis.team_routing.recommended_destination == "Engineering"
    assert analysis.team_routing.confidence == 1.0


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        json.dumps(_payload(priority="urgent")),
        json.dumps(_payload(surprise="field")),
        json.dumps({"support_status": "bug_report"}),
    ],
)
def test_parse_rejects_invalid_output(raw) -> None:
    with pytest.raises(AnalyzerError):
        parse_analysis(raw, include_routing=False)


def test_routing_variant_requires_team_routing() -> None:
    with pytest.raises(AnalyzerError):
        parse_analysis(json.dumps(_payload()), include_routing=True)


def test_response_format_variants() -> None:
    plain = response_format(False)["json_schema"]["schema"]
    routed = response_format(True)["json_schema"]["schema"]

    assert "team_routing" not in plain["properties"]
    assert "team_routing" in routed["required"]
    assert plain["properties"]["priority"]["enum"] == ["low", "medium", "high", "critical"]
    assert plain["additionalProperties"] is False


def test_analyze_sends_prompt_and_reports_usage() -> None:
    completions = FakeCompletions(_response(json.dumps(_payload())))
    analyzer = OpenAIAnalyzer(api_key=None, model="gpt-test", client=_client(completions))

    result = asyncio.run(analyzer.analyze("Analyze this", include_routing=False))

    assert result.analysis.priority == "high"
    assert result.usage.prompt_tokens == 120
    assert result.usage.completion_tokens == 80
    assert completions.kwargs["model"] == "gpt-test"
    assert completions.kwargs["messages"] == [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": "Analyze this"},
    ]
    assert completions.kwargs["response_format"]["type"] == "json_schema"


def test_analyze_rejects_empty_content() -> None:
    analyzer = OpenAIAnalyzer(api_key=None, client=_client(FakeCompletions(_response(None))))

    with pytest.raises(AnalyzerError, match="empty"):
        asyncio.run(analyzer.analyze("prompt", include_routing=False))


def test_analyze_rejects_missing_choices() -> None:
    response = SimpleNamespace(choices=[], usage=None)
    analyzer = OpenAIAnalyzer(api_key=None, client=_client(FakeCompletions(response)))

    with pytest.raises(AnalyzerError, match="no choices"):
        asyncio.run(analyzer.analyze("prompt", include_routing=False))


def test_missing_api_key_is_rejected() -> None:
    with pytest.raises(AnalyzerError, match="OPENAI_API_KEY"):
        OpenAIAnalyzer(api_key="")
