"""OpenAI inference adapter.

Implements AnalyzerPort with the Chat Completions API and a JSON schema
response format generated from pydantic models. One attempt per call; the
core applies the overall timeout and falls back to the default analysis.
"""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.models import (
    PRIORITIES,
    SUPPORT_STATUSES,
    TONES,
    Analysis,
    CustomerMood,
    Sentiment,
    TeamRouting,
    TechnicalDetails,
    TokenUsage,
    clamp,
)
from core.ports import InferenceResult

LOGGER = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a customer support triage assistant for a Discord community. "
    "Classify each message and answer only with JSON matching the schema."
)


class AnalyzerError(Exception):
    """Raised when the provider call fails or returns an unusable answer."""


class _Schema(BaseModel):
    model_config = ConfigDict(extra="forbid")


class SentimentSchema(_Schema):
    score: float = Field(description="Sentiment score from -1 (negative) to 1 (positive)")
    confidence: float = Field(description="Confidence level of the sentiment analysis, 0 to 1")


class CustomerMoodSchema(_Schema):
    description: str = Field(description="Brief description of customer mood")
    emoji: str = Field(description="Emoji representing the mood")


class TechnicalDetailsSchema(_Schema):
    has_code: bool = Field(description="Whether the message contains code snippets")
    has_error: bool = Field(description="Whether the message mentions errors")
    has_screenshot: bool = Field(description="Whether the message includes screenshots or images")
    mentions_version: bool = Field(description="Whether specific versions are mentioned")


class TeamRoutingSchema(_Schema):
    recommended_destination: str = Field(description="Name of the destination that should handle this message")
    confidence: float = Field(description="Confidence in the routing decision, 0 to 1")
    reasoning: str = Field(description="Brief explanation of why this destination was chosen")


class AnalysisSchema(_Schema):
    support_status: Literal[SUPPORT_STATUSES] = Field(description="The type of customer support status")  # type: ignore[valid-type]
    tone: Literal[TONES] = Field(description="The emotional tone of the message")  # type: ignore[valid-type]
    priority: Literal[PRIORITIES] = Field(description="Priority level based on content and tone")  # type: ignore[valid-type]
    sentiment: SentimentSchema
    topics: List[str] = Field(description="Main topics or keywords mentioned in the message")
    needs_response: bool = Field(description="Whether this message requires a response")
    summary: str = Field(description="A brief summary of the message for a team notification")
    suggested_actions: List[str] = Field(description="Suggested actions for handling this message")
    customer_mood: CustomerMoodSchema
    technical_details: TechnicalDetailsSchema


class RoutedAnalysisSchema(AnalysisSchema):
    team_routing: TeamRoutingSchema


def response_format(include_routing: bool) -> dict:
    """Chat Completions response_format for the requested schema variant."""

    model = RoutedAnalysisSchema if include_routing else AnalysisSchema
    return {
        "type": "json_schema",
        "json_schema": {
            "name": "message_analysis",
            "schema": model.model_json_schema(),
        },
    }


def to_analysis(parsed: AnalysisSchema) -> Analysis:
    """Convert validated provider output into the core Analysis record."""

    routing: Optional[TeamRouting] = None
    raw_routing = getattr(parsed, "team_routing", None)
    if raw_routing is not None:
        routing = TeamRouting(
            recommended_destination=raw_routing.recommended_destination.strip(),
            confidence=clamp(raw_routing.confidence, 0.0, 1.0),
            reasoning=raw_routing.reasoning,
        )
    return Analysis(
        support_status=parsed.support_status,
        tone=parsed.tone,
        priority=parsed.priority,
        sentiment=Sentiment(
            score=clamp(parsed.sentiment.score, -1.0, 1.0),
            confidence=clamp(parsed.sentiment.confidence, 0.0, 1.0),
        ),
        topics=tuple(parsed.topics),
        needs_response=parsed.needs_response,
        summary=parsed.summary,
        suggested_actions=tuple(parsed.suggested_actions),
        customer_mood=CustomerMood(
            description=parsed.customer_mood.description,
            emoji=parsed.customer_mood.emoji,
        ),
        technical_details=TechnicalDetails(
            has_code=parsed.technical_details.has_code,
            has_error=parsed.technical_details.has_error,
            has_screenshot=parsed.technical_details.has_screenshot,
            mentions_version=parsed.technical_details.mentions_version,
        ),
        team_routing=routing,
    )


def parse_analysis(raw: str, include_routing: bool) -> Analysis:
    model = RoutedAnalysisSchema if include_routing else AnalysisSchema
    try:
        parsed = model.model_validate_json(raw)
    except ValidationError as exc:
        raise AnalyzerError(f"Provider returned an invalid analysis: {exc.error_count()} error(s)") from exc
    return to_analysis(parsed)


def _usage(response) -> TokenUsage:
    usage = getattr(response, "usage", None)
    if usage is None:
        return TokenUsage.zero()
    return TokenUsage(
        prompt_tokens=getattr(usage, "prompt_tokens", 0) or 0,
        completion_tokens=getattr(usage, "completion_tokens", 0) or 0,
        total_tokens=getattr(usage, "total_tokens", 0) or 0,
    )


class OpenAIAnalyzer:
    """AnalyzerPort backed by openai.AsyncOpenAI."""

    def __init__(
        self,
        api_key: Optional[str],
        model: str = "gpt-4o-mini",
        timeout: float = 30.0,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        if client is None and not api_key:
            raise AnalyzerError("OPENAI_API_KEY is not configured")
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    async def analyze(self, prompt: str, include_routing: bool) -> InferenceResult:
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                response_format=response_format(include_routing),
                temperature=0,
            )
        except openai.APIError as exc:
            raise AnalyzerError(f"OpenAI request failed: {exc}") from exc

        if not response.choices:
            raise AnalyzerError("OpenAI returned no choices")
        content = response.choices[0].message.content
        if not content:
            raise AnalyzerError("OpenAI returned an empty message")

        usage = _usage(response)
        LOGGER.debug("OpenAI usage: prompt=%s completion=%s", usage.prompt_tokens, usage.completion_tokens)
        return InferenceResult(analysis=parse_analysis(content, include_routing), usage=usage)
