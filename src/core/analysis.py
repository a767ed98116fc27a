"""Analysis engine (core domain).

Turns a Message into a structured Analysis through the AnalyzerPort. Failure
is a result state here, not an exception: on any provider error the fixed
default analysis is returned so the pipeline never drops a message.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from core.config import AnalysisConfig
from core.models import Analysis, Destination, Message, TokenUsage, default_analysis
from core.ports import AnalyzerPort

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisOutcome:
    """Everything downstream components need from one inference attempt."""

    analysis: Analysis
    usage: TokenUsage
    duration_ms: int
    model: str
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def _attachment_line(message: Message) -> str:
    if not message.attachments:
        return ""
    parts = [f"{att.filename} ({att.content_type})" for att in message.attachments]
    return f"Attachments: {', '.join(parts)}"


def _embed_line(message: Message) -> str:
    if not message.embeds:
        return ""
    return f"Embeds: {', '.join(embed.title or 'Untitled' for embed in message.embeds)}"


def _mention_line(message: Message) -> str:
    mentions = message.mentions
    if not mentions.any:
        return ""
    parts = []
    if mentions.everyone:
        parts.append("@everyone")
    parts.extend(f"@{user}" for user in mentions.users)
    parts.extend(f"@{role}" for role in mentions.roles)
    return f"Mentions: {', '.join(parts)}"


def describe_message(message: Message, destinations: Sequence[Destination]) -> str:
    """Build the natural-language prompt describing one message."""

    channel = f"#{message.channel.name}"
    if message.channel.is_thread:
        channel = f"{channel} (thread)"

    lines = [
        "Analyze this Discord message for customer support purposes:",
        "",
        f'Message Content: "{message.content}"',
        f"Author: {message.author.tag} ({'Bot' if message.author.bot else 'Human'})",
        f"Channel: {channel}",
        f"Server: {message.server.name}",
    ]
    lines.extend(line for line in (_attachment_line(message), _embed_line(message), _mention_line(message)) if line)

    if destinations:
        lines.extend(["", "Available destinations for routing:"])
        lines.extend(f"- {dest.name}: {dest.description}" for dest in destinations)
        lines.extend(
            [
                "",
                "Please also recommend which destination should handle this message "
                "based on the descriptions above.",
            ]
        )

    steps = [
        "Support status type (help request, bug report, feature request, etc.)",
        "Emotional tone and sentiment",
        "Priority level",
        "Key topics",
        "Whether it needs a response",
        "A brief summary suitable for a team notification",
        "Suggested actions for handling this message",
        "Technical details (code, errors, screenshots, version mentions)",
    ]
    if destinations:
        steps.append("The most appropriate destination to handle this message")

    lines.extend(["", "Please analyze this message and categorize it according to:"])
    lines.extend(f"{index}. {step}" for index, step in enumerate(steps, start=1))
    return "\n".join(lines)


def total_tokens(prompt_tokens: int, completion_tokens: int, reported_total: int) -> int:
    """Prefer prompt + completion when both are known, else the provider total."""

    if prompt_tokens > 0 and completion_tokens > 0:
        return prompt_tokens + completion_tokens
    return reported_total


class AnalysisEngine:
    """Classifies messages with a single bounded inference attempt."""

    def __init__(self, analyzer: AnalyzerPort, config: AnalysisConfig) -> None:
        self._analyzer = analyzer
        self._config = config

    @property
    def model(self) -> str:
        return getattr(self._analyzer, "model", None) or self._config.model

    async def analyze(self, message: Message, destinations: Sequence[Destination]) -> AnalysisOutcome:
        """Return the analysis for a message; never raises."""

        started = time.monotonic()
        include_routing = bool(destinations)
        prompt = describe_message(message, destinations)

        try:
            result = await asyncio.wait_for(
                self._analyzer.analyze(prompt, include_routing),
                timeout=self._config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = f"Inference timed out after {self._config.timeout_seconds}s"
            return self._failure(message, started, error)
        except Exception as exc:
            return self._failure(message, started, str(exc) or exc.__class__.__name__)

        analysis = result.analysis
        # Routing is only meaningful when destinations were offered.
        if not include_routing and analysis.team_routing is not None:
            analysis = replace(analysis, team_routing=None)

        usage = TokenUsage(
            prompt_tokens=result.usage.prompt_tokens,
            completion_tokens=result.usage.completion_tokens,
            total_tokens=total_tokens(
                result.usage.prompt_tokens,
                result.usage.completion_tokens,
                result.usage.total_tokens,
            ),
        )
        duration_ms = self._elapsed_ms(started)
        LOGGER.info(
            "Analyzed %s: status=%s priority=%s needs_response=%s tokens=%s (%sms)",
            message.id,
            analysis.support_status,
            analysis.priority,
            analysis.needs_response,
            usage.total_tokens,
            duration_ms,
        )
        if analysis.team_routing is not None:
            LOGGER.info(
                "Recommended destination for %s: %s (%.1f%%)",
                message.id,
                analysis.team_routing.recommended_destination,
                analysis.team_routing.confidence * 100,
            )
        return AnalysisOutcome(
            analysis=analysis,
            usage=usage,
            duration_ms=duration_ms,
            model=self.model,
        )

    def _failure(self, message: Message, started: float, error: str) -> AnalysisOutcome:
        LOGGER.error("Analysis failed for %s: %s", message.id, error)
        return AnalysisOutcome(
            analysis=default_analysis(message),
            usage=TokenUsage.zero(),
            duration_ms=self._elapsed_ms(started),
            model=self.model,
            error=error,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
