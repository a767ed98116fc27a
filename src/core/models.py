"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any integration-specific types (discord.py, OpenAI, SQLite).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Mapping, Optional, Tuple

SUPPORT_STATUSES: Tuple[str, ...] = (
    "help_request",
    "bug_report",
    "feature_request",
    "complaint",
    "feedback",
    "question",
    "documentation_issue",
    "urgent_issue",
    "general_discussion",
    "resolved",
    "other",
)

TONES: Tuple[str, ...] = (
    "happy",
    "neutral",
    "frustrated",
    "angry",
    "confused",
    "grateful",
    "urgent",
    "professional",
)

PRIORITIES: Tuple[str, ...] = ("low", "medium", "high", "critical")

# Sort key used by the needing-response queue (lower is more urgent).
PRIORITY_RANK: Mapping[str, int] = {"critical": 1, "high": 2, "medium": 3, "low": 4}

# The legacy default destination shares the delivery log with named
# destinations; SQLite autoincrement ids start at 1 so 0 is free.
LEGACY_DESTINATION_ID = 0
LEGACY_DESTINATION_NAME = "default"


@dataclass(frozen=True)
class Author:
    id: str
    tag: str
    display_name: str
    bot: bool = False
    avatar_url: Optional[str] = None


@dataclass(frozen=True)
class Channel:
    id: str
    name: str
    is_thread: bool = False
    parent_id: Optional[str] = None
    parent_name: Optional[str] = None


@dataclass(frozen=True)
class Server:
    id: str
    name: str


@dataclass(frozen=True)
class Attachment:
    id: str
    filename: str
    size: int
    url: str
    content_type: Optional[str] = None


@dataclass(frozen=True)
class Embed:
    title: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    type: str = "rich"


@dataclass(frozen=True)
class Mentions:
    users: Tuple[str, ...] = ()
    roles: Tuple[str, ...] = ()
    everyone: bool = False

    @property
    def any(self) -> bool:
        return bool(self.users or self.roles or self.everyone)


@dataclass(frozen=True)
class Message:
    """A fully-formed chat message handed to the pipeline by the platform adapter."""

    id: str
    content: str
    author: Author
    channel: Channel
    server: Server
    timestamp: datetime
    attachments: Tuple[Attachment, ...] = ()
    embeds: Tuple[Embed, ...] = ()
    mentions: Mentions = field(default_factory=Mentions)

    @property
    def link(self) -> str:
        return f"https://discord.com/channels/{self.server.id}/{self.channel.id}/{self.id}"


@dataclass(frozen=True)
class Sentiment:
    score: float
    confidence: float


@dataclass(frozen=True)
class CustomerMood:
    description: str
    emoji: str


@dataclass(frozen=True)
class TechnicalDetails:
    has_code: bool = False
    has_error: bool = False
    has_screenshot: bool = False
    mentions_version: bool = False


@dataclass(frozen=True)
class TeamRouting:
    """AI recommendation of which destination should own the message."""

    recommended_destination: str
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class Analysis:
    """Structured classification produced for one message."""

    support_status: str
    tone: str
    priority: str
    sentiment: Sentiment
    topics: Tuple[str, ...]
    needs_response: bool
    summary: str
    suggested_actions: Tuple[str, ...]
    customer_mood: CustomerMood
    technical_details: TechnicalDetails
    team_routing: Optional[TeamRouting] = None


@dataclass(frozen=True)
class TokenUsage:
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int

    @classmethod
    def zero(cls) -> "TokenUsage":
        return cls(prompt_tokens=0, completion_tokens=0, total_tokens=0)


@dataclass(frozen=True)
class CostBreakdown:
    input_cost: float
    output_cost: float
    total_cost: float


@dataclass(frozen=True)
class UsageRecord:
    """Append-only ledger row, one per inference attempt."""

    message_id: str
    author_id: str
    author_tag: str
    channel_id: str
    channel_name: str
    server_id: str
    server_name: str
    model: str
    usage: TokenUsage
    cost: CostBreakdown
    analysis: Analysis
    processing_time_ms: int
    error_occurred: bool = False
    error_message: Optional[str] = None


@dataclass(frozen=True)
class Destination:
    """A named notification target with its own filter rules."""

    id: int
    name: str
    description: str
    webhook_url: str
    enabled: bool
    send_priorities: Mapping[str, bool]
    send_statuses: Mapping[str, bool]
    only_needs_response: bool = False


@dataclass(frozen=True)
class DefaultDestination:
    """Legacy single-destination fallback with sentiment bounds."""

    webhook_url: Optional[str]
    enabled: bool
    send_priorities: Mapping[str, bool]
    send_statuses: Mapping[str, bool]
    only_needs_response: bool = False
    min_sentiment_score: float = -1.0
    max_sentiment_score: float = 1.0
    description: str = "Default webhook settings"


@dataclass(frozen=True)
class PlanEntry:
    """One delivery attempt selected by the routing decision."""

    destination_id: int
    name: str
    webhook_url: str
    confidence: Optional[float] = None
    recommended: bool = False
    legacy: bool = False


@dataclass(frozen=True)
class DeliveryPlan:
    entries: Tuple[PlanEntry, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)


@dataclass(frozen=True)
class DeliveryRecord:
    """Outcome of a single webhook attempt for a (message, destination) pair."""

    message_id: str
    channel_id: str
    destination_id: int
    webhook_url: str
    success: bool
    status_code: Optional[int] = None
    error_message: Optional[str] = None
    routing_confidence: Optional[float] = None


def default_analysis(message: Message) -> Analysis:
    """Return the fixed analysis substituted when inference fails.

    needs_response is always True so a human eventually reviews the message.
    """

    return Analysis(
        support_status="other",
        tone="neutral",
        priority="medium",
        sentiment=Sentiment(score=0.0, confidence=0.0),
        topics=(),
        needs_response=True,
        summary="Unable to analyze message",
        suggested_actions=("Manual review required",),
        customer_mood=CustomerMood(description="Unknown", emoji="❓"),
        technical_details=TechnicalDetails(has_screenshot=bool(message.attachments)),
        team_routing=None,
    )


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))
