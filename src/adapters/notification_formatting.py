"""Shared notification formatting helpers.

Keeping formatting here prevents drift between named destinations and the
legacy default, so every webhook receives the same attachment layout.
"""

from __future__ import annotations

from typing import Any, Optional

from core.config import DeliveryConfig
from core.models import Analysis, Message, PlanEntry

ELLIPSIS = "..."

PRIORITY_COLORS = {
    "critical": "#ff0000",
    "high": "#ff6600",
    "medium": "#ffcc00",
}
NEGATIVE_COLOR = "#ff3300"
DEFAULT_COLOR = "#36a64f"
NEGATIVE_SENTIMENT_THRESHOLD = -0.5


def priority_color(analysis: Analysis) -> str:
    """Return the attachment color for an analysis.

    Priority wins; very negative sentiment only recolors low-priority messages.
    """

    color = PRIORITY_COLORS.get(analysis.priority)
    if color:
        return color
    if analysis.sentiment.score < NEGATIVE_SENTIMENT_THRESHOLD:
        return NEGATIVE_COLOR
    return DEFAULT_COLOR


def truncate_body(text: str, limit: int = 500) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + ELLIPSIS


def status_label(support_status: str) -> str:
    return support_status.replace("_", " ").upper()


def _field(title: str, value: str, short: bool = True) -> dict[str, Any]:
    return {"title": title, "value": value, "short": short}


def format_notification(
    message: Message,
    analysis: Analysis,
    entry: Optional[PlanEntry] = None,
    config: Optional[DeliveryConfig] = None,
) -> dict[str, Any]:
    """Return the JSON webhook payload for one plan entry.

    Named destinations get a routing field and footer; the legacy default
    (or no entry at all) gets the generic layout.
    """

    config = config or DeliveryConfig()
    routed_name = entry.name if entry is not None and not entry.legacy else None

    fields: list[dict[str, Any]] = []
    if routed_name:
        fields.append(_field("Destination", routed_name))
    fields.extend(
        [
            _field("Channel", f"#{message.channel.name} ({message.server.name})"),
            _field("Priority", analysis.priority.upper()),
            _field("Support Status", status_label(analysis.support_status)),
            _field("Sentiment", f"{analysis.sentiment.score:.2f} ({analysis.tone})"),
        ]
    )
    if entry is not None and entry.confidence:
        fields.append(_field("AI Routing Confidence", f"{entry.confidence * 100:.1f}%"))
    fields.append(_field("Summary", analysis.summary, short=False))

    if routed_name:
        text = f"New Discord message routed to {routed_name}"
        footer = f"{config.footer} • Destination: {routed_name}"
    else:
        text = "New Discord message requires attention"
        footer = config.footer

    return {
        "text": text,
        "attachments": [
            {
                "color": priority_color(analysis),
                "title": f"{analysis.customer_mood.emoji} Message from {message.author.tag}",
                "title_link": message.link,
                "fields": fields,
                "text": truncate_body(message.content, config.body_chars),
                "footer": footer,
                "ts": int(message.timestamp.timestamp()),
            }
        ],
    }


def format_test_notification(destination_name: str) -> dict[str, Any]:
    """Small payload used by the config panel to verify a webhook URL."""

    return {
        "text": f"Test notification for {destination_name}",
        "attachments": [
            {
                "color": DEFAULT_COLOR,
                "title": "Webhook connected",
                "text": "If you can read this, supportlens can reach this destination.",
                "footer": "supportlens",
            }
        ],
    }
