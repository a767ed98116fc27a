"""Core configuration dataclasses.

We keep config parsing outside the core (see settings.py), but these
dataclasses define the shape the core expects so adapters and the app layer
can build and pass them explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

ALL_CHANNELS = "ALL"


@dataclass(frozen=True)
class PricingConfig:
    """Unit prices in USD per one million tokens."""

    input_per_million: float = 0.050
    output_per_million: float = 0.400


DEFAULT_PRICING = PricingConfig()


@dataclass(frozen=True)
class AnalysisConfig:
    """Inference settings for the analysis engine."""

    model: str = "gpt-4o-mini"
    timeout_seconds: float = 30.0


@dataclass(frozen=True)
class DeliveryConfig:
    """Notification settings consumed by the dispatcher and formatter."""

    timeout_seconds: float = 10.0
    body_chars: int = 500
    footer: str = "Discord Bot"


@dataclass(frozen=True)
class MonitorConfig:
    """Which channels the pipeline accepts messages from."""

    channel_ids: frozenset[str] = field(default_factory=frozenset)
    monitor_all: bool = True

    @classmethod
    def parse(cls, raw: Optional[str | Iterable[str]]) -> "MonitorConfig":
        """Build from a comma list, an iterable of ids, or the ALL sentinel.

        Missing or empty input means every channel is monitored.
        """

        if raw is None:
            return cls()
        if isinstance(raw, str):
            if raw.strip().upper() == ALL_CHANNELS:
                return cls()
            items = raw.split(",")
        else:
            items = list(raw)
        ids = frozenset(str(item).strip() for item in items if str(item).strip())
        if not ids or any(item.upper() == ALL_CHANNELS for item in ids):
            return cls()
        return cls(channel_ids=ids, monitor_all=False)
