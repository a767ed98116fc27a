"""Cost/usage ledger (core domain).

Every inference attempt, including failures, lands here for billing
visibility. Writes are best-effort: a storage failure is logged and never
aborts message processing.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from core.config import DEFAULT_PRICING, PricingConfig
from core.models import Analysis, CostBreakdown, Message, TokenUsage, UsageRecord
from core.ports import UsageStoragePort

LOGGER = logging.getLogger(__name__)

TOKENS_PER_UNIT = 1_000_000


def calculate_cost(
    prompt_tokens: int,
    completion_tokens: int,
    pricing: PricingConfig = DEFAULT_PRICING,
) -> CostBreakdown:
    """Return input/output/total cost in USD, each rounded to 6 places."""

    input_cost = round(prompt_tokens / TOKENS_PER_UNIT * pricing.input_per_million, 6)
    output_cost = round(completion_tokens / TOKENS_PER_UNIT * pricing.output_per_million, 6)
    return CostBreakdown(
        input_cost=input_cost,
        output_cost=output_cost,
        total_cost=round(input_cost + output_cost, 6),
    )


class UsageLedger:
    """Records inference attempts and reports on spend."""

    def __init__(self, storage: UsageStoragePort, pricing: PricingConfig = DEFAULT_PRICING) -> None:
        self._storage = storage
        self._pricing = pricing

    @property
    def pricing(self) -> PricingConfig:
        return self._pricing

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> CostBreakdown:
        return calculate_cost(prompt_tokens, completion_tokens, self._pricing)

    def record_usage(
        self,
        message: Message,
        analysis: Analysis,
        usage: TokenUsage,
        model: str,
        duration_ms: int,
        error: Optional[str] = None,
    ) -> Optional[UsageRecord]:
        """Persist one usage row; returns None when the write failed."""

        record = UsageRecord(
            message_id=message.id,
            author_id=message.author.id,
            author_tag=message.author.tag,
            channel_id=message.channel.id,
            channel_name=message.channel.name,
            server_id=message.server.id,
            server_name=message.server.name,
            model=model,
            usage=usage,
            cost=self.calculate_cost(usage.prompt_tokens, usage.completion_tokens),
            analysis=analysis,
            processing_time_ms=duration_ms,
            error_occurred=error is not None,
            error_message=error,
        )
        try:
            self._storage.save_usage(record)
        except Exception:
            LOGGER.exception("Failed to save usage for message %s", message.id)
            return None
        LOGGER.info(
            "Usage saved for %s: %s tokens, $%.6f",
            message.id,
            usage.total_tokens,
            record.cost.total_cost,
        )
        return record

    def summary(self, days: int = 30, now: Optional[datetime] = None) -> dict[str, Any]:
        """Totals for the last `days` days plus a daily average and monthly projection."""

        stats = dict(self._storage.usage_summary(days))
        total_cost = float(stats.get("total_cost") or 0)
        first = stats.get("first_message")
        elapsed_days = 1.0
        if first:
            now = now or datetime.now(timezone.utc)
            first_at = datetime.fromisoformat(str(first))
            if first_at.tzinfo is None:
                first_at = first_at.replace(tzinfo=timezone.utc)
            elapsed_days = (now - first_at).total_seconds() / 86400
        daily = total_cost / max(elapsed_days, 1.0)
        stats["daily_average_cost"] = daily
        stats["monthly_projection"] = daily * 30
        return stats

    def by_model(self, days: int = 30) -> list[dict[str, Any]]:
        return self._storage.usage_by_model(days)

    def top_channels(self, limit: int = 10) -> list[dict[str, Any]]:
        return self._storage.top_channels_by_usage(limit)

    def attempts_for(self, message_id: str, limit: int = 20) -> list[dict[str, Any]]:
        """Every recorded inference attempt for one message, newest first."""

        return self._storage.list_usage(message_id, limit)
