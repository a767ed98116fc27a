"""Classification store (core domain).

Wraps the storage port so that analysis writes are idempotent per message id
and failures never escape into the pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.config import DEFAULT_PRICING, PricingConfig
from core.ledger import calculate_cost
from core.models import Analysis, Message, TokenUsage
from core.ports import ClassificationStoragePort

LOGGER = logging.getLogger(__name__)


class ClassificationStore:
    """Persists the latest analysis per message and serves read queries."""

    def __init__(self, storage: ClassificationStoragePort, pricing: PricingConfig = DEFAULT_PRICING) -> None:
        self._storage = storage
        self._pricing = pricing

    def upsert_analysis(
        self,
        message: Message,
        analysis: Analysis,
        usage: TokenUsage,
        model: str,
        duration_ms: int,
    ) -> bool:
        """Insert or overwrite the analysis row for this message."""

        cost = calculate_cost(usage.prompt_tokens, usage.completion_tokens, self._pricing)
        try:
            self._storage.upsert_message_log(message, analysis, usage, model, cost.total_cost, duration_ms)
        except Exception:
            LOGGER.exception("Failed to save message log for %s", message.id)
            return False
        LOGGER.info("Message log saved: %s", message.id)
        return True

    def get_recent(self, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
        return self._read(lambda: self._storage.recent_message_logs(limit, offset), [])

    def get_by_channel(self, channel_id: str, limit: int = 50) -> list[dict[str, Any]]:
        return self._read(lambda: self._storage.message_logs_by_channel(channel_id, limit), [])

    def get_needing_response(self) -> list[dict[str, Any]]:
        """Rows needing a reply, most urgent priority first, newest first."""

        return self._read(self._storage.message_logs_needing_response, [])

    def get_stats(self) -> dict[str, Any]:
        return self._read(self._storage.message_log_stats, {})

    def search(
        self,
        priority: Optional[str] = None,
        support_status: Optional[str] = None,
        needs_response: Optional[bool] = None,
        text: Optional[str] = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        return self._read(
            lambda: self._storage.search_message_logs(priority, support_status, needs_response, text, limit),
            [],
        )

    @staticmethod
    def _read(query, fallback):
        try:
            return query()
        except Exception:
            LOGGER.exception("Message log query failed")
            return fallback
