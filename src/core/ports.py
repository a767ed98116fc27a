"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for inference, storage and webhook
adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from core.models import (
    Analysis,
    DefaultDestination,
    DeliveryRecord,
    Destination,
    Message,
    TokenUsage,
    UsageRecord,
)


@dataclass(frozen=True)
class InferenceResult:
    """Parsed provider output plus the token usage it reported."""

    analysis: Analysis
    usage: TokenUsage


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    text: str

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


class AnalyzerPort(Protocol):
    """Inference provider that classifies a prompt into an Analysis."""

    model: str

    async def analyze(self, prompt: str, include_routing: bool) -> InferenceResult:
        ...


class UsageStoragePort(Protocol):
    """Append-only storage for inference attempts."""

    def save_usage(self, record: UsageRecord) -> None:
        ...

    def usage_summary(self, days: int) -> dict[str, Any]:
        ...

    def usage_by_model(self, days: int) -> list[dict[str, Any]]:
        ...

    def top_channels_by_usage(self, limit: int) -> list[dict[str, Any]]:
        ...

    def list_usage(self, message_id: Optional[str], limit: int) -> list[dict[str, Any]]:
        ...


class ClassificationStoragePort(Protocol):
    """Upsert-by-message-id storage for analysis results."""

    def upsert_message_log(
        self,
        message: Message,
        analysis: Analysis,
        usage: TokenUsage,
        model: str,
        processing_cost: float,
        duration_ms: int,
    ) -> None:
        ...

    def recent_message_logs(self, limit: int, offset: int) -> list[dict[str, Any]]:
        ...

    def message_logs_by_channel(self, channel_id: str, limit: int) -> list[dict[str, Any]]:
        ...

    def message_logs_needing_response(self) -> list[dict[str, Any]]:
        ...

    def message_log_stats(self) -> dict[str, Any]:
        ...

    def search_message_logs(
        self,
        priority: Optional[str],
        support_status: Optional[str],
        needs_response: Optional[bool],
        text: Optional[str],
        limit: int,
    ) -> list[dict[str, Any]]:
        ...


class DestinationStoragePort(Protocol):
    """Keyed storage for destinations and the legacy default."""

    def list_destinations(self, enabled_only: bool) -> list[Destination]:
        ...

    def get_destination(self, destination_id: int) -> Optional[Destination]:
        ...

    def insert_destination(self, values: dict[str, Any]) -> Destination:
        ...

    def update_destination(self, destination_id: int, values: dict[str, Any]) -> Optional[Destination]:
        ...

    def delete_destination(self, destination_id: int) -> bool:
        ...

    def get_default_destination(self) -> Optional[DefaultDestination]:
        ...

    def update_default_destination(self, values: dict[str, Any]) -> DefaultDestination:
        ...

    def list_deliveries(
        self,
        destination_id: Optional[int],
        message_id: Optional[str],
        limit: int,
    ) -> list[dict[str, Any]]:
        ...


class DeliveryLogPort(Protocol):
    """Delivery log with a uniqueness constraint on (message, destination)."""

    def record_delivery(self, record: DeliveryRecord) -> bool:
        ...


class WebhookSenderPort(Protocol):
    """Outbound transport performing one POST per call."""

    async def post(self, url: str, payload: dict[str, Any]) -> WebhookResponse:
        ...
