"""Delivery dispatcher (core domain).

Executes a delivery plan: one webhook attempt per entry, each logged to the
delivery log. The log enforces one row per (message, destination), so calling
deliver() twice for the same plan never yields two successful records.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, List, Optional

from core.models import Analysis, DeliveryPlan, DeliveryRecord, Message, PlanEntry
from core.ports import DeliveryLogPort, WebhookSenderPort

LOGGER = logging.getLogger(__name__)

PayloadFormatter = Callable[[Message, Analysis, PlanEntry], dict[str, Any]]


class DeliveryDispatcher:
    """Sends notifications for a plan and records every attempt."""

    def __init__(
        self,
        sender: WebhookSenderPort,
        delivery_log: DeliveryLogPort,
        formatter: PayloadFormatter,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._sender = sender
        self._delivery_log = delivery_log
        self._formatter = formatter
        self._timeout = timeout_seconds

    async def deliver(self, message: Message, analysis: Analysis, plan: DeliveryPlan) -> List[DeliveryRecord]:
        """Attempt every plan entry; returns one record per entry in plan order."""

        entries = list(plan)
        records: List[DeliveryRecord] = []
        if entries and entries[0].recommended:
            records.append(await self._attempt(message, analysis, entries[0]))
            entries = entries[1:]
        if entries:
            # Broadcast targets are independent; a slow one must not hold up the rest.
            records.extend(
                await asyncio.gather(*(self._attempt(message, analysis, entry) for entry in entries))
            )
        return records

    async def _attempt(self, message: Message, analysis: Analysis, entry: PlanEntry) -> DeliveryRecord:
        try:
            payload = self._formatter(message, analysis, entry)
            send = self._sender.post(entry.webhook_url, payload)
            if self._timeout is not None:
                response = await asyncio.wait_for(send, timeout=self._timeout)
            else:
                response = await send
        except asyncio.TimeoutError:
            record = self._failure(message, entry, f"Timed out after {self._timeout}s")
        except Exception as exc:
            record = self._failure(message, entry, str(exc) or exc.__class__.__name__)
        else:
            record = DeliveryRecord(
                message_id=message.id,
                channel_id=message.channel.id,
                destination_id=entry.destination_id,
                webhook_url=entry.webhook_url,
                success=response.ok,
                status_code=response.status_code,
                error_message=None if response.ok else response.text,
                routing_confidence=entry.confidence,
            )

        if record.success:
            LOGGER.info("Webhook sent to %s for message %s", entry.name, message.id)
        else:
            LOGGER.error(
                "Webhook to %s failed for message %s: %s %s",
                entry.name,
                message.id,
                record.status_code or "-",
                record.error_message or "",
            )

        try:
            stored = self._delivery_log.record_delivery(record)
        except Exception:
            LOGGER.exception("Failed to log delivery to %s for message %s", entry.name, message.id)
        else:
            if not stored:
                LOGGER.info("Delivery to %s for %s already recorded; log unchanged", entry.name, message.id)
        return record

    @staticmethod
    def _failure(message: Message, entry: PlanEntry, error: str) -> DeliveryRecord:
        return DeliveryRecord(
            message_id=message.id,
            channel_id=message.channel.id,
            destination_id=entry.destination_id,
            webhook_url=entry.webhook_url,
            success=False,
            status_code=None,
            error_message=error,
            routing_confidence=entry.confidence,
        )
