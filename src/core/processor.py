"""Core message processing pipeline.

This module is integration-agnostic. It only relies on ports for inference,
storage and webhooks, enabling other chat platforms or backends without
changes here.

The pipeline enforces a strict order:
1) Fast-exit for bot authors and unmonitored channels
2) Snapshot enabled destinations and the legacy default (one read per message)
3) Analyze (default analysis on failure)
4) Record usage + upsert the classification (independent, best-effort)
5) Route against the snapshot and the legacy default
6) Deliver and log every attempt
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from core.analysis import AnalysisEngine, AnalysisOutcome
from core.channels import should_process
from core.classification import ClassificationStore
from core.config import MonitorConfig
from core.dispatcher import DeliveryDispatcher
from core.ledger import UsageLedger
from core.models import DefaultDestination, DeliveryPlan, DeliveryRecord, Destination, Message
from core.registry import DestinationRegistry
from core.routing import route

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessingResult:
    """What happened to one message inside the pipeline."""

    message_id: str
    outcome: AnalysisOutcome
    plan: DeliveryPlan = field(default_factory=DeliveryPlan)
    deliveries: List[DeliveryRecord] = field(default_factory=list)


class MessageProcessor:
    """Orchestrates analysis, persistence, routing and delivery."""

    def __init__(
        self,
        engine: AnalysisEngine,
        ledger: UsageLedger,
        classifications: ClassificationStore,
        registry: DestinationRegistry,
        dispatcher: DeliveryDispatcher,
        monitor: MonitorConfig,
    ) -> None:
        self._engine = engine
        self._ledger = ledger
        self._classifications = classifications
        self._registry = registry
        self._dispatcher = dispatcher
        self._monitor = monitor

    async def handle(self, message: Message) -> Optional[ProcessingResult]:
        """Process one message; returns None when the message is filtered out."""

        if not should_process(message, self._monitor):
            LOGGER.debug("Skipping message %s from #%s", message.id, message.channel.name)
            return None

        LOGGER.info(
            "Processing message %s from %s in #%s (%s)",
            message.id,
            message.author.tag,
            message.channel.name,
            message.server.name,
        )

        destinations, legacy_default = self._snapshot_destinations()
        outcome = await self._engine.analyze(message, destinations)

        # Neither write depends on the other and both swallow their own errors.
        await asyncio.gather(
            asyncio.to_thread(
                self._ledger.record_usage,
                message,
                outcome.analysis,
                outcome.usage,
                outcome.model,
                outcome.duration_ms,
                outcome.error,
            ),
            asyncio.to_thread(
                self._classifications.upsert_analysis,
                message,
                outcome.analysis,
                outcome.usage,
                outcome.model,
                outcome.duration_ms,
            ),
        )

        try:
            plan = route(message, outcome.analysis, destinations, legacy_default)
            deliveries = await self._dispatcher.deliver(message, outcome.analysis, plan)
        except Exception:
            LOGGER.exception("Error while routing message %s", message.id)
            return ProcessingResult(message_id=message.id, outcome=outcome)

        LOGGER.info(
            "Message %s done: priority=%s, %s/%s deliveries succeeded",
            message.id,
            outcome.analysis.priority,
            sum(1 for record in deliveries if record.success),
            len(deliveries),
        )
        return ProcessingResult(
            message_id=message.id,
            outcome=outcome,
            plan=plan,
            deliveries=deliveries,
        )

    def _snapshot_destinations(self) -> Tuple[List[Destination], Optional[DefaultDestination]]:
        """Read the routing configuration once, before analysis."""

        try:
            destinations = self._registry.list_enabled()
        except Exception:
            LOGGER.exception("Failed to load destinations; routing without them")
            destinations = []
        try:
            legacy_default = self._registry.get_legacy_default()
        except Exception:
            LOGGER.exception("Failed to load default destination")
            legacy_default = None
        LOGGER.debug(
            "Available destinations: %s",
            ", ".join(dest.name for dest in destinations) or "none",
        )
        return destinations, legacy_default
