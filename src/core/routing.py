"""Routing decision (core domain).

Evaluates destination filters against one analysis and returns an ordered
delivery plan. Pure and deterministic: all inputs are snapshots taken by the
caller at the start of the routing pass.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from core.models import (
    LEGACY_DESTINATION_ID,
    LEGACY_DESTINATION_NAME,
    Analysis,
    DefaultDestination,
    DeliveryPlan,
    Destination,
    Message,
    PlanEntry,
)
from core.registry import is_webhook_url

LOGGER = logging.getLogger(__name__)


def _passes_common_filters(
    send_priorities,
    send_statuses,
    only_needs_response: bool,
    analysis: Analysis,
) -> bool:
    if only_needs_response and not analysis.needs_response:
        return False
    if not send_priorities.get(analysis.priority, False):
        return False
    if not send_statuses.get(analysis.support_status, False):
        return False
    return True


def matches_filter(destination: Destination, analysis: Analysis) -> bool:
    """Return True when a named destination wants this analysis.

    Checks, in order: enabled, webhook configured, needs-response flag,
    priority flag, support-status flag.
    """

    if not destination.enabled:
        return False
    if not is_webhook_url(destination.webhook_url):
        LOGGER.warning("Destination %s has no usable webhook URL; skipping", destination.name)
        return False
    return _passes_common_filters(
        destination.send_priorities,
        destination.send_statuses,
        destination.only_needs_response,
        analysis,
    )


def matches_legacy_default(default: Optional[DefaultDestination], analysis: Analysis) -> bool:
    """Return True when the legacy default destination wants this analysis."""

    if default is None or not default.enabled or not is_webhook_url(default.webhook_url):
        return False
    if default.only_needs_response and not analysis.needs_response:
        return False
    if not default.send_priorities.get(analysis.priority, False):
        return False
    # Rejects only when the score exceeds max AND is below min, which never
    # happens for min <= max.
    score = analysis.sentiment.score
    if score > default.max_sentiment_score and score < default.min_sentiment_score:
        return False
    return bool(default.send_statuses.get(analysis.support_status, False))


def find_destination(name: str, destinations: Iterable[Destination]) -> Optional[Destination]:
    """Case-insensitive lookup of a destination by name."""

    wanted = name.strip().lower()
    for destination in destinations:
        if destination.name.strip().lower() == wanted:
            return destination
    return None


def route(
    message: Message,
    analysis: Analysis,
    destinations: Sequence[Destination],
    legacy_default: Optional[DefaultDestination] = None,
) -> DeliveryPlan:
    """Build the delivery plan for one analyzed message.

    1. AI-recommended destination, if it exists and its filter matches.
    2. Every other enabled destination whose filter matches.
    3. Legacy default, only when stages 1 and 2 selected nothing.
    """

    entries: List[PlanEntry] = []
    chosen_id: Optional[int] = None

    routing = analysis.team_routing
    if routing is not None and destinations:
        recommended = find_destination(routing.recommended_destination, destinations)
        if recommended is None:
            LOGGER.info(
                "Recommended destination %r not found for %s",
                routing.recommended_destination,
                message.id,
            )
        elif matches_filter(recommended, analysis):
            chosen_id = recommended.id
            entries.append(
                PlanEntry(
                    destination_id=recommended.id,
                    name=recommended.name,
                    webhook_url=recommended.webhook_url,
                    confidence=routing.confidence,
                    recommended=True,
                )
            )
        else:
            LOGGER.info("Recommended destination %s filtered out for %s", recommended.name, message.id)

    for destination in destinations:
        if destination.id == chosen_id:
            continue
        if matches_filter(destination, analysis):
            entries.append(
                PlanEntry(
                    destination_id=destination.id,
                    name=destination.name,
                    webhook_url=destination.webhook_url,
                )
            )

    if not entries and matches_legacy_default(legacy_default, analysis):
        entries.append(
            PlanEntry(
                destination_id=LEGACY_DESTINATION_ID,
                name=LEGACY_DESTINATION_NAME,
                webhook_url=legacy_default.webhook_url or "",
                legacy=True,
            )
        )

    if not entries:
        LOGGER.info("Message %s does not meet any destination criteria", message.id)
    return DeliveryPlan(entries=tuple(entries))
