"""Destination registry (core domain).

Named destinations and the legacy default share one filter shape. The
registry validates operator edits; the routing pass reads one snapshot via
list_enabled() so edits only affect subsequent messages.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from core.models import PRIORITIES, SUPPORT_STATUSES, DefaultDestination, Destination
from core.ports import DestinationStoragePort

LOGGER = logging.getLogger(__name__)

DEFAULT_PRIORITY_FLAGS: Mapping[str, bool] = {
    "critical": True,
    "high": True,
    "medium": False,
    "low": False,
}

DEFAULT_STATUS_FLAGS: Mapping[str, bool] = {
    "help_request": True,
    "bug_report": True,
    "feature_request": False,
    "complaint": True,
    "feedback": False,
    "question": False,
    "documentation_issue": False,
    "urgent_issue": True,
    "general_discussion": False,
    "resolved": False,
    "other": False,
}

_DESTINATION_FIELDS = {
    "name",
    "description",
    "webhook_url",
    "enabled",
    "send_priorities",
    "send_statuses",
    "only_needs_response",
}
_DEFAULT_FIELDS = {
    "webhook_url",
    "enabled",
    "send_priorities",
    "send_statuses",
    "only_needs_response",
    "min_sentiment_score",
    "max_sentiment_score",
    "description",
}


class DestinationError(ValueError):
    """Raised when a destination edit is invalid."""


def is_webhook_url(value: Optional[str]) -> bool:
    if not value:
        return False
    return value.startswith("https://") or value.startswith("http://")


def _merge_flags(
    current: Mapping[str, bool],
    changes: Optional[Mapping[str, Any]],
    allowed: tuple[str, ...],
    kind: str,
) -> dict[str, bool]:
    merged = {key: bool(current.get(key, False)) for key in allowed}
    if not changes:
        return merged
    unknown = set(changes) - set(allowed)
    if unknown:
        raise DestinationError(f"Unknown {kind} flag(s): {', '.join(sorted(unknown))}")
    for key, value in changes.items():
        merged[key] = bool(value)
    return merged


def _validate_destination(values: Mapping[str, Any]) -> None:
    if not str(values.get("name") or "").strip():
        raise DestinationError("Destination name is required")
    if not str(values.get("description") or "").strip():
        raise DestinationError("Destination description is required")
    if not is_webhook_url(values.get("webhook_url")):
        raise DestinationError("Webhook URL must start with http:// or https://")


class DestinationRegistry:
    """CRUD over destinations plus the legacy default configuration."""

    def __init__(self, storage: DestinationStoragePort) -> None:
        self._storage = storage

    def list_enabled(self) -> list[Destination]:
        """Return a snapshot of enabled destinations ordered by name."""

        return self._storage.list_destinations(enabled_only=True)

    def list_all(self) -> list[Destination]:
        return self._storage.list_destinations(enabled_only=False)

    def get(self, destination_id: int) -> Optional[Destination]:
        return self._storage.get_destination(destination_id)

    def create(
        self,
        name: str,
        description: str,
        webhook_url: str,
        enabled: bool = True,
        send_priorities: Optional[Mapping[str, bool]] = None,
        send_statuses: Optional[Mapping[str, bool]] = None,
        only_needs_response: bool = False,
    ) -> Destination:
        values: dict[str, Any] = {
            "name": name.strip(),
            "description": description.strip(),
            "webhook_url": webhook_url.strip(),
            "enabled": bool(enabled),
            "send_priorities": _merge_flags(DEFAULT_PRIORITY_FLAGS, send_priorities, PRIORITIES, "priority"),
            "send_statuses": _merge_flags(DEFAULT_STATUS_FLAGS, send_statuses, SUPPORT_STATUSES, "status"),
            "only_needs_response": bool(only_needs_response),
        }
        _validate_destination(values)
        destination = self._storage.insert_destination(values)
        LOGGER.info("Destination created: %s (id=%s)", destination.name, destination.id)
        return destination

    def update(self, destination_id: int, **changes: Any) -> Optional[Destination]:
        """Apply a partial update; flag maps are merged, not replaced."""

        unknown = set(changes) - _DESTINATION_FIELDS
        if unknown:
            raise DestinationError(f"Unknown destination field(s): {', '.join(sorted(unknown))}")
        current = self._storage.get_destination(destination_id)
        if current is None:
            return None

        values: dict[str, Any] = {
            "name": current.name,
            "description": current.description,
            "webhook_url": current.webhook_url,
            "enabled": current.enabled,
            "only_needs_response": current.only_needs_response,
        }
        for key in ("name", "description", "webhook_url"):
            if key in changes and changes[key] is not None:
                values[key] = str(changes[key]).strip()
        for key in ("enabled", "only_needs_response"):
            if key in changes and changes[key] is not None:
                values[key] = bool(changes[key])
        values["send_priorities"] = _merge_flags(
            current.send_priorities, changes.get("send_priorities"), PRIORITIES, "priority"
        )
        values["send_statuses"] = _merge_flags(
            current.send_statuses, changes.get("send_statuses"), SUPPORT_STATUSES, "status"
        )
        _validate_destination(values)
        updated = self._storage.update_destination(destination_id, values)
        if updated is not None:
            LOGGER.info("Destination updated: %s (id=%s)", updated.name, updated.id)
        return updated

    def delete(self, destination_id: int) -> bool:
        deleted = self._storage.delete_destination(destination_id)
        if deleted:
            LOGGER.info("Destination deleted: id=%s", destination_id)
        return deleted

    def delivery_history(
        self,
        destination_id: Optional[int] = None,
        message_id: Optional[str] = None,
        limit: int = 20,
    ) -> list[dict[str, Any]]:
        """Most recent delivery attempts, newest first; empty on a storage error."""

        try:
            return self._storage.list_deliveries(destination_id, message_id, limit)
        except Exception:
            LOGGER.exception("Delivery history query failed")
            return []

    def get_legacy_default(self) -> Optional[DefaultDestination]:
        return self._storage.get_default_destination()

    def update_legacy_default(self, **changes: Any) -> DefaultDestination:
        unknown = set(changes) - _DEFAULT_FIELDS
        if unknown:
            raise DestinationError(f"Unknown default field(s): {', '.join(sorted(unknown))}")
        current = self._storage.get_default_destination()
        current_priorities = current.send_priorities if current else DEFAULT_PRIORITY_FLAGS
        current_statuses = current.send_statuses if current else DEFAULT_STATUS_FLAGS

        values: dict[str, Any] = {
            key: value
            for key, value in changes.items()
            if key not in ("send_priorities", "send_statuses") and value is not None
        }
        if "webhook_url" in values:
            url = str(values["webhook_url"]).strip()
            if url and not is_webhook_url(url):
                raise DestinationError("Webhook URL must start with http:// or https://")
            values["webhook_url"] = url or None
        for key in ("min_sentiment_score", "max_sentiment_score"):
            if key in values:
                score = float(values[key])
                if not -1.0 <= score <= 1.0:
                    raise DestinationError(f"{key} must be between -1 and 1")
                values[key] = score
        values["send_priorities"] = _merge_flags(
            current_priorities, changes.get("send_priorities"), PRIORITIES, "priority"
        )
        values["send_statuses"] = _merge_flags(
            current_statuses, changes.get("send_statuses"), SUPPORT_STATUSES, "status"
        )
        updated = self._storage.update_default_destination(values)
        LOGGER.info("Default destination updated (enabled=%s)", updated.enabled)
        return updated
