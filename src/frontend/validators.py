"""Validation helpers for config and destination editing."""

from __future__ import annotations

from dataclasses import dataclass

from core.config import ALL_CHANNELS
from core.registry import is_webhook_url


@dataclass
class ChannelListInfo:
    normalized: str | None
    count: int
    error: str | None = None


def parse_channel_list(raw_value: str) -> ChannelListInfo:
    """Validate the monitored-channel setting: ALL or comma-separated ids."""

    raw_value = raw_value.strip()
    if not raw_value or raw_value.upper() == ALL_CHANNELS:
        return ChannelListInfo(ALL_CHANNELS, 0)

    ids = [part.strip() for part in raw_value.split(",") if part.strip()]
    for channel_id in ids:
        if not channel_id.isdigit():
            return ChannelListInfo(None, 0, f"channel id must be numeric: {channel_id}")
    return ChannelListInfo(",".join(ids), len(ids))


def parse_webhook_url(raw_value: str, required: bool = True) -> tuple[str | None, str | None]:
    """Return (url, error)."""

    value = raw_value.strip()
    if not value:
        if required:
            return None, "webhook URL is required"
        return None, None
    if not is_webhook_url(value):
        return None, "webhook URL must start with http:// or https://"
    return value, None


def parse_sentiment_bound(raw_value: str) -> tuple[float | None, str | None]:
    try:
        value = float(raw_value.strip())
    except ValueError:
        return None, "sentiment bound must be a number"
    if not -1.0 <= value <= 1.0:
        return None, "sentiment bound must be between -1 and 1"
    return value, None


def parse_positive_number(raw_value: str, integer: bool = False) -> tuple[float | None, str | None]:
    raw_value = raw_value.strip()
    try:
        value = int(raw_value) if integer else float(raw_value)
    except ValueError:
        return None, "must be a whole number" if integer else "must be a number"
    if value <= 0:
        return None, "must be greater than zero"
    return value, None
