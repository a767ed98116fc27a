"""Monitored-channel filter (core domain)."""

from __future__ import annotations

from core.config import MonitorConfig
from core.models import Message


def should_process(message: Message, monitor: MonitorConfig) -> bool:
    """Return True when the message comes from a monitored channel.

    Bot authors are always skipped to avoid feedback loops with our own
    notifications. Threads are matched through their parent channel.
    """

    if message.author.bot:
        return False
    if monitor.monitor_all:
        return True
    if message.channel.is_thread:
        parent_id = message.channel.parent_id
        return bool(parent_id) and parent_id in monitor.channel_ids
    return message.channel.id in monitor.channel_ids
