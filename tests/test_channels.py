from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from core.channels import should_process
from core.config import MonitorConfig
from core.models import Author, Channel, Message, Server


def _message(
    *,
    channel_id: str = "100",
    is_thread: bool = False,
    parent_id: Optional[str] = None,
    bot: bool = False,
) -> Message:
    return Message(
        id="1",
        content="hello",
        author=Author(id="u1", tag="alice", display_name="Alice", bot=bot),
        channel=Channel(id=channel_id, name="support", is_thread=is_thread, parent_id=parent_id),
        server=Server(id="g1", name="Guild"),
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


def test_parse_all_sentinel_is_case_insensitive() -> None:
    assert MonitorConfig.parse("all").monitor_all
    assert MonitorConfig.parse(" ALL ").monitor_all
    assert MonitorConfig.parse(None).monitor_all
    assert MonitorConfig.parse("").monitor_all


def test_parse_comma_list() -> None:
    monitor = MonitorConfig.parse("100, 200,,300")
    assert not monitor.monitor_all
    assert monitor.channel_ids == frozenset({"100", "200", "300"})


def test_parse_list_containing_all_monitors_everything() -> None:
    assert MonitorConfig.parse(["100", "All"]).monitor_all


def test_bots_are_never_processed() -> None:
    assert not should_process(_message(bot=True), MonitorConfig())


def test_monitor_all_accepts_any_channel() -> None:
    assert should_process(_message(channel_id="999"), MonitorConfig())


def test_allow_list_filters_channels() -> None:
    monitor = MonitorConfig.parse("100")
    assert should_process(_message(channel_id="100"), monitor)
    assert not should_process(_message(channel_id="200"), monitor)


def test_thread_matches_through_parent_channel() -> None:
    monitor = MonitorConfig.parse("100")
    assert should_process(_message(channel_id="555", is_thread=True, parent_id="100"), monitor)
    assert not should_process(_message(channel_id="100", is_thread=True, parent_id="200"), monitor)
    assert not should_process(_message(channel_id="555", is_thread=True, parent_id=None), monitor)
