"""Priority/status flag switches shared by the destination forms."""

from __future__ import annotations

from typing import Iterator, Mapping, Optional

from textual.containers import Horizontal
from textual.widget import Widget
from textual.widgets import Static, Switch

from core.models import PRIORITIES, SUPPORT_STATUSES


def compose_flag_switches(prefix: str) -> Iterator[Widget]:
    yield Static("priorities", classes="form-label")
    for priority in reversed(PRIORITIES):
        yield Horizontal(
            Switch(value=False, id=f"{prefix}-priority-{priority}"),
            Static(priority, classes="switch-label"),
            classes="flag-row",
        )
    yield Static("support statuses", classes="form-label")
    for status in SUPPORT_STATUSES:
        yield Horizontal(
            Switch(value=False, id=f"{prefix}-status-{status}"),
            Static(status, classes="switch-label"),
            classes="flag-row",
        )


def parse_flag_id(switch_id: Optional[str], prefix: str) -> Optional[tuple[str, str]]:
    """Map a switch id back to ("priority" | "status", key)."""

    if not switch_id:
        return None
    for kind in ("priority", "status"):
        marker = f"{prefix}-{kind}-"
        if switch_id.startswith(marker):
            return kind, switch_id[len(marker) :]
    return None


def set_flag_switches(
    owner: Widget,
    prefix: str,
    priorities: Mapping[str, bool],
    statuses: Mapping[str, bool],
    disabled: bool = False,
) -> None:
    for priority in PRIORITIES:
        switch = owner.query_one(f"#{prefix}-priority-{priority}", Switch)
        switch.value = bool(priorities.get(priority, False))
        switch.disabled = disabled
    for status in SUPPORT_STATUSES:
        switch = owner.query_one(f"#{prefix}-status-{status}", Switch)
        switch.value = bool(statuses.get(status, False))
        switch.disabled = disabled


def summarize_flags(flags: Mapping[str, bool]) -> str:
    enabled = [key for key, value in flags.items() if value]
    return ", ".join(enabled) if enabled else "-"
