"""Default tab for the legacy single-webhook fallback."""

from __future__ import annotations

from typing import Any

from textual import on
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.widgets import Button, Input, Static, Switch

from adapters.notification_formatting import format_test_notification
from core.models import PRIORITIES, SUPPORT_STATUSES
from core.registry import DestinationError

from ..validators import parse_sentiment_bound, parse_webhook_url
from .flags import compose_flag_switches, set_flag_switches

PREFIX = "default"


class DefaultTab(Container):
    """Used only when no named destination takes a message."""

    def compose(self):
        with Vertical(id="default-panel"):
            with ScrollableContainer(id="default-form"):
                yield Static("Default webhook", id="default-title")
                yield Static(
                    "Receives a message only when no named destination matched it.",
                    classes="subtle",
                )
                yield Static("webhook_url", classes="form-label")
                yield Input(placeholder="https://hooks.slack.com/services/...", id="default-webhook")
                yield Static("description", classes="form-label")
                yield Input(placeholder="Default webhook settings", id="default-description")
                yield Static("enabled", classes="form-label")
                yield Switch(value=False, id="default-enabled")
                yield Static("only_needs_response", classes="form-label")
                yield Switch(value=False, id="default-only-needs-response")
                yield Static("min_sentiment_score", classes="form-label")
                yield Input(placeholder="-1.0", id="default-min-sentiment")
                yield Static("max_sentiment_score", classes="form-label")
                yield Input(placeholder="1.0", id="default-max-sentiment")
                yield from compose_flag_switches(PREFIX)
            with Horizontal(id="default-actions"):
                yield Button("Save", id="default-save", variant="success")
                yield Button("Revert", id="default-revert")
                yield Button("Send test", id="default-test")
            yield Static("", id="default-output")

    def on_mount(self) -> None:
        self.reload_from_db()

    def reload_from_db(self) -> None:
        try:
            default = self.app.registry.get_legacy_default()
        except Exception as exc:
            self._set_output(f"db error: {exc}")
            return
        if default is None:
            self._set_output("default destination row missing")
            return
        self.query_one("#default-webhook", Input).value = default.webhook_url or ""
        self.query_one("#default-description", Input).value = default.description
        self.query_one("#default-enabled", Switch).value = default.enabled
        self.query_one("#default-only-needs-response", Switch).value = default.only_needs_response
        self.query_one("#default-min-sentiment", Input).value = str(default.min_sentiment_score)
        self.query_one("#default-max-sentiment", Input).value = str(default.max_sentiment_score)
        set_flag_switches(self, PREFIX, default.send_priorities, default.send_statuses)

    @on(Button.Pressed, "#default-revert")
    def _on_revert(self) -> None:
        self.reload_from_db()
        self._set_output("reverted to stored settings")

    @on(Button.Pressed, "#default-save")
    def _on_save(self) -> None:
        url, url_error = parse_webhook_url(self.query_one("#default-webhook", Input).value, required=False)
        if url_error:
            self._set_output(url_error)
            return
        min_score, min_error = parse_sentiment_bound(self.query_one("#default-min-sentiment", Input).value)
        max_score, max_error = parse_sentiment_bound(self.query_one("#default-max-sentiment", Input).value)
        if min_error or max_error:
            self._set_output(min_error or max_error or "")
            return
        changes: dict[str, Any] = {
            "webhook_url": url or "",
            "description": self.query_one("#default-description", Input).value.strip() or "Default webhook settings",
            "enabled": self.query_one("#default-enabled", Switch).value,
            "only_needs_response": self.query_one("#default-only-needs-response", Switch).value,
            "min_sentiment_score": min_score,
            "max_sentiment_score": max_score,
            "send_priorities": {
                priority: self.query_one(f"#{PREFIX}-priority-{priority}", Switch).value
                for priority in PRIORITIES
            },
            "send_statuses": {
                status: self.query_one(f"#{PREFIX}-status-{status}", Switch).value
                for status in SUPPORT_STATUSES
            },
        }
        try:
            updated = self.app.registry.update_legacy_default(**changes)
        except DestinationError as exc:
            self._set_output(str(exc))
            return
        state = "enabled" if updated.enabled else "disabled"
        self._set_output(f"default webhook saved ({state})")

    @on(Button.Pressed, "#default-test")
    async def _on_test(self) -> None:
        url, url_error = parse_webhook_url(self.query_one("#default-webhook", Input).value)
        if url_error or url is None:
            self._set_output(url_error or "webhook URL is required")
            return
        self._set_output("sending test...")
        try:
            response = await self.app.sender.post(url, format_test_notification("default webhook"))
        except Exception as exc:
            self._set_output(f"test failed: {exc}")
            return
        if response.ok:
            self._set_output(f"test delivered ({response.status_code})")
        else:
            self._set_output(f"test failed: {response.status_code} {response.text}")

    def _set_output(self, message: str) -> None:
        self.query_one("#default-output", Static).update(message)
