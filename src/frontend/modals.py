"""Modal dialogs for the Textual config panel."""

from __future__ import annotations

from typing import Any

from textual.app import ComposeResult
from textual.containers import Container, Horizontal, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Button, Input, Static, Switch

from .validators import parse_webhook_url


class UnsavedChangesScreen(ModalScreen[str]):
    """Prompt when exiting with unsaved config.json changes."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Unsaved changes", classes="modal-title"),
            Static("Save config.json before exit?", classes="modal-body"),
            Horizontal(
                Button("Save", id="unsaved-save", variant="success"),
                Button("Discard", id="unsaved-discard", variant="error"),
                Button("Cancel", id="unsaved-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choices = {"unsaved-save": "save", "unsaved-discard": "discard"}
        self.dismiss(choices.get(event.button.id or "", "cancel"))


class ReloadConfirmScreen(ModalScreen[str]):
    """Prompt when reloading config.json with unsaved changes."""

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Reload config?", classes="modal-title"),
            Static("Unsaved settings will be lost. Destinations are stored separately and are not affected.", classes="modal-body"),
            Horizontal(
                Button("Save", id="reload-save"),
                Button("Reload", id="reload-reload", variant="warning"),
                Button("Cancel", id="reload-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        choices = {"reload-save": "save", "reload-reload": "reload"}
        self.dismiss(choices.get(event.button.id or "", "cancel"))


class AddDestinationScreen(ModalScreen[dict[str, Any] | None]):
    """Modal form for adding a new destination.

    Filter flags start from the registry defaults (critical/high priorities,
    help/bug/complaint/urgent statuses) and are edited in the tab afterwards.
    """

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Add destination", classes="modal-title"),
            Static("", id="add-error", classes="modal-error"),
            Static("name", classes="form-label"),
            Input(placeholder="Billing Team", id="add-name"),
            Static("description (the model reads this when routing)", classes="form-label"),
            Input(placeholder="Payments, invoices, refunds", id="add-description"),
            Static("webhook_url", classes="form-label"),
            Input(placeholder="https://hooks.slack.com/services/...", id="add-webhook"),
            Static("enabled", classes="form-label"),
            Switch(value=True, id="add-enabled"),
            Horizontal(
                Button("Add", id="add-confirm", variant="success"),
                Button("Cancel", id="add-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--form",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "add-cancel":
            self.dismiss(None)
            return
        if event.button.id != "add-confirm":
            return
        error = self.query_one("#add-error", Static)
        name = self.query_one("#add-name", Input).value.strip()
        description = self.query_one("#add-description", Input).value.strip()
        if not name:
            error.update("name is required")
            return
        if not description:
            error.update("description is required")
            return
        url, url_error = parse_webhook_url(self.query_one("#add-webhook", Input).value)
        if url_error or url is None:
            error.update(url_error or "invalid webhook URL")
            return
        self.dismiss(
            {
                "name": name,
                "description": description,
                "webhook_url": url,
                "enabled": bool(self.query_one("#add-enabled", Switch).value),
            }
        )


class DeleteDestinationScreen(ModalScreen[bool]):
    """Confirm deletion of a destination."""

    def __init__(self, name: str) -> None:
        super().__init__()
        self._name = name or "(unnamed destination)"

    def compose(self) -> ComposeResult:
        yield Container(
            Static("Delete destination?", classes="modal-title"),
            Static(self._name, classes="modal-body"),
            Horizontal(
                Button("Delete", id="delete-confirm", variant="error"),
                Button("Cancel", id="delete-cancel"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--confirm",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(event.button.id == "delete-confirm")


class MessageDetailScreen(ModalScreen[None]):
    """Read-only view of one stored analysis."""

    def __init__(
        self,
        row: dict[str, Any],
        attempts: list[dict[str, Any]] | None = None,
        deliveries: list[dict[str, Any]] | None = None,
    ) -> None:
        super().__init__()
        self._row = row
        self._attempts = attempts or []
        self._deliveries = deliveries or []

    def compose(self) -> ComposeResult:
        row = self._row
        lines = [
            f"{row.get('customer_mood_emoji') or ''} {row.get('author_tag', '')} in #{row.get('channel_name', '')} ({row.get('server_name', '')})",
            "",
            row.get("message_content") or "",
            "",
            f"status: {row.get('support_status')}   tone: {row.get('tone')}   priority: {row.get('priority')}",
            f"sentiment: {row.get('sentiment_score')} (confidence {row.get('sentiment_confidence')})",
            f"needs response: {'yes' if row.get('needs_response') else 'no'}",
            f"summary: {row.get('summary') or ''}",
            f"topics: {', '.join(row.get('topics') or [])}",
            "suggested actions:",
            *[f"  - {action}" for action in row.get("suggested_actions") or []],
        ]
        if row.get("routed_destination"):
            confidence = row.get("routing_confidence") or 0
            lines.extend(
                [
                    f"routed to: {row['routed_destination']} ({confidence * 100:.1f}%)",
                    f"reasoning: {row.get('routing_reasoning') or ''}",
                ]
            )
        lines.append(
            f"model: {row.get('model_used')}   tokens: {row.get('total_tokens')}   "
            f"cost: ${row.get('processing_cost') or 0:.6f}   time: {row.get('processing_time_ms')}ms"
        )
        if self._attempts:
            lines.extend(["", "inference attempts:"])
            for attempt in self._attempts:
                error = f"  error: {attempt['error_message']}" if attempt.get("error_occurred") else ""
                lines.append(
                    f"  {str(attempt['created_at'])[:19]}  {attempt['model']}  "
                    f"{attempt['total_tokens']} tokens  ${attempt['total_cost'] or 0:.6f}{error}"
                )
        if self._deliveries:
            lines.extend(["", "deliveries:"])
            for delivery in self._deliveries:
                outcome = "ok" if delivery["success"] else f"failed {delivery.get('response_status') or '-'}"
                lines.append(f"  {delivery['destination_name']}: {outcome}")
        yield Container(
            Static("Message analysis", classes="modal-title"),
            VerticalScroll(Static("\n".join(lines), markup=False, classes="modal-body"), id="detail-body"),
            Horizontal(
                Button("Close", id="detail-close"),
                classes="modal-actions",
            ),
            classes="modal-dialog modal-dialog--detail",
        )

    def on_button_pressed(self, event: Button.Pressed) -> None:
        self.dismiss(None)
