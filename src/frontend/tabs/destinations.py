"""Destinations tab: CRUD over named webhook destinations."""

from __future__ import annotations

from typing import Any, Optional

from textual import on
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.widgets import Button, DataTable, Input, Static, Switch

from adapters.notification_formatting import format_test_notification
from core.models import Destination
from core.registry import DestinationError

from ..modals import AddDestinationScreen, DeleteDestinationScreen
from .flags import compose_flag_switches, parse_flag_id, set_flag_switches, summarize_flags

PREFIX = "dest"


class DestinationsTab(Container):
    """Edits are written to the database immediately; the bot picks them up on the next message."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._loading_form = False
        self._current_id: Optional[int] = None
        self._destinations: dict[int, Destination] = {}
        self._table_ready = False

    def compose(self):
        with Vertical(id="destinations-panel"):
            with Horizontal(id="destinations-body"):
                with Container(id="destinations-left"):
                    yield DataTable(id="destinations-table", cursor_type="row")
                with ScrollableContainer(id="destinations-right"):
                    yield Static("Destination details", id="destinations-title")
                    yield Static("name", classes="form-label")
                    yield Input(placeholder="Billing Team", id="dest-name")
                    yield Static("description", classes="form-label")
                    yield Input(placeholder="What this team handles", id="dest-description")
                    yield Static("webhook_url", classes="form-label")
                    yield Input(placeholder="https://hooks.slack.com/services/...", id="dest-webhook")
                    yield Static("", id="dest-error", classes="settings-error")
                    yield Static("enabled", classes="form-label")
                    yield Switch(value=False, id="dest-enabled")
                    yield Static("only_needs_response", classes="form-label")
                    yield Switch(value=False, id="dest-only-needs-response")
                    yield from compose_flag_switches(PREFIX)
                    yield Static("recent deliveries", classes="form-label")
                    yield Static("", id="dest-history", classes="subtle")
            with Horizontal(id="destinations-actions"):
                yield Button("Add", id="add-destination", variant="success")
                yield Button("Delete", id="delete-destination", variant="error")
                yield Button("Send test", id="test-destination")
            yield Static("", id="destinations-output")

    def on_mount(self) -> None:
        table = self.query_one("#destinations-table", DataTable)
        table.add_column("enabled", key="enabled", width=8)
        table.add_column("name", key="name", width=20)
        table.add_column("priorities", key="priorities", width=24)
        table.add_column("statuses", key="statuses", width=10)
        table.zebra_stripes = True
        self._table_ready = True
        self.reload_from_db()
        self._set_form_state(None)

    def reload_from_db(self) -> None:
        if not self._table_ready:
            return
        table = self.query_one("#destinations-table", DataTable)
        table.clear()
        try:
            destinations = self.app.registry.list_all()
        except Exception as exc:
            self._set_output(f"db error: {exc}")
            return
        self._destinations = {destination.id: destination for destination in destinations}
        for destination in destinations:
            table.add_row(
                "yes" if destination.enabled else "no",
                destination.name,
                summarize_flags(destination.send_priorities),
                str(sum(1 for value in destination.send_statuses.values() if value)),
                key=str(destination.id),
            )
        if self._current_id not in self._destinations:
            self._current_id = None
        self._update_action_state()

    def _update_action_state(self) -> None:
        nothing_selected = self._current_id is None
        self.query_one("#delete-destination", Button).disabled = nothing_selected
        self.query_one("#test-destination", Button).disabled = nothing_selected

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        row_key = event.row_key.value if hasattr(event.row_key, "value") else event.row_key
        try:
            self._current_id = int(str(row_key))
        except ValueError:
            self._current_id = None
        self._set_form_state(self._current_id)
        self._update_action_state()

    def _apply(self, **changes: Any) -> None:
        if self._current_id is None:
            return
        try:
            updated = self.app.registry.update(self._current_id, **changes)
        except DestinationError as exc:
            self._set_error(str(exc))
            return
        if updated is None:
            self._set_error("destination no longer exists")
            self.reload_from_db()
            return
        self._set_error("")
        self._destinations[updated.id] = updated
        table = self.query_one("#destinations-table", DataTable)
        row_key = str(updated.id)
        table.update_cell(row_key, "enabled", "yes" if updated.enabled else "no")
        table.update_cell(row_key, "name", updated.name)
        table.update_cell(row_key, "priorities", summarize_flags(updated.send_priorities))
        table.update_cell(row_key, "statuses", str(sum(1 for value in updated.send_statuses.values() if value)))

    @on(Input.Submitted, "#dest-name")
    def _on_name_submitted(self, event: Input.Submitted) -> None:
        if not self._loading_form:
            self._apply(name=event.value)

    @on(Input.Submitted, "#dest-description")
    def _on_description_submitted(self, event: Input.Submitted) -> None:
        if not self._loading_form:
            self._apply(description=event.value)

    @on(Input.Submitted, "#dest-webhook")
    def _on_webhook_submitted(self, event: Input.Submitted) -> None:
        if not self._loading_form:
            self._apply(webhook_url=event.value)

    @on(Switch.Changed)
    def _on_switch_changed(self, event: Switch.Changed) -> None:
        if self._loading_form or self._current_id is None:
            return
        destination = self._destinations.get(self._current_id)
        if destination is None:
            return
        # Switch.Changed also fires for values set while loading the form;
        # only write when the value differs from what is stored.
        switch_id = event.switch.id
        if switch_id == "dest-enabled":
            if event.value != destination.enabled:
                self._apply(enabled=event.value)
            return
        if switch_id == "dest-only-needs-response":
            if event.value != destination.only_needs_response:
                self._apply(only_needs_response=event.value)
            return
        flag = parse_flag_id(switch_id, PREFIX)
        if flag is None:
            return
        kind, key = flag
        if kind == "priority":
            if event.value != destination.send_priorities.get(key, False):
                self._apply(send_priorities={key: event.value})
        elif event.value != destination.send_statuses.get(key, False):
            self._apply(send_statuses={key: event.value})

    @on(Button.Pressed, "#add-destination")
    def _on_add_destination(self) -> None:
        self.app.push_screen(AddDestinationScreen(), self._handle_add_destination)

    @on(Button.Pressed, "#delete-destination")
    def _on_delete_destination(self) -> None:
        destination = self._destinations.get(self._current_id) if self._current_id is not None else None
        if destination is None:
            return
        self.app.push_screen(DeleteDestinationScreen(destination.name), self._handle_delete_destination)

    @on(Button.Pressed, "#test-destination")
    async def _on_test_destination(self) -> None:
        destination = self._destinations.get(self._current_id) if self._current_id is not None else None
        if destination is None:
            return
        self._set_output(f"sending test to {destination.name}...")
        try:
            response = await self.app.sender.post(
                destination.webhook_url,
                format_test_notification(destination.name),
            )
        except Exception as exc:
            self._set_output(f"test failed: {exc}")
            return
        if response.ok:
            self._set_output(f"test delivered to {destination.name} ({response.status_code})")
        else:
            self._set_output(f"test failed: {response.status_code} {response.text}")

    def _handle_add_destination(self, payload: dict[str, Any] | None) -> None:
        if not payload:
            return
        try:
            destination = self.app.registry.create(**payload)
        except DestinationError as exc:
            self._set_output(str(exc))
            return
        except Exception as exc:
            # Most likely the UNIQUE(name) constraint.
            self._set_output(f"could not add destination: {exc}")
            return
        self._current_id = destination.id
        self.reload_from_db()
        self._set_form_state(destination.id)
        self._set_output(f"added {destination.name}")

    def _handle_delete_destination(self, confirmed: bool | None) -> None:
        if not confirmed or self._current_id is None:
            return
        self.app.registry.delete(self._current_id)
        self._current_id = None
        self.reload_from_db()
        self._set_form_state(None)

    def _set_form_state(self, destination_id: Optional[int]) -> None:
        self._loading_form = True
        name_input = self.query_one("#dest-name", Input)
        description_input = self.query_one("#dest-description", Input)
        webhook_input = self.query_one("#dest-webhook", Input)
        enabled_toggle = self.query_one("#dest-enabled", Switch)
        needs_toggle = self.query_one("#dest-only-needs-response", Switch)
        self._set_error("")
        destination = self._destinations.get(destination_id) if destination_id is not None else None
        if destination is None:
            for widget in (name_input, description_input, webhook_input):
                widget.value = ""
                widget.disabled = True
            enabled_toggle.value = False
            enabled_toggle.disabled = True
            needs_toggle.value = False
            needs_toggle.disabled = True
            set_flag_switches(self, PREFIX, {}, {}, disabled=True)
        else:
            name_input.value = destination.name
            description_input.value = destination.description
            webhook_input.value = destination.webhook_url
            for widget in (name_input, description_input, webhook_input):
                widget.disabled = False
            enabled_toggle.value = destination.enabled
            enabled_toggle.disabled = False
            needs_toggle.value = destination.only_needs_response
            needs_toggle.disabled = False
            set_flag_switches(self, PREFIX, destination.send_priorities, destination.send_statuses)
        self._loading_form = False
        self._show_history(destination.id if destination is not None else None)

    def _show_history(self, destination_id: Optional[int]) -> None:
        history = self.query_one("#dest-history", Static)
        if destination_id is None:
            history.update("")
            return
        rows = self.app.registry.delivery_history(destination_id=destination_id, limit=10)
        if not rows:
            history.update("no deliveries yet")
            return
        lines = []
        for row in rows:
            outcome = "ok" if row["success"] else f"failed {row.get('response_status') or '-'}"
            lines.append(f"{str(row['created_at'])[:19]}  {row['message_id']}  {outcome}")
        history.update("\n".join(lines))

    def _set_error(self, message: str) -> None:
        self.query_one("#dest-error", Static).update(message)

    def _set_output(self, message: str) -> None:
        self.query_one("#destinations-output", Static).update(message)
