"""Messages tab for browsing and exporting stored analyses."""

from __future__ import annotations

import csv
import json
from datetime import datetime
from typing import Any

from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Input, Static

from ..constants import EXPORTS_DIR
from ..modals import MessageDetailScreen

PAGE_SIZE = 200


class MessagesTab(Container):
    """Recent, needs-response and text-search views over message_logs."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._rows: list[dict[str, Any]] = []
        self._view = "recent"
        self._table_ready = False

    def compose(self):
        with Vertical(id="messages-panel"):
            with Horizontal(id="messages-filters"):
                yield Button("Recent", id="view-recent", variant="primary")
                yield Button("Needs response", id="view-needs-response")
                yield Input(placeholder="search content, summary or author", id="messages-search")
            yield DataTable(id="messages-table", cursor_type="row")
            with Horizontal(id="messages-actions"):
                yield Button("Refresh", id="messages-refresh")
                yield Button("Export JSON", id="export-json", variant="success")
                yield Button("Export CSV", id="export-csv")
            yield Static("", id="messages-output")

    def on_mount(self) -> None:
        table = self.query_one("#messages-table", DataTable)
        table.add_column("date", key="date", width=18)
        table.add_column("priority", key="priority", width=9)
        table.add_column("status", key="status", width=18)
        table.add_column("author", key="author", width=18)
        table.add_column("channel", key="channel", width=16)
        table.add_column("summary", key="summary", width=48)
        table.zebra_stripes = True
        table.styles.height = "1fr"
        self.query_one("#messages-actions").styles.height = 3
        self._table_ready = True
        self.reload_from_db()

    def reload_from_db(self) -> None:
        if not self._table_ready:
            return
        store = self.app.classifications
        if self._view == "needs_response":
            rows = store.get_needing_response()
        elif self._view.startswith("search:"):
            rows = store.search(text=self._view[len("search:") :], limit=PAGE_SIZE)
        else:
            rows = store.get_recent(limit=PAGE_SIZE)

        table = self.query_one("#messages-table", DataTable)
        table.clear()
        self._rows = rows
        for row in rows:
            table.add_row(
                self._format_date_display(row.get("created_at") or ""),
                row.get("priority") or "",
                row.get("support_status") or "",
                row.get("author_tag") or "",
                f"#{row.get('channel_name') or ''}",
                self._clip_text(row.get("summary") or ""),
                key=str(row["id"]),
            )
        self._set_output(f"loaded {len(rows)} messages")

    def _set_view(self, view: str) -> None:
        self._view = view
        self.query_one("#view-recent", Button).variant = "primary" if view == "recent" else "default"
        self.query_one("#view-needs-response", Button).variant = (
            "primary" if view == "needs_response" else "default"
        )
        self.reload_from_db()

    @on(Button.Pressed, "#view-recent")
    def _on_view_recent(self) -> None:
        self._set_view("recent")

    @on(Button.Pressed, "#view-needs-response")
    def _on_view_needs_response(self) -> None:
        self._set_view("needs_response")

    @on(Input.Submitted, "#messages-search")
    def _on_search(self, event: Input.Submitted) -> None:
        text = event.value.strip()
        self._set_view(f"search:{text}" if text else "recent")

    @on(Button.Pressed, "#messages-refresh")
    def _on_refresh(self) -> None:
        self.reload_from_db()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        row_key = event.row_key.value if hasattr(event.row_key, "value") else event.row_key
        for row in self._rows:
            if str(row["id"]) == str(row_key):
                message_id = str(row["message_id"])
                self.app.push_screen(
                    MessageDetailScreen(
                        row,
                        attempts=self.app.ledger.attempts_for(message_id),
                        deliveries=self.app.registry.delivery_history(message_id=message_id),
                    )
                )
                return

    @on(Button.Pressed, "#export-json")
    def _on_export_json(self) -> None:
        self._export_rows("json")

    @on(Button.Pressed, "#export-csv")
    def _on_export_csv(self) -> None:
        self._export_rows("csv")

    def _export_rows(self, fmt: str) -> None:
        if not self._rows:
            self._set_output("No messages to export.")
            return
        EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        path = EXPORTS_DIR / f"messages-{timestamp}.{fmt}"
        try:
            if fmt == "json":
                path.write_text(json.dumps(self._rows, indent=2, ensure_ascii=False), encoding="utf-8")
            else:
                fieldnames = list(self._rows[0].keys())
                with path.open("w", encoding="utf-8", newline="") as handle:
                    writer = csv.DictWriter(handle, fieldnames=fieldnames)
                    writer.writeheader()
                    for row in self._rows:
                        # Lists are stored as JSON in the database; keep that form in CSV.
                        writer.writerow(
                            {key: json.dumps(value) if isinstance(value, list) else value for key, value in row.items()}
                        )
            self._set_output(f"exported {len(self._rows)} messages to {path}")
        except OSError as exc:
            self._set_output(f"export failed: {exc.strerror or exc}")

    def _set_output(self, message: str) -> None:
        self.query_one("#messages-output", Static).update(message)

    @staticmethod
    def _clip_text(value: str, limit: int = 64) -> str:
        if len(value) <= limit:
            return value
        return value[: limit - 3] + "..."

    @staticmethod
    def _format_date_display(value: str) -> str:
        if not value:
            return ""
        return value.replace("T", " ")[:19]
