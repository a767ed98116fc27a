"""Usage tab: token spend and cost from the usage ledger."""

from __future__ import annotations

from typing import Any

from textual import on
from textual.containers import Container, Horizontal, Vertical
from textual.widgets import Button, DataTable, Select, Static

PERIODS = [("Last 24 hours", 1), ("Last 7 days", 7), ("Last 30 days", 30), ("Last 90 days", 90)]


def _money(value: Any, places: int = 6) -> str:
    return f"${float(value or 0):.{places}f}"


class UsageTab(Container):
    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._days = 30
        self._ready = False

    def compose(self):
        with Vertical(id="usage-panel"):
            with Horizontal(id="usage-controls"):
                yield Select(PERIODS, value=30, allow_blank=False, id="usage-period")
                yield Button("Refresh", id="usage-refresh")
            yield Static("", id="usage-summary")
            yield Static("By model", classes="form-label")
            yield DataTable(id="usage-models", cursor_type="row")
            yield Static("Top channels (all time)", classes="form-label")
            yield DataTable(id="usage-channels", cursor_type="row")

    def on_mount(self) -> None:
        models = self.query_one("#usage-models", DataTable)
        models.add_column("model", key="model", width=20)
        models.add_column("messages", key="messages", width=10)
        models.add_column("tokens", key="tokens", width=12)
        models.add_column("cost", key="cost", width=14)
        models.add_column("avg ms", key="avg_ms", width=10)
        channels = self.query_one("#usage-channels", DataTable)
        channels.add_column("channel", key="channel", width=24)
        channels.add_column("server", key="server", width=20)
        channels.add_column("messages", key="messages", width=10)
        channels.add_column("cost", key="cost", width=14)
        channels.add_column("avg sentiment", key="sentiment", width=14)
        self._ready = True
        self.reload_from_db()

    @on(Select.Changed, "#usage-period")
    def _on_period_changed(self, event: Select.Changed) -> None:
        if isinstance(event.value, int):
            self._days = event.value
            self.reload_from_db()

    @on(Button.Pressed, "#usage-refresh")
    def _on_refresh(self) -> None:
        self.reload_from_db()

    def reload_from_db(self) -> None:
        if not self._ready:
            return
        ledger = self.app.ledger
        summary_widget = self.query_one("#usage-summary", Static)
        try:
            summary = ledger.summary(self._days)
            by_model = ledger.by_model(self._days)
            channels = ledger.top_channels(10)
        except Exception as exc:
            summary_widget.update(f"db error: {exc}")
            return

        summary_widget.update(
            "\n".join(
                [
                    f"messages analyzed: {summary.get('total_messages', 0)}",
                    f"total tokens:      {summary.get('total_tokens', 0)}",
                    f"total cost:        {_money(summary.get('total_cost'))}",
                    f"avg per message:   {_money(summary.get('avg_cost_per_message'))}",
                    f"errors:            {summary.get('error_count', 0)}",
                    f"daily average:     {_money(summary.get('daily_average_cost'))}",
                    f"monthly estimate:  {_money(summary.get('monthly_projection'), 4)}",
                ]
            )
        )

        models_table = self.query_one("#usage-models", DataTable)
        models_table.clear()
        for row in by_model:
            models_table.add_row(
                row["model"],
                str(row["message_count"]),
                str(row["total_tokens"] or 0),
                _money(row["total_cost"]),
                f"{row['avg_processing_time'] or 0:.0f}",
            )

        channels_table = self.query_one("#usage-channels", DataTable)
        channels_table.clear()
        for row in channels:
            sentiment = row["avg_sentiment"]
            channels_table.add_row(
                f"#{row['channel_name']}",
                row["server_name"],
                str(row["message_count"]),
                _money(row["total_cost"]),
                f"{sentiment:.2f}" if sentiment is not None else "-",
            )
