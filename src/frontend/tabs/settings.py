"""Settings tab for config.json (applied on the next bot start)."""

from __future__ import annotations

from typing import Any, Optional

from textual import on
from textual.containers import Container, Horizontal, ScrollableContainer, Vertical
from textual.widgets import ContentSwitcher, DataTable, Input, Select, Static, Switch, TextArea

from ..validators import parse_channel_list, parse_positive_number


class SettingsTab(Container):
    """Settings tab for editing channels, analysis, pricing, delivery and logging."""

    LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

    SECTION_LABELS = [
        ("channels", "Channels", "Monitored channel ids or ALL"),
        ("analysis", "Analysis", "Model and inference timeout"),
        ("pricing", "Pricing", "USD per million tokens"),
        ("delivery", "Delivery", "Webhook timeout and layout"),
        ("logging", "Logging", "Console/file logging + redaction"),
    ]

    # (section, key, input id, integer?)
    NUMBER_FIELDS = [
        ("analysis", "timeout_seconds", "analysis-timeout", False),
        ("pricing", "input_per_million", "pricing-input", False),
        ("pricing", "output_per_million", "pricing-output", False),
        ("delivery", "timeout_seconds", "delivery-timeout", False),
        ("delivery", "body_chars", "delivery-body-chars", True),
    ]

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._loading_form = False
        self._current_section: Optional[str] = None

    def compose(self):
        with Vertical(id="settings-panel"):
            with Horizontal(id="settings-body"):
                with Container(id="settings-left"):
                    yield DataTable(id="settings-table", cursor_type="row")
                with Container(id="settings-right"):
                    with ContentSwitcher(id="settings-forms"):
                        with Container(id="settings-channels"):
                            yield Static("Channels", classes="settings-title")
                            yield Static("monitor (ALL or comma-separated channel ids)", classes="form-label")
                            yield Input(placeholder="ALL", id="channels-monitor")
                            yield Static("CHANNEL_IDS in .env overrides this value.", classes="subtle")
                            yield Static("", id="channels-error", classes="settings-error")

                        with Container(id="settings-analysis"):
                            yield Static("Analysis", classes="settings-title")
                            yield Static("model", classes="form-label")
                            yield Input(placeholder="gpt-4o-mini", id="analysis-model")
                            yield Static("timeout_seconds", classes="form-label")
                            yield Input(placeholder="30", id="analysis-timeout")
                            yield Static("", id="analysis-error", classes="settings-error")

                        with Container(id="settings-pricing"):
                            yield Static("Pricing", classes="settings-title")
                            yield Static("input_per_million", classes="form-label")
                            yield Input(placeholder="0.05", id="pricing-input")
                            yield Static("output_per_million", classes="form-label")
                            yield Input(placeholder="0.4", id="pricing-output")
                            yield Static("", id="pricing-error", classes="settings-error")

                        with Container(id="settings-delivery"):
                            yield Static("Delivery", classes="settings-title")
                            yield Static("timeout_seconds", classes="form-label")
                            yield Input(placeholder="10", id="delivery-timeout")
                            yield Static("body_chars", classes="form-label")
                            yield Input(placeholder="500", id="delivery-body-chars")
                            yield Static("footer", classes="form-label")
                            yield Input(placeholder="Discord Bot", id="delivery-footer")
                            yield Static("", id="delivery-error", classes="settings-error")

                        with ScrollableContainer(id="settings-logging"):
                            yield Static("Logging", classes="settings-title")
                            yield Static("enabled", classes="form-label")
                            yield Switch(id="logging-enabled")
                            yield Static("level", classes="form-label")
                            yield Select(
                                [(level, level) for level in self.LOG_LEVELS],
                                id="logging-level",
                                allow_blank=False,
                            )
                            yield Static("console", classes="form-label")
                            yield Switch(id="logging-console")
                            yield Static("file.enabled", classes="form-label")
                            yield Switch(id="logging-file-enabled")
                            yield Static("file.path", classes="form-label")
                            yield Input(placeholder="logs/supportlens.log", id="logging-file-path")
                            yield Static("redact.enabled", classes="form-label")
                            yield Switch(id="logging-redact-enabled")
                            yield Static("redact.patterns (env var names, one per line)", classes="form-label")
                            yield TextArea(id="logging-redact-patterns")
                            yield Static("", id="logging-error", classes="settings-error")

    def on_mount(self) -> None:
        table = self.query_one("#settings-table", DataTable)
        table.add_column("section", key="section", width=12)
        table.add_column("description", key="description", width=32)
        for key, label, description in self.SECTION_LABELS:
            table.add_row(label, description, key=key)
        table.zebra_stripes = True
        self._select_section("channels")
        self.reload_from_config()

    def reload_from_config(self) -> None:
        self._loading_form = True
        channels = self._get_section("channels")
        monitor = channels.get("monitor", "ALL")
        if isinstance(monitor, list):
            monitor = ",".join(str(item) for item in monitor)
        self.query_one("#channels-monitor", Input).value = str(monitor)

        analysis = self._get_section("analysis")
        self.query_one("#analysis-model", Input).value = str(analysis.get("model", "gpt-4o-mini"))
        delivery = self._get_section("delivery")
        self.query_one("#delivery-footer", Input).value = str(delivery.get("footer", "Discord Bot"))
        for section, key, input_id, _ in self.NUMBER_FIELDS:
            value = self._get_section(section).get(key)
            self.query_one(f"#{input_id}", Input).value = "" if value is None else str(value)

        logging = self._get_section("logging")
        file_cfg = logging.get("file") if isinstance(logging.get("file"), dict) else {}
        redact_cfg = logging.get("redact") if isinstance(logging.get("redact"), dict) else {}
        self.query_one("#logging-enabled", Switch).value = bool(logging.get("enabled", False))
        level = str(logging.get("level", "INFO")).upper()
        self.query_one("#logging-level", Select).value = level if level in self.LOG_LEVELS else "INFO"
        self.query_one("#logging-console", Switch).value = bool(logging.get("console", True))
        self.query_one("#logging-file-enabled", Switch).value = bool(file_cfg.get("enabled", False))
        self.query_one("#logging-file-path", Input).value = str(file_cfg.get("path", "logs/supportlens.log"))
        self.query_one("#logging-redact-enabled", Switch).value = bool(redact_cfg.get("enabled", False))
        self.query_one("#logging-redact-patterns", TextArea).text = "\n".join(redact_cfg.get("patterns", []) or [])
        for error_id in ("channels-error", "analysis-error", "pricing-error", "delivery-error", "logging-error"):
            self._set_error(error_id, "")
        self._loading_form = False

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        row_key = event.row_key.value if hasattr(event.row_key, "value") else event.row_key
        self._select_section(str(row_key))

    def _select_section(self, section_id: str) -> None:
        self._current_section = section_id
        self.query_one("#settings-forms", ContentSwitcher).current = f"settings-{section_id}"

    def _get_section(self, key: str) -> dict[str, Any]:
        data = self.app.config_state.data or {}
        section = data.get(key)
        if isinstance(section, dict):
            return section
        return {}

    def _set_value(self, section_key: str, path: tuple[str, ...], value: Any) -> None:
        """Write one value; no-op when it is unchanged so loading never marks dirty."""

        section = self._get_section(section_key)
        target = section
        for part in path[:-1]:
            child = target.get(part)
            if not isinstance(child, dict):
                child = {}
                target[part] = child
            target = child
        if target.get(path[-1]) == value:
            return
        target[path[-1]] = value
        self.app.update_config_section(section_key, section)

    def _set_error(self, error_id: str, message: str) -> None:
        self.query_one(f"#{error_id}", Static).update(message)

    @on(Input.Changed, "#channels-monitor")
    def _on_channels_changed(self, event: Input.Changed) -> None:
        if self._loading_form:
            return
        info = parse_channel_list(event.value)
        if info.error or info.normalized is None:
            self._set_error("channels-error", info.error or "invalid channel list")
            return
        self._set_error("channels-error", "")
        self._set_value("channels", ("monitor",), info.normalized)

    @on(Input.Changed, "#analysis-model")
    def _on_model_changed(self, event: Input.Changed) -> None:
        if self._loading_form:
            return
        model = event.value.strip()
        if not model:
            self._set_error("analysis-error", "model is required")
            return
        self._set_error("analysis-error", "")
        self._set_value("analysis", ("model",), model)

    @on(Input.Changed, "#delivery-footer")
    def _on_footer_changed(self, event: Input.Changed) -> None:
        if self._loading_form:
            return
        self._set_value("delivery", ("footer",), event.value.strip() or "Discord Bot")

    @on(Input.Changed)
    def _on_number_changed(self, event: Input.Changed) -> None:
        if self._loading_form:
            return
        for section, key, input_id, integer in self.NUMBER_FIELDS:
            if event.input.id != input_id:
                continue
            value, error = parse_positive_number(event.value, integer=integer)
            error_id = f"{section}-error"
            if error or value is None:
                self._set_error(error_id, f"{key} {error or 'is invalid'}")
                return
            self._set_error(error_id, "")
            self._set_value(section, (key,), value)
            return

    @on(Switch.Changed)
    def _on_logging_switch(self, event: Switch.Changed) -> None:
        if self._loading_form:
            return
        paths = {
            "logging-enabled": ("enabled",),
            "logging-console": ("console",),
            "logging-file-enabled": ("file", "enabled"),
            "logging-redact-enabled": ("redact", "enabled"),
        }
        path = paths.get(event.switch.id or "")
        if path is not None:
            self._set_value("logging", path, bool(event.value))

    @on(Select.Changed, "#logging-level")
    def _on_logging_level(self, event: Select.Changed) -> None:
        if self._loading_form or event.value is Select.BLANK:
            return
        self._set_value("logging", ("level",), event.value)

    @on(Input.Changed, "#logging-file-path")
    def _on_logging_path(self, event: Input.Changed) -> None:
        if self._loading_form:
            return
        path = event.value.strip()
        if not path:
            self._set_error("logging-error", "file.path is required")
            return
        self._set_error("logging-error", "")
        self._set_value("logging", ("file", "path"), path)

    @on(TextArea.Changed, "#logging-redact-patterns")
    def _on_redact_patterns(self, event: TextArea.Changed) -> None:
        if self._loading_form:
            return
        patterns = [line.strip() for line in event.text_area.text.splitlines() if line.strip()]
        self._set_value("logging", ("redact", "patterns"), patterns)
