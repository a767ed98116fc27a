"""Main Textual app for the supportlens config panel."""

from __future__ import annotations

import json
from typing import Any

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Center, Container, Horizontal, Vertical
from textual.widgets import Button, ContentSwitcher, Footer, Static, Tab, Tabs

import settings
from adapters.sqlite_storage import SQLiteStorage
from adapters.webhook_sender import HttpWebhookSender
from core.classification import ClassificationStore
from core.ledger import UsageLedger
from core.registry import DestinationRegistry

from .constants import CONFIG_PATH, DISCORD_BLURPLE
from .modals import ReloadConfirmScreen, UnsavedChangesScreen
from .state import ConfigState
from .tabs.default import DefaultTab
from .tabs.destinations import DestinationsTab
from .tabs.messages import MessagesTab
from .tabs.settings import SettingsTab
from .tabs.usage import UsageTab

# Tabs backed by the database reload whenever they are shown.
DB_TABS = {
    "destinations": DestinationsTab,
    "default": DefaultTab,
    "messages": MessagesTab,
    "usage": UsageTab,
}


class ConfigPanelApp(App):
    """Config panel: destinations live in SQLite, everything else in config.json."""

    BINDINGS = [
        ("ctrl+s", "save_config", "Save"),
        ("ctrl+r", "reload_config", "Reload"),
        ("q", "request_quit", "Quit"),
        ("ctrl+c", "request_quit", "Quit"),
    ]

    CSS_PATH = "app.tcss"

    def __init__(self, db_path: str | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.config_state = ConfigState()
        self.db_path = db_path or settings.DB_PATH
        storage = SQLiteStorage(self.db_path)
        storage.init_db()
        self.registry = DestinationRegistry(storage)
        self.classifications = ClassificationStore(storage, settings.PRICING)
        self.ledger = UsageLedger(storage, settings.PRICING)
        self.sender = HttpWebhookSender(timeout=settings.DELIVERY.timeout_seconds)

    def compose(self) -> ComposeResult:
        with Container(id="header"):
            with Horizontal(id="header-row"):
                with Vertical(id="header-left"):
                    yield Static(self._title_text(), id="title")
                    yield Static(f"model: {settings.ANALYSIS.model}", classes="subtle")
                with Vertical(id="header-right"):
                    yield Static(f"db: {self.db_path}", classes="subtle")
                    yield Static("", id="header-status")
                    yield Horizontal(
                        Button("Save", id="save-btn"),
                        Button("Reload", id="reload-btn"),
                        id="header-actions",
                    )

        with Container(id="tabs-bar"):
            with Center(id="tabs-center"):
                yield Tabs(
                    Tab("Destinations", id="destinations"),
                    Tab("Default", id="default"),
                    Tab("Messages", id="messages"),
                    Tab("Usage", id="usage"),
                    Tab("Settings", id="settings"),
                    id="tabs",
                )

        with ContentSwitcher(id="content"):
            yield DestinationsTab(id="destinations")
            yield DefaultTab(id="default")
            yield MessagesTab(id="messages")
            yield UsageTab(id="usage")
            yield SettingsTab(id="settings")
        yield Footer()

    def on_mount(self) -> None:
        self._load_config()
        self._set_active_tab("destinations")

    def on_tabs_tab_activated(self, event: Tabs.TabActivated) -> None:
        tab_id = event.tab.id or ""
        if not tab_id:
            label = event.tab.label
            if hasattr(label, "plain"):
                label = label.plain
            tab_id = str(label).strip().lower()
        self._set_active_tab(tab_id)

    def _set_active_tab(self, tab_id: str) -> None:
        switcher = self.query_one("#content", ContentSwitcher)
        switcher.current = tab_id
        tab_type = DB_TABS.get(tab_id)
        if tab_type is not None:
            self.query_one(tab_type).reload_from_db()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "save-btn":
            self.action_save_config()
        elif event.button.id == "reload-btn":
            self.action_reload_config()

    def action_save_config(self) -> None:
        self._save_config()

    def action_reload_config(self) -> None:
        if self.config_state.dirty:
            self.push_screen(ReloadConfirmScreen(), self._handle_reload_choice)
        else:
            self._load_config()

    def action_request_quit(self) -> None:
        if self.config_state.dirty:
            self.push_screen(UnsavedChangesScreen(), self._handle_exit_choice)
        else:
            self.exit()

    def _handle_exit_choice(self, choice: str | None) -> None:
        if choice == "save":
            if self._save_config():
                self.exit()
        elif choice == "discard":
            self.exit()

    def _handle_reload_choice(self, choice: str | None) -> None:
        if choice == "save":
            if self._save_config():
                self._load_config()
        elif choice == "reload":
            self._load_config()

    def _load_config(self) -> None:
        try:
            loaded = json.loads(CONFIG_PATH.read_text(encoding="utf-8"))
            if not isinstance(loaded, dict):
                raise ValueError("config root must be an object")
            self.config_state.loaded(loaded)
        except FileNotFoundError:
            self.config_state.failed("config.json missing")
        except json.JSONDecodeError as exc:
            self.config_state.failed(f"config.json error: {exc.msg}")
        except ValueError as exc:
            self.config_state.failed(str(exc))
        self._refresh_header()
        self.query_one(SettingsTab).reload_from_config()

    def _save_config(self) -> bool:
        if self.config_state.data is None:
            self.config_state.error = "Nothing to save"
            self._refresh_header()
            return False
        try:
            CONFIG_PATH.write_text(
                json.dumps(self.config_state.data, indent=2, ensure_ascii=False) + "\n",
                encoding="utf-8",
            )
        except OSError as exc:
            self.config_state.error = f"save failed: {exc.strerror or exc}"
            self._refresh_header()
            return False
        self.config_state.saved()
        self._refresh_header()
        return True

    def mark_dirty(self) -> None:
        self.config_state.dirty = True
        self._refresh_header()

    def _refresh_header(self) -> None:
        status = self.query_one("#header-status", Static)
        status.remove_class("status-loaded", "status-modified", "status-error")
        if self.config_state.error:
            status.update(self.config_state.error)
            status.add_class("status-error")
        elif self.config_state.dirty:
            status.update("config: modified * (restart the bot to apply)")
            status.add_class("status-modified")
        else:
            status.update("config: loaded")
            status.add_class("status-loaded")

        self.query_one("#save-btn", Button).disabled = self.config_state.data is None or not self.config_state.dirty

    def update_config_section(self, section: str, value: Any) -> None:
        """Update a config section in memory and mark dirty."""
        if self.config_state.data is None:
            self.config_state.data = {}
        self.config_state.data[section] = value
        self.mark_dirty()

    @staticmethod
    def _title_text() -> Text:
        return Text.assemble(
            ("SUPPORT", DISCORD_BLURPLE),
            ("LENS > Config Panel", "bold"),
        )
