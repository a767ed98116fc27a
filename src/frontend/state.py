"""config.json editing state for the panel header and Settings tab."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass
class ConfigState:
    data: dict[str, Any] | None = None
    dirty: bool = False
    error: str | None = None

    def loaded(self, data: dict[str, Any]) -> None:
        self.data = data
        self.dirty = False
        self.error = None

    def failed(self, error: str) -> None:
        self.data = None
        self.dirty = False
        self.error = error

    def saved(self) -> None:
        self.dirty = False
        self.error = None
