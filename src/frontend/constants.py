"""Shared constants for the Textual UI."""

from __future__ import annotations

from pathlib import Path

DISCORD_BLURPLE = "#5865F2"
PROJECT_ROOT = Path(__file__).resolve().parents[2]
CONFIG_PATH = PROJECT_ROOT / "config.json"
EXPORTS_DIR = PROJECT_ROOT / "exports"
