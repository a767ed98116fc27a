"""Static configuration for supportlens.

Non-secret settings (database, monitored channels, model, pricing, delivery,
logging) live in config.json. Secrets and per-deployment overrides come from
.env via python-dotenv.
"""

import json
import os

from dotenv import load_dotenv

from core.config import AnalysisConfig, DeliveryConfig, MonitorConfig, PricingConfig

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

CONFIG_PATH = os.path.join(PROJECT_ROOT, "config.json")

load_dotenv(os.path.join(PROJECT_ROOT, ".env"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database.
_database = _CONFIG.get("database", {})
DB_PATH = _resolve_path(_database.get("path", "supportlens.db"))

# CHANNEL_IDS in .env wins over config.json so one config can serve several
# deployments. "ALL" (or nothing) monitors every channel the bot can read.
_channels = _CONFIG.get("channels", {})
MONITOR = MonitorConfig.parse(os.getenv("CHANNEL_IDS") or _channels.get("monitor", "ALL"))

# Model selection and the per-message inference timeout.
_analysis = _CONFIG.get("analysis", {})
ANALYSIS = AnalysisConfig(
    model=os.getenv("OPENAI_MODEL") or _analysis.get("model", "gpt-4o-mini"),
    timeout_seconds=float(_analysis.get("timeout_seconds", 30)),
)

# Prices are USD per million tokens.
_pricing = _CONFIG.get("pricing", {})
PRICING = PricingConfig(
    input_per_million=float(_pricing.get("input_per_million", 0.050)),
    output_per_million=float(_pricing.get("output_per_million", 0.400)),
)

# Webhook delivery: per-request timeout and notification layout.
_delivery = _CONFIG.get("delivery", {})
DELIVERY = DeliveryConfig(
    timeout_seconds=float(_delivery.get("timeout_seconds", 10)),
    body_chars=int(_delivery.get("body_chars", 500)),
    footer=_delivery.get("footer", "Discord Bot"),
)

DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
