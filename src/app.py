"""Application entry point for the supportlens bot."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from functools import partial
from logging.handlers import RotatingFileHandler
from typing import Optional

import discord
from art import tprint
from dotenv import load_dotenv

import settings
from adapters.discord_mapper import THREAD_TYPES, build_message
from adapters.notification_formatting import format_notification
from adapters.openai_analyzer import OpenAIAnalyzer
from adapters.sqlite_storage import SQLiteStorage
from adapters.webhook_sender import HttpWebhookSender
from client import build_client, discord_token
from core.analysis import AnalysisEngine
from core.classification import ClassificationStore
from core.dispatcher import DeliveryDispatcher
from core.ledger import UsageLedger
from core.ports import AnalyzerPort, WebhookSenderPort
from core.processor import MessageProcessor
from core.registry import DestinationRegistry

NAME = "SUPPORTLENS"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = []
    for name in redact_cfg.get("patterns", []):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/supportlens.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)
    # The gateway client is chatty at INFO; keep it at WARNING unless debugging.
    if level > logging.DEBUG:
        logging.getLogger("discord").setLevel(logging.WARNING)


def _open_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def build_processor(
    storage: SQLiteStorage,
    analyzer: AnalyzerPort,
    sender: WebhookSenderPort,
) -> MessageProcessor:
    """Wire the core pipeline to concrete adapters."""

    return MessageProcessor(
        engine=AnalysisEngine(analyzer, settings.ANALYSIS),
        ledger=UsageLedger(storage, settings.PRICING),
        classifications=ClassificationStore(storage, settings.PRICING),
        registry=DestinationRegistry(storage),
        dispatcher=DeliveryDispatcher(
            sender,
            storage,
            partial(format_notification, config=settings.DELIVERY),
            timeout_seconds=settings.DELIVERY.timeout_seconds,
        ),
        monitor=settings.MONITOR,
    )


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting supportlens")
    storage = _open_storage()

    analyzer = OpenAIAnalyzer(
        api_key=settings.OPENAI_API_KEY,
        model=settings.ANALYSIS.model,
        timeout=settings.ANALYSIS.timeout_seconds,
    )
    sender = HttpWebhookSender(timeout=settings.DELIVERY.timeout_seconds)
    processor = build_processor(storage, analyzer, sender)

    if settings.MONITOR.monitor_all:
        logger.info("Monitoring all channels")
    else:
        channel_ids = sorted(settings.MONITOR.channel_ids)
        logger.info("Monitoring %s channel(s): %s", len(channel_ids), ", ".join(channel_ids))
    logger.info("Using model %s", settings.ANALYSIS.model)

    client = build_client()

    @client.event
    async def on_ready() -> None:
        logger.info("Logged in as %s", client.user)
        logger.info("Connected to servers: %s", ", ".join(guild.name for guild in client.guilds))

    @client.event
    async def on_message(message: discord.Message) -> None:
        try:
            core_message = build_message(message)
            if core_message is None:
                return
            await processor.handle(core_message)
        except Exception:
            logger.exception("Error while processing message %s", message.id)

    # log_handler=None keeps discord.py from installing its own handler.
    client.run(discord_token(), log_handler=None)


def _setup() -> None:
    _print_banner()
    from frontend.app import ConfigPanelApp

    ConfigPanelApp().run()


def _print_stats(days: int) -> None:
    storage = _open_storage()
    ledger = UsageLedger(storage, settings.PRICING)
    classifications = ClassificationStore(storage, settings.PRICING)

    summary = ledger.summary(days)
    print(f"Usage over the last {days} days")
    print(f"  Messages analyzed:   {summary['total_messages']}")
    print(f"  Total tokens:        {summary['total_tokens']}")
    print(f"  Total cost:          ${summary['total_cost']:.6f}")
    print(f"  Avg cost / message:  ${summary['avg_cost_per_message'] or 0:.6f}")
    print(f"  Errors:              {summary['error_count']}")
    print(f"  Daily average:       ${summary['daily_average_cost']:.6f}")
    print(f"  Monthly projection:  ${summary['monthly_projection']:.4f}")

    by_model = ledger.by_model(days)
    if by_model:
        print("\nBy model")
        for row in by_model:
            print(f"  {row['model']}: {row['message_count']} messages, ${row['total_cost'] or 0:.6f}")

    channels = ledger.top_channels(10)
    if channels:
        print("\nTop channels")
        for index, row in enumerate(channels, start=1):
            print(f"  {index}. #{row['channel_name']} ({row['server_name']}): ${row['total_cost'] or 0:.6f}")

    stats = classifications.get_stats()
    print("\nLast 24 hours")
    print(f"  Messages:        {stats.get('total_messages', 0)}")
    print(f"  Needs response:  {stats.get('needs_response_count', 0)}")
    print(f"  Critical / high: {stats.get('critical_count', 0)} / {stats.get('high_count', 0)}")


def _list_channels() -> None:
    _print_banner()
    client = build_client()

    @client.event
    async def on_ready() -> None:
        try:
            for guild in client.guilds:
                print(f"\nServer: {guild.name} ({guild.id})")
                for channel in sorted(guild.text_channels, key=lambda item: item.position):
                    print(f"  #{channel.name} | {channel.id}")
                threads = [thread for thread in guild.threads if thread.type in THREAD_TYPES]
                for thread in threads:
                    print(f"  thread {thread.name} | {thread.id} (parent {thread.parent_id})")
            print("\nSet CHANNEL_IDS in .env to a comma-separated list of ids, or ALL.")
        finally:
            await client.close()

    async def _run_list() -> None:
        async with client:
            await client.start(discord_token())

    asyncio.run(_run_list())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="supportlens")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the bot")
    subparsers.add_parser("config", aliases=["setup"], help="Launch the config TUI")
    stats_parser = subparsers.add_parser("stats", help="Print the usage and cost report")
    stats_parser.add_argument("--days", type=int, default=30)
    subparsers.add_parser("channels", help="List text channels the bot can see, with their ids")

    args = parser.parse_args(argv)
    if args.command in {"setup", "config"}:
        _setup()
        return
    if args.command == "stats":
        _configure_logging()
        _print_stats(args.days)
        return
    if args.command == "channels":
        _configure_logging()
        _list_channels()
        return
    _run()


if __name__ == "__main__":
    main()
