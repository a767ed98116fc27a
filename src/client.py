"""Discord client factory for supportlens.

The client is created here and its lifecycle (run/close) is managed by app.py
so it is obvious when the gateway session starts and ends.
"""

from __future__ import annotations

import logging
import os

import discord
from dotenv import load_dotenv


def build_intents() -> discord.Intents:
    """Intents needed to read guild messages and their content."""

    intents = discord.Intents.default()
    intents.guilds = True
    intents.guild_messages = True
    # Privileged intent: must also be enabled in the developer portal.
    intents.message_content = True
    return intents


def build_client() -> discord.Client:
    return discord.Client(intents=build_intents())


def discord_token() -> str:
    """Read DISCORD_TOKEN via python-dotenv to keep secrets out of the repo."""

    load_dotenv()
    token = os.getenv("DISCORD_TOKEN")

    # Fail fast on missing credentials instead of a gateway auth error.
    if not token:
        raise RuntimeError("Missing DISCORD_TOKEN in environment")

    logging.getLogger(__name__).info("Initializing Discord client")
    return token
