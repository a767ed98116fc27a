"""Discord-to-core message mapping adapter.

This keeps discord.py specific details out of the core pipeline.
"""

from __future__ import annotations

from typing import Optional

import discord

from core.models import Attachment, Author, Channel, Embed, Mentions, Message, Server

THREAD_TYPES = frozenset(
    {
        discord.ChannelType.public_thread,
        discord.ChannelType.private_thread,
        discord.ChannelType.news_thread,
    }
)


def _author(user) -> Author:
    avatar = getattr(user, "avatar", None)
    return Author(
        id=str(user.id),
        tag=str(user),
        display_name=getattr(user, "display_name", None) or user.name,
        bot=bool(getattr(user, "bot", False)),
        avatar_url=str(avatar.url) if avatar is not None else None,
    )


def _channel(channel) -> Channel:
    is_thread = getattr(channel, "type", None) in THREAD_TYPES
    if not is_thread:
        return Channel(id=str(channel.id), name=getattr(channel, "name", None) or "Unknown")
    parent = getattr(channel, "parent", None)
    parent_id = getattr(channel, "parent_id", None)
    return Channel(
        id=str(channel.id),
        name=getattr(channel, "name", None) or "Unknown",
        is_thread=True,
        parent_id=str(parent_id) if parent_id is not None else None,
        parent_name=parent.name if parent is not None else None,
    )


def build_message(message: discord.Message) -> Optional[Message]:
    """Build a core Message from a discord.py message.

    Returns None for messages without a guild (direct messages).
    """

    guild = message.guild
    if guild is None:
        return None

    return Message(
        id=str(message.id),
        content=message.content or "",
        author=_author(message.author),
        channel=_channel(message.channel),
        server=Server(id=str(guild.id), name=guild.name),
        timestamp=message.created_at,
        attachments=tuple(
            Attachment(
                id=str(att.id),
                filename=att.filename,
                size=att.size,
                url=att.url,
                content_type=att.content_type,
            )
            for att in message.attachments
        ),
        embeds=tuple(
            Embed(title=embed.title, description=embed.description, url=embed.url, type=str(embed.type))
            for embed in message.embeds
        ),
        mentions=Mentions(
            users=tuple(str(user) for user in message.mentions),
            roles=tuple(role.name for role in message.role_mentions),
            everyone=bool(message.mention_everyone),
        ),
    )
