"""Collaborator contracts the engine depends on, plus Discord adapters.

The engine only talks to these narrow interfaces; the host decides which
concrete adapters exist (capability detection).
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable

import discord

from logger import logger
from .types import Permission


class PermissionGateway(ABC):
    """Grants or denies the right to deliver notifications."""

    @abstractmethod
    async def request(self) -> Permission:
        """Ask the host for permission (may prompt the user)."""

    @abstractmethod
    def current(self) -> Permission:
        """Current permission without prompting."""


class NotificationSurface(ABC):
    """Presents a notification immediately."""

    @abstractmethod
    async def fire_now(self, title: str, body: str) -> None:
        pass


class NativeAlarmScheduler(ABC):
    """Exact-alarm scheduler that fires independently of the engine."""

    @abstractmethod
    async def cancel(self, ids: Iterable[int]) -> None:
        """Cancel alarms by ID. Unknown IDs are ignored."""

    @abstractmethod
    async def schedule_at(self, alarm_id: int, instant: datetime, title: str, body: str) -> None:
        """Register an alarm, replacing any existing alarm with the same ID."""


async def _resolve_channel(bot, channel_id: int):
    """Get a channel from cache, falling back to an API fetch."""
    channel = bot.get_channel(channel_id)
    if channel is None:
        channel = await bot.fetch_channel(channel_id)
    return channel


class ChannelPermissionGateway(PermissionGateway):
    """Permission = the reminder channel is configured and reachable."""

    def __init__(self, bot, channel_id: int):
        self.bot = bot
        self.channel_id = channel_id
        self._permission = Permission.NOT_REQUESTED

    def current(self) -> Permission:
        if not self.channel_id:
            return Permission.DENIED
        if self._permission != Permission.NOT_REQUESTED:
            return self._permission
        if self.bot.get_channel(self.channel_id) is not None:
            return Permission.GRANTED
        return Permission.NOT_REQUESTED

    async def request(self) -> Permission:
        if not self.channel_id:
            logger.warning("POSTURE_CHANNEL_ID not configured, reminders denied")
            self._permission = Permission.DENIED
            return self._permission

        try:
            await _resolve_channel(self.bot, self.channel_id)
            self._permission = Permission.GRANTED
        except (discord.NotFound, discord.Forbidden) as e:
            logger.warning(f"Reminder channel {self.channel_id} unavailable: {e}")
            self._permission = Permission.DENIED
        except discord.HTTPException as e:
            logger.error(f"Failed to fetch reminder channel {self.channel_id}: {e}")
            self._permission = Permission.DENIED

        return self._permission


class DiscordChannelSurface(NotificationSurface):
    """Posts reminders into a Discord channel."""

    def __init__(self, bot, channel_id: int, user_id: int = 0):
        self.bot = bot
        self.channel_id = channel_id
        self.user_id = user_id

    async def fire_now(self, title: str, body: str) -> None:
        channel = await _resolve_channel(self.bot, self.channel_id)
        mention = f" <@{self.user_id}>" if self.user_id else ""
        await channel.send(f"**{title}**{mention}\n\n> {body}")
        logger.info(f"Posted reminder to channel {self.channel_id}")
