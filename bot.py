"""Postura - Discord posture reminder bot.

Posts two random posture reminders a day into a configured channel, within a
daily window defined in the reference timezone. Users control reminders with
`posture ...` messages in that channel.
"""

import asyncio

import discord
from discord.ext import commands
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logger import logger
from config import DISCORD_TOKEN, POSTURE_CHANNEL_ID, POSTURE_USER_ID
from posture import config as posture_config
from posture import (
    ApschedulerAlarmScheduler,
    ChannelPermissionGateway,
    DiscordChannelSurface,
    ForegroundEventSource,
    IntervalEventSource,
    PostureEngine,
    StateStore,
    handle_posture_intent,
    open_key_value_store,
)

# Initialize bot
intents = discord.Intents.default()
intents.message_content = True
bot = commands.Bot(command_prefix="/", intents=intents)

# Initialize scheduler
scheduler = AsyncIOScheduler()

# Gateway reconnects stand in for "app back in foreground"
foreground = ForegroundEventSource("gateway_resumed")


def build_engine() -> PostureEngine:
    """Wire the engine to Discord, APScheduler and the state store."""
    surface = DiscordChannelSurface(bot, POSTURE_CHANNEL_ID, POSTURE_USER_ID) if POSTURE_CHANNEL_ID else None

    # Capability probe: native alarms unless polling is forced
    native = None
    if surface is not None and posture_config.DELIVERY_MODE != "polling":
        native = ApschedulerAlarmScheduler(scheduler, surface)

    engine = PostureEngine(
        store=StateStore(open_key_value_store()),
        permissions=ChannelPermissionGateway(bot, POSTURE_CHANNEL_ID),
        surface=surface,
        native_scheduler=native,
    )
    if native is not None:
        native.on_fired = engine.handle_native_delivery
    return engine


engine = build_engine()
_engine_started = False


@bot.event
async def on_ready():
    """Called when bot is connected and ready."""
    global _engine_started
    logger.info(f"Logged in as {bot.user}")

    if _engine_started:
        await foreground.emit()
        return

    scheduler.start()
    await engine.start((IntervalEventSource(scheduler), foreground))
    _engine_started = True
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} jobs")


@bot.event
async def on_resumed():
    """Gateway session resumed after a disconnect."""
    logger.info("Gateway resumed, re-checking reminders")
    await foreground.emit()


@bot.event
async def on_message(message):
    """Handle incoming messages."""
    # Ignore bot messages
    if message.author.bot:
        return

    if POSTURE_CHANNEL_ID and message.channel.id != POSTURE_CHANNEL_ID:
        return

    try:
        response = await handle_posture_intent(message.content, engine)
    except Exception as e:
        logger.error(f"Posture command failed: {e}")
        response = "Something went wrong handling that command."

    if response:
        await message.channel.send(response)


async def main():
    async with bot:
        try:
            await bot.start(DISCORD_TOKEN)
        finally:
            await engine.stop()
            if scheduler.running:
                scheduler.shutdown(wait=False)


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
