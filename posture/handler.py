"""Posture command handler for the bot's message router."""

import re
from typing import Optional

from logger import logger
from .engine import PostureEngine
from .types import EngineStatus, InvalidWindowError, Permission

COMMAND_PREFIX = "posture"

# "9-21", "9:30-21", "9.5 - 21:15", "9h-21h"
WINDOW_PATTERN = re.compile(
    r"^(\d{1,2}(?:[:.]\d{1,2})?)h?\s*(?:-|to)\s*(\d{1,2}(?:[:.]\d{1,2})?)h?$"
)


def parse_hour(value: str) -> float:
    """Parse "9", "9:30" or "9.5" into fractional hours."""
    if ":" in value:
        hours, minutes = value.split(":")
        if int(minutes) >= 60:
            raise InvalidWindowError(f"Invalid minutes in {value!r}")
        return int(hours) + int(minutes) / 60
    return float(value)


def parse_window(text: str) -> Optional[tuple[float, float]]:
    """Parse a "<start>-<end>" window, None if it doesn't look like one."""
    match = WINDOW_PATTERN.match(text.strip())
    if not match:
        return None
    return parse_hour(match.group(1)), parse_hour(match.group(2))


def format_hour(hour: float) -> str:
    minutes = round(hour * 60)
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


async def handle_posture_intent(content: str, engine: PostureEngine) -> Optional[str]:
    """Handle posture reminder commands.

    Args:
        content: Message content
        engine: Running posture engine

    Returns:
        Response string if handled, None if not a posture command
    """
    content_lower = content.lower().strip()
    if not content_lower.startswith(COMMAND_PREFIX):
        return None

    command = content_lower[len(COMMAND_PREFIX):].strip()

    if not engine.is_supported:
        return "Reminders are not supported here."

    if command in ("on", "enable", "start"):
        return await _enable(engine)

    if command in ("off", "disable", "stop"):
        await engine.disable()
        return "Posture reminders off."

    if command in ("", "status"):
        return _status(engine)

    if command == "test":
        if await engine.test_fire():
            return "Test reminder sent."
        return "Couldn't send a test reminder. Turn reminders on first with `posture on`."

    if command in ("reschedule", "new times"):
        if not await engine.reschedule():
            return "Reminders are off. Turn them on with `posture on`."
        return f"New reminder times:\n{_format_schedule(engine)}"

    if command.startswith("window"):
        return await _update_window(engine, command[len("window"):].strip())

    return None


async def _enable(engine: PostureEngine) -> str:
    if not await engine.enable():
        if engine.permission == Permission.DENIED:
            return "Reminders are blocked: the reminder channel isn't reachable."
        return "Couldn't turn reminders on."
    return f"**Posture reminders on**\n\n{_format_schedule(engine)}"


async def _update_window(engine: PostureEngine, text: str) -> str:
    try:
        window = parse_window(text)
        if window is None:
            return "Usage: `posture window 10-22` (hours in reference time)."
        settings = await engine.update_settings(*window)
    except (InvalidWindowError, ValueError) as e:
        logger.info(f"Rejected window {text!r}: {e}")
        return f"Invalid window: {e}"

    reply = f"Window set to {format_hour(settings.start_hour)}-{format_hour(settings.end_hour)}."
    if settings.enabled:
        reply += " Applies from the next schedule, use `posture reschedule` to apply now."
    return reply


def _format_schedule(engine: PostureEngine) -> str:
    lines = []
    for instant in engine.state.schedule:
        local = instant.timestamp.astimezone(engine.tz)
        mark = " (sent)" if instant.delivered else ""
        lines.append(f"- {local.strftime('%a %d %b %H:%M')}{mark}")
    return "\n".join(lines) or "No reminders scheduled."


def _status(engine: PostureEngine) -> str:
    settings = engine.settings
    window = f"{format_hour(settings.start_hour)}-{format_hour(settings.end_hour)}"
    if engine.status != EngineStatus.SCHEDULED:
        return f"Posture reminders are off (window {window}). Turn on with `posture on`."

    lines = [
        f"**Posture reminders on** ({engine.count} a day, {window} {engine.tz.key})",
        _format_schedule(engine),
    ]
    if engine.degraded:
        lines.append("_Native alarms unavailable, using polling delivery._")
    return "\n".join(lines)
