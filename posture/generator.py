"""Random reminder schedule generation."""

import random
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from logger import logger
from . import config
from .types import ScheduledInstant, Settings
from .window import CandidateWindow, compute_window


def generate_schedule(
    now: Optional[datetime],
    settings: Settings,
    rng: Optional[random.Random] = None,
    count: int = config.REMINDERS_PER_DAY,
    tz: Optional[ZoneInfo] = None,
    min_gap_minutes: int = config.MIN_GAP_MINUTES,
) -> list[ScheduledInstant]:
    """Draw a fresh schedule of random reminder instants.

    Draws are independent and uniform over the candidate window, so two
    reminders may land on the same minute unless min_gap_minutes is set.

    Args:
        now: Current instant (defaults to the current UTC time)
        settings: Settings holding the daily window
        rng: Randomness source (defaults to the random module)
        count: Number of reminders to draw
        tz: Reference timezone (defaults to config)
        min_gap_minutes: Minimum spacing between sorted draws

    Returns:
        Undelivered instants sorted ascending
    """
    if count < 1:
        raise ValueError(f"count must be at least 1, got {count}")

    rng = rng or random
    window = compute_window(now, settings, tz)
    minutes = _draw_minutes(window, count, rng, min_gap_minutes)

    schedule = [ScheduledInstant(window.instant_at(m)) for m in minutes]
    logger.debug(
        f"Generated {len(schedule)} reminders for {window.day} "
        f"({'tomorrow' if window.is_tomorrow else 'today'})"
    )
    return schedule


def _draw_minutes(window: CandidateWindow, count: int, rng, min_gap: int) -> list[int]:
    """Draw sorted minutes, retrying until the gap holds when one is set."""
    def draw() -> list[int]:
        return sorted(rng.randrange(window.low_minute, window.high_minute) for _ in range(count))

    minutes = draw()
    if min_gap <= 0 or count == 1:
        return minutes

    if (count - 1) * min_gap >= window.span:
        logger.warning(
            f"Window of {window.span} min cannot fit {count} reminders "
            f"{min_gap} min apart, ignoring gap"
        )
        return minutes

    for _ in range(config.MAX_DRAW_ATTEMPTS):
        if all(b - a >= min_gap for a, b in zip(minutes, minutes[1:])):
            return minutes
        minutes = draw()

    logger.warning(f"No draw with {min_gap} min spacing after {config.MAX_DRAW_ATTEMPTS} attempts")
    return minutes
