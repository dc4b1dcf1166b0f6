"""Posture reminder engine configuration."""

import os

# Reference timezone for the daily window (Brasília, UTC-3), independent of
# where the host runs
REFERENCE_TIMEZONE = os.environ.get("POSTURE_TIMEZONE", "America/Sao_Paulo")

# Default daily window, reference-local hours
DEFAULT_START_HOUR = 10.0
DEFAULT_END_HOUR = 22.0

# Reminders drawn per generated schedule
REMINDERS_PER_DAY = int(os.environ.get("POSTURE_REMINDERS_PER_DAY", 2))

# Minimum minutes between two drawn reminders (0 = independent draws)
MIN_GAP_MINUTES = int(os.environ.get("POSTURE_MIN_GAP_MINUTES", 0))
MAX_DRAW_ATTEMPTS = 50

# Inside the window with this many minutes or fewer left, schedule tomorrow
LATE_SLACK_MINUTES = 30

# Earliest offset from "now" for a same-day reminder
LEAD_MINUTES = 5

# An instant is "now" for this long after its timestamp
DUE_WINDOW_SECONDS = 60

# Tick cadence; must not exceed DUE_WINDOW_SECONDS
POLL_INTERVAL_SECONDS = int(os.environ.get("POSTURE_POLL_INTERVAL_SECONDS", 60))

# "native" hands instants to the alarm scheduler, "polling" fires from ticks
DELIVERY_MODE = os.environ.get("POSTURE_DELIVERY", "native").lower()

# Stable alarm IDs, reused on every regeneration
NATIVE_ALARM_IDS = tuple(range(1, REMINDERS_PER_DAY + 1))

# Persistence keys
SETTINGS_KEY = "postura-settings"
SCHEDULE_KEY = "postura-notifications"

# Notification content
NOTIFICATION_TITLE = "Posture reminder"

MESSAGES = [
    "🧘 Time to fix your posture! Shoulders back, spine straight.",
    "💪 Reminder: straighten your back and relax your shoulders.",
    "🪑 Posture! Sit up tall and take a deep breath.",
    "✨ Look after your spine! Adjust your posture now.",
    "🌿 Posture moment: back straight, chin parallel to the floor.",
    "⚡ Mind your posture! Feet on the floor, back supported.",
]
