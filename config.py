"""Global configuration for the Postura reminder bot."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Discord
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")

# Channel that receives reminders (0 = not configured, permission denied)
POSTURE_CHANNEL_ID = int(os.getenv("POSTURE_CHANNEL_ID", "0"))

# Optional user to mention on each reminder
POSTURE_USER_ID = int(os.getenv("POSTURE_USER_ID", "0"))

# Supabase (optional remote state store)
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# App data
DATA_DIR = Path(os.getenv("LOCALAPPDATA", ".")) / "postura"

# Local state store, used when Supabase is not configured
POSTURE_STATE_DB = os.getenv("POSTURE_STATE_DB", str(DATA_DIR / "state.db"))

# Logging
LOG_DIR = DATA_DIR / "logs"
LOG_DIR.mkdir(parents=True, exist_ok=True)
LOG_LEVEL = os.getenv("POSTURE_LOG_LEVEL", "INFO")

# Dated log files older than this are removed at startup (0 = keep all)
LOG_RETENTION_DAYS = int(os.getenv("POSTURE_LOG_RETENTION_DAYS", "14"))
