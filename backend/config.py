import os
from dotenv import load_dotenv

load_dotenv()

# --- Database ---
# Default to local SQLite, but prefer environment variable
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./data/habits.db")

# Fix for common SQLAlchemy issues with postgres:// vs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# --- Reconciliation ---
BACKFILL_DAYS = int(os.getenv("BACKFILL_DAYS", "365"))
SYNC_LOCK_TIMEOUT = float(os.getenv("SYNC_LOCK_TIMEOUT", "30"))

# --- Reminders provider ---
REMINDERS_PROVIDER = os.getenv("REMINDERS_PROVIDER", "memory").lower()  # memory/http
REMINDERS_API_URL = os.getenv("REMINDERS_API_URL", "").rstrip("/")
REMINDERS_API_TOKEN = os.getenv("REMINDERS_API_TOKEN", "")
REMINDERS_TIMEOUT = float(os.getenv("REMINDERS_TIMEOUT", "10"))

# Scheme of the URL we write into reminders to stamp them
STAMP_URL_SCHEME = os.getenv("STAMP_URL_SCHEME", "habitsquares")

# --- Snapshot cache ---
SNAPSHOT_DIR = os.getenv("SNAPSHOT_DIR", "./data/snapshot")
SNAPSHOT_DAY_COUNT = int(os.getenv("SNAPSHOT_DAY_COUNT", "60"))
SNAPSHOT_REFRESH_URL = os.getenv("SNAPSHOT_REFRESH_URL", "")

# --- Logging ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
