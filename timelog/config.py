import logging
import os
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Base directory of the project (repository root)
BASE_DIR = Path(__file__).resolve().parent.parent

# Optional overrides live in a .env file next to the scripts
load_dotenv(BASE_DIR / ".env")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using {default}")
        return default


def _env_list(name: str) -> list:
    raw = os.getenv(name, "")
    return [s.strip() for s in raw.split(",") if s.strip()]


# --- Storage ---
LOG_DIR = Path(os.getenv("TIMELOG_LOG_DIR", str(BASE_DIR / "logs")))
MONITOR_LOG = BASE_DIR / "timelog_monitor.log"

# Remote log endpoint (GET <url>/logs/<kind>?format=csv&start=..&end=..); local CSV files when unset
LOG_URL = os.getenv("TIMELOG_LOG_URL", "").rstrip("/")
FETCH_TIMEOUT_SECONDS = _env_int("TIMELOG_FETCH_TIMEOUT", 10)

# IANA zone for day boundaries; empty means the machine's zone
TIMEZONE = os.getenv("TIMELOG_TZ", "")

# --- Polling ---
POLL_INTERVAL_SECONDS = _env_int("TIMELOG_POLL_INTERVAL", 60)
IDLE_THRESHOLD_SECONDS = _env_int("TIMELOG_IDLE_THRESHOLD", 5 * 60)
# A gap longer than this many poll intervals is logged as sleep
SLEEP_GAP_FACTOR = 2
PROCESS_SUBSTRINGS = _env_list("MONITOR_PROCESS_SUBSTRINGS")

# --- Calendar ---
SLEEP_LOOKBACK_DAYS = 7
OPEN_ENTRY_CAP_DAYS = 1
REFOCUS_RELOAD_SECONDS = 5 * 60
DEFAULT_VISIBLE_HOURS = (0, 24)

# --- Log file layout ---
LOG_KINDS = ("focused", "process", "system")
FOCUSED_COLUMNS = ["timestamp", "title", "process", "path", "url"]
PROCESS_COLUMNS = ["timestamp", "pid", "name", "cpu", "memory", "status", "started", "unresponsive"]
SYSTEM_COLUMNS = ["timestamp", "isIdle", "isLocked", "sleepState"]
LOG_COLUMNS = {
    "focused": FOCUSED_COLUMNS,
    "process": PROCESS_COLUMNS,
    "system": SYSTEM_COLUMNS,
}

SLEEP_START = "sleep_start"
SLEEP_STOP = "sleep_stop"

# Track colours used by the calendar figure
TRACK_COLORS = {
    "focused": "#4C78A8",
    "process": "#F58518",
    "Idle": "#BAB0AC",
    "Sleep": "#54A24B",
}
