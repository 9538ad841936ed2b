import os
from pathlib import Path

from dotenv import load_dotenv
from loguru import logger


DOTENV_PATH = os.getenv("DOTENV_PATH", ".env")
if os.path.exists(DOTENV_PATH):
    load_dotenv(dotenv_path=DOTENV_PATH)
else:
    logger.debug(f"No .env file found at {DOTENV_PATH}, using defaults/environment variables")


# Collaborator API
WALLBOARD_API_URL = os.getenv("WALLBOARD_API_URL", "http://localhost:3000").rstrip("/")
WALLBOARD_API_TOKEN = os.getenv("WALLBOARD_API_TOKEN", "")
CLIENT_REQUEST_TIMEOUT = float(os.getenv("CLIENT_REQUEST_TIMEOUT", "5"))
REQUEST_RETRY_COUNT = int(os.getenv("REQUEST_RETRY_COUNT", "3"))

# Settings-store keys
SETTINGS_LAYOUT_KEY = "mikrotik_wallboard_layout"
SETTINGS_SLOTS_KEY = "mikrotik_wallboard_slots_json"

# Local cache of the persisted config
WALLBOARD_LOCAL_CONFIG = Path(
    os.getenv("WALLBOARD_LOCAL_CONFIG", str(Path.home() / ".config" / "wallboard" / "wallboard.json"))
)

# Polling
POLL_MS_OPTIONS = (1000, 2000, 5000)
DEFAULT_POLL_MS = 2000


def poll_interval(raw: str | None) -> int:
    """Poll interval from the environment; anything but a known option falls back to the default."""
    try:
        value = int(raw) if raw else DEFAULT_POLL_MS
    except ValueError:
        value = None
    if value not in POLL_MS_OPTIONS:
        logger.warning(f"Ignoring POLL_MS={raw!r}: must be one of {POLL_MS_OPTIONS}")
        return DEFAULT_POLL_MS
    return value


POLL_MS = poll_interval(os.getenv("POLL_MS"))

MAX_DEVICES_PER_CYCLE = 12
MAX_INTERFACES_PER_DEVICE = 12
HISTORY_SIZE = 60

# Staleness window: max(STALE_FLOOR_MS, poll interval * STALE_POLL_FACTOR)
STALE_FLOOR_MS = int(os.getenv("STALE_FLOOR_MS", "10000"))
STALE_POLL_FACTOR = int(os.getenv("STALE_POLL_FACTOR", "3"))

# Persistence
REMOTE_DEBOUNCE_MS = int(os.getenv("REMOTE_DEBOUNCE_MS", "700"))
LEGACY_DEFAULT_INTERFACE = "ether1"

# Page rotation
ROTATE_MS_OPTIONS = (5000, 10000, 15000, 30000, 60000)

# Logging
LOG_FILE = os.getenv("LOG_FILE") or None
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Health settings
LAUNCH_HEALTH = os.getenv("LAUNCH_HEALTH") == "True"
WALLBOARD_HEALTH_HOST = os.getenv("WALLBOARD_HEALTH_HOST", "0.0.0.0")
WALLBOARD_HEALTH_PORT = int(os.getenv("WALLBOARD_HEALTH_PORT", 9100))
WALLBOARD_HEALTH_ENDPOINT = os.getenv("WALLBOARD_HEALTH_ENDPOINT", "/health")
