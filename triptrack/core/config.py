import os

from dotenv import find_dotenv, load_dotenv


# Load environment variables from .env, with an optional ENV_FILE override
def _load_env_files() -> None:
    """
    Load .env files with this precedence:
    1) Base .env (if present)
    2) Explicit file via ENV_FILE (e.g., .env.test)
    Note: Existing OS environment variables are never overridden.
    """
    base_path = find_dotenv(".env", usecwd=True)
    if base_path:
        load_dotenv(base_path, override=False)

    explicit = os.environ.get("ENV_FILE")
    if explicit:
        explicit_path = explicit if os.path.isabs(explicit) else find_dotenv(explicit, usecwd=True)
        if explicit_path:
            load_dotenv(explicit_path, override=False)


_load_env_files()

# === Application Settings ===
APP_NAME = os.environ.get("APP_NAME", "TripTrack Temporal Engine")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# === Reminder Storage ===
# Path to the JSON file holding entity -> notification handle ids.
# Unset keeps the handle map in memory only.
REMINDER_STORE_PATH = os.environ.get("REMINDER_STORE_PATH") or None

# === Viewer Device ===
# IANA zone name used as the viewer's calendar for today/tomorrow checks.
# Unset falls back to the host's local timezone.
DEVICE_TIMEZONE = os.environ.get("DEVICE_TIMEZONE") or None
