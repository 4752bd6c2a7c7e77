from __future__ import annotations
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DB_PATH = os.getenv("PULLPUSH_DB_PATH", "./workout.db")
THROTTLE_MS = _env_float("PULLPUSH_THROTTLE_MS", 33.0)      # ~30 Hz
FEEDBACK_MS = _env_float("PULLPUSH_FEEDBACK_MS", 2000.0)
ALIGNMENT_MAX = _env_float("PULLPUSH_ALIGNMENT_MAX", 0.2)
MIN_VISIBILITY = _env_float("PULLPUSH_MIN_VISIBILITY", 0.0)
LOG_LEVEL = os.getenv("PULLPUSH_LOG_LEVEL", "INFO").upper()
TRAINER_MODE = _env_flag("PULLPUSH_TRAINER_MODE", True)
