"""
Application configuration — environment-aware settings.

All environment variables are documented here. Values are read once at
import; a local .env file is loaded first when present.
"""

from __future__ import annotations

import os
import warnings
from pathlib import Path

from dotenv import load_dotenv

from key_pool import collect_keys

BASE_DIR = Path(__file__).parent

load_dotenv()


def _gemini_keys() -> list[str]:
    """GEMINI_API_KEY, GEMINI_API_KEY_2..5 and comma-separated GEMINI_API_KEYS."""
    names = ["GEMINI_API_KEY"] + [f"GEMINI_API_KEY_{i}" for i in range(2, 6)] + ["GEMINI_API_KEYS"]
    return collect_keys(os.environ.get(name, "") for name in names)


def _int(name: str, default: int) -> int:
    return int(os.environ.get(name, default))


def _float(name: str, default: float) -> float:
    return float(os.environ.get(name, default))


class BaseConfig:
    # Core Flask
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-key-change-in-production")
    DATABASE = os.environ.get("DATABASE_PATH", str(BASE_DIR / "etymology.db"))
    MAX_CONTENT_LENGTH = 1 * 1024 * 1024  # 1 MB

    # Gemini credentials (read-only after load)
    GEMINI_API_KEYS = _gemini_keys()
    KEY_SELECTION = os.environ.get("KEY_SELECTION", "round_robin")  # "round_robin" or "random"

    # Models
    DETAILS_MODEL = os.environ.get("DETAILS_MODEL", "gemini-2.5-flash")
    SUMMARY_MODEL = os.environ.get("SUMMARY_MODEL", "gemini-2.5-flash")
    IMAGE_MODEL = os.environ.get("IMAGE_MODEL", "gemini-2.5-flash-image")
    TTS_MODEL = os.environ.get("TTS_MODEL", "gemini-2.5-flash-preview-tts")
    TTS_VOICE = os.environ.get("TTS_VOICE", "Fenrir")

    # Retry policy
    PROVIDER_MAX_ATTEMPTS = _int("PROVIDER_MAX_ATTEMPTS", 3)
    PROVIDER_BASE_DELAY = _float("PROVIDER_BASE_DELAY", 0.8)  # seconds
    PROVIDER_TIMEOUT = _float("PROVIDER_TIMEOUT", 9.5)  # seconds, wall clock per call

    # Result cache
    CACHE_VERSION = os.environ.get("CACHE_VERSION", "v1")
    CACHE_LONG_TTL = _int("CACHE_LONG_TTL", 24 * 60 * 60)
    CACHE_SHORT_TTL = _int("CACHE_SHORT_TTL", 5 * 60)
    DETAILS_CACHE_SIZE = _int("DETAILS_CACHE_SIZE", 100)
    SUMMARY_CACHE_SIZE = _int("SUMMARY_CACHE_SIZE", 100)
    IMAGE_CACHE_SIZE = _int("IMAGE_CACHE_SIZE", 50)
    AUDIO_CACHE_SIZE = _int("AUDIO_CACHE_SIZE", 20)

    # Gamification / history
    HISTORY_LIMIT = _int("HISTORY_LIMIT", 50)
    LEADERBOARD_LIMIT = _int("LEADERBOARD_LIMIT", 50)
    DAILY_LOOKUP_LIMIT = _int("DAILY_LOOKUP_LIMIT", 50)
    # Adopt client-held stats snapshots with higher XP. Clients can forge these.
    TRUST_CLIENT_XP = os.environ.get("TRUST_CLIENT_XP", "").lower() in ("1", "true", "yes")

    # Logging
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")  # "json" or "text"
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Redis (optional persisted cache mirror)
    REDIS_URL = os.environ.get("REDIS_URL", "")

    # CORS for the Telegram Mini App frontend
    CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")

    # Rate limiting (defaults to in-memory; set REDIS_URL for Redis-backed)
    RATELIMIT_STORAGE_URI = os.environ.get("REDIS_URL", "") or "memory://"


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "text")


class ProductionConfig(BaseConfig):
    DEBUG = False
    LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")

    @classmethod
    def validate(cls):
        """Fail fast on missing or insecure configuration in production."""
        errors: list[str] = []

        if cls.SECRET_KEY in ("dev-key-change-in-production", ""):
            errors.append("SECRET_KEY must be set to a secure value in production.")

        if not cls.GEMINI_API_KEYS:
            warnings.warn("No GEMINI_API_KEY configured; lookups will fail with a configuration error.")

        if errors:
            raise RuntimeError(
                "Production configuration errors:\n" + "\n".join(f"  - {e}" for e in errors)
            )


class TestingConfig(BaseConfig):
    TESTING = True
    GEMINI_API_KEYS: list[str] = []
    PROVIDER_BASE_DELAY = 0
    PROVIDER_TIMEOUT = 0


config_by_name = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
