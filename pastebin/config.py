"""
Configuration module for the Pastebin service.
Loads environment variables and provides config objects.
"""
import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


class Settings:
    """Application settings loaded from environment variables."""

    REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
    APP_ENV: str = os.getenv("APP_ENV", "development").lower()
    DEBUG: bool = _env_bool("DEBUG", "True")
    APP_DOMAIN: str = os.getenv("APP_DOMAIN", "http://localhost:8000")
    TEST_MODE: bool = _env_bool("TEST_MODE", "0")

    # Bearer token guarding the cleanup endpoints
    CRON_SECRET: str = os.getenv("CRON_SECRET", "")
    CORS_ORIGIN: str = os.getenv("CORS_ORIGIN", "*")

    PURGE_RETENTION_DAYS: int = int(os.getenv("PURGE_RETENTION_DAYS", "7"))
    MAX_BODY_BYTES: int = int(os.getenv("MAX_BODY_BYTES", str(1024 * 1024)))

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"


settings = Settings()
