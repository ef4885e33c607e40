"""
Runtime configuration, read from environment variables.
"""

import logging
import os
from functools import lru_cache
from typing import List

import structlog


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    def __init__(self, **overrides):
        self.database_url: str = os.getenv("DATABASE_URL", "sqlite:///./pets.db")

        self.jwt_secret: str = os.getenv("JWT_SECRET", "change-me-in-production-please-32b")
        self.jwt_expires_minutes: int = int(os.getenv("JWT_EXPIRES_MINUTES", "1440"))
        self.bcrypt_rounds: int = int(os.getenv("BCRYPT_ROUNDS", "12"))

        self.stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
        self.stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
        self.stripe_timeout_seconds: float = float(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))
        self.stripe_max_retries: int = int(os.getenv("STRIPE_MAX_RETRIES", "2"))
        self.currency: str = os.getenv("CURRENCY", "inr")

        self.upload_path: str = os.getenv("UPLOAD_PATH", "./uploads")
        self.max_file_size: int = int(os.getenv("MAX_FILE_SIZE", str(5 * 1024 * 1024)))

        self.cors_origins: List[str] = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO")

        self.admin_email: str = os.getenv("ADMIN_EMAIL", "admin@sharmapetnation.com")
        self.admin_password: str = os.getenv("ADMIN_PASSWORD", "admin123")
        self.seed_sample_data: bool = _env_bool("SEED_SAMPLE_DATA", "1")

        self.port: int = int(os.getenv("PORT", "8000"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output to stdout as one JSON object per line."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper(), logging.INFO)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
