"""Environment-driven settings and logging setup."""

import logging
import os
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

SUPPORTED_PROVIDERS = ("razorpay", "stripe", "simulator")


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if not value:
        return default
    return float(value)


class Settings(BaseModel):
    """Runtime configuration for the payments service."""
    database_url: Optional[str] = None
    api_key: Optional[str] = None

    payment_provider: str = "razorpay"
    currency: str = Field(default="INR", min_length=3, max_length=3)

    razorpay_key_id: Optional[str] = None
    razorpay_key_secret: Optional[str] = None
    stripe_api_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None

    # HMAC secrets; the confirmation secret defaults to the Razorpay key secret,
    # which is what Razorpay Checkout signs order_id|payment_id with.
    confirmation_secret: Optional[str] = None
    webhook_secret: Optional[str] = None

    provider_timeout_seconds: float = Field(default=10.0, gt=0)
    database_timeout_seconds: float = Field(default=5.0, gt=0)

    rate_limit: str = "30/minute"
    rate_limit_enabled: bool = True
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            api_key=os.getenv("API_KEY"),
            payment_provider=os.getenv("PAYMENT_PROVIDER", "razorpay").lower(),
            currency=os.getenv("PAYMENT_CURRENCY", "INR").upper(),
            razorpay_key_id=os.getenv("RAZORPAY_KEY_ID"),
            razorpay_key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
            stripe_api_key=os.getenv("STRIPE_API_KEY"),
            stripe_publishable_key=os.getenv("STRIPE_PUBLISHABLE_KEY"),
            confirmation_secret=(
                os.getenv("PAYMENT_CONFIRMATION_SECRET")
                or os.getenv("RAZORPAY_KEY_SECRET")
            ),
            webhook_secret=os.getenv("PAYMENT_WEBHOOK_SECRET"),
            provider_timeout_seconds=_env_float("PROVIDER_TIMEOUT_SECONDS", 10.0),
            database_timeout_seconds=_env_float("DATABASE_TIMEOUT_SECONDS", 5.0),
            rate_limit=os.getenv("RATE_LIMIT", "30/minute"),
            rate_limit_enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide settings, read once from the environment."""
    return Settings.from_env()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level),
        format=LOG_FORMAT,
    )
