# brushquote/core/settings.py
import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # === General ===
    app_env: str = "local"  # local | development | production
    app_name: str = "brushquote"
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]

    # === Database ===
    database_url: str = "sqlite:///./brushquote.db"

    # === Logging ===
    log_level: str = "INFO"

    # === Sentry ===
    SENTRY_DSN: Optional[str] = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    # === Metrics ===
    metrics_enabled: bool = True

    # === Rate limiting (per minute) ===
    rate_limit_payment: int = 20
    rate_limit_portal: int = 120

    # === Auth ===
    JWT_SECRET: str = Field("dev_jwt_secret_change_me", description="Staff bearer token secret")
    JWT_EXP_HOURS: int = 24
    PORTAL_TOKEN_SECRET: str = Field(
        "dev_portal_secret_change_me", description="Signs customer portal tokens"
    )
    PORTAL_TOKEN_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30

    # === Stripe ===
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_TIMEOUT_SECONDS: float = 10.0
    PAYMENT_CURRENCY: str = "usd"

    # === Postmark ===
    POSTMARK_SERVER_TOKEN: Optional[str] = None
    POSTMARK_FROM: Optional[str] = None
    POSTMARK_REPLY_TO: Optional[str] = None
    POSTMARK_MESSAGE_STREAM: str = "outbound"

    # === Quote numbers ===
    quote_number_max_attempts: int = 5

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance with simple env overrides."""
    s = Settings()

    env = os.getenv("ENVIRONMENT", s.app_env).lower()
    if env == "production":
        s.log_level = "WARNING"
        s.rate_limit_payment = 10
    elif env == "development":
        s.log_level = "DEBUG"
        s.rate_limit_payment = 60

    return s


settings = get_settings()
