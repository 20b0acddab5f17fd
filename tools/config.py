"""Application configuration."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # HUBSPOT_TOKEN and hubspot_token both work
        extra="ignore",
    )

    # HubSpot
    hubspot_token: Optional[str] = None
    hubspot_timeout: float = 20.0
    owner_email: Optional[str] = None

    # Hotmart shared secret; unset means calls are not authenticated
    hotmart_secret: Optional[str] = None

    # Optional shared idempotency store
    redis_url: Optional[str] = None

    # Failure alerts
    slack_bot_token: Optional[str] = None
    slack_alert_channel: str = "#hotmart-alerts"
