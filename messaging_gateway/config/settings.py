"""Messaging settings loaded from environment variables.

Uses pydantic-settings for validation and type coercion. App-specific
settings use the ``MESSAGING_`` prefix; vendor credentials and infra
settings use their canonical environment variable names via
``validation_alias``.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the messaging gateways and OTP workflow.

    Environment variables are loaded from a ``.env`` file when present.
    Every field can also be passed by name, which is how tests and
    embedding applications build isolated instances.
    """

    model_config = SettingsConfigDict(
        env_prefix="MESSAGING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # ── Routing ────────────────────────────────────────────────────────
    default_channel: str = "sms"

    # ── AfrikSMS ───────────────────────────────────────────────────────
    afriksms_client_id: str | None = Field(default=None, validation_alias="AFRIKSMS_CLIENT_ID")
    afriksms_api_key: str | None = Field(default=None, validation_alias="AFRIKSMS_API_KEY")
    afriksms_sender_id: str = Field(default="MyApp", validation_alias="AFRIKSMS_SENDER_ID")
    afriksms_base_url: str = Field(
        default="https://api.afriksms.com/api/web/web_v1/outbounds",
        validation_alias="AFRIKSMS_BASE_URL",
    )
    afriksms_timeout: float = Field(default=30.0, validation_alias="AFRIKSMS_TIMEOUT")
    afriksms_retry_times: int = Field(default=3, ge=1, validation_alias="AFRIKSMS_RETRY_TIMES")
    afriksms_retry_sleep_ms: int = Field(default=100, ge=0, validation_alias="AFRIKSMS_RETRY_SLEEP")

    # ── Twilio WhatsApp ────────────────────────────────────────────────
    twilio_sid: str | None = Field(default=None, validation_alias="TWILIO_SID")
    twilio_auth_token: str | None = Field(default=None, validation_alias="TWILIO_AUTH_TOKEN")
    twilio_whatsapp_from: str | None = Field(default=None, validation_alias="TWILIO_WHATSAPP_FROM")
    twilio_timeout: float = Field(default=30.0, validation_alias="TWILIO_TIMEOUT")

    # ── OTP ────────────────────────────────────────────────────────────
    otp_length: int = Field(default=6, ge=1, le=12)
    otp_expiry_minutes: int = Field(default=10, ge=1)
    otp_max_attempts: int = Field(default=3, ge=1)
    otp_message: str = "Your verification code is: {code}. Valid for {expiry} minutes."
    otp_whatsapp_template_sid: str | None = None
    otp_whatsapp_code_variable: str = "1"

    # ── Phone numbers ──────────────────────────────────────────────────
    default_country_code: str = "228"  # Togo

    # ── OTP store ──────────────────────────────────────────────────────
    redis_url: str | None = Field(default=None, validation_alias="REDIS_URL")
    otp_store_namespace: str = "messaging:"

    # ── Logging ────────────────────────────────────────────────────────
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")


# Module-level singleton: import ``settings`` everywhere.
settings = Settings()
