"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).
AppSettings is built once at startup and handed to the services; nothing
below the composition root reads the environment on its own.

Missing mail sender configuration is a startup error, not a per-request one.
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FROM_NAME = "No-Reply"


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "internship-marketplace"
    users_collection: str = "users"


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mail_from_email: str
    mail_from_name: str = DEFAULT_FROM_NAME

    zepto_api_token: str = ""
    zepto_api_url: str = "https://api.zeptomail.com/v1.1/email/template"

    @field_validator("mail_from_email")
    @classmethod
    def _require_from_email(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("MAIL_FROM_EMAIL must be set")
        return v

    @field_validator("mail_from_name")
    @classmethod
    def _default_blank_name(cls, v: str) -> str:
        return v.strip() or DEFAULT_FROM_NAME

    @property
    def from_address(self) -> str:
        return f'"{self.mail_from_name}" <{self.mail_from_email}>'


class OtpSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    signup_code_ttl_seconds: int = Field(default=3600, gt=0)
    reset_code_ttl_seconds: int = Field(default=300, gt=0)
    reset_validated_ttl_seconds: int = Field(default=300, gt=0)

    # Issuance throttle, shared by every OTP purpose
    otp_request_window_seconds: int = Field(default=3600, gt=0)
    max_otp_requests_per_window: int = Field(default=5, gt=0)

    max_verification_attempts: int = Field(default=5, gt=0)

    # bcrypt refuses fewer than 4 rounds
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # Lets callers supply the code instead of generating one (test fixtures only)
    allow_provided_otp: bool = False


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    env: str = "development"
    app_name: str = "internship-marketplace"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    email: Optional[EmailSettings] = None
    otp: Optional[OtpSettings] = None
    logging: Optional[LoggingSettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.otp is None:
            self.otp = OtpSettings()
        if self.logging is None:
            self.logging = LoggingSettings()

        if self.is_production and self.otp.allow_provided_otp:
            raise ValueError("ALLOW_PROVIDED_OTP cannot be enabled in production")

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
