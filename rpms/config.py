"""
Configuration management with environment variable support and validation.

Design principles:
- Environment-specific configs (dev, staging, prod)
- Validation at startup (fail fast)
- Type safety with Pydantic
- Secure defaults (no SMTP credentials in code, passwords held as SecretStr)
"""

import os
from enum import Enum
from functools import lru_cache
from typing import Literal, cast

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from rpms.domain.models import ChannelKind

# Load environment variables from .env file
load_dotenv()


class FailurePolicy(str, Enum):
    """How a reminder batch reacts to a failed send."""

    ISOLATE = "isolate"
    ABORT_ON_FIRST_FAILURE = "abort"


class SmtpSettings(BaseModel):
    """Mail transport settings. Treated as read-only, process-wide secrets."""

    host: str = Field(default="smtp.gmail.com", description="SMTP server host")
    port: int = Field(default=587, gt=0, lt=65536, description="SMTP server port")
    username: str | None = Field(default=None, description="SMTP username (sender address)")
    password: SecretStr | None = Field(default=None, description="SMTP or app password")
    use_tls: bool = Field(default=True, description="Issue STARTTLS before login")
    timeout_seconds: float = Field(default=10.0, gt=0.0, description="Socket timeout")
    subject: str = Field(default="RPMS Notification", description="Subject of every message")

    @field_validator("username", mode="before")
    @classmethod
    def blank_username_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("password", mode="before")
    @classmethod
    def blank_password_is_none(cls, v):
        if isinstance(v, str) and not v:
            return None
        return v

    @property
    def has_credentials(self) -> bool:
        return self.username is not None and self.password is not None


class DispatchSettings(BaseModel):
    """Alert fan-out settings."""

    channel: ChannelKind = Field(default=ChannelKind.EMAIL, description="Channel for alerts")
    max_concurrent_sends: int = Field(default=5, gt=0, description="Bounded send pool size")
    send_timeout_seconds: float = Field(
        default=15.0, gt=0.0, description="Timeout for a single send attempt"
    )


class ReminderSettings(BaseModel):
    """Reminder batch settings."""

    failure_policy: FailurePolicy = Field(
        default=FailurePolicy.ISOLATE, description="Per-item isolation or abort on first failure"
    )
    max_concurrent_sends: int = Field(default=5, gt=0, description="Bounded send pool size")
    send_timeout_seconds: float = Field(
        default=15.0, gt=0.0, description="Timeout for a single send attempt"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    format: Literal["json", "console"] = Field(default="json", description="Logging format")


class AppConfig(BaseModel):
    """Main application configuration combining all subsystems."""

    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    smtp: SmtpSettings = Field(default_factory=SmtpSettings)
    dispatch: DispatchSettings = Field(default_factory=DispatchSettings)
    reminders: ReminderSettings = Field(default_factory=ReminderSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def debug_only_in_dev(self) -> "AppConfig":
        """Ensure debug mode is only allowed in development environment."""
        if self.debug and self.environment != "development":
            raise ValueError("debug mode is only allowed in development environment")
        return self


def load_config_from_env() -> AppConfig:
    """Load configuration from environment variables with validation."""

    def _env_to_literal(val: str) -> Literal["development", "staging", "production"]:
        v = val.strip().lower()
        if v in {"dev", "development"}:
            return "development"
        if v in {"stage", "staging"}:
            return "staging"
        return "production"

    def _level_to_literal(val: str) -> Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]:
        v = val.strip().upper()
        return cast(
            Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            v if v in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"} else "INFO",
        )

    def _parse_bool(val: str | None, default: bool) -> bool:
        if val is None:
            return default
        return val.strip().lower() in {"1", "true", "yes", "on"}

    environment = _env_to_literal(os.getenv("ENVIRONMENT", "development"))
    debug = environment == "development"

    smtp_config = SmtpSettings(
        host=os.getenv("SMTP_HOST", "smtp.gmail.com"),
        port=int(os.getenv("SMTP_PORT", "587")),
        username=os.getenv("SMTP_USERNAME"),
        password=os.getenv("SMTP_PASSWORD"),
        use_tls=_parse_bool(os.getenv("SMTP_USE_TLS"), True),
        timeout_seconds=float(os.getenv("SMTP_TIMEOUT_SECONDS", "10.0")),
    )

    dispatch_config = DispatchSettings(
        channel=ChannelKind(os.getenv("ALERT_CHANNEL", "email").strip().lower()),
        max_concurrent_sends=int(os.getenv("ALERT_MAX_CONCURRENT_SENDS", "5")),
        send_timeout_seconds=float(os.getenv("ALERT_SEND_TIMEOUT_SECONDS", "15.0")),
    )

    reminder_config = ReminderSettings(
        failure_policy=FailurePolicy(
            os.getenv("REMINDER_FAILURE_POLICY", "isolate").strip().lower()
        ),
        max_concurrent_sends=int(os.getenv("REMINDER_MAX_CONCURRENT_SENDS", "5")),
        send_timeout_seconds=float(os.getenv("REMINDER_SEND_TIMEOUT_SECONDS", "15.0")),
    )

    logging_config = LoggingConfig(
        level=_level_to_literal(os.getenv("LOG_LEVEL", "INFO")),
        format="console" if debug else "json",
    )

    return AppConfig(
        environment=environment,
        debug=debug,
        smtp=smtp_config,
        dispatch=dispatch_config,
        reminders=reminder_config,
        logging=logging_config,
    )


@lru_cache
def get_config() -> AppConfig:
    """Get cached application configuration."""
    return load_config_from_env()


def validate_config() -> None:
    """Validate configuration at startup."""
    try:
        config = get_config()
        print(f"✅ Configuration loaded for {config.environment} environment")

        if config.smtp.has_credentials:
            print("✅ SMTP credentials configured")
        else:
            print("⚠️  SMTP credentials missing - email sends will fail with ConfigError")

    except Exception as e:
        print(f"❌ Configuration validation failed: {e}")
        raise


def print_config_summary() -> None:
    """Print configuration summary for debugging. Never prints secrets."""
    config = get_config()

    print("\n🔧 CONFIGURATION SUMMARY")
    print(f"Environment: {config.environment}")
    print(f"Debug Mode: {config.debug}")
    print(f"Log Level: {config.logging.level}")

    print("\n📧 TRANSPORT")
    print(f"SMTP Credentials: {'configured' if config.smtp.has_credentials else 'missing'}")
    print(f"TLS: {config.smtp.use_tls}")

    print("\n🚨 ALERTS")
    print(f"Channel: {config.dispatch.channel.value}")
    print(f"Max Concurrent Sends: {config.dispatch.max_concurrent_sends}")
    print(f"Send Timeout: {config.dispatch.send_timeout_seconds}s")

    print("\n⏰ REMINDERS")
    print(f"Failure Policy: {config.reminders.failure_policy.value}")


if __name__ == "__main__":
    validate_config()
    print_config_summary()
