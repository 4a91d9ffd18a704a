"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from sporely_alerts.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Sporely alerting service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  db_dsn: str | None
  log_dir: str
  log_max_bytes: int
  log_backup_count: int
  brand_name: str
  email_delivery_enabled: bool
  email_from_address: str | None
  email_from_name: str | None
  mailersend_api_key: str | None
  mailersend_timeout_seconds: int
  mailersend_base_url: str
  sms_delivery_enabled: bool
  twilio_account_sid: str | None
  twilio_auth_token: str | None
  twilio_from_number: str | None
  twilio_timeout_seconds: int
  twilio_base_url: str
  delivery_max_retries: int
  delivery_retry_base_seconds: int
  user_id: str | None
  user_email: str | None


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  db_dsn: str | None


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:5173",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("SPORELY_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("SPORELY_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  stripped = raw.strip()
  return stripped or None


def _positive_int(name: str, default: str, *, allow_zero: bool = False) -> int:
  value = int(os.getenv(name, default))
  if value < 0 or (value == 0 and not allow_zero):
    qualifier = "zero or a positive integer" if allow_zero else "a positive integer"
    raise ValueError(f"{name} must be {qualifier}.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("SPORELY_ENV", "development").lower()
  debug = _parse_bool(os.getenv("SPORELY_DEBUG"))

  log_dir = (os.getenv("SPORELY_LOG_DIR") or "./logs").strip()
  log_max_bytes = _positive_int("SPORELY_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = _positive_int("SPORELY_LOG_BACKUP_COUNT", "10", allow_zero=True)

  email_delivery_enabled = _parse_bool(os.getenv("SPORELY_EMAIL_DELIVERY_ENABLED"))
  email_from_address = _optional_str(os.getenv("SPORELY_EMAIL_FROM_ADDRESS"))
  email_from_name = _optional_str(os.getenv("SPORELY_EMAIL_FROM_NAME"))
  mailersend_api_key = _optional_str(os.getenv("SPORELY_MAILERSEND_API_KEY"))
  mailersend_timeout_seconds = _positive_int("SPORELY_MAILERSEND_TIMEOUT_SECONDS", "10")
  mailersend_base_url = (os.getenv("SPORELY_MAILERSEND_BASE_URL") or "https://api.mailersend.com/v1").strip()

  sms_delivery_enabled = _parse_bool(os.getenv("SPORELY_SMS_DELIVERY_ENABLED"))
  twilio_account_sid = _optional_str(os.getenv("SPORELY_TWILIO_ACCOUNT_SID"))
  twilio_auth_token = _optional_str(os.getenv("SPORELY_TWILIO_AUTH_TOKEN"))
  twilio_from_number = _optional_str(os.getenv("SPORELY_TWILIO_FROM_NUMBER"))
  twilio_timeout_seconds = _positive_int("SPORELY_TWILIO_TIMEOUT_SECONDS", "10")
  twilio_base_url = (os.getenv("SPORELY_TWILIO_BASE_URL") or "https://api.twilio.com/2010-04-01").strip()

  # Validate provider credentials only for the channels that are switched on.
  if email_delivery_enabled:
    if not email_from_address:
      raise ValueError("SPORELY_EMAIL_FROM_ADDRESS must be set when email delivery is enabled.")

    if not mailersend_api_key:
      raise ValueError("SPORELY_MAILERSEND_API_KEY must be set when email delivery is enabled.")

  if sms_delivery_enabled:
    if not (twilio_account_sid and twilio_auth_token):
      raise ValueError("SPORELY_TWILIO_ACCOUNT_SID and SPORELY_TWILIO_AUTH_TOKEN must be set when SMS delivery is enabled.")

    if not twilio_from_number:
      raise ValueError("SPORELY_TWILIO_FROM_NUMBER must be set when SMS delivery is enabled.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("SPORELY_ALLOWED_ORIGINS")),
    db_dsn=_optional_str(os.getenv("SPORELY_DB_DSN")),
    log_dir=log_dir,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    brand_name=(os.getenv("SPORELY_BRAND_NAME") or "Sporely").strip(),
    email_delivery_enabled=email_delivery_enabled,
    email_from_address=email_from_address,
    email_from_name=email_from_name,
    mailersend_api_key=mailersend_api_key,
    mailersend_timeout_seconds=mailersend_timeout_seconds,
    mailersend_base_url=mailersend_base_url,
    sms_delivery_enabled=sms_delivery_enabled,
    twilio_account_sid=twilio_account_sid,
    twilio_auth_token=twilio_auth_token,
    twilio_from_number=twilio_from_number,
    twilio_timeout_seconds=twilio_timeout_seconds,
    twilio_base_url=twilio_base_url,
    delivery_max_retries=_positive_int("SPORELY_DELIVERY_MAX_RETRIES", "3", allow_zero=True),
    delivery_retry_base_seconds=_positive_int("SPORELY_DELIVERY_RETRY_BASE_SECONDS", "300"),
    user_id=_optional_str(os.getenv("SPORELY_USER_ID")),
    user_email=_optional_str(os.getenv("SPORELY_USER_EMAIL")),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load only the settings required for database access."""
  return DatabaseSettings(debug=_parse_bool(os.getenv("SPORELY_DEBUG")), db_dsn=_optional_str(os.getenv("SPORELY_DB_DSN")))


def reset_settings_cache() -> None:
  """Clear cached settings so tests can reload from a patched environment."""
  get_settings.cache_clear()
  get_database_settings.cache_clear()
