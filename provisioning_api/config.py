"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

ENV_PREFIX = "PROVISIONING_"
_PORT_KEYS = ("APP_PORT", "PORT")


def load_service_env(path: Path) -> list[str]:
  """Copy this service's keys from a .env file into os.environ without overriding set values."""
  if not path.is_file():
    return []

  loaded: list[str] = []
  for raw_line in path.read_text(encoding="utf-8").splitlines():
    key, sep, value = raw_line.strip().removeprefix("export ").partition("=")
    key = key.strip()
    if not sep or key.startswith("#"):
      continue
    # Unrelated keys (cloud credentials, other tools) stay out of the process environment.
    if not (key.startswith(ENV_PREFIX) or key in _PORT_KEYS) or key in os.environ:
      continue
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
      value = value[1:-1]
    os.environ[key] = value
    loaded.append(key)
  return loaded


load_service_env(Path(__file__).resolve().parent.parent / ".env")

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the provisioning service."""

  environment: str
  port: int
  log_level: str
  log_dir: str | None
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  provision_delay_seconds: float
  http_timeout_seconds: float
  connected_app: str
  permission_set: str


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value


def _parse_log_level(raw: str | None) -> str:
  level = (raw or "info").strip().lower()
  # Accept the pino-style "warn" and "fatal" spellings used by the Node deployment.
  level = {"warn": "warning", "fatal": "critical", "trace": "debug"}.get(level, level)
  if level not in _LOG_LEVELS:
    raise ValueError(f"PROVISIONING_LOG_LEVEL must be one of {sorted(_LOG_LEVELS)}.")
  return level


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("PROVISIONING_ENV", "development").lower()

  # Heroku injects PORT; APP_PORT is kept for parity with older deployments.
  port = int(os.getenv("PROVISIONING_PORT") or os.getenv("APP_PORT") or os.getenv("PORT") or "5000")
  if port <= 0:
    raise ValueError("PROVISIONING_PORT must be a positive integer.")

  log_max_bytes = int(os.getenv("PROVISIONING_LOG_MAX_BYTES", "5242880"))  # 5MB default
  if log_max_bytes <= 0:
    raise ValueError("PROVISIONING_LOG_MAX_BYTES must be a positive integer.")

  log_backup_count = int(os.getenv("PROVISIONING_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("PROVISIONING_LOG_BACKUP_COUNT must be zero or a positive integer.")

  provision_delay_seconds = float(os.getenv("PROVISIONING_PROVISION_DELAY_SECONDS", "10"))
  if provision_delay_seconds < 0:
    raise ValueError("PROVISIONING_PROVISION_DELAY_SECONDS must be zero or positive.")

  http_timeout_seconds = float(os.getenv("PROVISIONING_HTTP_TIMEOUT_SECONDS", "30"))
  if http_timeout_seconds <= 0:
    raise ValueError("PROVISIONING_HTTP_TIMEOUT_SECONDS must be positive.")

  return Settings(
    environment=environment,
    port=port,
    log_level=_parse_log_level(os.getenv("PROVISIONING_LOG_LEVEL")),
    log_dir=_optional_str(os.getenv("PROVISIONING_LOG_DIR")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("PROVISIONING_LOG_HTTP_4XX")),
    provision_delay_seconds=provision_delay_seconds,
    http_timeout_seconds=http_timeout_seconds,
    connected_app=os.getenv("PROVISIONING_CONNECTED_APP", "ProvisioningServiceConnectedApp"),
    permission_set=os.getenv("PROVISIONING_PERMISSION_SET", "ProvisioningServicePermissions"),
  )
