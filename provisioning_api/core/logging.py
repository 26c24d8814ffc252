import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from provisioning_api.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"

_LOGGING_INITIALIZED = False


class TruncatedFormatter(logging.Formatter):
  """Formatter that truncates the stack trace to the last few lines."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    # Keep header + last 5 lines of traceback
    if len(lines) > 6:
      return "".join(lines[:1] + ["    ...\n"] + lines[-5:])
    return "".join(lines)


def _custom_namer(default_name: str) -> str:
  """Rename rotated files from app.log.1 to app.log-1."""
  parts = default_name.rsplit(".", 1)
  if len(parts) == 2 and parts[1].isdigit():
    return f"{parts[0]}-{parts[1]}"
  return default_name


def _build_handlers(settings: Settings) -> list[logging.Handler]:
  """Create the stdout handler and, when a log directory is configured, a rotating file handler."""
  stream = logging.StreamHandler(sys.stdout)
  stream.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  handlers: list[logging.Handler] = [stream]

  if not settings.log_dir:
    return handlers

  log_dir = Path(settings.log_dir)
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Failed to create log directory at {log_dir}: {exc}") from exc

  log_path = log_dir / f"provisioning_{time.strftime('%Y%m%d_%H%M%S')}.log"
  file_handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  file_handler.namer = _custom_namer
  file_handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  handlers.append(file_handler)
  return handlers


def setup_logging(settings: Settings) -> None:
  """Ensure all loggers use our handlers and propagate to root."""
  handlers = _build_handlers(settings)
  level = logging.getLevelName(settings.log_level.upper())
  for logger_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
    log = logging.getLogger(logger_name)
    log.handlers = list(handlers)
    log.propagate = False

  logging.basicConfig(level=level, handlers=handlers, force=True)
  # httpx logs every request at INFO; keep it quieter than the service's own logs.
  logging.getLogger("httpx").setLevel(logging.WARNING)


def _initialize_logging(settings: Settings) -> None:
  """Initialize logging once and log startup messages."""
  global _LOGGING_INITIALIZED
  if _LOGGING_INITIALIZED:
    return
  setup_logging(settings)
  _LOGGING_INITIALIZED = True
  logger = logging.getLogger("provisioning_api.core.logging")
  if settings.log_dir:
    logger.info("Logging initialized at level=%s; writing to %s", settings.log_level, settings.log_dir)
  else:
    logger.info("Logging initialized at level=%s; writing to stdout", settings.log_level)
