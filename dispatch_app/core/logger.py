import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import sys

from dispatch_app.core.config import settings

SERVICE_LOGGER = "dispatch"
LOG_FORMAT = "%(levelname)s | %(asctime)s | %(name)s | %(message)s"


def _utf8_stdout():
    # Addresses carry accents; reopen stdout as UTF-8 where the platform allows it
    try:
        return open(sys.stdout.fileno(), mode="w", encoding="utf-8", closefd=False)
    except (AttributeError, OSError, ValueError):
        return sys.stdout


def _service_logger() -> logging.Logger:
    """The one logger that owns handlers. Configured on first use."""
    service = logging.getLogger(SERVICE_LOGGER)
    if service.handlers:
        return service

    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    file_handler = RotatingFileHandler(
        log_dir / settings.LOG_FILE,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    console_handler = logging.StreamHandler(_utf8_stdout())
    for handler in (file_handler, console_handler):
        handler.setFormatter(formatter)
        service.addHandler(handler)

    service.setLevel(settings.LOG_LEVEL.upper())
    service.propagate = False
    return service


def get_logger(name: str) -> logging.Logger:
    """
    Logger for a module of the dispatch service.

    Every logger returned here sits under the "dispatch" service logger and
    reaches its handlers through propagation, so handlers exist exactly once.
    """
    service = _service_logger()
    if name == SERVICE_LOGGER or name.startswith(f"{SERVICE_LOGGER}."):
        return logging.getLogger(name)
    return service.getChild(name)
