"""
Logging configuration for TranquilTaiwan.

Everything goes to the console, app.log and errors.log. Calls to the
external data providers (Nominatim, Overpass, MOENV, TDX) are also written
to upstream.log so provider outages can be read in one place.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from app.core.config import settings

# Loggers of the modules that talk to external providers
UPSTREAM_LOGGERS = (
    "app.services.http",
    "app.services.overpass",
    "app.services.tdx_auth",
    "app.services.data_fetchers",
)

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(service)s] %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(service)s] %(funcName)s:%(lineno)d - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class UpstreamServiceFilter(logging.Filter):
    """Give every record a `service` field; `-` unless the caller passed one via extra."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = "-"
        return True


def _rotating_handler(path: Path, level: int) -> RotatingFileHandler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.LOG_MAX_BYTES,
        backupCount=settings.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
    handler.addFilter(UpstreamServiceFilter())
    return handler


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """
    Configure application-wide logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for the rotating log files (defaults to backend/logs)

    Returns:
        The root logger
    """
    log_path = Path(log_dir) if log_dir else Path(__file__).parent.parent.parent / "logs"
    log_path.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    console_handler.addFilter(UpstreamServiceFilter())

    root_logger.addHandler(console_handler)
    root_logger.addHandler(_rotating_handler(log_path / "app.log", logging.DEBUG))
    root_logger.addHandler(_rotating_handler(log_path / "errors.log", logging.ERROR))

    upstream_handler = _rotating_handler(log_path / "upstream.log", logging.INFO)
    for name in UPSTREAM_LOGGERS:
        upstream_logger = logging.getLogger(name)
        for handler in list(upstream_logger.handlers):
            if getattr(handler, "baseFilename", None) == upstream_handler.baseFilename:
                upstream_logger.removeHandler(handler)
                handler.close()
        upstream_logger.addHandler(upstream_handler)

    # Third-party libraries
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    root_logger.info(f"Logging initialized - Level: {log_level}, directory: {log_path}")
    return root_logger
