"""
Logging configuration for the AUCIP gateway.

``setup_logging`` installs one console handler (and optionally a file handler)
on the root logger and applies the per-module level table. Values not passed
explicitly come from ``aucip_gateway.core.config.settings`` at call time.

Three formats are available:

- ``simple``: level, logger, message.
- ``detailed``: adds timestamp and call site.
- ``json``: one JSON object per line. Gateway context passed through
  ``extra=`` (request id, job id, error id and so on) is included.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

SIMPLE_FORMAT = "%(levelname)s - %(name)s - %(message)s"

DETAILED_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(funcName)s() - %(message)s"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_FILE_NAME = "aucip_gateway.log"

# Record attributes copied into JSON lines when a caller sets them via extra=
CONTEXT_FIELDS = (
    "request_id",
    "job_id",
    "capability",
    "subscription_id",
    "operation",
    "error_id",
    "error_type",
)

MODULE_LOG_LEVELS = {
    "aucip_gateway": "INFO",
    "aucip_gateway.runtime": "DEBUG",
    "aucip_gateway.jobs": "DEBUG",
    "aucip_gateway.batch": "DEBUG",
    "aucip_gateway.auth": "INFO",
    "aucip_gateway.subscriptions": "DEBUG",
    "aucip_gateway.protocol": "INFO",
    # noisy third parties
    "httpx": "WARNING",
    "httpcore": "WARNING",
    "asyncio": "WARNING",
}


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def __init__(self) -> None:
        super().__init__(datefmt=DATE_FORMAT)

    def to_dict(self, record: logging.LogRecord) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "module": record.filename,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                data[field] = value
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return data

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(self.to_dict(record), default=str)


def build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    if log_format == "simple":
        return logging.Formatter(SIMPLE_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(DETAILED_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    enable_file: Optional[bool] = None,
    log_dir: Optional[str] = None,
) -> None:
    """
    Configure logging for the gateway process.

    Calling it again replaces the handlers installed by the previous call.

    Args:
        log_level: Console level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_format: ``simple``, ``detailed`` or ``json``.
        enable_file: Also write DEBUG and above to ``<log_dir>/aucip_gateway.log``.
        log_dir: Directory for the log file.
    """
    from aucip_gateway.core.config import settings

    level = (log_level or settings.log_level).upper()
    fmt = log_format or settings.log_format
    file_logging = settings.enable_file_logging if enable_file is None else enable_file
    directory = Path(log_dir or settings.log_file_dir)

    formatter = build_formatter(fmt)

    root_logger = logging.getLogger()
    # handlers filter; the root passes everything through
    root_logger.setLevel(logging.DEBUG)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if file_logging:
        directory.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(directory / LOG_FILE_NAME)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for module_name, module_level in MODULE_LOG_LEVELS.items():
        logging.getLogger(module_name).setLevel(module_level)

    root_logger.info("Logging configured: level=%s, format=%s, file_logging=%s", level, fmt, file_logging)


def get_logger(name: str) -> logging.Logger:
    """Return the logger for ``name`` (usually ``__name__``)."""
    return logging.getLogger(name)
