"""
Logging configuration for GeoLoader.

The library itself only creates module loggers; applications (and the
``geoloader`` command) call :func:`setup_logging` once to attach handlers.
"""

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from geoloader.core.config import Settings, settings as default_settings

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured file logs.

    Extra fields passed with ``extra=`` (source_file, duration_ms,
    record_number, issue_code, ...) are copied into the payload.
    """

    def format(self, record: logging.LogRecord) -> str:
        """
        Format log record as JSON.

        Args:
            record: Log record to format

        Returns:
            JSON string representation of the log record
        """
        log_data: Dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ColoredFormatter(logging.Formatter):
    """Console formatter that colors the level name."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def get_log_level(level_name: str) -> int:
    """
    Convert a log level name to its logging constant.

    Unknown names map to INFO.
    """
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(level_name.upper(), logging.INFO)


def setup_logging(
    log_level: Optional[str] = None,
    log_file: Optional[Path] = None,
    json_logs: bool = False,
    enable_console: bool = True,
    config: Optional[Settings] = None,
) -> None:
    """
    Configure process-wide logging.

    Args:
        log_level: Log level name; defaults to the configured level, then to
            DEBUG in development and INFO elsewhere
        log_file: Path to a rotating log file (optional)
        json_logs: Whether to use JSON format for the file handler
        enable_console: Whether to log to stderr
        config: Settings to read environment and level from
    """
    config = config or default_settings

    if log_level is None:
        log_level = config.log_level or (
            "DEBUG" if config.environment == "development" else "INFO"
        )
    level = get_log_level(log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if enable_console:
        # stdout is reserved for command output
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)

        if config.environment == "development":
            console_formatter: logging.Formatter = ColoredFormatter(
                "%(levelname)s | %(asctime)s | %(name)s:%(lineno)d | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        else:
            console_formatter = logging.Formatter(
                "%(levelname)s - %(asctime)s - %(name)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        console_handler.setFormatter(console_formatter)
        root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)

        if json_logs:
            file_formatter: logging.Formatter = JSONFormatter()
        else:
            file_formatter = logging.Formatter(
                "%(asctime)s - %(levelname)s - %(name)s - "
                "%(module)s:%(funcName)s:%(lineno)d - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )

        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    # ezdxf logs every recovered structure problem at INFO/DEBUG
    logging.getLogger("ezdxf").setLevel(max(level, logging.WARNING))
    logging.getLogger("pyproj").setLevel(max(level, logging.WARNING))

    root_logger.debug(
        f"Logging initialized: level={log_level}, "
        f"environment={config.environment}, "
        f"json_logs={json_logs}, "
        f"console={enable_console}, "
        f"file={log_file is not None}"
    )


class LogContext:
    """
    Context manager that stamps extra fields on every log record.

    Usage:
        with LogContext(job_id="import-42"):
            parser.parse_path(path)
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs
        self.old_factory: Optional[Any] = None

    def __enter__(self) -> "LogContext":
        self.old_factory = logging.getLogRecordFactory()
        old_factory = self.old_factory

        def record_factory(*args: Any, **kwargs: Any) -> logging.LogRecord:
            record = old_factory(*args, **kwargs)
            for key, value in self.context.items():
                setattr(record, key, value)
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.old_factory:
            logging.setLogRecordFactory(self.old_factory)
