"""
Logging configuration for relaybot.

Everything logs under the ``relaybot`` logger. setup_logging() attaches a
coloured console handler and, when ``log_file`` is set, a plain file
handler with call-site details. Per-message code uses a RequestLogger so
each line carries the correlation id of the message being handled.
"""

import logging
import sys
from pathlib import Path
from typing import Any

from relaybot.config.settings import Settings

ROOT_LOGGER_NAME = "relaybot"

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s (%(funcName)s:%(lineno)d): %(message)s"


class ColoredFormatter(logging.Formatter):
    """Console formatter that colours the level name."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno)
        if color is None:
            return super().format(record)
        # Other handlers receive the same record, so only a copy is coloured
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(colored)


class RequestLogger(logging.LoggerAdapter):
    """Prefixes every message with ``[<correlation_id>]``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        return f"[{self.extra['correlation_id']}] {msg}", kwargs


def _make_handler(
    handler: logging.Handler, formatter: logging.Formatter, level: int
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Settings) -> None:
    """
    Configure the ``relaybot`` logger from settings.

    Safe to call more than once: previously attached handlers are closed
    and replaced.

    Args:
        settings: Application settings carrying log_level and log_file
    """
    level = logging.getLevelName(settings.log_level)
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)

    for old_handler in list(package_logger.handlers):
        package_logger.removeHandler(old_handler)
        old_handler.close()

    package_logger.addHandler(
        _make_handler(
            logging.StreamHandler(sys.stdout),
            ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT),
            level,
        )
    )

    log_path = Path(settings.log_file) if settings.log_file else None
    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        package_logger.addHandler(
            _make_handler(
                logging.FileHandler(log_path, encoding="utf-8"),
                logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT),
                level,
            )
        )

    # Messages stop here instead of reaching the interpreter's root logger
    package_logger.propagate = False

    destination = f"console + {log_path}" if log_path else "console"
    package_logger.info(f"Logging to {destination} at {settings.log_level}")


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``relaybot`` hierarchy.

    Args:
        name: Logger name, typically ``__name__``. Names already inside the
            package are used as-is; anything else is nested under it.
    """
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def get_request_logger(name: str, correlation_id: str) -> RequestLogger:
    """Get a logger whose messages are tagged with a request's correlation id."""
    return RequestLogger(get_logger(name), {"correlation_id": correlation_id})
