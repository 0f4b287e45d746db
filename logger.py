"""
Logging for the Minecraft <-> Discord bridge

Every module calls setup_logger(__name__, config.LOG_FILE, config.LOG_LEVEL).
Console lines are short and tagged with the module's last name segment
("[session_supervisor]"); the optional log file gets full names and dates.
All bridge loggers share one file handler per path.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - [%(component)s] %(message)s"
CONSOLE_DATEFMT = "%H:%M:%S"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Libraries that are chatty at INFO
NOISY_LOGGERS = (
    "discord.gateway",
    "discord.client",
    "discord.http",
    "uvicorn.access",
)

_file_handlers: Dict[Path, logging.FileHandler] = {}


class _ComponentFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.component = record.name.rsplit(".", 1)[-1]
        return True


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.addFilter(_ComponentFilter())
    handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=CONSOLE_DATEFMT))
    return handler


def _file_handler(log_file: str) -> logging.FileHandler:
    path = Path(log_file).resolve()
    handler = _file_handlers.get(path)
    if handler is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, encoding="utf-8")
        handler.setLevel(logging.DEBUG)  # File gets everything
        handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATEFMT))
        _file_handlers[path] = handler
    return handler


def setup_logger(name: str, log_file: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """
    Setup a bridge logger with console and optional file output.

    Args:
        name: Logger name (typically __name__)
        log_file: Optional path to log file, shared by every logger using it
        level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)
    # discord.py installs a root handler when the bot starts
    logger.propagate = False

    # Avoid duplicate handlers
    if logger.handlers:
        return logger

    logger.addHandler(_console_handler(level))
    if log_file:
        logger.addHandler(_file_handler(log_file))
    return logger


def quiet_library_loggers(level: int = logging.WARNING) -> None:
    """Lower discord.py / uvicorn chatter so bridge logs stay readable."""
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)
