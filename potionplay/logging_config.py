"""
PotionPlay Logging Configuration

Provides centralized logging configuration with:
- Console output with a consistent format
- Rotating file handlers with size limits
- Per-component log level configuration

Usage:
    from potionplay.logging_config import setup_logging, get_logger

    # Initialize logging at application startup
    setup_logging(log_level="INFO", log_file="potionplay.log")

    # Get a logger for your module
    logger = get_logger(__name__)
    logger.info("Wake phrase detected")
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Module-level constants
ROOT_LOGGER_NAME = "potionplay"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10MB
DEFAULT_BACKUP_COUNT = 5

LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def _level(name: str) -> int:
    return LOG_LEVELS.get(name.upper(), logging.INFO)


def setup_logging(
    log_level: str = DEFAULT_LOG_LEVEL,
    log_file: Optional[str | Path] = None,
    log_format: str = DEFAULT_LOG_FORMAT,
) -> None:
    """Configure logging for the PotionPlay application.

    Sets up the package logger with a console handler and an optional
    rotating file handler. Safe to call more than once; existing handlers
    are replaced.

    Args:
        log_level: Default logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file. Enables file logging with rotation.
        log_format: Format string for all handlers.
    """
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(_level(log_level))

    # Clear any existing handlers
    for handler in list(root_logger.handlers):
        handler.close()
    root_logger.handlers.clear()

    formatter = logging.Formatter(log_format, DEFAULT_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(_level(log_level))
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_path = Path(log_file)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            file_path,
            maxBytes=DEFAULT_MAX_BYTES,
            backupCount=DEFAULT_BACKUP_COUNT,
        )
        file_handler.setLevel(_level(log_level))
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the potionplay namespace.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance inheriting the package configuration

    Example:
        logger = get_logger("voice.stt.speech_capture")
        # -> "potionplay.voice.stt.speech_capture"
    """
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def set_component_level(component: str, level: str) -> None:
    """Set log level for a single component.

    Example:
        set_component_level("speech_dispatcher", "DEBUG")
    """
    logger = get_logger(component)
    logger.setLevel(_level(level))
