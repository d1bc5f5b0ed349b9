"""Logging configuration for the reconciliation application."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..config import LoggingConfig

PACKAGE_LOGGER = "ynab_statement_recon"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Attach handlers to the package logger.

    Calling it again replaces the handlers of the previous call.

    Args:
        level: Threshold for the package logger and its console handler
        log_file: Rotating log file, which always records DEBUG and up
        log_format: Console format, defaults to ``DEFAULT_FORMAT``

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG if log_file else level)
    logger.handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def configure_logging(config: "LoggingConfig", verbose: bool = False) -> logging.Logger:
    """Set up logging from the ``logging`` section of the configuration.

    ``verbose`` forces DEBUG on the console regardless of the configured level.
    """
    level = logging.DEBUG if verbose else level_from_name(config.level)
    log_file = Path(config.file) if config.file else None
    return setup_logging(level, log_file=log_file, log_format=config.format)


def level_from_name(name: str) -> int:
    """Translate a level name such as "debug" into a logging constant."""
    level = logging.getLevelName(name.upper())
    if not isinstance(level, int):
        return logging.INFO
    return level
