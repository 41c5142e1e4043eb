"""Logging setup for the API process and the Celery worker.

Every module logs through ``logging.getLogger(__name__)``; only the
``formflow`` package logger gets handlers, so records from the approval
service, notification dispatch and workers share one format.
"""

import logging
import logging.handlers
import os
from typing import List, Optional, Union

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] [%(name)s] %(message)s"
ISO_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Library loggers that are chatty at INFO
NOISY_LOGGERS = ("sqlalchemy.engine", "aiosmtplib", "celery.worker.strategy")


def _parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(
            f"Invalid log level: {level}. "
            f"Must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL"
        )
    return value


def _handlers(
    name: str,
    log_dir: str,
    file_logging: bool,
    console_logging: bool,
    max_bytes: int,
    backup_count: int,
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []
    if file_logging:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, f"{name}.log"),
            maxBytes=max_bytes,
            backupCount=backup_count,
        ))
    if console_logging:
        handlers.append(logging.StreamHandler())
    return handlers


def setup_logger(
    name: str,
    log_dir: str = "/var/log/formflow",
    level: Union[str, int] = "INFO",
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    file_logging: bool = False,
    console_logging: bool = True,
    max_bytes: int = 10485760,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """Attach handlers to a named logger.

    Calling it again for the same name only updates the level, so the API
    and a worker importing the same modules never double their output.

    Args:
        name: Logger name, normally ``formflow``
        log_dir: Directory for the rotating log file
        level: Level name or number
        log_format: Record format (defaults to ``DEFAULT_FORMAT``)
        date_format: Timestamp format (ISO 8601 by default)
        file_logging: Write to ``<log_dir>/<name>.log``
        console_logging: Write to stderr
        max_bytes: Rotation size of the log file
        backup_count: Rotated files to keep

    Returns:
        The configured logger

    Raises:
        ValueError: If the level is not a known logging level
    """
    logger = logging.getLogger(name)
    logger.setLevel(_parse_level(level))
    if logger.handlers:
        return logger

    formatter = logging.Formatter(log_format or DEFAULT_FORMAT, datefmt=date_format or ISO_DATE_FORMAT)
    for handler in _handlers(name, log_dir, file_logging, console_logging, max_bytes, backup_count):
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    return logger


def configure_from_settings(settings, name: str = "formflow") -> logging.Logger:
    """Configure the package logger from application settings.

    Outside debug mode the noisy library loggers are held at WARNING.
    """
    if not settings.debug:
        for noisy in NOISY_LOGGERS:
            logging.getLogger(noisy).setLevel(logging.WARNING)
    return setup_logger(
        name,
        log_dir=settings.log_dir,
        level=settings.log_level,
        file_logging=settings.log_to_file,
    )
