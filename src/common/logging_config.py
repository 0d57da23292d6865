"""Logging setup shared by the manager API and the translator worker."""

import logging
import sys
from pathlib import Path
from typing import Optional

from common.config import settings
from common.utils import DateTimeUtils

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s"

THIRD_PARTY_LOGGERS = (
    "aio_pika",
    "aiormq",
    "openai",
    "httpx",
    "httpcore",
    "redis",
    "uvicorn.access",
    "asyncio",
)


def setup_logging(
    service_name: str, log_file: Optional[str] = None, log_level: Optional[str] = None
) -> logging.Logger:
    """
    Configure the named service logger.

    Console output uses a short format; the optional log file gets source
    file and line numbers as well. Calling this again replaces the handlers.

    Args:
        service_name: 'manager' or 'translator'
        log_file: Path of a log file to append to, console only when None
        log_level: Level name, defaults to settings.log_level

    Returns:
        Configured logger instance
    """
    level = getattr(logging, (log_level or settings.log_level).upper(), logging.INFO)

    logger = logging.getLogger(service_name)
    logger.setLevel(level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a")
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(file_handler)

    return logger


def get_log_file_path(service_name: str) -> str:
    """Dated log file path for a service under ./logs."""
    return f"./logs/{service_name}_{DateTimeUtils.get_date_string_for_log_file()}.log"


class ServiceLogger:
    """Logger of one service entry point."""

    def __init__(self, service_name: str, enable_file_logging: bool = True):
        self.service_name = service_name
        log_file = get_log_file_path(service_name) if enable_file_logging else None
        self.logger = setup_logging(service_name, log_file)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        self.logger.exception(message, **kwargs)


def configure_third_party_loggers(level: str = "WARNING") -> None:
    """Quiet the AMQP, HTTP, OpenAI and Redis client libraries."""
    level_value = getattr(logging, level.upper(), logging.WARNING)
    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(level_value)


def setup_service_logging(
    service_name: str, enable_file_logging: bool = True
) -> ServiceLogger:
    """Configure library loggers and return the service's logger."""
    configure_third_party_loggers()
    return ServiceLogger(service_name, enable_file_logging)
