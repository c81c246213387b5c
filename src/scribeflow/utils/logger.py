import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from platformdirs import user_log_path

ROOT_LOGGER_NAME = "scribeflow"
LOG_FILE_NAME = "scribeflow.log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5

_SOURCE_PREFIX = "src."

_logger_instance: Optional[logging.Logger] = None


def get_log_dir() -> Path:
    return user_log_path(ROOT_LOGGER_NAME, appauthor=False, ensure_exists=True)


def _normalize_name(name: str) -> str:
    # Modules imported as src.scribeflow.* log under scribeflow.*
    if name == _SOURCE_PREFIX + ROOT_LOGGER_NAME or name.startswith(
        _SOURCE_PREFIX + ROOT_LOGGER_NAME + "."
    ):
        return name[len(_SOURCE_PREFIX):]
    return name


def _configure_root() -> logging.Logger:
    from ..core.settings.config import LOG_TO_CONSOLE, get_log_level

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    if root_logger.handlers:
        return root_logger

    level = get_log_level()
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    root_logger.setLevel(level)

    handlers = [
        RotatingFileHandler(
            get_log_dir() / LOG_FILE_NAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
    ]
    if LOG_TO_CONSOLE:
        handlers.append(logging.StreamHandler(sys.stderr))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    root_logger.propagate = False
    return root_logger


def get_logger(name: str = ROOT_LOGGER_NAME) -> logging.Logger:
    """Return a logger under the application root, configuring the root on first use."""
    global _logger_instance

    if _logger_instance is None:
        _logger_instance = _configure_root()

    name = _normalize_name(name)
    if name == ROOT_LOGGER_NAME:
        return _logger_instance
    return logging.getLogger(name)


def shutdown_logging() -> None:
    """Close and detach every handler so the log file can be released."""
    global _logger_instance
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root_logger.handlers):
        handler.close()
        root_logger.removeHandler(handler)
    _logger_instance = None
