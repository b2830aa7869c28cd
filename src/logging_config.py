import logging
import logging.handlers
import sys
from contextvars import ContextVar
from pathlib import Path
from typing import List, Optional

from src.config import APP_LOG_LEVEL, THIRD_PARTY_LOG_LEVEL, LOG_FILE


APP_LOGGER_NAME = "ledger_keeper"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [user=%(user_id)s] %(message)s"

# Libraries whose chatter is held at THIRD_PARTY_LOG_LEVEL
THIRD_PARTY_LOGGERS = [
    "sqlalchemy.engine",
    "sqlalchemy.dialects",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
    "uvicorn.access",
    "uvicorn.error",
    "httpx",
]

_current_user: ContextVar[str] = ContextVar("ledger_keeper_user", default="-")


def bind_user(user_id: str) -> None:
    """Attach user_id to every record logged for the rest of the current request"""
    _current_user.set(user_id)


class UserContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.user_id = _current_user.get()
        return True


def _level(name: str, fallback: int) -> int:
    return getattr(logging, name.upper(), fallback)


def _build_handlers(level: int, log_file: Optional[str], max_file_size: int,
                    backup_count: int) -> List[logging.Handler]:
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=max_file_size,
            backupCount=backup_count
        ))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(UserContextFilter())
    return handlers


def setup_logging(
    app_log_level: Optional[str] = None,
    third_party_log_level: Optional[str] = None,
    log_file: Optional[str] = None,
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the ledger_keeper logger tree.

    Arguments override the APP_LOG_LEVEL, THIRD_PARTY_LOG_LEVEL and LOG_FILE
    settings. Safe to call more than once; handlers are replaced, not stacked.
    """
    app_level = _level(app_log_level or APP_LOG_LEVEL, logging.INFO)
    third_party_level = _level(third_party_log_level or THIRD_PARTY_LOG_LEVEL, logging.WARNING)

    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(app_level)
    app_logger.handlers.clear()
    for handler in _build_handlers(app_level, log_file or LOG_FILE, max_file_size, backup_count):
        app_logger.addHandler(handler)
    app_logger.propagate = False

    for logger_name in THIRD_PARTY_LOGGERS:
        logging.getLogger(logger_name).setLevel(third_party_level)

    return app_logger


def get_logger(name: str = APP_LOGGER_NAME) -> logging.Logger:
    """Logger nested under ledger_keeper, e.g. ledger_keeper.src.services.settlement"""
    if name == APP_LOGGER_NAME or name.startswith(f"{APP_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER_NAME}.{name}")
