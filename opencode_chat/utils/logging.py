import logging
import sys
import time
from collections import deque
from dataclasses import dataclass
from typing import List, Optional

ROOT_LOGGER = "opencode_chat"
DEFAULT_RECENT_ENTRIES = 200


@dataclass(frozen=True)
class LogEntry:
    time: float
    level: str
    name: str
    message: str


class RecentLogHandler(logging.Handler):
    """Keeps the latest log records in memory so the chat UI can show them."""

    def __init__(self, capacity: int = DEFAULT_RECENT_ENTRIES):
        super().__init__()
        self._entries: deque = deque(maxlen=capacity)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.exc_info and record.exc_info[1] is not None:
                message = f"{message} ({record.exc_info[1]})"
            self._entries.append(
                LogEntry(
                    time=record.created or time.time(),
                    level=record.levelname,
                    name=record.name,
                    message=message,
                )
            )
        except Exception:
            self.handleError(record)

    @property
    def entries(self) -> List[LogEntry]:
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


_recent_handler: Optional[RecentLogHandler] = None


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    recent_entries: int = DEFAULT_RECENT_ENTRIES,
):
    """
    Setup logging for the application.
    """
    global _recent_handler
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(level)

    # Prevent adding handlers if they already exist
    if not logger.handlers:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

        # Console handler only shows warnings so streamed output stays readable
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(formatter)
        console_handler.setLevel(max(level, logging.WARNING))
        logger.addHandler(console_handler)

        if log_file:
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

        if recent_entries > 0:
            _recent_handler = RecentLogHandler(recent_entries)
            logger.addHandler(_recent_handler)

    return logger


def get_recent_entries() -> List[LogEntry]:
    """Return buffered log entries, oldest first (empty if logging is not set up)."""
    if _recent_handler is None:
        return []
    return _recent_handler.entries


def get_logger(name: str):
    """
    Get a logger with the given name under the 'opencode_chat' namespace.
    """
    if name.startswith(f"{ROOT_LOGGER}.") or name == ROOT_LOGGER:
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
