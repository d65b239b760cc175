"""Logging configuration with an append-only workspace log file."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILENAME = "app.log"

_EMPTY_LOG_TEXT = "暂无日志"


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[str | Path] = None,
    console_enabled: bool = True,
) -> None:
    """Configure application-wide logging with console and file handlers.

    Args:
        level: Logging level (e.g., logging.DEBUG, logging.INFO).
        log_dir: Directory for the log file. Defaults to ./workspace/logs.
        console_enabled: Whether to output to console.
    """
    log_dir = Path(log_dir or "./workspace/logs")
    log_dir.mkdir(parents=True, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates on re-init
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if console_enabled:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # Main file handler (rotating, 10MB, keep 5)
    file_handler = RotatingFileHandler(
        str(log_dir / LOG_FILENAME),
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root_logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.getLogger(__name__).debug("Logging initialized: level=%s, dir=%s", level, log_dir)


def read_log(log_dir: str | Path) -> str:
    """Return the workspace log text, or a placeholder when nothing was logged yet."""
    log_path = Path(log_dir) / LOG_FILENAME
    if not log_path.exists():
        return _EMPTY_LOG_TEXT
    return log_path.read_text(encoding="utf-8", errors="replace")


def clear_log(log_dir: str | Path) -> None:
    """Truncate the workspace log file."""
    log_path = Path(log_dir) / LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    log_path.write_text("", encoding="utf-8")
