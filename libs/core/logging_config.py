"""
Logging setup for Backforge processes.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
installed once by whatever process drives the pipeline:

    from libs.core.logging_config import setup_logging

    setup_logging()                      # level from LOG_LEVEL / .env
    setup_logging("DEBUG", log_dir=tmp)  # explicit level and directory

Session activity is logged through the one-line helpers at the bottom, so a
single session can be followed with ``grep <source_id> logs/backforge/system.log``.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from libs.core.config import get_settings

# =============================================================================
# Configuration
# =============================================================================

LOG_DIR = Path("logs/backforge")
SYSTEM_LOG_NAME = "system.log"
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5

FILE_FORMAT = "%(asctime)s | %(levelname)-5s | %(name)-30s | %(message)s"
CONSOLE_FORMAT = "%(asctime)s | %(levelname)-5s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")

_installed: List[logging.Handler] = []


def setup_logging(
    level: Optional[str] = None,
    log_dir: Optional[Path] = None,
    log_to_console: bool = True,
    log_to_file: bool = True,
    service_name: str = "backforge",
) -> Optional[Path]:
    """
    Install the process-wide handlers. Later calls are no-ops until
    ``reset_logging()``.

    Args:
        level: Level name; defaults to ``Settings.log_level``
        log_dir: Directory of the rotating system log (default logs/backforge)
        log_to_console: Also log to stdout
        log_to_file: Log to ``<log_dir>/system.log``
        service_name: Logger announcing the setup

    Returns:
        Path of the system log, or None when file logging is off
    """
    if _installed:
        return None

    level_name = (level or get_settings().log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)
    root = logging.getLogger()
    root.setLevel(log_level)

    log_path = None
    if log_to_file:
        log_path = get_system_log_path(log_dir)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_path, maxBytes=MAX_LOG_SIZE, backupCount=BACKUP_COUNT, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT, DATE_FORMAT))
        _installed.append(file_handler)

    if log_to_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, DATE_FORMAT))
        _installed.append(console_handler)

    for handler in _installed:
        handler.setLevel(log_level)
        root.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(service_name).info(
        f"Logging initialized | level={level_name} | file={log_path or '-'}"
    )
    return log_path


def reset_logging() -> None:
    """Remove and close the handlers installed by ``setup_logging``."""
    root = logging.getLogger()
    while _installed:
        handler = _installed.pop()
        root.removeHandler(handler)
        handler.close()


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def get_system_log_path(log_dir: Optional[Path] = None) -> Path:
    """Path of the rotating system log."""
    return (log_dir or LOG_DIR) / SYSTEM_LOG_NAME


# =============================================================================
# Session log lines
# =============================================================================


def log_round(
    logger: logging.Logger,
    source_id: str,
    trial: int,
    kind: str,
    requested: int,
    status: str = "accepted",
):
    """One negotiation round."""
    logger.info(f"[{source_id}] ROUND {trial} | {kind} | requested={requested} | {status}")


def log_session_end(logger: logging.Logger, source_id: str, source: str, success: bool, rounds: int):
    status = "COMPLETED" if success else "FAILED"
    logger.info(f"[{source_id}] SESSION END | {source} | {status} | rounds={rounds}")


def log_llm_call(logger: logging.Logger, source_id: str, model: str, tokens: int = 0, elapsed_ms: float = None):
    elapsed = f" | elapsed={elapsed_ms:.0f}ms" if elapsed_ms else ""
    logger.info(f"[{source_id}] LLM | {model} | tokens={tokens}{elapsed}")
