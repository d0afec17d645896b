"""Logging configuration with console and rotating file handlers"""
import glob
import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

KEEP_SESSION_LOGS = 5
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 10

CONSOLE_FORMAT = "%(levelname)s: %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s"

# Chatty at INFO; still written to the file at WARNING and above
QUIET_LOGGERS = ("uvicorn.access", "asyncpg", "urllib3")


def _prune_session_logs(log_path: Path, keep: int):
    """Delete old session logs so that `keep` remain after a new one starts"""
    pattern = str(log_path.parent / f"{log_path.stem}_*.log")
    newest_first = sorted(glob.glob(pattern), reverse=True)
    for old_log in newest_first[max(keep - 1, 0):]:
        try:
            Path(old_log).unlink()
        except OSError:
            pass  # Another process may hold or have removed it


def setup_logging(log_file: str = "logs/aftersales-kb.log", console_level: int = logging.INFO, file_level: int = logging.DEBUG) -> Path:
    """
    Send brief logs to stdout and detailed logs to a per-session file.

    Each start writes `<stem>_<YYYYmmdd_HHMMSS>.log` next to `log_file`,
    keeps the last 5 sessions and rotates the file at 10MB.

    Args:
        log_file: Base path to log file (relative to working directory)
        console_level: Console logging level
        file_level: File logging level (search index statistics are logged at DEBUG)

    Returns:
        Path of this session's log file
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    _prune_session_logs(log_path, KEEP_SESSION_LOGS)

    started = datetime.now().strftime("%Y%m%d_%H%M%S")
    session_log = log_path.parent / f"{log_path.stem}_{started}.log"

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    file_handler = RotatingFileHandler(session_log, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)  # Handlers do the filtering
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info(f"Logging configured: console={logging.getLevelName(console_level)}, file={session_log} ({logging.getLevelName(file_level)})")
    return session_log
