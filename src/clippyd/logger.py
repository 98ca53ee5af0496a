from datetime import datetime
import logging
from logging import Logger as T_Logger
from logging.config import dictConfig
from pathlib import Path

from pythonjsonlogger.json import JsonFormatter  # type: ignore # noqa F401

from .config import DaemonSettings

LOGGER_NAME = "clippyd"
LOG_FILE_NAME = "clippyd.jsonl"


def build_logging_config(log_file_path: Path, log_level: str) -> dict:
    """Build the dictConfig mapping: JSON lines to a file, plain text to the console."""
    level = log_level.upper()
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.json.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
            "standard": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
            },
        },
        "handlers": {
            "file": {
                "class": "logging.FileHandler",
                "filename": str(log_file_path),
                "formatter": "json",
                "level": level,
            },
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "standard",
                "level": level,
            },
        },
        "loggers": {
            LOGGER_NAME: {
                "handlers": ["file", "console"],
                "level": level,
                "propagate": False,
            },
        },
        "root": {
            "handlers": ["console"],
            "level": "WARNING",
        },
    }


def configure_logging(settings: DaemonSettings) -> T_Logger:
    """
    Configure logging for the daemon process and return the `clippyd` logger.

    The previous log file is archived at most once a day and only the ten newest
    archives are kept.
    """
    log_file_path = settings.logs_dir / LOG_FILE_NAME
    log_file_path.parent.mkdir(parents=True, exist_ok=True)

    _archive_daily_log_file(log_file_path)
    _manage_logfile_archives(log_file_path)

    dictConfig(build_logging_config(log_file_path, settings.log_level))
    logger: T_Logger = logging.getLogger(LOGGER_NAME)
    logger.getChild("SYSTEM").debug("Logger for clippyd initialized.")
    return logger


def _archive_daily_log_file(log_file_path: Path) -> None:
    """Archive the log file daily by renaming it with a timestamp."""
    current_time = datetime.now()
    archive_files = sorted(
        log_file_path.parent.glob(f"{log_file_path.stem}_*.jsonl"),
        key=lambda f: f.stat().st_mtime,
        reverse=True,
    )
    if archive_files:
        latest_archive = archive_files[0]
        timestamp_str = latest_archive.stem.replace(f"{log_file_path.stem}_", "")
        try:
            timestamp = datetime.strptime(timestamp_str, "%Y%m%d_%H%M%S")
        except ValueError:
            # Unrecognized archive name; archive anyway.
            timestamp = None
        if timestamp and (current_time - timestamp).total_seconds() < 24 * 3600:
            return

    if log_file_path.exists() and log_file_path.stat().st_size > 0:
        timestamp = current_time.strftime("%Y%m%d_%H%M%S")
        archive_path = log_file_path.with_name(f"{log_file_path.stem}_{timestamp}.jsonl")
        log_file_path.rename(archive_path)


def _manage_logfile_archives(log_file_path: Path, days_to_keep: int = 10) -> None:
    """Manage log file archives by keeping only the most recent ones."""
    archive_files = sorted(
        log_file_path.parent.glob(f"{log_file_path.stem}_*.jsonl"),
        key=lambda f: f.stat().st_mtime,
        reverse=True,
    )
    for archive_file in archive_files[days_to_keep:]:
        archive_file.unlink()
