"""
WakeAlert — Structured Logging.
JSON-formatted logging with console output and file rotation.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

from pythonjsonlogger import json as jsonlogger


def setup_logging(
    level: str = "INFO",
    log_file: str | None = "logs/wakealert.log",
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    json_format: bool = True,
):
    """
    Configure logging for the entire application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Path to log file (None or "" = stdout only)
        max_bytes: Max log file size before rotation
        backup_count: Number of rotated files to keep
        json_format: Use JSON format (True) or plain text (False)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Clear existing handlers
    root_logger.handlers.clear()

    # ─────────────────────────────────────────
    # Formatter
    # ─────────────────────────────────────────
    if json_format:
        formatter = jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "logger",
            },
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s │ %(levelname)-8s │ %(name)-30s │ %(message)s",
            datefmt="%H:%M:%S",
        )

    # ─────────────────────────────────────────
    # Console Handler (stdout)
    # ─────────────────────────────────────────
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Suppress noisy loggers
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    if not log_file:
        return

    # ─────────────────────────────────────────
    # File Handlers (all records + errors only)
    # ─────────────────────────────────────────
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    for path, handler_level in ((log_path, logging.DEBUG), (log_path.parent / "errors.log", logging.ERROR)):
        handler = logging.handlers.RotatingFileHandler(
            filename=str(path),
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
