"""
Centralized logging configuration for the BGG sync engine.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from .config import LOGS_DIR

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logging(log_file: Optional[str] = "bgg_sync.log", level: int = logging.INFO) -> None:
    """
    Set up process-wide logging for the sync engine.

    The scheduler and the scrape worker run on background threads, so the
    thread name is included in every record.

    Args:
        log_file: Name of the log file inside LOGS_DIR, an absolute path,
            or None to log to the console only
        level: Logging level
    """
    root_logger = logging.getLogger()
    # Avoid duplicate handlers if already configured
    if root_logger.handlers:
        return

    formatter = logging.Formatter(
        LOG_FORMAT.replace('%(name)s', '%(name)s [%(threadName)s]'),
        datefmt=DATE_FORMAT,
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        if not log_path.is_absolute():
            log_path = LOGS_DIR / log_path.name
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(str(log_path))
        except OSError as e:
            root_logger.warning(f"File logging disabled, cannot open {log_path}: {e}")
        else:
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            root_logger.addHandler(file_handler)

    root_logger.setLevel(level)

    # Reduce noise from external libraries
    logging.getLogger('requests').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)
    logging.getLogger('selenium').setLevel(logging.WARNING)
