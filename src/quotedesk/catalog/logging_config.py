"""Central logging configuration for the catalog importer."""

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "quotedesk.log"


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[Path] = None,
    console_output: bool = False,
) -> logging.Logger:
    """Configure the root logger for the application.

    Args:
        log_level: Level name (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the rotating log file. No file handler if None.
        console_output: Also log to stderr

    Returns:
        The configured root logger
    """
    logger = logging.getLogger()
    logger.handlers.clear()
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        # 10MB per file, 5 backups
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=10_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    logger.debug("Logging configured (level=%s, dir=%s)", log_level, log_dir)
    return logger
