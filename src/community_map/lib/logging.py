"""Logging configuration for community-map.

Provides logging to the console and, optionally, to a timestamped file.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from pathlib import Path

# Module logger
logger = logging.getLogger("community_map")


def setup_logging(
    log_dir: Path | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    quiet: bool = False,
) -> logging.Logger:
    """Set up logging for community-map.

    Creates handlers for:
    - Console output at INFO level (or WARNING if quiet)
    - File output at DEBUG level in ``log_dir`` when one is given

    Args:
        log_dir: Directory for the log file; no file logging if None.
        console_level: Log level for console output.
        file_level: Log level for file output.
        quiet: If True, console only shows warnings and errors.

    Returns:
        Configured logger.
    """
    # Clear existing handlers
    logger.handlers.clear()
    logger.setLevel(logging.DEBUG)

    # Console handler
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(max(console_level, logging.WARNING) if quiet else console_level)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)

        # File handler with timestamp-based filename (ISO 8601 basic format)
        timestamp = datetime.now().strftime("%Y%m%dT%H%M%S")
        log_file = log_dir / f"community-map-{timestamp}.log"

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

        # Also capture HTTP traffic from requests/urllib3
        urllib3_logger = logging.getLogger("urllib3")
        urllib3_logger.setLevel(logging.DEBUG)
        urllib3_logger.addHandler(file_handler)

        logger.debug("Logging initialized. Log file: %s", log_file)

    return logger


def verbosity_to_level(verbose: int) -> int:
    """Map the CLI's -v count to a console log level."""
    if verbose >= 1:
        return logging.DEBUG
    return logging.INFO
