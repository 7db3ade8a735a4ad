"""
Logging configuration for the application.

Provides standardized logging setup with configurable levels
and formatters. HTTP and git library loggers are kept at WARNING so
request URLs and headers stay out of the output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.
    
    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional file to write logs to.
        format_string: Custom format string.
    """
    if format_string is None:
        format_string = (
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        )

    handlers = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        handlers.append(file_handler)

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=format_string,
        handlers=handlers,
        force=True,
    )

    for noisy in ("httpx", "httpcore", "git"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def configure_logging(
    config,
    verbose: bool = False,
    log_file: Optional[Path] = None,
) -> str:
    """
    Configure logging from a DigestConfig.

    DEBUG when either the flag or ``config.verbose`` asks for it,
    otherwise WARNING so log lines on stdout do not interleave with a
    digest written there.

    Returns:
        The level name that was applied.
    """
    level = "DEBUG" if verbose or config.verbose else "WARNING"
    setup_logging(level=level, log_file=log_file)
    return level


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.
    
    Args:
        name: Logger name.
        
    Returns:
        Configured logger.
    """
    return logging.getLogger(name)

