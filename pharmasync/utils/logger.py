"""
Logging configuration for pharmasync.

Provides a centralized logger that can be configured via environment variables.
"""
import logging
import os
import sys

# Get log level from environment variable (default: INFO)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logger = logging.getLogger("pharmasync")
logger.setLevel(LOG_LEVEL)

if not logger.handlers:
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(LOG_LEVEL)

    formatter = logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(formatter)

    logger.addHandler(console_handler)

# Sync jobs log a lot; keep them out of the root logger
logger.propagate = False


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Optional name for the logger (will be appended to 'pharmasync')

    Returns:
        Logger instance
    """
    if name:
        return logging.getLogger(f"pharmasync.{name}")
    return logger


def set_log_level(level: str) -> None:
    """Change the package log level at runtime (CLI --verbose, config reloads)."""
    level = level.upper()
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)
