"""
Logger configuration.

One stdout handler on the root logger with a pipe-separated format. Module
loggers are plain ``logging.getLogger(__name__)`` and log messages as
``"{module}:{function} - text"``.

Dependencies: logging (stdlib), chunk_index.configs
System role: Centralized logging configuration
"""

import logging
import sys

NOISY_LOGGERS = ("sqlalchemy.engine", "httpx", "google", "langchain_google_genai")


def configure_logging(level: str | int | None = None) -> None:
    """
    Replace root handlers with the package's stream handler.

    Args:
        level: Level name or number; Settings.log_level when None.
            Unknown names fall back to INFO.
    """
    if level is None:
        from chunk_index.configs import get_settings

        level = get_settings().log_level
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
