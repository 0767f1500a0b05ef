"""
Structured logging helpers.

Context keyword arguments are rendered as ``key=value`` pairs after a pipe
so they read well in plain-text handlers, and are also attached to the
record as ``record.context`` for handlers that ship structured fields.

Dependencies: logging (stdlib)
System role: Logging helper functions
"""

import logging
from typing import Any

MAX_VALUE_LENGTH = 500


def safe_log_value(value: Any, max_length: int = MAX_VALUE_LENGTH) -> str:
    """
    Render a value for a log line without dumping large payloads.

    Collections are summarized by size (chunk contents and vectors never
    reach the log); long strings are truncated.
    """
    if value is None:
        return "None"
    try:
        if isinstance(value, str):
            text = value
        elif isinstance(value, dict):
            text = f"dict({len(value)} keys)"
        elif isinstance(value, (list, tuple, set)):
            text = f"{type(value).__name__}({len(value)} items)"
        else:
            text = str(value)
    except Exception as e:
        return f"<unable to log: {type(e).__name__}>"

    if len(text) <= max_length:
        return text
    return f"{text[:max_length]}... (truncated, {len(text)} total)"


def _render(message: str, context: dict[str, str]) -> str:
    if not context:
        return message
    pairs = " ".join(f"{key}={value}" for key, value in context.items())
    return f"{message} | {pairs}"


def log_with_context(logger: logging.Logger, level: int, message: str, **context) -> None:
    """Log at ``level`` with sanitized context pairs."""
    safe = {key: safe_log_value(value) for key, value in context.items()}
    logger.log(level, _render(message, safe), extra={"context": safe})


def log_exception_with_context(logger: logging.Logger, message: str, exc: Exception, **context) -> None:
    """
    Log an exception at ERROR with its traceback.

    Args:
        logger: Module logger
        message: Log message
        exc: The exception being reported
        **context: Extra pairs; error_type and error_msg are added
    """
    safe = {key: safe_log_value(value) for key, value in context.items()}
    safe["error_type"] = type(exc).__name__
    safe["error_msg"] = safe_log_value(str(exc))
    logger.error(_render(message, safe), exc_info=exc, extra={"context": safe})
