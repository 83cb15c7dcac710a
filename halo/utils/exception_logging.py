"""
Helpers for logging and reporting exceptions raised while relaying a request.
"""

import logging
import traceback
from typing import Optional


def _safe_str(obj) -> str:
    """Convert to string without letting a broken ``__str__`` escape."""
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _sub_exceptions(exception) -> list:
    try:
        return list(getattr(exception, "exceptions", None) or [])
    except Exception:
        return []


def format_exception_message(exception: Optional[BaseException]) -> str:
    """
    One-line description of an exception, including the members of an
    exception group. Never raises.
    """
    if exception is None:
        return "None"
    try:
        message = _safe_str(exception)
        subs = _sub_exceptions(exception)
        if subs:
            parts = [f"{type(sub).__name__}: {_safe_str(sub)}" for sub in subs]
            return f"{message} (Sub-exceptions: {'; '.join(parts)})"
        return message
    except Exception:
        return f"<{type(exception).__name__} (formatting failed)>"


def format_stack(exception: BaseException) -> str:
    """Full traceback text, used only when the service runs in development mode."""
    try:
        return "".join(
            traceback.format_exception(type(exception), exception, exception.__traceback__)
        )
    except Exception:
        return format_exception_message(exception)


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log ``exception`` under ``prefix`` (e.g. "[HaloLight]"), one entry per member
    when it is an exception group. Logging failures are swallowed so error
    reporting never masks the original error.
    """
    safe_prefix = _safe_str(prefix) if prefix is not None else ""
    try:
        subs = _sub_exceptions(exception)
        if subs:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(subs)} sub-exceptions: "
                f"{_safe_str(exception)}",
            )
            for i, sub in enumerate(subs):
                logger.log(
                    level,
                    f"{safe_prefix} Sub-exception {i + 1}: "
                    f"{type(sub).__name__}: {_safe_str(sub)}",
                    exc_info=sub,
                )
        else:
            logger.log(
                level,
                f"{safe_prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        try:
            logger.log(level, f"{safe_prefix} Exception (logging failed)")
        except Exception:
            pass
