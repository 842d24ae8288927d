"""
Defensive helpers for logging exceptions raised while dispatching requests,
including exception groups raised out of task groups.
"""

import logging


def _safe_str(obj) -> str:
    """
    Convert an object to a string even when its __str__ or __repr__ is broken.

    Args:
        obj: The object to convert

    Returns:
        A string representation, falling back to the type name
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            return f"<{type(obj).__name__} object (string conversion failed)>"


def _safe_get_exceptions(exception_group) -> list:
    """Sub-exceptions of an exception group; empty for anything else."""
    try:
        exceptions = getattr(exception_group, "exceptions", None)
        return list(exceptions) if exceptions is not None else []
    except Exception:
        return []


def find_exception_in_exception_groups(exception: BaseException, target_type):
    """
    Recursively search an exception and its sub-exceptions for one of the
    target type.

    Args:
        exception: The exception to search through
        target_type: An exception class, or a tuple of classes

    Returns:
        The first matching exception, or None if not found
    """
    if isinstance(exception, target_type):
        return exception

    for sub_exc in _safe_get_exceptions(exception):
        inner_exc = find_exception_in_exception_groups(sub_exc, target_type)
        if inner_exc is not None:
            return inner_exc

    return None


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception message, listing sub-exceptions of exception groups.
    Never raises.
    """
    if exception is None:
        return "None"

    sub_exceptions = _safe_get_exceptions(exception)

    if not sub_exceptions:
        return _safe_str(exception)

    parts = "; ".join(
        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}" for sub_exc in sub_exceptions
    )
    return f"{_safe_str(exception)} (Sub-exceptions: {parts})"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with its traceback, and each sub-exception of an
    exception group separately. Logging failures are contained here so the
    caller can still re-raise the original exception.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Dispatch]", "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    safe_prefix = _safe_str(prefix) if prefix is not None else ""
    sub_exceptions = _safe_get_exceptions(exception)

    try:
        if not sub_exceptions:
            logger.log(
                level,
                f"{safe_prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if exception is not None else False,
            )
            return

        logger.log(
            level,
            f"{safe_prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
            f"{_safe_str(exception)}",
        )
        for i, sub_exc in enumerate(sub_exceptions):
            logger.log(
                level,
                f"{safe_prefix} Sub-exception {i + 1}: "
                f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                exc_info=sub_exc,
            )
    except Exception:
        try:
            logger.log(level, f"{safe_prefix} Exception (logging failed)")
        except Exception:
            # A logger that cannot log leaves nothing else to try
            pass
