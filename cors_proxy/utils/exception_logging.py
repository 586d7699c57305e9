"""
Utility functions for exception logging and formatting, including exception groups
raised out of task groups.
"""

import logging


def _safe_str(obj) -> str:
    """
    Safely convert an object to string, handling cases where __str__ or __repr__ might fail.

    Args:
        obj: The object to convert to string

    Returns:
        A string representation of the object, falling back to safe alternatives
    """
    try:
        return str(obj)
    except Exception:
        try:
            return repr(obj)
        except Exception:
            try:
                return f"<{type(obj).__name__} object (string conversion failed)>"
            except Exception:
                return "<object (all string conversions failed)>"


def _safe_get_exceptions(exception_group) -> list:
    """
    Safely get the exceptions list from an exception group.

    Returns:
        List of exceptions, or empty list if access fails
    """
    try:
        return list(exception_group.exceptions)
    except Exception:
        return []


def _sub_exceptions(exception) -> list:
    """Sub-exceptions of an exception group, empty for anything else."""
    try:
        if exception is not None and hasattr(exception, "exceptions"):
            return _safe_get_exceptions(exception)
    except Exception:
        pass
    return []


def find_exception_in_exception_groups(exception: BaseException, target_type: type):
    """
    Recursively search through an exception and its sub-exceptions to find
    if any exception is of the target type.

    Args:
        exception: The exception to search through
        target_type: The exception type to look for

    Returns:
        The first exception matching the target type, or None if not found
    """
    try:
        if isinstance(exception, target_type):
            return exception

        for sub_exc in _sub_exceptions(exception):
            inner_exc = find_exception_in_exception_groups(sub_exc, target_type)
            if inner_exc is not None:
                return inner_exc

        return None
    except Exception:
        return None


def format_exception_message(exception: BaseException) -> str:
    """
    Format an exception message for a response body or a log line.

    Exception groups are flattened into their sub-exceptions. Exceptions whose
    message is empty are described by their type name, so the result is never
    an empty string. This function never raises.
    """
    try:
        if exception is None:
            return "None"

        sub_exceptions = _sub_exceptions(exception)

        if sub_exceptions:
            parts = [
                f"{type(sub_exc).__name__}: {format_exception_message(sub_exc)}"
                for sub_exc in sub_exceptions
            ]
            return f"{_safe_str(exception)} (Sub-exceptions: {'; '.join(parts)})"

        message = _safe_str(exception)
        return message or type(exception).__name__
    except Exception:
        try:
            return f"<{type(exception).__name__} (formatting failed)>"
        except Exception:
            return "<exception (all formatting failed)>"


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log an exception with detailed information, including sub-exceptions for TaskGroup errors.
    This function is designed to never throw exceptions itself.

    Args:
        logger: The logger instance to use
        prefix: Prefix for the log message (e.g., "[Proxy]")
        exception: The exception to log
        level: The logging level to use (default: ERROR)
    """
    try:
        safe_prefix = _safe_str(prefix) if prefix is not None else ""
        sub_exceptions = _sub_exceptions(exception)

        if sub_exceptions:
            logger.log(
                level,
                f"{safe_prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
                f"{_safe_str(exception)}",
            )
            for i, sub_exc in enumerate(sub_exceptions):
                try:
                    logger.log(
                        level,
                        f"{safe_prefix} Sub-exception {i+1}: "
                        f"{type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                        exc_info=sub_exc,
                    )
                except Exception:
                    logger.log(level, f"{safe_prefix} Sub-exception {i+1}: (logging failed)")
        else:
            logger.log(
                level,
                f"{safe_prefix} Exception: {_safe_str(exception)}",
                exc_info=exception if exception is not None else False,
            )
    except Exception:
        try:
            if logger is not None:
                logger.log(logging.ERROR, "Exception logging failed")
        except Exception:
            pass
