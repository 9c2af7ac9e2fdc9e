"""
Exception logging that never raises itself.

Upstream failures are only ever reported in the server log, so the log line
has to survive odd exception objects: anyio/httpcore may surface exception
groups, and third-party exceptions occasionally break ``str()``.
"""

import logging


def _safe_str(obj) -> str:
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


def log_exception_with_details(
    logger: logging.Logger,
    prefix: str,
    exception: BaseException,
    level: int = logging.ERROR,
) -> None:
    """
    Log ``exception`` under ``prefix``, one extra line per sub-exception when
    it is an exception group.
    """
    try:
        sub_exceptions = _sub_exceptions(exception)
        if sub_exceptions:
            logger.log(
                level,
                f"{prefix} Exception with {len(sub_exceptions)} sub-exceptions: "
                f"{_safe_str(exception)}",
            )
            for i, sub_exc in enumerate(sub_exceptions, start=1):
                logger.log(
                    level,
                    f"{prefix} Sub-exception {i}: {type(sub_exc).__name__}: {_safe_str(sub_exc)}",
                    exc_info=sub_exc,
                )
        else:
            logger.log(
                level,
                f"{prefix} {type(exception).__name__}: {_safe_str(exception)}",
                exc_info=exception,
            )
    except Exception:
        try:
            logger.log(logging.ERROR, f"{prefix} (exception logging failed)")
        except Exception:
            pass
