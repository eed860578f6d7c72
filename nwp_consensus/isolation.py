"""
Failure Isolation for NWP Consensus

One aggregation call covers one (location, hour, parameter). A failure
there must not take down the rest of the forecast, so engine calls go
through this layer: the error is categorized, logged, and a fallback
aggregation runs in its place. Nothing is retried (there is no I/O).

Features:
- ErrorType categories (input_error, degenerate, config_error, unknown)
- run_isolated(): call + fallback, returns an IsolationOutcome
- @with_fallback decorator for the common "value or fallback value" case
"""

import functools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, TypeVar

from nwp_consensus.config import ConfigError

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEGENERATE_MARKERS = ("no valid", "sum to zero", "cannot be empty")


class ErrorType(Enum):
    """Categories of aggregation failures."""
    INPUT_ERROR = "input_error"
    DEGENERATE = "degenerate"
    CONFIG_ERROR = "config_error"
    UNKNOWN = "unknown"


@dataclass
class IsolationOutcome:
    """Result of an isolated call."""
    value: Any
    fallback_used: bool = False
    error_type: Optional[ErrorType] = None
    error: Optional[str] = None


def categorize_error(exception: Exception) -> Tuple[ErrorType, str]:
    """
    Categorize an exception for logging and debug output.

    Returns:
        Tuple of (ErrorType, error_message)
    """
    error_msg = str(exception)[:200]  # Truncate long messages

    if isinstance(exception, ConfigError):
        return (ErrorType.CONFIG_ERROR, f"Config error: {error_msg}")

    elif isinstance(exception, (ZeroDivisionError, FloatingPointError, OverflowError)):
        return (ErrorType.DEGENERATE, f"Degenerate input: {error_msg}")

    elif isinstance(exception, ValueError) and any(m in error_msg for m in DEGENERATE_MARKERS):
        return (ErrorType.DEGENERATE, f"Degenerate input: {error_msg}")

    elif isinstance(exception, (ValueError, TypeError, KeyError)):
        return (ErrorType.INPUT_ERROR, f"Input error: {error_msg}")

    else:
        return (ErrorType.UNKNOWN, error_msg)


def run_isolated(
    func: Callable[..., T],
    *args,
    fallback: Optional[Callable[..., T]] = None,
    label: str = "aggregation",
    **kwargs
) -> IsolationOutcome:
    """
    Call func(*args, **kwargs); on failure call fallback with the same arguments.

    Configuration errors are not isolated: they mean every call would fail
    the same way, so they propagate.

    Returns:
        IsolationOutcome. value is None when both func and fallback fail
        (or there is no fallback).
    """
    try:
        return IsolationOutcome(value=func(*args, **kwargs))
    except ConfigError:
        raise
    except Exception as e:
        error_type, error_msg = categorize_error(e)
        logger.warning(f"[{label}] {error_type.value} - {error_msg}")

        if fallback is None:
            return IsolationOutcome(value=None, error_type=error_type, error=str(e))

        try:
            value = fallback(*args, **kwargs)
        except Exception as fallback_error:
            fb_type, fb_msg = categorize_error(fallback_error)
            logger.error(f"[{label}] Fallback failed too: {fb_type.value} - {fb_msg}")
            return IsolationOutcome(value=None, fallback_used=True, error_type=error_type, error=str(e))

        logger.debug(f"[{label}] Fallback result: {value}")
        return IsolationOutcome(value=value, fallback_used=True, error_type=error_type, error=str(e))


def with_fallback(
    fallback: Optional[Callable[..., T]] = None,
    label: str = "aggregation"
) -> Callable:
    """
    Decorator that isolates an aggregation call.

    Usage:
        @with_fallback(fallback=simple_mean, label="Temperature")
        def aggregate(values):
            ...

    Returns:
        Decorated function returning the value, the fallback's value, or None
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            return run_isolated(func, *args, fallback=fallback, label=label, **kwargs).value

        return wrapper

    return decorator
