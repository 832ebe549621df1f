"""
Error types and error-handling helpers.
"""

from functools import wraps
from typing import Any, Callable

from .logger import get_logger


class OrganizerError(Exception):
    """Base class for genre organizer errors."""


class ValidationError(OrganizerError):
    """Input rejected before any work was started."""


class UpstreamError(OrganizerError):
    """A catalog service call failed; the message is safe to show to users."""


class JobNotFoundError(OrganizerError):
    """No job is registered under the requested id."""


class InvalidTransitionError(OrganizerError):
    """A job status update would leave the allowed lifecycle edges."""


def handle_errors(
    reraise: bool = False,
    default_return: Any = None,
    log_error: bool = True
):
    """
    Decorator for non-fatal operations.

    Args:
        reraise: If True, re-raise the exception after logging
        default_return: Value to return on error (if not reraise)
        log_error: If True, log the error
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log_error:
                    get_logger().warning(
                        f"Error in {func.__name__}: {str(e)}",
                        exc_info=True
                    )
                if reraise:
                    raise
                return default_return
        return wrapper
    return decorator
