"""
Error taxonomy for the Weekly Dish planning core.

- TransportFailure: backend unreachable, non-2xx, or backend-declared error
- TimeoutFailure: the caller-supplied deadline elapsed (a TransportFailure)
- NormalizationFailure: no usable shape could be extracted from a response
- ValidationFailure: caller passed an incomplete or invalid profile
- InvalidPlanTransition: a plan operation is not allowed in the current state
"""

from typing import Optional


class WeeklyDishError(Exception):
    """Base class for all errors raised by this package."""
    pass


class TransportFailure(WeeklyDishError):
    """Raised when a call to an external backend fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class TimeoutFailure(TransportFailure):
    """Raised when an external call is abandoned after its deadline."""

    def __init__(self, message: str, timeout: Optional[float] = None):
        super().__init__(message)
        self.timeout = timeout


class NormalizationFailure(WeeklyDishError):
    """Raised when an atomic value (e.g. a meal name) cannot be extracted."""
    pass


class ValidationFailure(WeeklyDishError):
    """Raised when a household profile is missing required fields."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidPlanTransition(WeeklyDishError):
    """Raised when a plan operation is attempted from a state that forbids it."""
    pass
