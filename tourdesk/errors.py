"""
Typed failures surfaced by the booking and availability core.

Local invariant violations (ValidationError, InvalidTransitionError) are
raised synchronously before any mutation or network call. TransportFailure
is raised at the operation boundary after a rollback has already happened.
"""

from typing import Optional


class TourdeskError(Exception):
    """Base class for every error raised by this package."""


class NotAuthenticatedError(TourdeskError):
    """No bearer token is configured or the backend answered 401."""


class InvalidTransitionError(TourdeskError):
    """Raised when an action is not valid from the booking's current status."""


class ValidationError(TourdeskError):
    """A malformed interval or draft, rejected before reaching the backend."""


class BookingNotFoundError(TourdeskError):
    """The booking id is not part of the local collection."""


class TransportFailure(TourdeskError):
    """Network or backend error while talking to the booking service."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
