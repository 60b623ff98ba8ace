"""
Finite state machine for booking status transitions.

Every booking follows a deterministic path through the status graph:

    pending -> approved -> cancelled
    pending -> denied
    pending -> rescheduled

Denied, cancelled and rescheduled are terminal here. Any action without a
corresponding transition is rejected with an error naming what is allowed.

Usage:
    sm = BookingStateMachine()
    target = sm.validate(BookingStatus.PENDING, BookingAction.APPROVE)
    assert target == BookingStatus.APPROVED
"""

import logging
from dataclasses import dataclass
from enum import Enum

from tourdesk.errors import InvalidTransitionError
from tourdesk.schemas.booking_schema import BookingStatus

logger = logging.getLogger(__name__)


class BookingAction(str, Enum):
    """Actions a property manager can take on a booking."""
    APPROVE = "approve"
    DENY = "deny"
    RESCHEDULE = "reschedule"
    CANCEL = "cancel"


@dataclass(frozen=True)
class Transition:
    """A single valid status transition."""
    from_status: BookingStatus
    to_status: BookingStatus
    action: BookingAction


BOOKING_TRANSITIONS: list[Transition] = [
    # --- Decision on a request ---
    Transition(BookingStatus.PENDING, BookingStatus.APPROVED, BookingAction.APPROVE),
    Transition(BookingStatus.PENDING, BookingStatus.DENIED, BookingAction.DENY),
    Transition(BookingStatus.PENDING, BookingStatus.RESCHEDULED, BookingAction.RESCHEDULE),

    # --- After approval ---
    Transition(BookingStatus.APPROVED, BookingStatus.CANCELLED, BookingAction.CANCEL),
]

TERMINAL_STATUSES = frozenset({
    BookingStatus.DENIED,
    BookingStatus.CANCELLED,
    BookingStatus.RESCHEDULED,
})

# How far along the lifecycle a status is. A refresh never moves a booking
# advanced locally to a lower rank before the backend has caught up.
STATUS_RANK: dict[BookingStatus, int] = {
    BookingStatus.PENDING: 0,
    BookingStatus.APPROVED: 1,
    BookingStatus.DENIED: 2,
    BookingStatus.RESCHEDULED: 2,
    BookingStatus.CANCELLED: 3,
}


class BookingStateMachine:
    """Validates (status, action) pairs against the transition table."""

    def __init__(self, transitions: list[Transition] = BOOKING_TRANSITIONS) -> None:
        self._transitions = transitions

    def validate(self, status: BookingStatus, action: BookingAction) -> BookingStatus:
        """
        Resolve the target status of an action.

        Args:
            status: The booking's current status.
            action: The requested action.

        Returns:
            The status the booking moves to.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self._transitions:
            if t.from_status == status and t.action == action:
                logger.debug(
                    "Status transition: %s -> %s (action: %s)",
                    status.value, t.to_status.value, action.value,
                )
                return t.to_status

        if self.is_terminal(status):
            raise InvalidTransitionError(
                f"Cannot {action.value} a booking that is '{status.value}': the status is final"
            )
        valid = [a.value for a in self.valid_actions(status)]
        raise InvalidTransitionError(
            f"Cannot {action.value} a booking that is '{status.value}'. "
            f"Valid actions: {valid}"
        )

    def valid_actions(self, status: BookingStatus) -> list[BookingAction]:
        """Return all actions valid from the given status."""
        return [t.action for t in self._transitions if t.from_status == status]

    def is_terminal(self, status: BookingStatus) -> bool:
        return status in TERMINAL_STATUSES
