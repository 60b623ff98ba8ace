"""
Booking lifecycle manager.

Owns the local booking collection for one acting user and drives every
status change through the state machine and an optimistic command:

1. The booking is looked up and the request validated locally
   (ValidationError / InvalidTransitionError raised before anything changes).
   A booking with a change still awaiting confirmation accepts no other.
2. Status and audit trail are updated in place.
3. The backend call runs as an asyncio task which the caller awaits.
4. On failure the exact prior booking is restored.

A status advanced here is guarded against stale refreshes until the first
merge after it was confirmed; every other fetched booking is taken as is.
Consumers only ever receive copies; the collection is mutated here alone.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional

from tourdesk.backend.client import BookingBackendClient
from tourdesk.errors import BookingNotFoundError, InvalidTransitionError, ValidationError
from tourdesk.lifecycle.optimistic import OptimisticCommand
from tourdesk.lifecycle.state_machine import STATUS_RANK, BookingAction, BookingStateMachine
from tourdesk.logging_context import bound_user, get_user_logger
from tourdesk.schemas.booking_schema import (
    AuditEntry,
    Booking,
    BookingSource,
    BookingStatus,
    ManualBookingDraft,
    ProposedSlot,
)
from tourdesk.utils import normalize_phone

logger = get_user_logger(__name__)

MAX_PROPOSED_SLOTS = 3


class BookingLifecycleManager:
    """Approve, deny, reschedule, cancel and create bookings for one user."""

    def __init__(
        self,
        client: BookingBackendClient,
        user_id: int,
        bookings: Optional[Iterable[Booking]] = None,
        state_machine: Optional[BookingStateMachine] = None,
    ) -> None:
        self._client = client
        self.user_id = user_id
        self._sm = state_machine or BookingStateMachine()
        self._bookings: dict[int, Booking] = {
            b.booking_id: b.model_copy(deep=True) for b in bookings or []
        }
        self._in_flight: set[int] = set()
        # Advanced locally and not yet seen by a refresh since.
        self._advanced: set[int] = set()

    # ------------------------------------------------------------------ #
    # Read access
    # ------------------------------------------------------------------ #

    def get(self, booking_id: int) -> Booking:
        return self._require(booking_id).model_copy(deep=True)

    def snapshot(self) -> list[Booking]:
        """Copies of every booking, ordered by start time."""
        ordered = sorted(self._bookings.values(), key=lambda b: (b.start_at, b.booking_id))
        return [b.model_copy(deep=True) for b in ordered]

    def is_in_flight(self, booking_id: int) -> bool:
        """True while a transition on the booking has not settled."""
        return booking_id in self._in_flight

    def _require(self, booking_id: int) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def _check(self, booking_id: int, action: BookingAction) -> BookingStatus:
        """Target status of action on the booking, or raise before anything changes."""
        booking = self._require(booking_id)
        if booking_id in self._in_flight:
            raise InvalidTransitionError(
                f"Cannot {action.value} booking {booking_id}: "
                f"its change to '{booking.status.value}' is awaiting confirmation"
            )
        return self._sm.validate(booking.status, action)

    # ------------------------------------------------------------------ #
    # Transitions
    # ------------------------------------------------------------------ #

    def approve(self, booking_id: int) -> "asyncio.Task[Any]":
        target = self._check(booking_id, BookingAction.APPROVE)
        approver_id = self._bookings[booking_id].approver_id
        if approver_id is not None and approver_id != self.user_id:
            raise InvalidTransitionError(
                f"Booking {booking_id} is assigned to approver {approver_id}, "
                f"not user {self.user_id}"
            )
        return self._transition(
            booking_id,
            BookingAction.APPROVE,
            target,
            lambda: self._client.approve_booking(booking_id, self.user_id),
        )

    def deny(self, booking_id: int, reason: Optional[str] = None) -> "asyncio.Task[Any]":
        return self._transition(
            booking_id,
            BookingAction.DENY,
            self._check(booking_id, BookingAction.DENY),
            lambda: self._client.deny_booking(booking_id, self.user_id, reason),
            notes=reason,
        )

    def reschedule(
        self,
        booking_id: int,
        proposed_slots: list[ProposedSlot],
        reason: Optional[str] = None,
    ) -> "asyncio.Task[Any]":
        target = self._check(booking_id, BookingAction.RESCHEDULE)
        if not 1 <= len(proposed_slots) <= MAX_PROPOSED_SLOTS:
            raise ValidationError(
                f"Propose between 1 and {MAX_PROPOSED_SLOTS} alternative times, "
                f"got {len(proposed_slots)}"
            )
        for slot in proposed_slots:
            if slot.end_at <= slot.start_at:
                raise ValidationError(
                    f"Proposed slot {slot.start_at.isoformat()} ends before it starts"
                )

        slots = [s.model_copy() for s in proposed_slots]
        return self._transition(
            booking_id,
            BookingAction.RESCHEDULE,
            target,
            lambda: self._client.reschedule_booking(booking_id, slots, reason),
            notes=reason,
            proposed_slots=slots,
        )

    def cancel(self, booking_id: int, reason: Optional[str] = None) -> "asyncio.Task[Any]":
        return self._transition(
            booking_id,
            BookingAction.CANCEL,
            self._check(booking_id, BookingAction.CANCEL),
            lambda: self._client.cancel_booking(booking_id, reason),
            notes=reason,
        )

    def _transition(
        self,
        booking_id: int,
        action: BookingAction,
        target: BookingStatus,
        remote: Callable[[], Awaitable[Any]],
        notes: Optional[str] = None,
        proposed_slots: Optional[list[ProposedSlot]] = None,
    ) -> "asyncio.Task[Any]":
        previous = self._bookings[booking_id].status

        def apply() -> None:
            now = datetime.now(timezone.utc)
            current = self._bookings[booking_id]
            updates: dict[str, Any] = {
                "status": target,
                "updated_at": now,
                "audit_log": current.audit_log + [AuditEntry(
                    action=action.value,
                    performed_by=str(self.user_id),
                    performed_at=now,
                    notes=notes,
                )],
            }
            if proposed_slots is not None:
                updates["proposed_slots"] = proposed_slots
            self._bookings[booking_id] = current.model_copy(update=updates)

        def restore(saved: Booking) -> None:
            self._bookings[booking_id] = saved
            self._advanced.discard(booking_id)

        def settled(succeeded: bool) -> None:
            self._in_flight.discard(booking_id)
            if succeeded:
                self._client.invalidate_user(self.user_id)
                logger.info("Booking %s %s confirmed", booking_id, target.value)

        command = OptimisticCommand(
            capture=lambda: self._bookings[booking_id].model_copy(deep=True),
            apply=apply,
            remote=remote,
            restore=restore,
            label=f"{action.value} booking {booking_id}",
            on_settled=settled,
        )
        with bound_user(self.user_id):
            task = command.dispatch()
            self._in_flight.add(booking_id)
            self._advanced.add(booking_id)
            logger.info(
                "Booking %s: %s -> %s (pending confirmation)",
                booking_id, previous.value, target.value,
            )
        return task

    # ------------------------------------------------------------------ #
    # Manual creation
    # ------------------------------------------------------------------ #

    async def create_manual(self, draft: ManualBookingDraft) -> Booking:
        """Create a dashboard booking; it starts out approved."""
        if not draft.visitor.name.strip():
            raise ValidationError("Visitor name is required")
        if not normalize_phone(draft.visitor.phone):
            raise ValidationError("Visitor phone is required")
        if draft.end_at <= draft.start_at:
            raise ValidationError("End time must be after start time")

        with bound_user(self.user_id):
            created = await self._client.create_manual_booking(draft)
            booking = created.model_copy(update={
                "status": BookingStatus.APPROVED,
                "created_by": BookingSource.DASHBOARD,
            })
            self._bookings[booking.booking_id] = booking
            self._client.invalidate_user(self.user_id)
            logger.info("Manual booking %s created for property %s", booking.booking_id, booking.property_id)
        return booking.model_copy(deep=True)

    # ------------------------------------------------------------------ #
    # Background refresh
    # ------------------------------------------------------------------ #

    async def refresh(
        self,
        status: Optional[BookingStatus] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
    ) -> int:
        incoming = await self._client.fetch_bookings(self.user_id, status, date_from, date_to)
        return self.merge(incoming)

    def merge(self, incoming: Iterable[Booking]) -> int:
        """
        Merge fetched bookings into the collection.

        Bookings with a transition in flight are left alone. A booking
        advanced here keeps its local status over an earlier one on the
        first merge after confirmation; after that the backend wins.

        Returns:
            Number of bookings added or replaced.
        """
        accepted = 0
        with bound_user(self.user_id):
            for booking in incoming:
                booking_id = booking.booking_id
                if booking_id in self._in_flight:
                    logger.debug("Skipping refresh of booking %s: transition in flight", booking_id)
                    continue
                local = self._bookings.get(booking_id)
                if booking_id in self._advanced:
                    self._advanced.discard(booking_id)
                    if local is not None and STATUS_RANK[booking.status] < STATUS_RANK[local.status]:
                        logger.debug(
                            "Keeping local status %s for booking %s over stale %s",
                            local.status.value, booking_id, booking.status.value,
                        )
                        continue
                self._bookings[booking_id] = booking.model_copy(deep=True)
                accepted += 1
        return accepted
