"""
Optimistic command: apply locally, confirm remotely, restore on failure.

The local change is applied synchronously inside ``dispatch`` so callers
observe it before the network round trip starts. The remote call runs as
an asyncio task; if it raises TransportFailure the captured snapshot is
restored and the failure re-raised from the task.

Usage:
    command = OptimisticCommand(
        capture=lambda: booking.model_copy(deep=True),
        apply=lambda: mark_approved(booking),
        remote=lambda: client.approve_booking(booking.booking_id, user_id),
        restore=lambda saved: bookings.__setitem__(saved.booking_id, saved),
        label="approve booking 42",
    )
    task = command.dispatch()
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from tourdesk.errors import TransportFailure

logger = logging.getLogger(__name__)

S = TypeVar("S")


class OptimisticCommand(Generic[S]):
    """One optimistic mutation with its rollback."""

    def __init__(
        self,
        capture: Callable[[], S],
        apply: Callable[[], None],
        remote: Callable[[], Awaitable[Any]],
        restore: Callable[[S], None],
        label: str = "optimistic update",
        on_settled: Optional[Callable[[bool], None]] = None,
    ) -> None:
        self._capture = capture
        self._apply = apply
        self._remote = remote
        self._restore = restore
        self._on_settled = on_settled
        self.label = label

    def dispatch(self) -> "asyncio.Task[Any]":
        """Apply the local change now and return the settling task.

        Must be called from a running event loop.
        """
        loop = asyncio.get_running_loop()
        snapshot = self._capture()
        self._apply()
        return loop.create_task(self._settle(snapshot), name=self.label)

    async def _settle(self, snapshot: S) -> Any:
        try:
            result = await self._remote()
        except TransportFailure as e:
            self._restore(snapshot)
            logger.warning("Rolled back %s: %s", self.label, e.message)
            self._finish(False)
            raise
        except BaseException:
            # Auth failures and cancellation still must not leave the
            # unconfirmed change in place.
            self._restore(snapshot)
            self._finish(False)
            raise
        self._finish(True)
        return result

    def _finish(self, succeeded: bool) -> None:
        if self._on_settled is not None:
            self._on_settled(succeeded)
