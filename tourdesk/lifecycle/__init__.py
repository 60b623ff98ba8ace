from tourdesk.lifecycle.manager import BookingLifecycleManager
from tourdesk.lifecycle.optimistic import OptimisticCommand
from tourdesk.lifecycle.state_machine import (
    BookingAction,
    BookingStateMachine,
)

__all__ = [
    "BookingLifecycleManager",
    "BookingStateMachine",
    "BookingAction",
    "OptimisticCommand",
]
