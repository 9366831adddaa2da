"""
Load State Machine (Domain Logic).

The one place that defines the forward order of load statuses, which
statuses count as assigned / active / terminal, and which moves between
them are legal. Analytics, assignment availability and the projections
all read these definitions instead of keeping their own lists.
"""

from typing import Optional, Tuple

from backend.app.models.load_enums import LoadStatus, TrackingEventType
from backend.app.core.exceptions import InvalidTransitionError, MissingProofOfDeliveryError


FORWARD_ORDER: Tuple[LoadStatus, ...] = (
    LoadStatus.PENDING,
    LoadStatus.ASSIGNED,
    LoadStatus.EN_ROUTE_PICKUP,
    LoadStatus.AT_PICKUP,
    LoadStatus.LOADED,
    LoadStatus.EN_ROUTE_DELIVERY,
    LoadStatus.AT_DELIVERY,
    LoadStatus.DELIVERED,
    LoadStatus.COMPLETED,
)

TERMINAL_STATUSES = frozenset({
    LoadStatus.DELIVERED,
    LoadStatus.COMPLETED,
    LoadStatus.CANCELLED,
})

# Driver and vehicle are bound while the load is in one of these
ASSIGNED_STATUSES = frozenset(FORWARD_ORDER[1:7])

# Freight is moving
ACTIVE_STATUSES = frozenset(FORWARD_ORDER[2:7])

# Counted as revenue / delivered by analytics
FINISHED_STATUSES = frozenset({LoadStatus.DELIVERED, LoadStatus.COMPLETED})

STATUS_DESCRIPTIONS = {
    LoadStatus.PENDING: "Load created and pending assignment",
    LoadStatus.ASSIGNED: "Load assigned to driver",
    LoadStatus.EN_ROUTE_PICKUP: "Driver en route to pickup",
    LoadStatus.AT_PICKUP: "Driver arrived at pickup location",
    LoadStatus.LOADED: "Freight loaded and departed pickup",
    LoadStatus.EN_ROUTE_DELIVERY: "Driver en route to delivery",
    LoadStatus.AT_DELIVERY: "Driver arrived at delivery location",
    LoadStatus.DELIVERED: "Freight delivered",
    LoadStatus.COMPLETED: "Load completed and invoiced",
    LoadStatus.CANCELLED: "Load cancelled",
}

# Event type appended when a load enters each status
STATUS_EVENT_TYPES = {
    LoadStatus.PENDING: TrackingEventType.EXCEPTION,
    LoadStatus.ASSIGNED: TrackingEventType.DISPATCHED,
    LoadStatus.EN_ROUTE_PICKUP: TrackingEventType.EN_ROUTE,
    LoadStatus.AT_PICKUP: TrackingEventType.ARRIVED_PICKUP,
    LoadStatus.LOADED: TrackingEventType.LOADED,
    LoadStatus.EN_ROUTE_DELIVERY: TrackingEventType.EN_ROUTE,
    LoadStatus.AT_DELIVERY: TrackingEventType.ARRIVED_DELIVERY,
    LoadStatus.DELIVERED: TrackingEventType.DELIVERED,
    LoadStatus.COMPLETED: TrackingEventType.COMPLETED,
    LoadStatus.CANCELLED: TrackingEventType.EXCEPTION,
}


def is_terminal(status: LoadStatus) -> bool:
    return status in TERMINAL_STATUSES


def is_assigned(status: LoadStatus) -> bool:
    return status in ASSIGNED_STATUSES


def is_active(status: LoadStatus) -> bool:
    """True once the load is in motion (en route to pickup up to at delivery)."""
    return status in ACTIVE_STATUSES


def rank(status: LoadStatus) -> int:
    """
    Position of a status in the forward order.

    Cancelled ranks after everything so that "non-decreasing rank" holds
    for every legal history.
    """
    if status == LoadStatus.CANCELLED:
        return len(FORWARD_ORDER)
    return FORWARD_ORDER.index(status)


def next_status(status: LoadStatus) -> Optional[LoadStatus]:
    """Immediate forward successor, or None at the end of the line."""
    if status == LoadStatus.CANCELLED:
        return None
    position = FORWARD_ORDER.index(status)
    if position + 1 >= len(FORWARD_ORDER):
        return None
    return FORWARD_ORDER[position + 1]


def validate_transition(load_id, current: LoadStatus, target: LoadStatus) -> None:
    """
    Check that a generic transition from `current` to `target` is allowed.

    Raises:
        MissingProofOfDeliveryError: at_delivery -> delivered without a POD
        InvalidTransitionError: any other unreachable target, including
            every move out of cancelled or completed
    """
    if current in (LoadStatus.CANCELLED, LoadStatus.COMPLETED):
        raise InvalidTransitionError(
            load_id, current.value, target.value,
            reason=f"Load {load_id} is {current.value}; no further transitions are accepted"
        )

    if target == LoadStatus.CANCELLED:
        if current == LoadStatus.DELIVERED:
            raise InvalidTransitionError(
                load_id, current.value, target.value,
                reason="Delivered loads can only be completed"
            )
        return

    if target == LoadStatus.ASSIGNED:
        raise InvalidTransitionError(
            load_id, current.value, target.value,
            reason="Use assignment to bind a driver and vehicle"
        )

    if target != next_status(current):
        raise InvalidTransitionError(load_id, current.value, target.value)

    if target == LoadStatus.DELIVERED:
        raise MissingProofOfDeliveryError(load_id)
