"""
Load-related enumerations.

The ordering and grouping of LoadStatus values lives in
backend.app.domain.loads.state_machine, not here.
"""

import enum


class LoadStatus(str, enum.Enum):
    """Load status enumeration."""
    PENDING = "pending"  # Created, awaiting driver assignment
    ASSIGNED = "assigned"  # Driver and vehicle bound
    EN_ROUTE_PICKUP = "en_route_pickup"
    AT_PICKUP = "at_pickup"
    LOADED = "loaded"  # Freight aboard, departed pickup
    EN_ROUTE_DELIVERY = "en_route_delivery"
    AT_DELIVERY = "at_delivery"
    DELIVERED = "delivered"  # Proof of delivery submitted
    COMPLETED = "completed"  # Invoiced and closed
    CANCELLED = "cancelled"


class StopType(str, enum.Enum):
    """Stop type enumeration."""
    PICKUP = "pickup"
    DELIVERY = "delivery"
    FUEL = "fuel"
    REST = "rest"


class StopStatus(str, enum.Enum):
    """Stop status enumeration."""
    PENDING = "pending"  # Not yet reached
    ARRIVED = "arrived"
    COMPLETED = "completed"  # Departed


class EquipmentType(str, enum.Enum):
    DRY_VAN = "dry_van"
    REEFER = "reefer"
    FLATBED = "flatbed"
    TANKER = "tanker"
    CONTAINER = "container"


class LoadPriority(str, enum.Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class TrackingEventType(str, enum.Enum):
    """Logical type of a tracking event."""
    CREATED = "created"
    DISPATCHED = "dispatched"
    EN_ROUTE = "en_route"
    ARRIVED_PICKUP = "arrived_pickup"
    LOADED = "loaded"
    DEPARTED_PICKUP = "departed_pickup"
    ARRIVED_DELIVERY = "arrived_delivery"
    DEPARTED_DELIVERY = "departed_delivery"
    ARRIVED_STOP = "arrived_stop"  # Fuel / rest stops
    DEPARTED_STOP = "departed_stop"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    EXCEPTION = "exception"


class DeliveryCondition(str, enum.Enum):
    """Freight condition attested on proof of delivery."""
    GOOD = "good"
    DAMAGED = "damaged"
    SHORT = "short"
    OVER = "over"
