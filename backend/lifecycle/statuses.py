from enum import Enum


class OrderStatus(str, Enum):
    """Shipment order status (track_status catalog)."""

    PENDING = "pending"
    IN_TRANSIT = "in_transit"
    AT_CHECKPOINT = "at_checkpoint"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    DELAYED = "delayed"
    INCIDENT = "incident"


class SeverityLevel(str, Enum):
    """Traffic-light staleness of an in-transit order."""

    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"


TERMINAL_STATUSES: frozenset[OrderStatus] = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})

STATUS_LABELS = {
    OrderStatus.PENDING: "Pending",
    OrderStatus.IN_TRANSIT: "In transit",
    OrderStatus.AT_CHECKPOINT: "At checkpoint",
    OrderStatus.DELIVERED: "Delivered",
    OrderStatus.CANCELLED: "Cancelled",
    OrderStatus.DELAYED: "Delayed",
    OrderStatus.INCIDENT: "Incident",
}
