"""
Lifecycle domain exceptions.

Raised by the lifecycle services when a business rule is violated. The API
layer translates them into HTTP responses via ``status_code`` and ``code``.
"""

from __future__ import annotations


class LifecycleError(Exception):
    status_code = 400
    code = "lifecycle_error"


class OrderNotFound(LifecycleError):
    """The order does not exist or has been soft-deleted."""

    status_code = 404
    code = "order_not_found"


class CheckpointNotFound(LifecycleError):
    status_code = 404
    code = "checkpoint_not_found"


class AccessDenied(LifecycleError):
    """The actor has no rights over the order's tenant."""

    status_code = 403
    code = "access_denied"


class InvalidTransition(LifecycleError):
    """The requested status is not reachable from the current one."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, current: str, requested: str, message: str | None = None):
        self.current = current
        self.requested = requested
        super().__init__(message or f"Invalid status transition: '{current}' -> '{requested}'")


class DuplicateOrderNumber(LifecycleError):
    status_code = 409
    code = "duplicate_order_number"


class OrderNotInTransit(LifecycleError):
    """Checkpoint reports are only accepted while the order is in transit."""

    status_code = 409
    code = "order_not_in_transit"


class OrderLocked(LifecycleError):
    """Delivered and cancelled orders are read-only."""

    status_code = 423
    code = "order_locked"


class InvalidOrderUpdate(LifecycleError):
    status_code = 422
    code = "invalid_order_update"


class SweepFailure(Exception):
    """A sweep tick could not complete. Logged by the sweeper, never propagated."""
