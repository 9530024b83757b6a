"""
Order status transition graph.

The graph is directed and deliberately asymmetric: the active states
(in transit, at checkpoint, delayed, incident) are mostly connected to each
other, while delivered and cancelled have no outgoing edges. A request for
the current status is not a no-op; it is checked like any other edge and
fails because no state lists itself.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from lifecycle.statuses import TERMINAL_STATUSES, OrderStatus

S = OrderStatus

DEFAULT_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = MappingProxyType(
    {
        S.PENDING: frozenset({S.IN_TRANSIT, S.CANCELLED}),
        S.IN_TRANSIT: frozenset({S.AT_CHECKPOINT, S.DELIVERED, S.CANCELLED, S.DELAYED, S.INCIDENT}),
        S.AT_CHECKPOINT: frozenset({S.IN_TRANSIT, S.DELIVERED, S.CANCELLED, S.DELAYED, S.INCIDENT}),
        S.DELAYED: frozenset({S.IN_TRANSIT, S.AT_CHECKPOINT, S.DELIVERED, S.CANCELLED, S.INCIDENT}),
        S.INCIDENT: frozenset({S.IN_TRANSIT, S.AT_CHECKPOINT, S.DELIVERED, S.CANCELLED}),
        # Terminal
        S.DELIVERED: frozenset(),
        S.CANCELLED: frozenset(),
    }
)


def _freeze(table: Mapping[OrderStatus, Iterable[OrderStatus]]) -> Mapping[OrderStatus, frozenset[OrderStatus]]:
    frozen = {OrderStatus(src): frozenset(OrderStatus(dst) for dst in dsts) for src, dsts in table.items()}
    for terminal in TERMINAL_STATUSES:
        if frozen.get(terminal):
            raise ValueError(f"Terminal status '{terminal.value}' cannot have outgoing transitions")
    return MappingProxyType(frozen)


class StatusTransitionValidator:
    """Pure allow/deny decision over an immutable transition table."""

    def __init__(self, table: Mapping[OrderStatus, Iterable[OrderStatus]] = DEFAULT_TRANSITIONS):
        self._table = _freeze(table)

    @property
    def table(self) -> Mapping[OrderStatus, frozenset[OrderStatus]]:
        return self._table

    def is_allowed(self, current: OrderStatus | str, requested: OrderStatus | str) -> bool:
        try:
            current, requested = OrderStatus(current), OrderStatus(requested)
        except ValueError:
            return False
        return requested in self._table.get(current, frozenset())

    def allowed_from(self, current: OrderStatus | str) -> frozenset[OrderStatus]:
        return self._table.get(OrderStatus(current), frozenset())

    @staticmethod
    def is_terminal(status: OrderStatus | str) -> bool:
        return OrderStatus(status) in TERMINAL_STATUSES


default_validator = StatusTransitionValidator()
