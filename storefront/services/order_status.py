"""Order status transition rules.

The fulfilment path ``pending -> confirmed -> processing -> shipped -> delivered``
is driven by administrators; ``cancel`` and ``refund`` are customer-facing
exits into the terminal ``cancelled`` and ``refunded`` states.  Which statuses
may be advanced, cancelled or refunded is configuration, so the rules live in
one table-driven object rather than in the order service.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Iterable, Optional

from ..errors import InvalidState
from ..models.status import OrderStatus


FULFILMENT_SEQUENCE = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)
TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REFUNDED})

DEFAULT_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING})
DEFAULT_REFUNDABLE = frozenset(FULFILMENT_SEQUENCE)


def build_advance_transitions(strict: bool = True) -> Dict[OrderStatus, FrozenSet[OrderStatus]]:
    """Allow-list for administrative advances.

    ``strict`` permits only the next step; otherwise any later fulfilment
    status may be reached directly (e.g. ``pending -> shipped``).
    """
    table: Dict[OrderStatus, FrozenSet[OrderStatus]] = {}
    for i, status in enumerate(FULFILMENT_SEQUENCE):
        later = FULFILMENT_SEQUENCE[i + 1:]
        table[status] = frozenset(later[:1] if strict else later)
    for status in TERMINAL_STATUSES:
        table[status] = frozenset()
    return table


def _as_statuses(values: Iterable) -> FrozenSet[OrderStatus]:
    return frozenset(OrderStatus(v) for v in values)


class OrderStateMachine:
    def __init__(
        self,
        advance_transitions: Optional[Dict[OrderStatus, FrozenSet[OrderStatus]]] = None,
        cancellable: Iterable = DEFAULT_CANCELLABLE,
        refundable: Iterable = DEFAULT_REFUNDABLE,
    ):
        table = advance_transitions if advance_transitions is not None else build_advance_transitions()
        missing = set(OrderStatus) - set(table)
        if missing:
            raise ValueError(f"advance transitions missing statuses: {sorted(s.value for s in missing)}")
        for source, targets in table.items():
            if source in TERMINAL_STATUSES and targets:
                raise ValueError(f"terminal status {source.value} cannot advance")
            if targets & TERMINAL_STATUSES:
                raise ValueError("cancel and refund are not administrative advances")
        self.advance_transitions = {OrderStatus(k): frozenset(v) for k, v in table.items()}
        self.cancellable = _as_statuses(cancellable)
        self.refundable = _as_statuses(refundable)
        if (self.cancellable | self.refundable) & TERMINAL_STATUSES:
            raise ValueError("terminal statuses cannot be cancelled or refunded")

    @classmethod
    def from_config(cls, config) -> "OrderStateMachine":
        return cls(
            advance_transitions=build_advance_transitions(strict=config.order_advance_strict),
            cancellable=config.cancellable_statuses,
            refundable=config.refundable_statuses,
        )

    def can_advance(self, current, target) -> bool:
        return OrderStatus(target) in self.advance_transitions[OrderStatus(current)]

    def check_advance(self, current, target) -> OrderStatus:
        current, target = OrderStatus(current), OrderStatus(target)
        if target not in self.advance_transitions[current]:
            raise InvalidState("order", current.value, target.value)
        return target

    def check_cancel(self, current) -> None:
        current = OrderStatus(current)
        if current not in self.cancellable:
            raise InvalidState("order", current.value, OrderStatus.CANCELLED.value)

    def check_refund(self, current) -> None:
        current = OrderStatus(current)
        if current not in self.refundable:
            raise InvalidState("order", current.value, OrderStatus.REFUNDED.value)
