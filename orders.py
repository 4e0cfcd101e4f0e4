"""
Order status lifecycle.

    pending -> approved -> processing -> shipped -> delivered
          \\________ any of these _________/
                      |
                      v
              cancelled | rejected

delivered, cancelled and rejected are terminal. Status history is written by
the server; the dashboard only reads and orders it.
"""

from typing import Dict, Iterable, List

from schemas import ORDER_STATUSES, Order, StatusHistoryEntry

FORWARD = ("pending", "approved", "processing", "shipped", "delivered")
EXITS = ("cancelled", "rejected")
TERMINAL = frozenset(("delivered",) + EXITS)


class InvalidTransition(Exception):
    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move order from {current} to {target}")
        self.current = current
        self.target = target


def is_terminal(status: str) -> bool:
    return status in TERMINAL


def allowed_transitions(status: str) -> List[str]:
    if status not in ORDER_STATUSES:
        raise ValueError(f"Unknown order status: {status}")
    if is_terminal(status):
        return []
    index = FORWARD.index(status)
    return list(FORWARD[index + 1:]) + list(EXITS)


def can_manage(order: Order) -> bool:
    return not is_terminal(order.status)


def check_transition(current: str, target: str) -> None:
    """Staying put is allowed while the order is still open; it saves notes and tracking."""
    if is_terminal(current):
        raise InvalidTransition(current, target)
    if target != current and target not in allowed_transitions(current):
        raise InvalidTransition(current, target)


def history(order: Order) -> List[StatusHistoryEntry]:
    return sorted(order.status_history, key=lambda entry: entry.timestamp)


def status_counts(orders: Iterable[Order]) -> Dict[str, int]:
    counts = {status: 0 for status in ORDER_STATUSES}
    total = 0
    for order in orders:
        counts[order.status] += 1
        total += 1
    counts["total"] = total
    return counts
