# app/services/order_state_machine.py
"""Order status state machine.

pending -> confirmed -> processing -> shipped -> delivered (terminal)
   |          |            |            |
cancelled  cancelled    cancelled    cancelled (terminal)

Intermediate steps may be skipped; see ALLOWED_TRANSITIONS.
"""

from typing import List

from app.constants.order_status import (
    ALLOWED_TRANSITIONS,
    CUSTOMER_CANCELLABLE_STATES,
    STATUS_LABELS,
    TERMINAL_STATES,
)
from app.errors import (
    AlreadyInStateError,
    InvalidTransitionError,
    TerminalStateError,
    ValidationError,
)


def _status_value(status) -> str:
    value = getattr(status, "value", status)
    if value not in ALLOWED_TRANSITIONS:
        raise ValidationError(f'Unknown order status "{value}".')
    return value


def can_transition(from_status, to_status) -> bool:
    return _status_value(to_status) in ALLOWED_TRANSITIONS[_status_value(from_status)]


def is_terminal_state(status) -> bool:
    return _status_value(status) in TERMINAL_STATES


def can_customer_cancel(status) -> bool:
    return _status_value(status) in CUSTOMER_CANCELLABLE_STATES


def get_next_statuses(status) -> List[str]:
    return list(ALLOWED_TRANSITIONS[_status_value(status)])


def validate_transition(from_status, to_status) -> None:
    """Raise unless ``from_status -> to_status`` is a legal move.

    Checks run in a fixed order: same state, terminal source, then
    membership in the transition table.
    """
    current = _status_value(from_status)
    target = _status_value(to_status)

    if current == target:
        raise AlreadyInStateError(
            f'Order is already in "{STATUS_LABELS[target]}" status.',
            current=current,
            requested=target,
            allowed=get_next_statuses(current),
        )

    if current in TERMINAL_STATES:
        raise TerminalStateError(
            f'Cannot change order status. "{STATUS_LABELS[current]}" is a terminal state.',
            current=current,
        )

    if not can_transition(current, target):
        allowed = get_next_statuses(current)
        allowed_labels = ", ".join(STATUS_LABELS[s] for s in allowed)
        raise InvalidTransitionError(
            f'Invalid status transition: "{STATUS_LABELS[current]}" -> '
            f'"{STATUS_LABELS[target]}". Allowed: {allowed_labels}.',
            current=current,
            requested=target,
            allowed=allowed,
        )
