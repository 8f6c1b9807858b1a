"""
Order status state machine.

Pure functions of (current status, items-edited flag, requested status,
actor role, whether the request carries item changes). No I/O.
"""

from dataclasses import dataclass
from typing import Dict, FrozenSet

from order_engine.models.enums import ActorRole, OrderStatus

S = OrderStatus

# Legal transitions per actor role: {from_status: {to_status, ...}}
TRANSITIONS: Dict[ActorRole, Dict[OrderStatus, FrozenSet[OrderStatus]]] = {
    ActorRole.ADMIN: {
        S.PENDING: frozenset([S.REJECTED, S.ACCEPTED, S.CUSTOMER_PENDING]),
        S.ADMIN_PENDING: frozenset([S.REJECTED, S.CUSTOMER_PENDING, S.ACCEPTED]),
        S.CUSTOMER_PENDING: frozenset([S.REJECTED]),
        S.ACCEPTED: frozenset([S.CANCELLED, S.COMPLETED]),
    },
    ActorRole.CUSTOMER: {
        S.CUSTOMER_PENDING: frozenset([S.REJECTED, S.PENDING]),
    },
}

# Statuses awaiting an admin decision; the only ones whose items an admin may edit
ADMIN_DECISION_STATUSES: FrozenSet[OrderStatus] = frozenset([S.PENDING, S.ADMIN_PENDING])


@dataclass(frozen=True)
class TransitionResult:
    """
    Result of validating a status change.

    Attributes:
        valid: Whether the change is allowed
        message: Human-readable reason when it is not
    """

    valid: bool
    message: str = ""


def get_valid_transitions(current_status: OrderStatus, role: ActorRole) -> FrozenSet[OrderStatus]:
    """Statuses `role` may move an order to from `current_status`."""
    return TRANSITIONS.get(role, {}).get(current_status, frozenset())


def is_valid_transition(
    current_status: OrderStatus, new_status: OrderStatus, role: ActorRole
) -> bool:
    return new_status in get_valid_transitions(current_status, role)


def items_are_editable(status: OrderStatus) -> bool:
    """Whether the generic update path may mutate line items."""
    return status in ADMIN_DECISION_STATUSES


def accepting_unconfirmed_changes(
    current_status: OrderStatus,
    new_status: OrderStatus,
    items_edited: bool,
    has_item_changes: bool,
) -> bool:
    """Admin acceptance of an order whose pricing the customer has not confirmed."""
    return (
        current_status in ADMIN_DECISION_STATUSES
        and new_status == S.ACCEPTED
        and (items_edited or has_item_changes)
    )


def requires_cancellation_operation(current_status: OrderStatus, new_status: OrderStatus) -> bool:
    """ACCEPTED -> CANCELLED must go through the stock-restoring cancel operation."""
    return current_status == S.ACCEPTED and new_status == S.CANCELLED


def validate_status_update(
    current_status: OrderStatus,
    items_edited: bool,
    new_status: OrderStatus,
    role: ActorRole,
    has_item_changes: bool,
) -> TransitionResult:
    """
    Check a requested status change against the table and contextual rules.

    Args:
        current_status: Persisted order status
        items_edited: Persisted items-edited flag
        new_status: Requested status
        role: Role of the acting user
        has_item_changes: Whether this same request updates, adds or removes items

    Returns:
        TransitionResult with the reason when invalid
    """
    if not is_valid_transition(current_status, new_status, role):
        return TransitionResult(
            valid=False,
            message=(
                f"Cannot transition from {current_status.value} to "
                f"{new_status.value} as {role.value}"
            ),
        )

    if accepting_unconfirmed_changes(current_status, new_status, items_edited, has_item_changes):
        if has_item_changes:
            message = "Cannot accept an order with modifications. Send quote to customer instead."
        else:
            message = "This order has modified items. Send quote to customer for approval first."
        return TransitionResult(valid=False, message=message)

    return TransitionResult(valid=True)
