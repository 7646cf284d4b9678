import logging
from datetime import datetime, timezone
from typing import Dict, FrozenSet

from cloudserve.errors.order_errors import InvalidStatusTransition
from cloudserve.models import Order, OrderStatus, SuspensionReason

logger = logging.getLogger(__name__)

S = OrderStatus

ALLOWED_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.PENDING: frozenset({S.PROVISIONING, S.ACTIVE, S.FAILED, S.PAYMENT_FAILED, S.SUSPENDED, S.CANCELLED}),
    S.PROVISIONING: frozenset({S.ACTIVE, S.FAILED, S.PAYMENT_FAILED, S.SUSPENDED, S.CANCELLED}),
    S.ACTIVE: frozenset({S.SUSPENDED, S.PAYMENT_FAILED, S.CANCELLED, S.DELETED, S.ARCHIVED}),
    S.SUSPENDED: frozenset({S.ACTIVE, S.PAYMENT_FAILED, S.CANCELLED, S.DELETED, S.ARCHIVED}),
    S.PAYMENT_FAILED: frozenset({S.ACTIVE, S.SUSPENDED, S.CANCELLED, S.DELETED}),
    # Re-provisioning a failed order goes straight to active on success
    S.FAILED: frozenset({S.PROVISIONING, S.ACTIVE, S.CANCELLED, S.DELETED}),
    S.CANCELLED: frozenset({S.DELETED, S.ARCHIVED}),
    S.ARCHIVED: frozenset({S.DELETED}),
    S.DELETED: frozenset(),
}

# Only an admin override leaves these
TERMINAL_STATUSES = frozenset({S.CANCELLED, S.DELETED})

# Statuses a successful payment is allowed to lift back to active
BILLING_DEGRADED_STATUSES = frozenset({S.PAYMENT_FAILED, S.SUSPENDED})


def can_transition(current: OrderStatus, requested: OrderStatus) -> bool:
    return current == requested or requested in ALLOWED_TRANSITIONS[current]


def payment_reactivates(order: Order) -> bool:
    """A manual suspension is kept when the subscription recovers."""
    if order.status not in BILLING_DEGRADED_STATUSES:
        return False
    return not (order.status == S.SUSPENDED and order.suspension_reason == SuspensionReason.MANUAL)


def transition(order: Order, requested: OrderStatus, force: bool = False) -> bool:
    """
    Move an order to a new status in memory; the caller commits.

    Returns False when the order already had the requested status.
    Raises InvalidStatusTransition unless the move is in the table or
    force (admin override) is set. cancelled_at is stamped on the first
    entry into cancelled and never rewritten. Leaving suspended clears
    suspension_reason.
    """
    current = order.status
    if current == requested:
        return False
    if not force and requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransition(current, requested)

    now = datetime.now(timezone.utc)
    order.status = requested
    order.updated_at = now
    if current == S.SUSPENDED:
        order.suspension_reason = None
    if requested == S.CANCELLED and order.cancelled_at is None:
        order.cancelled_at = now

    logger.info(f"Order {order.display_id}: {current.value} -> {requested.value}{' (override)' if force else ''}")
    return True
