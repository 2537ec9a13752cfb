"""
Order Move Engine

WHY: An order's lifecycle state is the partition it lives in. Staff drive it
through the dashboard (accept, deliver, deny, return, send back to pending).

DESIGN PRINCIPLES:
- One row per order; a move is an in-place partition update, so the order id
  is preserved and can never be observed in two partitions
- Each move is ONE transaction: state mutation + optional restock + audit event
- The source partition is part of the row filter; a concurrent mover that
  lost the race no longer finds the order there (NotFoundError)
- version_id_col optimistic locking serializes writers on the same row

LIFECYCLE (allowed moves):
    pending  -> accepted | denied
    accepted -> delivered | denied | returned | pending
    returned -> pending | accepted
    delivered, denied, cancelled, walkin are terminal
"""

from __future__ import annotations

from flask import current_app

from ..models import Order
from ..models.orders import (
    PARTITION_ACCEPTED,
    PARTITION_DELIVERED,
    PARTITION_DENIED,
    PARTITION_LABELS,
    PARTITION_PENDING,
    PARTITION_RETURNED,
)
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError
from .concurrency import commit_or_rollback, run_with_retry
from .ledger_service import EVENT_MOVED, append_order_event
from .order_store import OrderStore, resolve_partition
from .stock_service import restock_items


# =============================================================================
# TRANSITIONS
# =============================================================================

ALLOWED_MOVES = {
    PARTITION_PENDING: {PARTITION_ACCEPTED, PARTITION_DENIED},
    PARTITION_ACCEPTED: {PARTITION_DELIVERED, PARTITION_DENIED, PARTITION_RETURNED, PARTITION_PENDING},
    PARTITION_RETURNED: {PARTITION_PENDING, PARTITION_ACCEPTED},
}


def can_move(from_partition: str, to_partition: str) -> bool:
    return to_partition in ALLOWED_MOVES.get(from_partition, set())


def _apply_pending(order: Order, now, **_):
    order.status = "pending"
    order.display_status = "pending"


def _apply_accepted(order: Order, now, **_):
    order.status = "approved"
    order.display_status = "approved"
    order.approved_at = now


def _apply_delivered(order: Order, now, **_):
    order.status = "delivered"
    order.display_status = "delivered"
    order.delivered_at = now


def _apply_denied(order: Order, now, *, denial_reason=None, **_):
    order.status = "denied"
    order.display_status = "denied"
    order.denied_at = now
    order.denial_reason = denial_reason or "No reason provided"


def _apply_returned(order: Order, now, *, actor=None, return_reason=None, return_image=None, **_):
    order.status = "returned"
    order.display_status = "returned"
    order.returned_at = now
    order.return_reason = return_reason or "No reason provided"
    order.return_processed_by = actor
    if return_image:
        order.return_image = return_image
        order.return_image_uploaded_at = now


STATE_MUTATIONS = {
    PARTITION_PENDING: _apply_pending,
    PARTITION_ACCEPTED: _apply_accepted,
    PARTITION_DELIVERED: _apply_delivered,
    PARTITION_DENIED: _apply_denied,
    PARTITION_RETURNED: _apply_returned,
}


# =============================================================================
# MOVE
# =============================================================================

def move_order(
    order_id,
    from_partition: str,
    to_partition: str,
    *,
    operation: str | None = None,
    actor: str | None = None,
    denial_reason: str | None = None,
    return_reason: str | None = None,
    return_image: str | None = None,
) -> Order:
    """
    Move an order between lifecycle partitions.

    Args:
        order_id: Order to move (kept unchanged by the move)
        from_partition / to_partition: partition names or legacy aliases
        operation: Free-form label recorded on the audit event
        actor: Staff member performing the move (lastModifiedBy)

    Returns:
        The moved Order (committed)

    Raises:
        ValidationError: unknown partition name
        ConflictError: transition not allowed
        NotFoundError: order not in from_partition
        IntegrityError: commit failed AND rollback failed
    """
    source = resolve_partition(from_partition)
    target = resolve_partition(to_partition)
    if not can_move(source, target):
        raise ConflictError(
            f"Cannot move order from {PARTITION_LABELS[source]} to {PARTITION_LABELS[target]}"
        )

    store = OrderStore(source)
    context = {
        "order_id": order_id,
        "from": source,
        "to": target,
        "actor": actor,
        "operation": operation,
    }

    def _op():
        order = store.find_by_id(order_id, lock=True)
        if order is None:
            raise NotFoundError(f"Order not found in {PARTITION_LABELS[source]}")

        now = utcnow()
        STATE_MUTATIONS[target](
            order,
            now,
            actor=actor,
            denial_reason=denial_reason,
            return_reason=return_reason,
            return_image=return_image,
        )
        order.partition = target
        order.updated_at = now
        order.last_modified_by = actor

        restored = 0
        if target == PARTITION_DENIED and current_app.config.get("RESTOCK_ON_DENIAL", True):
            restored = restock_items(order.items)

        append_order_event(
            order=order,
            event_type=EVENT_MOVED,
            from_partition=source,
            to_partition=target,
            operation=operation,
            actor=actor,
            note=denial_reason if target == PARTITION_DENIED else return_reason,
            payload={"restoredUnits": restored} if restored else None,
        )
        commit_or_rollback(context=context)
        return order

    order = run_with_retry(_op)
    current_app.logger.info(
        "Order %s moved %s -> %s by %s", order.id, source, target, actor or "unknown"
    )
    return order
