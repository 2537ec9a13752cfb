# Overview: Append-only order lifecycle audit log.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import Order, OrderEvent
"""
Order Ledger Invariants (authoritative)

- Append-only audit log of order lifecycle events.
- No business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record.
- Events never reference orders by foreign key: they outlive purged orders.
"""


EVENT_CREATED = "created"
EVENT_MOVED = "moved"
EVENT_UPDATED = "updated"
EVENT_CANCEL_REQUESTED = "cancel_requested"
EVENT_CANCELLED = "cancelled"
EVENT_RETURN_REQUESTED = "return_requested"
EVENT_RETURN_ACCEPTED = "return_accepted"
EVENT_RETURN_REJECTED = "return_rejected"
EVENT_PURGED = "purged"


def append_order_event(
    *,
    order: Order | None = None,
    order_id: int | None = None,
    order_number: str | None = None,
    event_type: str,
    from_partition: str | None = None,
    to_partition: str | None = None,
    operation: str | None = None,
    actor: str | None = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> OrderEvent:
    """
    Append an order event to the current session (caller commits).

    Pass `order` to take id/number from the row, or the raw keys when the row
    is already gone.
    """
    if order is not None:
        order_id = order.id if order_id is None else order_id
        order_number = order.order_number if order_number is None else order_number

    ev = OrderEvent(
        order_id=order_id,
        order_number=order_number,
        event_type=event_type,
        from_partition=from_partition,
        to_partition=to_partition,
        operation=operation,
        actor=actor,
        note=note,
        payload=payload,
    )
    if occurred_at is not None:
        ev.occurred_at = occurred_at
    db.session.add(ev)
    db.session.flush()
    return ev


def list_order_events(order_id: int) -> list[OrderEvent]:
    return (
        db.session.query(OrderEvent)
        .filter(OrderEvent.order_id == order_id)
        .order_by(OrderEvent.occurred_at.asc(), OrderEvent.id.asc())
        .all()
    )
