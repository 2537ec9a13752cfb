# Overview: Operator maintenance: expired reservation sweep and admin order purge.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order
from ..validation import NotFoundError, try_coerce_id
from . import stock_service
from .concurrency import commit_or_rollback, lock_for_update, run_with_retry
from .ledger_service import EVENT_PURGED, append_order_event


def sweep_expired_reservations() -> int:
    """Mark lapsed reservations expired and commit. Returns the number swept."""
    swept = stock_service.sweep_expired_reservations()
    commit_or_rollback(context={"operation": "sweep_expired_reservations"})
    return swept


def purge_order(order_id, *, actor: str | None = None) -> dict:
    """
    Remove an order from whatever partition it is in.

    Stock is not touched. The purge event survives the row.
    """
    oid = try_coerce_id(order_id)
    if oid is None:
        raise NotFoundError("Order not found")

    def _op():
        order = lock_for_update(db.session.query(Order).filter(Order.id == oid)).first()
        if order is None:
            raise NotFoundError("Order not found")
        summary = {"orderId": order.id, "orderNumber": order.order_number, "collection": order.partition}
        append_order_event(
            order=order,
            event_type=EVENT_PURGED,
            from_partition=order.partition,
            operation="purge",
            actor=actor,
            payload={"snapshot": order.to_snapshot()},
        )
        db.session.delete(order)
        commit_or_rollback(context={"operation": "purge_order", "order_id": oid})
        return summary

    summary = run_with_retry(_op)
    current_app.logger.warning("Order %s purged from %s by %s", oid, summary["collection"], actor or "unknown")
    return summary
