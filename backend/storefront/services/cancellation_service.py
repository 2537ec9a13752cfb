"""
Cancellation Request Workflow

WHY: Customers may cancel an order that has not shipped yet. Staff review
every cancellation before it becomes final.

DESIGN PRINCIPLES:
- The order is frozen into the request at creation time: the request row is
  written with a full snapshot and the live order is deleted in the SAME
  transaction, so there is no window where both exist or neither does
- Approval synthesizes a Cancelled-partition order from the snapshot and
  restocks its items
- Rejection only marks the request; the order is NOT restored to the live set
  (long-standing behavior, kept as-is until the business decides otherwise)
- Notifications run after commit and can never undo a decision

LIFECYCLE:
1. none -> pending_review (customer submits, order removed)
2. pending_review -> approved (Cancelled order created) | rejected
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..extensions import db
from ..models import CancellationRequest, Order
from ..models.orders import PARTITION_ACCEPTED, PARTITION_CANCELLED, PARTITION_PENDING
from ..models.requests import REQUEST_APPROVED, REQUEST_PENDING_REVIEW, REQUEST_REJECTED
from ..time_utils import utcnow
from ..validation import AccessDeniedError, ConflictError, NotFoundError, ValidationError, optional_text, try_coerce_id
from . import notification_service
from .concurrency import commit_or_rollback, lock_for_update, run_with_retry
from .ledger_service import EVENT_CANCEL_REQUESTED, EVENT_CANCELLED, append_order_event
from .order_store import OrderStore, find_in_partitions
from .stock_service import restock_items


# =============================================================================
# CONSTANTS
# =============================================================================

CANCELLABLE_PARTITIONS = (PARTITION_PENDING, PARTITION_ACCEPTED)
CANCELLABLE_STATUSES = {"pending", "active", "approved"}
DECISION_ACTIONS = {"approve": REQUEST_APPROVED, "reject": REQUEST_REJECTED}
OPEN_STATUSES = (REQUEST_PENDING_REVIEW, "pending")


def _user_id_forms(user_id) -> tuple[str | None, int | None]:
    """String and numeric forms of a legacy user id (numeric only if it is one)."""
    if user_id in (None, ""):
        return None, None
    as_string = str(user_id)
    try:
        as_number = int(as_string)
    except ValueError:
        as_number = None
    return as_string, as_number


# =============================================================================
# CREATE
# =============================================================================

def create_cancellation_request(
    *,
    order_id,
    reason,
    additional_comments=None,
    identity=None,
) -> CancellationRequest:
    """
    Freeze an order into a cancellation request and remove it from the live set.

    Raises:
        ValidationError: orderId/reason missing
        NotFoundError: order not in Pending or Accepted
        ConflictError: order status does not allow cancellation
        AccessDeniedError: a customer tried to cancel someone else's order
    """
    reason = optional_text(reason, field="reason")
    if order_id in (None, "") or not reason:
        raise ValidationError("Missing required fields: orderId and reason")
    additional_comments = optional_text(additional_comments, field="additionalComments")

    def _op():
        order = find_in_partitions(order_id, CANCELLABLE_PARTITIONS, lock=True)
        if order is None:
            raise NotFoundError("Order not found or cannot be cancelled")

        current_status = (order.status or "pending").lower()
        if current_status not in CANCELLABLE_STATUSES:
            raise ConflictError("This order cannot be cancelled at this stage")

        if identity is not None and not identity.is_staff:
            if not order.owner_matches(user_id=identity.id, email=identity.email):
                raise AccessDeniedError("You can only cancel your own orders")

        user_id_string, user_id_number = _user_id_forms(order.user_id)
        request = CancellationRequest(
            original_order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            user_id_string=user_id_string,
            user_id_number=user_id_number,
            customer_name=order.full_name or "N/A",
            customer_email=order.email or "N/A",
            customer_phone=order.phone_number or "N/A",
            order_snapshot=order.to_snapshot(),
            source_partition=order.partition,
            original_order_status=current_status,
            original_order_total_cents=order.total_cents or 0,
            original_order_date=order.order_date or order.created_at,
            reason=reason,
            additional_comments=additional_comments,
            status=REQUEST_PENDING_REVIEW,
            submitted_by=identity.actor_label if identity is not None else "customer",
        )
        db.session.add(request)
        db.session.flush()

        append_order_event(
            order=order,
            event_type=EVENT_CANCEL_REQUESTED,
            from_partition=order.partition,
            operation="cancel_request",
            actor=request.submitted_by,
            note=reason,
            payload={"requestId": request.id},
        )
        db.session.delete(order)
        commit_or_rollback(context={
            "operation": "create_cancellation_request",
            "order_id": order_id,
        })
        return request

    request = run_with_retry(_op)

    notification_service.safe_notify(
        notification_service.notify_staff,
        type=notification_service.TYPE_CANCELLATION_REQUEST,
        title="New Cancellation Request",
        message=f"{request.customer_name} requested to cancel order {request.order_number}",
        priority="high",
        order_id=request.original_order_id,
        request_id=request.id,
        payload={
            "customerName": request.customer_name,
            "customerEmail": request.customer_email,
            "orderNumber": request.order_number,
            "reason": request.reason,
        },
    )
    return request


# =============================================================================
# DECIDE
# =============================================================================

def decide_cancellation_request(request_id, *, action, staff_notes=None, actor=None) -> CancellationRequest:
    """
    Approve or reject a pending cancellation request.

    approve: a new Cancelled order is built from the snapshot, its items are
             restocked, request -> approved
    reject:  request -> rejected (the order stays out of the live set)
    """
    if action not in DECISION_ACTIONS:
        raise ValidationError("Invalid action. Must be 'approve' or 'reject'")
    staff_notes = optional_text(staff_notes, field="staffNotes")
    rid = try_coerce_id(request_id)
    if rid is None:
        raise NotFoundError("Cancellation request not found")

    def _op():
        request = lock_for_update(
            db.session.query(CancellationRequest).filter(CancellationRequest.id == rid)
        ).first()
        if request is None:
            raise NotFoundError("Cancellation request not found")
        if request.status not in OPEN_STATUSES:
            raise ConflictError(f"Cancellation request already {request.status}")

        now = utcnow()
        request.status = DECISION_ACTIONS[action]
        request.processed_at = now
        request.processed_by = actor or "staff"
        request.staff_notes = staff_notes or ""

        if action == "approve":
            cancelled = Order.from_snapshot(request.order_snapshot or {})
            cancelled.status = "cancelled"
            cancelled.display_status = "cancelled"
            cancelled.cancelled_at = now
            cancelled.cancellation_reason = request.reason
            cancelled.cancellation_request_id = request.id
            cancelled.updated_at = now
            cancelled.last_modified_by = request.processed_by
            OrderStore(PARTITION_CANCELLED).insert(cancelled)
            request.cancelled_order_id = cancelled.id

            restored = 0
            if current_app.config.get("RESTOCK_ON_CANCELLATION", True):
                restored = restock_items(cancelled.items)

            append_order_event(
                order=cancelled,
                event_type=EVENT_CANCELLED,
                from_partition=request.source_partition,
                to_partition=PARTITION_CANCELLED,
                operation="cancellation_approved",
                actor=request.processed_by,
                note=staff_notes,
                payload={
                    "requestId": request.id,
                    "originalOrderId": request.original_order_id,
                    "restoredUnits": restored,
                },
            )

        commit_or_rollback(context={
            "operation": "decide_cancellation_request",
            "request_id": rid,
            "action": action,
        })
        return request

    request = run_with_retry(_op)
    _notify_decision(request, approved=(action == "approve"), staff_notes=staff_notes)
    return request


def _notify_decision(request: CancellationRequest, *, approved: bool, staff_notes: str | None) -> None:
    """User first, then staff; each isolated."""
    order_number = request.order_number
    if request.user_id:
        if approved:
            message = (
                f"Your cancellation request for order {order_number} has been approved. "
                + (f"Staff notes: {staff_notes}" if staff_notes else "Your order has been cancelled.")
            )
        else:
            message = (
                f"Your cancellation request for order {order_number} has been rejected. "
                + (f"Reason: {staff_notes}" if staff_notes else "Please contact us if you have questions.")
            )
        notification_service.safe_notify(
            notification_service.notify_user,
            user_id=request.user_id,
            email=request.customer_email if request.customer_email != "N/A" else None,
            type=(
                notification_service.TYPE_ORDER_CANCELLATION_APPROVED if approved
                else notification_service.TYPE_ORDER_CANCELLATION_REJECTED
            ),
            title="Cancellation Request Approved" if approved else "Cancellation Request Rejected",
            message=message,
            order_id=request.original_order_id,
            request_id=request.id,
            payload={"orderNumber": order_number, "staffNotes": staff_notes},
        )

    notification_service.safe_notify(
        notification_service.notify_staff,
        type=(
            notification_service.TYPE_CANCELLATION_PROCESSED_APPROVED if approved
            else notification_service.TYPE_CANCELLATION_PROCESSED_REJECTED
        ),
        title=(
            "Cancellation Request Processed (Approved)" if approved
            else "Cancellation Request Processed (Rejected)"
        ),
        message=(
            f"Cancellation request for order {order_number} ({request.customer_name}) has been "
            f"{'approved' if approved else 'rejected'}."
            + (f" Notes: {staff_notes}" if staff_notes else "")
        ),
        order_id=request.original_order_id,
        request_id=request.id,
        payload={
            "orderNumber": order_number,
            "decision": request.status,
            "cancelledOrderId": request.cancelled_order_id,
        },
    )


# =============================================================================
# QUERIES
# =============================================================================

def list_cancellation_requests(*, status: str | None = None) -> list[CancellationRequest]:
    query = db.session.query(CancellationRequest)
    if status:
        query = query.filter(CancellationRequest.status == status)
    return query.order_by(CancellationRequest.submitted_at.desc(), CancellationRequest.id.desc()).all()


def get_cancellation_request(request_id) -> CancellationRequest:
    rid = try_coerce_id(request_id)
    request = db.session.get(CancellationRequest, rid) if rid is not None else None
    if request is None:
        raise NotFoundError("Cancellation request not found")
    return request


def check_pending_cancellations(order_ids) -> dict:
    """Map of orderId (as string) -> True for orders with an open cancellation."""
    if not isinstance(order_ids, list):
        raise ValidationError("orderIds array is required")
    ids = [oid for oid in (try_coerce_id(raw) for raw in order_ids) if oid is not None]
    if not ids:
        return {}
    rows = (
        db.session.query(CancellationRequest.original_order_id)
        .filter(
            CancellationRequest.original_order_id.in_(ids),
            CancellationRequest.status.in_(OPEN_STATUSES),
        )
        .all()
    )
    return {str(row.original_order_id): True for row in rows}


def list_requests_for_owner(*, user_id=None, email=None) -> list[CancellationRequest]:
    clauses = []
    if user_id not in (None, ""):
        user_id_string, user_id_number = _user_id_forms(user_id)
        clauses.append(CancellationRequest.user_id_string == user_id_string)
        if user_id_number is not None:
            clauses.append(CancellationRequest.user_id_number == user_id_number)
    if email:
        clauses.append(func.lower(CancellationRequest.customer_email) == email.strip().lower())
    if not clauses:
        return []
    return (
        db.session.query(CancellationRequest)
        .filter(or_(*clauses))
        .order_by(CancellationRequest.submitted_at.desc())
        .all()
    )
