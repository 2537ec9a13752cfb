"""
Return/Exchange Request Workflow

WHY: Customers may send back (or swap) items from an order. Unlike a
cancellation the order stays where it is while staff review the request.

DESIGN PRINCIPLES:
- Creating a request never touches the order
- At most one open request per order
- A decision archives the request into returned_orders with full provenance
  (request snapshot, original order snapshot, staff notes and image), deletes
  the open request, and only if accepted deletes the original order, all in
  ONE transaction
- Display fields on the archive come from the original order when it still
  exists; the customer's submitted image is kept as customer_image
- User then staff notification after commit; failures are logged only

LIFECYCLE:
1. none -> pending_review (customer submits)
2. pending_review -> accepted (archived, order removed) | rejected (archived)
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Order, ReturnRequest, ReturnedOrderArchive
from ..models.orders import PARTITION_ACCEPTED, PARTITION_DELIVERED, PARTITION_PENDING
from ..models.requests import (
    REQUEST_PENDING_REVIEW,
    RETURN_DECISION_ACCEPTED,
    RETURN_DECISION_REJECTED,
)
from ..time_utils import to_utc_z, utcnow
from ..validation import AccessDeniedError, ConflictError, NotFoundError, ValidationError, optional_text, try_coerce_id
from . import notification_service
from .concurrency import commit_or_rollback, lock_for_update, run_with_retry
from .ledger_service import (
    EVENT_RETURN_ACCEPTED,
    EVENT_RETURN_REJECTED,
    EVENT_RETURN_REQUESTED,
    append_order_event,
)
from .order_store import find_in_partitions


# =============================================================================
# CONSTANTS
# =============================================================================

RETURNABLE_PARTITIONS = (PARTITION_DELIVERED, PARTITION_ACCEPTED, PARTITION_PENDING)
RETURN_TYPES = {"return", "exchange"}
DECISIONS = {"approve": RETURN_DECISION_ACCEPTED, "reject": RETURN_DECISION_REJECTED}


def _request_snapshot(request: ReturnRequest) -> dict:
    data = {}
    for col in request.__table__.columns:
        value = getattr(request, col.key)
        if hasattr(value, "isoformat"):
            value = to_utc_z(value)
        data[col.key] = value
    return data


# =============================================================================
# CREATE
# =============================================================================

def create_return_request(
    *,
    order_id,
    return_type,
    selected_items,
    reason=None,
    additional_comments=None,
    return_image=None,
    identity=None,
) -> ReturnRequest:
    """
    Open a return/exchange request against an order.

    Raises:
        ValidationError: missing orderId/returnType/selectedItems, bad returnType
        NotFoundError: order not in Delivered, Accepted or Pending
        ConflictError: the order already has an open request
        AccessDeniedError: a customer tried to return someone else's order
    """
    if order_id in (None, "") or not return_type or not selected_items:
        raise ValidationError("Missing required fields: orderId, returnType, and selectedItems")
    if return_type not in RETURN_TYPES:
        raise ValidationError("returnType must be 'return' or 'exchange'")
    if not isinstance(selected_items, list):
        raise ValidationError("selectedItems must be an array")

    def _op():
        order = find_in_partitions(order_id, RETURNABLE_PARTITIONS, lock=True)
        if order is None:
            raise NotFoundError("Order not found")

        if identity is not None and not identity.is_staff:
            if not order.owner_matches(user_id=identity.id, email=identity.email):
                raise AccessDeniedError("You can only return your own orders")

        open_request = (
            db.session.query(ReturnRequest)
            .filter(
                ReturnRequest.original_order_id == order.id,
                ReturnRequest.status == REQUEST_PENDING_REVIEW,
            )
            .first()
        )
        if open_request is not None:
            raise ConflictError("A return request for this order is already pending review")

        request = ReturnRequest(
            original_order_id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            customer_name=order.full_name or "N/A",
            customer_email=order.email or "N/A",
            customer_phone=order.phone_number or "N/A",
            return_type=return_type,
            selected_items=selected_items,
            reason=optional_text(reason, field="reason"),
            additional_comments=optional_text(additional_comments, field="additionalComments"),
            return_image=return_image or None,
            original_order_total_cents=order.total_cents or 0,
            original_order_date=order.order_date or order.created_at,
            source_partition=order.partition,
            status=REQUEST_PENDING_REVIEW,
            submitted_by=identity.actor_label if identity is not None else "customer",
        )
        db.session.add(request)
        db.session.flush()

        append_order_event(
            order=order,
            event_type=EVENT_RETURN_REQUESTED,
            from_partition=order.partition,
            operation=f"{return_type}_request",
            actor=request.submitted_by,
            note=request.reason,
            payload={"requestId": request.id, "itemCount": len(selected_items)},
        )
        commit_or_rollback(context={"operation": "create_return_request", "order_id": order_id})
        return request

    request = run_with_retry(_op)

    notification_service.safe_notify(
        notification_service.notify_staff,
        type=notification_service.TYPE_RETURN_REQUEST,
        title="New Return/Exchange Request",
        message=(
            f"{request.customer_name} submitted a {request.return_type} request "
            f"for order {request.order_number}"
        ),
        priority="medium",
        order_id=request.original_order_id,
        request_id=request.id,
        payload={
            "customerName": request.customer_name,
            "customerEmail": request.customer_email,
            "orderNumber": request.order_number,
            "returnType": request.return_type,
            "reason": request.reason,
        },
    )
    return request


# =============================================================================
# DECIDE
# =============================================================================

def decide_return_request(
    request_id,
    *,
    action,
    staff_notes=None,
    return_image=None,
    actor=None,
) -> ReturnedOrderArchive:
    """
    Accept or reject an open return request.

    Returns:
        The ReturnedOrderArchive row (committed)
    """
    if action not in DECISIONS:
        raise ValidationError("Invalid action. Must be 'approve' or 'reject'")
    staff_notes = optional_text(staff_notes, field="staffNotes")
    rid = try_coerce_id(request_id)
    if rid is None:
        raise NotFoundError("Return request not found")

    decision = DECISIONS[action]

    def _op():
        request = lock_for_update(
            db.session.query(ReturnRequest).filter(ReturnRequest.id == rid)
        ).first()
        if request is None:
            raise NotFoundError("Return request not found")

        original: Order | None = find_in_partitions(
            request.original_order_id, RETURNABLE_PARTITIONS, lock=True
        )

        archive = ReturnedOrderArchive(
            request_id=request.id,
            staff_decision=decision,
            action=action,
            staff_notes=staff_notes or "",
            staff_decision_image=return_image or None,
            original_order_id=request.original_order_id,
            original_order_partition=original.partition if original is not None else None,
            user_id=(original.user_id if original is not None else None) or request.user_id,
            order_number=(original.order_number if original is not None else None) or request.order_number,
            customer_name=(original.full_name if original is not None else None) or request.customer_name,
            customer_email=(original.email if original is not None else None) or request.customer_email,
            customer_phone=(original.phone_number if original is not None else None) or request.customer_phone,
            return_type=request.return_type or "return",
            customer_reason=request.reason or "",
            selected_items=request.selected_items or [],
            customer_image=request.return_image,
            submitted_at=request.submitted_at,
            processed_at=utcnow(),
            processed_by=actor or "staff",
            request_snapshot=_request_snapshot(request),
            original_order_snapshot=original.to_snapshot() if original is not None else None,
        )
        db.session.add(archive)
        db.session.delete(request)

        if original is not None:
            append_order_event(
                order=original,
                event_type=EVENT_RETURN_ACCEPTED if decision == RETURN_DECISION_ACCEPTED else EVENT_RETURN_REJECTED,
                from_partition=original.partition,
                operation=f"{archive.return_type}_{decision}",
                actor=archive.processed_by,
                note=staff_notes,
                payload={"requestId": rid},
            )
            if decision == RETURN_DECISION_ACCEPTED:
                db.session.delete(original)

        db.session.flush()
        commit_or_rollback(context={
            "operation": "decide_return_request",
            "request_id": rid,
            "action": action,
        })
        return archive

    archive = run_with_retry(_op)
    current_app.logger.info("Return request %s %s by %s", rid, decision, actor or "staff")
    _notify_decision(archive, accepted=(decision == RETURN_DECISION_ACCEPTED), staff_notes=staff_notes)
    return archive


def _notify_decision(archive: ReturnedOrderArchive, *, accepted: bool, staff_notes: str | None) -> None:
    """User first (when the owner is known), then staff; each isolated."""
    order_number = archive.order_number
    if archive.user_id:
        if accepted:
            message = (
                f"Your return request for order {order_number} has been approved. "
                + (f"Staff notes: {staff_notes}" if staff_notes else "We will begin processing the return shortly.")
            )
        else:
            message = (
                f"Your return request for order {order_number} has been rejected. "
                + (f"Reason: {staff_notes}" if staff_notes else "Please contact us if you would like to discuss this decision.")
            )
        notification_service.safe_notify(
            notification_service.notify_user,
            user_id=archive.user_id,
            email=archive.customer_email if archive.customer_email not in (None, "N/A") else None,
            type=(
                notification_service.TYPE_ORDER_RETURN_APPROVED if accepted
                else notification_service.TYPE_ORDER_RETURN_REJECTED
            ),
            title="Return Request Approved" if accepted else "Return Request Rejected",
            message=message,
            order_id=archive.original_order_id,
            request_id=archive.request_id,
            payload={
                "orderNumber": order_number,
                "returnType": archive.return_type,
                "staffNotes": staff_notes,
            },
        )

    notification_service.safe_notify(
        notification_service.notify_staff,
        type=(
            notification_service.TYPE_RETURN_PROCESSED_APPROVED if accepted
            else notification_service.TYPE_RETURN_PROCESSED_REJECTED
        ),
        title=(
            "Return Request Processed (Approved)" if accepted
            else "Return Request Processed (Rejected)"
        ),
        message=(
            f"Return request for order {order_number} ({archive.customer_name}) has been "
            f"{'approved' if accepted else 'rejected'}."
            + (f" Notes: {staff_notes}" if staff_notes else "")
        ),
        order_id=archive.original_order_id,
        request_id=archive.request_id,
        payload={
            "orderNumber": order_number,
            "customerName": archive.customer_name,
            "customerEmail": archive.customer_email,
            "returnType": archive.return_type,
            "decision": archive.staff_decision,
            "archivedId": archive.id,
        },
    )


# =============================================================================
# QUERIES
# =============================================================================

def list_return_requests() -> list[ReturnRequest]:
    return (
        db.session.query(ReturnRequest)
        .order_by(ReturnRequest.submitted_at.desc(), ReturnRequest.id.desc())
        .all()
    )


def list_returned_orders(*, limit: int | None = None) -> list[ReturnedOrderArchive]:
    query = db.session.query(ReturnedOrderArchive).order_by(
        ReturnedOrderArchive.processed_at.desc(), ReturnedOrderArchive.id.desc()
    )
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def get_return_documentation(order_id) -> dict:
    """
    Evidence for a returned order: the customer's image and the staff
    decision image, from the Returned partition or the archive.
    """
    oid = try_coerce_id(order_id)
    if oid is None:
        raise NotFoundError("Returned order not found")

    order = db.session.get(Order, oid)
    if order is not None and order.return_image:
        return {
            "orderId": order.id,
            "orderNumber": order.order_number,
            "returnReason": order.return_reason,
            "returnImage": order.return_image,
            "returnImageUploadedAt": to_utc_z(order.return_image_uploaded_at),
            "returnedAt": to_utc_z(order.returned_at),
            "processedBy": order.return_processed_by,
        }

    archive = (
        db.session.query(ReturnedOrderArchive)
        .filter(ReturnedOrderArchive.original_order_id == oid)
        .order_by(ReturnedOrderArchive.processed_at.desc())
        .first()
    )
    if archive is None:
        raise NotFoundError("Returned order not found")
    return {
        "orderId": archive.original_order_id,
        "orderNumber": archive.order_number,
        "returnReason": archive.customer_reason,
        "returnImage": archive.customer_image,
        "staffDecisionImage": archive.staff_decision_image,
        "staffDecision": archive.staff_decision,
        "returnedAt": to_utc_z(archive.processed_at),
        "processedBy": archive.processed_by,
    }
