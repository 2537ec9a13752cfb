from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow
from storefront.validation import cents_to_amount
from .orders import serialize_line_item


REQUEST_PENDING_REVIEW = "pending_review"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"

RETURN_DECISION_ACCEPTED = "accepted"
RETURN_DECISION_REJECTED = "rejected"


class CancellationRequest(db.Model):
    """
    Customer cancellation request.

    The order is frozen into `order_snapshot` and removed from the live set
    when this row is created. Approval synthesizes a new Cancelled order from
    the snapshot; rejection leaves the order out of the live set.
    """
    __tablename__ = "cancellation_requests"
    __table_args__ = (
        db.Index("ix_cancellation_requests_status_submitted", "status", "submitted_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    original_order_id = db.Column(db.Integer, nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=True)

    # Identity keys in both forms so legacy numeric and string ids both resolve
    user_id = db.Column(db.String(64), nullable=True)
    user_id_string = db.Column(db.String(64), nullable=True, index=True)
    user_id_number = db.Column(db.BigInteger, nullable=True, index=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True, index=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    order_snapshot = db.Column(db.JSON, nullable=False)
    source_partition = db.Column(db.String(16), nullable=False)
    original_order_status = db.Column(db.String(32), nullable=True)
    original_order_total_cents = db.Column(db.Integer, nullable=False, default=0)
    original_order_date = db.Column(db.DateTime(timezone=True), nullable=True)

    reason = db.Column(db.Text, nullable=False)
    additional_comments = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(32), nullable=False, default=REQUEST_PENDING_REVIEW)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    submitted_by = db.Column(db.String(255), nullable=False, default="customer")

    processed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_by = db.Column(db.String(255), nullable=True)
    staff_notes = db.Column(db.Text, nullable=True)
    cancelled_order_id = db.Column(db.Integer, nullable=True)

    def to_dict(self) -> dict:
        snapshot = self.order_snapshot or {}
        return {
            "id": self.id,
            "originalOrderId": self.original_order_id,
            "orderNumber": self.order_number,
            "userId": self.user_id,
            "userIdString": self.user_id_string,
            "userIdNumber": self.user_id_number,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "itemsordered": [serialize_line_item(i) for i in snapshot.get("items") or []],
            "paymentMethod": snapshot.get("payment_method"),
            "paymentType": snapshot.get("payment_type"),
            "paymentReference": snapshot.get("payment_reference"),
            "paymentAmount": cents_to_amount(snapshot.get("payment_amount_cents")),
            "address": snapshot.get("address"),
            "notes": snapshot.get("notes"),
            "sourceCollection": self.source_partition,
            "originalOrderStatus": self.original_order_status,
            "originalOrderTotal": cents_to_amount(self.original_order_total_cents),
            "originalOrderDate": to_utc_z(self.original_order_date),
            "reason": self.reason,
            "additionalComments": self.additional_comments or "",
            "status": self.status,
            "submittedAt": to_utc_z(self.submitted_at),
            "submittedBy": self.submitted_by,
            "processedAt": to_utc_z(self.processed_at),
            "processedBy": self.processed_by,
            "staffNotes": self.staff_notes,
            "cancelledOrderId": self.cancelled_order_id,
        }


class ReturnRequest(db.Model):
    """
    Open return/exchange request. The original order stays where it is until
    staff decide; the request row is then moved into ReturnedOrderArchive.
    """
    __tablename__ = "return_requests"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    original_order_id = db.Column(db.Integer, nullable=False, index=True)
    order_number = db.Column(db.String(64), nullable=True)

    user_id = db.Column(db.String(64), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    return_type = db.Column(db.String(16), nullable=False)  # return, exchange
    selected_items = db.Column(db.JSON, nullable=False, default=list)
    reason = db.Column(db.Text, nullable=True)
    additional_comments = db.Column(db.Text, nullable=True)
    return_image = db.Column(db.Text, nullable=True)

    original_order_total_cents = db.Column(db.Integer, nullable=False, default=0)
    original_order_date = db.Column(db.DateTime(timezone=True), nullable=True)
    source_partition = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(32), nullable=False, default=REQUEST_PENDING_REVIEW)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    submitted_by = db.Column(db.String(255), nullable=False, default="customer")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "originalOrderId": self.original_order_id,
            "orderNumber": self.order_number,
            "userId": self.user_id,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "returnType": self.return_type,
            "selectedItems": self.selected_items or [],
            "reason": self.reason,
            "additionalComments": self.additional_comments or "",
            "returnImage": self.return_image,
            "originalOrderTotal": cents_to_amount(self.original_order_total_cents),
            "originalOrderDate": to_utc_z(self.original_order_date),
            "sourceCollection": self.source_partition,
            "status": self.status,
            "submittedAt": to_utc_z(self.submitted_at),
            "submittedBy": self.submitted_by,
        }


class ReturnedOrderArchive(db.Model):
    """
    Decided return/exchange requests with full provenance: the request as
    submitted, the original order as it was at decision time, and the staff
    decision (notes + optional decision image).
    """
    __tablename__ = "returned_orders"
    __table_args__ = (
        db.Index("ix_returned_orders_processed", "processed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, nullable=False, index=True)

    staff_decision = db.Column(db.String(16), nullable=False)  # accepted, rejected
    action = db.Column(db.String(16), nullable=False)  # approve, reject
    staff_notes = db.Column(db.Text, nullable=True)
    staff_decision_image = db.Column(db.Text, nullable=True)

    original_order_id = db.Column(db.Integer, nullable=True, index=True)
    original_order_partition = db.Column(db.String(16), nullable=True)
    user_id = db.Column(db.String(64), nullable=True)
    order_number = db.Column(db.String(64), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    return_type = db.Column(db.String(16), nullable=False, default="return")
    customer_reason = db.Column(db.Text, nullable=True)
    selected_items = db.Column(db.JSON, nullable=False, default=list)
    customer_image = db.Column(db.Text, nullable=True)

    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    processed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    processed_by = db.Column(db.String(255), nullable=False, default="staff")

    request_snapshot = db.Column(db.JSON, nullable=False)
    original_order_snapshot = db.Column(db.JSON, nullable=True)

    def to_dict(self, *, include_images: bool = True) -> dict:
        original = self.original_order_snapshot or {}
        data = {
            "id": self.id,
            "requestId": self.request_id,
            "status": self.staff_decision,
            "staffDecision": self.staff_decision,
            "action": self.action,
            "staffNotes": self.staff_notes or "",
            "originalOrderId": self.original_order_id,
            "originalOrderCollection": self.original_order_partition,
            "userId": self.user_id,
            "orderNumber": self.order_number,
            "customerName": self.customer_name,
            "customerEmail": self.customer_email,
            "customerPhone": self.customer_phone,
            "returnType": self.return_type,
            "customerReason": self.customer_reason or "",
            "selectedItems": self.selected_items or [],
            "total": cents_to_amount(original.get("total_cents")),
            "itemsordered": [serialize_line_item(i) for i in original.get("items") or []],
            "submittedAt": to_utc_z(self.submitted_at),
            "processedAt": to_utc_z(self.processed_at),
            "processedBy": self.processed_by,
            "hasCustomerImage": bool(self.customer_image),
            "hasStaffDecisionImage": bool(self.staff_decision_image),
        }
        if include_images:
            data["customerImage"] = self.customer_image
            data["staffDecisionImage"] = self.staff_decision_image
        return data
