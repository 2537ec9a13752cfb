from __future__ import annotations

from datetime import datetime

from ..extensions import db
from storefront.time_utils import parse_iso_datetime, to_utc_z, utcnow
from storefront.validation import cents_to_amount


# =============================================================================
# PARTITIONS (lifecycle states)
# =============================================================================
# One table, one explicit state column. The order id can only ever be in one
# partition because it is one row.

PARTITION_PENDING = "pending"
PARTITION_ACCEPTED = "accepted"
PARTITION_DELIVERED = "delivered"
PARTITION_DENIED = "denied"
PARTITION_RETURNED = "returned"
PARTITION_CANCELLED = "cancelled"
PARTITION_WALKIN = "walkin"

PARTITIONS = (
    PARTITION_PENDING,
    PARTITION_ACCEPTED,
    PARTITION_DELIVERED,
    PARTITION_DENIED,
    PARTITION_RETURNED,
    PARTITION_CANCELLED,
    PARTITION_WALKIN,
)

# Human-facing names used in error messages (mirrors the legacy collection names)
PARTITION_LABELS = {
    PARTITION_PENDING: "PendingOrders",
    PARTITION_ACCEPTED: "AcceptedOrders",
    PARTITION_DELIVERED: "DeliveredOrders",
    PARTITION_DENIED: "DeniedOrders",
    PARTITION_RETURNED: "ReturnedOrders",
    PARTITION_CANCELLED: "CancelledOrders",
    PARTITION_WALKIN: "WalkInOrders",
}

# displayStatus shown on dashboards when the row carries none of its own
PARTITION_DISPLAY_STATUS = {
    PARTITION_PENDING: "pending",
    PARTITION_ACCEPTED: "approved",
    PARTITION_DELIVERED: "delivered",
    PARTITION_DENIED: "denied",
    PARTITION_RETURNED: "returned",
    PARTITION_CANCELLED: "cancelled",
    PARTITION_WALKIN: "completed",
}


def serialize_line_item(item: dict) -> dict:
    """Internal cents-based line item -> legacy API shape."""
    return {
        "item_id": item.get("item_id"),
        "item_name": item.get("item_name"),
        "amount_per_item": item.get("quantity"),
        "price_per_item": cents_to_amount(item.get("unit_price_cents")),
        "total_item_price": cents_to_amount(item.get("line_total_cents")),
        "item_image": item.get("item_image"),
        "category_bucket": item.get("category_bucket"),
        "category_original": item.get("category_original"),
    }


class Order(db.Model):
    """
    Customer or walk-in order.

    LIFECYCLE:
    - Created in `pending` (checkout) or `walkin` (POS, terminal)
    - Mutated in place only while `pending` (payment, verification, notes)
    - Moved between partitions by move_service (in-place partition update + audit event)
    - Removed only by cancellation request creation, an accepted return, or admin purge
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_partition_created", "partition", "created_at"),
        db.Index("ix_orders_partition_user", "partition", "user_id"),
        db.Index("ix_orders_partition_email", "partition", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    partition = db.Column(db.String(16), nullable=False, default=PARTITION_PENDING, index=True)
    order_number = db.Column(db.String(64), nullable=False, unique=True)

    # Owner keys: either may be present, both are equivalent for lookups
    user_id = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    full_name = db.Column(db.String(255), nullable=True)
    phone_number = db.Column(db.String(64), nullable=True)

    items = db.Column(db.JSON, nullable=False, default=list)
    address = db.Column(db.JSON, nullable=True)

    payment_method = db.Column(db.String(64), nullable=True)
    payment_type = db.Column(db.String(64), nullable=True)
    payment_split_percent = db.Column(db.Integer, nullable=True)
    payment_reference = db.Column(db.String(255), nullable=True)
    payment_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    change_upon_delivery = db.Column(db.Boolean, nullable=False, default=False)
    proof_of_payment = db.Column(db.Text, nullable=True)
    payment_verified = db.Column(db.Boolean, nullable=True)
    payment_verified_by = db.Column(db.String(255), nullable=True)
    payment_verification_notes = db.Column(db.Text, nullable=True)
    payment_verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    delivery_fee_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(32), nullable=False, default="active")
    display_status = db.Column(db.String(32), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(32), nullable=False, default="checkout_page")

    # State metadata stamped by the move engine / request workflows
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    denied_at = db.Column(db.DateTime(timezone=True), nullable=True)
    denial_reason = db.Column(db.Text, nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    return_reason = db.Column(db.Text, nullable=True)
    return_image = db.Column(db.Text, nullable=True)
    return_image_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    return_processed_by = db.Column(db.String(255), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.Text, nullable=True)
    cancellation_request_id = db.Column(db.Integer, nullable=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_modified_by = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    # Columns that never travel inside a snapshot
    _SNAPSHOT_EXCLUDED = {"id", "version_id"}

    def __repr__(self) -> str:
        return f"<Order id={self.id} number={self.order_number!r} partition={self.partition}>"

    @property
    def effective_display_status(self) -> str:
        if self.partition == PARTITION_PENDING:
            return "pending" if self.status == "active" else self.status
        return self.display_status or PARTITION_DISPLAY_STATUS[self.partition]

    def owner_matches(self, *, user_id: str | None, email: str | None) -> bool:
        if user_id is not None and self.user_id is not None and str(self.user_id) == str(user_id):
            return True
        if email and self.email and self.email.lower() == email.lower():
            return True
        return False

    def to_snapshot(self) -> dict:
        """
        Column-for-column copy (datetimes as ISO 'Z' strings) that can
        rebuild an equivalent row with from_snapshot().
        """
        snapshot = {}
        for col in self.__table__.columns:
            if col.key in self._SNAPSHOT_EXCLUDED:
                continue
            value = getattr(self, col.key)
            if isinstance(value, datetime):
                value = to_utc_z(value)
            snapshot[col.key] = value
        snapshot["original_order_id"] = self.id
        return snapshot

    @classmethod
    def from_snapshot(cls, snapshot: dict) -> "Order":
        order = cls()
        for col in cls.__table__.columns:
            if col.key in cls._SNAPSHOT_EXCLUDED or col.key not in snapshot:
                continue
            value = snapshot[col.key]
            if isinstance(col.type, db.DateTime) and isinstance(value, str):
                value = parse_iso_datetime(value)
            setattr(order, col.key, value)
        return order

    def payment_dict(self) -> dict:
        return {
            "method": self.payment_method,
            "type": self.payment_type,
            "splitPercent": self.payment_split_percent,
            "reference": self.payment_reference,
            "amount": cents_to_amount(self.payment_amount_cents),
            "changeUponDelivery": self.change_upon_delivery,
            "proof": self.proof_of_payment,
            "verified": self.payment_verified,
        }

    def to_dict(self, *, minimal: bool = False) -> dict:
        data = {
            "id": self.id,
            "orderNumber": self.order_number,
            "collection": self.partition,
            "status": self.status,
            "displayStatus": self.effective_display_status,
            "userId": self.user_id,
            "email": self.email,
            "fullName": self.full_name,
            "phoneNumber": self.phone_number,
            "itemsordered": [serialize_line_item(i) for i in (self.items or [])],
            "address": self.address,
            "paymentMethod": self.payment_method,
            "paymentType": self.payment_type,
            "paymentSplitPercent": self.payment_split_percent,
            "paymentReference": self.payment_reference,
            "paymentAmount": cents_to_amount(self.payment_amount_cents),
            "changeUponDelivery": self.change_upon_delivery,
            "paymentVerified": self.payment_verified,
            "subtotal": cents_to_amount(self.subtotal_cents),
            "deliveryFee": cents_to_amount(self.delivery_fee_cents),
            "total": cents_to_amount(self.total_cents),
            "notes": self.notes,
            "source": self.source,
            "orderDate": to_utc_z(self.order_date),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if minimal:
            data["hasProofOfPayment"] = bool(self.proof_of_payment)
            return data

        data.update({
            "proofOfPayment": self.proof_of_payment,
            "paymentVerifiedBy": self.payment_verified_by,
            "paymentVerificationNotes": self.payment_verification_notes,
            "paymentVerificationDate": to_utc_z(self.payment_verified_at),
            "approvedAt": to_utc_z(self.approved_at),
            "deliveredAt": to_utc_z(self.delivered_at),
            "deniedAt": to_utc_z(self.denied_at),
            "denialReason": self.denial_reason,
            "returnedAt": to_utc_z(self.returned_at),
            "returnReason": self.return_reason,
            "returnImage": self.return_image,
            "returnImageUploadedAt": to_utc_z(self.return_image_uploaded_at),
            "returnProcessedBy": self.return_processed_by,
            "cancelledAt": to_utc_z(self.cancelled_at),
            "cancellationReason": self.cancellation_reason,
            "cancellationRequestId": self.cancellation_request_id,
            "lastModifiedBy": self.last_modified_by,
        })
        return data


class OrderEvent(db.Model):
    """
    Append-only audit trail of order lifecycle events.

    No foreign key to orders: events must outlive purged or removed orders.
    """
    __tablename__ = "order_events"
    __table_args__ = (
        db.Index("ix_order_events_order_occurred", "order_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=True)
    order_number = db.Column(db.String(64), nullable=True, index=True)

    event_type = db.Column(db.String(32), nullable=False, index=True)
    from_partition = db.Column(db.String(16), nullable=True)
    to_partition = db.Column(db.String(16), nullable=True)
    operation = db.Column(db.String(64), nullable=True)

    actor = db.Column(db.String(255), nullable=True)
    note = db.Column(db.Text, nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderId": self.order_id,
            "orderNumber": self.order_number,
            "eventType": self.event_type,
            "fromPartition": self.from_partition,
            "toPartition": self.to_partition,
            "operation": self.operation,
            "actor": self.actor,
            "note": self.note,
            "payload": self.payload,
            "occurredAt": to_utc_z(self.occurred_at),
        }
