"""
Order Service: checkout, walk-in orders, Pending-only edits, dashboard views

WHY: Everything around the move engine that customers and staff touch
directly: placing orders, editing payment details while an order is still
Pending, and the merged read models the storefront and dashboard render.

DESIGN PRINCIPLES:
- Orders are created in exactly two places: checkout (Pending) and the POS
  walk-in flow (WalkIn, terminal)
- In-place edits are allowed only while the order is Pending
- Checkout and walk-in never touch stock; the client decrements through
  the bulk stock endpoint (optionally fulfilling its reservation)
- Money is integer cents internally, decimals in JSON
"""

from __future__ import annotations

import random
import time

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from ..extensions import db
from ..models import CancellationRequest, Order, ReturnRequest, ReturnedOrderArchive
from ..models.orders import (
    PARTITIONS,
    PARTITION_ACCEPTED,
    PARTITION_CANCELLED,
    PARTITION_DELIVERED,
    PARTITION_DENIED,
    PARTITION_PENDING,
    PARTITION_RETURNED,
    PARTITION_WALKIN,
)
from ..models.requests import REQUEST_PENDING_REVIEW
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from ..validation import (
    AccessDeniedError,
    ConflictError,
    NotFoundError,
    ValidationError,
    cents_to_amount,
    coerce_quantity,
    optional_text,
    to_cents,
    try_coerce_id,
)
from .cancellation_service import list_requests_for_owner
from .catalog_service import normalize_category_bucket
from .concurrency import commit_or_rollback, run_with_retry, safe_rollback
from .ledger_service import EVENT_CREATED, EVENT_UPDATED, append_order_event
from .order_store import OrderStore, find_in_partitions, owner_filter


# =============================================================================
# CONSTANTS
# =============================================================================

STATUS_ACTIVE = "active"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"

SOURCE_CHECKOUT = "checkout_page"
SOURCE_WALKIN = "pos_walkin"

DEFAULT_NOTES = "no additional notes"

# Partitions shown in a customer's history (cancelled orders surface through
# their cancellation request instead)
HISTORY_PARTITIONS = tuple(p for p in PARTITIONS if p != PARTITION_CANCELLED)

STAFF_DASHBOARD_PARTITIONS = (
    PARTITION_PENDING,
    PARTITION_ACCEPTED,
    PARTITION_DELIVERED,
    PARTITION_WALKIN,
    PARTITION_RETURNED,
)

REVENUE_PARTITIONS = (PARTITION_ACCEPTED, PARTITION_DELIVERED, PARTITION_WALKIN)
SPENDING_PARTITIONS = (PARTITION_PENDING, PARTITION_ACCEPTED, PARTITION_DELIVERED, PARTITION_WALKIN)
ANALYTICS_PARTITIONS = SPENDING_PARTITIONS

PENDING_QUEUE_STATUSES = ("Pending", "pending", STATUS_ACTIVE)

CANCELLATION_HISTORY_STATUS = {
    "pending_review": "cancel_requested",
    "pending": "cancel_requested",
    "approved": "cancel_approved",
    "rejected": "cancel_rejected",
    "processed": "cancel_processed",
}

BY_EMAIL_KEY = "by-email"


# =============================================================================
# LINE ITEMS
# =============================================================================

def normalize_line_item(raw: dict) -> dict:
    """
    Accept a cart item ({id, name, quantity, price, ...}) or a legacy order
    line ({item_id, item_name, amount_per_item, price_per_item, ...}) and
    return the internal cents-based line.
    """
    if not isinstance(raw, dict):
        raise ValidationError("Each order item must be an object")

    quantity = raw.get("quantity", raw.get("amount_per_item"))
    quantity = 1 if quantity is None else coerce_quantity(quantity)

    unit_price_cents = to_cents(raw.get("price", raw.get("price_per_item")), field="price")
    line_total = raw.get("total_item_price")
    line_total_cents = (
        to_cents(line_total, field="total_item_price")
        if line_total not in (None, "")
        else unit_price_cents * quantity
    )

    category = raw.get("categoryOriginal") or raw.get("category_original") or raw.get("category")
    bucket = raw.get("categoryBucket") or raw.get("category_bucket") or normalize_category_bucket(category)

    item_id = raw.get("id", raw.get("item_id"))
    return {
        "item_id": str(item_id) if item_id not in (None, "") else None,
        "item_name": raw.get("name") or raw.get("item_name") or "Unknown Item",
        "quantity": quantity,
        "unit_price_cents": unit_price_cents,
        "line_total_cents": line_total_cents,
        "item_image": raw.get("image") or raw.get("item_image"),
        "category_bucket": bucket,
        "category_original": category or "unknown",
    }


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def _parse_date(value, field: str, *, end_of_day: bool = False):
    if value in (None, ""):
        return None
    try:
        return parse_iso_datetime(str(value), end_of_day=end_of_day)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def _apply_money(order: Order, data: dict) -> None:
    subtotal = to_cents(data.get("subtotal"), field="subtotal", default=-1)
    order.subtotal_cents = subtotal if subtotal >= 0 else sum(i["line_total_cents"] for i in order.items)
    order.delivery_fee_cents = to_cents(data.get("deliveryFee"), field="deliveryFee")
    total = to_cents(data.get("total"), field="total", default=-1)
    order.total_cents = total if total >= 0 else order.subtotal_cents + order.delivery_fee_cents


def _apply_payment_fields(order: Order, data: dict) -> None:
    order.payment_method = optional_text(data.get("paymentMethod"), field="paymentMethod", max_length=64)
    order.payment_type = optional_text(data.get("paymentType"), field="paymentType", max_length=64)
    split = data.get("paymentSplitPercent")
    order.payment_split_percent = (
        coerce_quantity(split, field="paymentSplitPercent") if split not in (None, "") else None
    )
    if order.payment_split_percent is not None and order.payment_split_percent > 100:
        raise ValidationError("paymentSplitPercent must be between 1 and 100")
    order.payment_reference = optional_text(data.get("paymentReference"), field="paymentReference", max_length=255)
    order.payment_amount_cents = to_cents(data.get("paymentAmount"), field="paymentAmount")
    order.change_upon_delivery = bool(data.get("changeUponDelivery", False))
    order.proof_of_payment = data.get("proofOfPayment") or None


def _commit_new_order(order: Order, *, partition: str, actor: str) -> Order:
    def _op():
        OrderStore(partition).insert(order)
        append_order_event(
            order=order,
            event_type=EVENT_CREATED,
            to_partition=partition,
            operation=order.source,
            actor=actor,
            payload={"totalCents": order.total_cents, "itemCount": len(order.items)},
        )
        commit_or_rollback(context={"operation": "create_order", "order_number": order.order_number})
        return order

    duplicate = db.session.query(Order.id).filter(Order.order_number == order.order_number).first()
    if duplicate is not None:
        raise ConflictError(f"Order number {order.order_number} already exists")
    order_number = order.order_number
    try:
        return run_with_retry(_op)
    except SAIntegrityError:
        # Lost a race on the unique order_number
        safe_rollback(context={"order_number": order_number})
        raise ConflictError(f"Order number {order_number} already exists")


# =============================================================================
# CREATION
# =============================================================================

def create_order(data: dict, *, identity=None) -> Order:
    """
    Checkout: create a Pending order.

    Accepts the checkout payload directly or the legacy {userId, order}
    wrapper. Customers always order as themselves.
    """
    if isinstance(data.get("order"), dict):
        data = {"userId": data.get("userId"), **data["order"]}

    user_id = data.get("userId")
    email = (data.get("email") or "").strip() or None
    if identity is not None and not identity.is_staff:
        if user_id not in (None, "") and identity.id and str(user_id) != str(identity.id):
            raise AccessDeniedError("Orders can only be placed for your own account")
        user_id = identity.id
        email = email or identity.email
    if user_id in (None, "") and not email:
        raise ValidationError("Missing userId")

    cart_items = data.get("cartItems")
    if not isinstance(cart_items, list) or not cart_items:
        raise ValidationError("Missing or invalid cartItems")

    order = Order(
        order_number=(data.get("orderNumber") or generate_order_number()),
        user_id=str(user_id) if user_id not in (None, "") else None,
        email=email,
        full_name=optional_text(data.get("fullName"), field="fullName", max_length=255),
        phone_number=optional_text(data.get("phoneNumber"), field="phoneNumber", max_length=64),
        items=[normalize_line_item(i) for i in cart_items],
        address=data.get("address") or None,
        notes=optional_text(data.get("notes"), field="notes") or DEFAULT_NOTES,
        status=data.get("status") or STATUS_ACTIVE,
        source=SOURCE_CHECKOUT,
        order_date=_parse_date(data.get("orderDate"), "orderDate") or utcnow(),
        last_modified_by=identity.actor_label if identity is not None else None,
    )
    _apply_payment_fields(order, data)
    _apply_money(order, data)

    order = _commit_new_order(order, partition=PARTITION_PENDING, actor=order.last_modified_by or "customer")
    current_app.logger.info("Order %s created (%s)", order.order_number, order.id)
    return order


def create_walkin_order(data: dict, *, actor: str | None = None) -> Order:
    """POS walk-in sale: recorded directly in the terminal WalkIn partition."""
    if not isinstance(data, dict) or not data:
        raise ValidationError("Order data is required")
    items = data.get("itemsordered", data.get("cartItems"))
    if not data.get("fullName") or not isinstance(items, list):
        raise ValidationError("Missing required fields: fullName and itemsordered")

    order = Order(
        order_number=(data.get("orderNumber") or generate_order_number()),
        user_id=str(data["userId"]) if data.get("userId") not in (None, "") else None,
        email=(data.get("email") or "").strip() or None,
        full_name=optional_text(data.get("fullName"), field="fullName", max_length=255),
        phone_number=optional_text(data.get("phoneNumber"), field="phoneNumber", max_length=64),
        items=[normalize_line_item(i) for i in items],
        address=data.get("address") or None,
        notes=optional_text(data.get("notes"), field="notes"),
        status=data.get("status") or STATUS_COMPLETED,
        display_status=data.get("displayStatus") or STATUS_COMPLETED,
        source=SOURCE_WALKIN,
        order_date=_parse_date(data.get("orderDate"), "orderDate") or utcnow(),
        last_modified_by=actor,
    )
    _apply_payment_fields(order, data)
    _apply_money(order, data)
    return _commit_new_order(order, partition=PARTITION_WALKIN, actor=actor or "staff")


# =============================================================================
# PENDING-ONLY EDITS
# =============================================================================

def _require_owner_or_staff(order: Order, identity) -> None:
    if not identity.is_staff and not order.owner_matches(user_id=identity.id, email=identity.email):
        raise AccessDeniedError("You can only edit your own orders")


def _edit_pending(order_id, mutate, *, actor: str | None, operation: str) -> Order:
    def _op():
        order = OrderStore(PARTITION_PENDING).find_by_id(order_id, lock=True)
        if order is None:
            if find_in_partitions(order_id, PARTITIONS) is not None:
                raise ConflictError("Only pending orders can be modified")
            raise NotFoundError("Order not found")
        mutate(order)
        order.updated_at = utcnow()
        order.last_modified_by = actor
        append_order_event(
            order=order,
            event_type=EVENT_UPDATED,
            operation=operation,
            actor=actor,
        )
        commit_or_rollback(context={"operation": operation, "order_id": order_id})
        return order

    return run_with_retry(_op)


def update_payment(order_id, payment_updates, *, identity) -> Order:
    """Replace the payment descriptor of a Pending order (owner or staff)."""
    if not isinstance(payment_updates, dict):
        raise ValidationError("paymentUpdates must be an object")

    aliases = {
        "method": "paymentMethod",
        "type": "paymentType",
        "splitPercent": "paymentSplitPercent",
        "reference": "paymentReference",
        "amount": "paymentAmount",
        "proof": "proofOfPayment",
    }
    normalized = {aliases.get(k, k): v for k, v in payment_updates.items()}

    def _mutate(order: Order):
        _require_owner_or_staff(order, identity)
        merged = {
            "paymentMethod": order.payment_method,
            "paymentType": order.payment_type,
            "paymentSplitPercent": order.payment_split_percent,
            "paymentReference": order.payment_reference,
            "paymentAmount": cents_to_amount(order.payment_amount_cents),
            "changeUponDelivery": order.change_upon_delivery,
            "proofOfPayment": order.proof_of_payment,
        }
        merged.update(normalized)
        _apply_payment_fields(order, merged)

    return _edit_pending(order_id, _mutate, actor=identity.actor_label, operation="update_payment")


def verify_payment(order_id, *, verified, verified_by=None, verification_notes=None, actor=None) -> Order:
    if not isinstance(verified, bool):
        raise ValidationError("verified must be true or false")

    def _mutate(order: Order):
        order.payment_verified = verified
        order.payment_verified_by = verified_by or actor
        order.payment_verification_notes = verification_notes or ""
        order.payment_verified_at = utcnow()
        if verified:
            order.status = STATUS_CONFIRMED

    return _edit_pending(order_id, _mutate, actor=actor, operation="verify_payment")


def update_notes(order_id, notes, *, identity) -> Order:
    text = optional_text(notes, field="notes", max_length=2000)

    def _mutate(order: Order):
        _require_owner_or_staff(order, identity)
        order.notes = text or DEFAULT_NOTES

    return _edit_pending(order_id, _mutate, actor=identity.actor_label, operation="update_notes")


# =============================================================================
# CUSTOMER HISTORY
# =============================================================================

def _history_items(lines: list[dict]) -> list[dict]:
    return [
        {
            "name": line.get("item_name"),
            "quantity": line.get("quantity"),
            "price": cents_to_amount(line.get("unit_price_cents")),
            "image": line.get("item_image"),
        }
        for line in lines or []
    ]


def _history_from_order(order: Order, pending_cancellations: set) -> dict:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "collection": order.partition,
        "status": order.status,
        "displayStatus": order.effective_display_status,
        "date": to_utc_z(order.order_date or order.created_at),
        "items": _history_items(order.items),
        "payment": order.payment_dict(),
        "paymentMethod": order.payment_method,
        "paymentType": order.payment_type,
        "paymentSplitPercent": order.payment_split_percent,
        "paymentReference": order.payment_reference,
        "paymentAmount": cents_to_amount(order.payment_amount_cents),
        "changeUponDelivery": order.change_upon_delivery,
        "proofOfPayment": order.proof_of_payment,
        "shipping": {"address": order.address, "phoneNumber": order.phone_number or ""},
        "notes": order.notes,
        "fullName": order.full_name,
        "email": order.email,
        "total": cents_to_amount(order.total_cents),
        "reason": order.denial_reason or order.return_reason,
        "additionalComments": None,
        "submittedAt": None,
        "originalOrderDate": None,
        "hasPendingCancellation": order.id in pending_cancellations,
    }


def _history_from_cancellation(request: CancellationRequest) -> dict:
    status = CANCELLATION_HISTORY_STATUS.get((request.status or "").lower(), "cancel_requested")
    snapshot = request.order_snapshot or {}
    date = request.submitted_at or request.original_order_date
    return {
        "id": request.original_order_id,
        "requestId": request.id,
        "orderNumber": request.order_number,
        "collection": "cancellation",
        "status": status,
        "displayStatus": status,
        "date": to_utc_z(date),
        "items": _history_items(snapshot.get("items")),
        "payment": {
            "method": snapshot.get("payment_method"),
            "type": snapshot.get("payment_type"),
            "splitPercent": snapshot.get("payment_split_percent"),
            "reference": snapshot.get("payment_reference"),
            "amount": cents_to_amount(snapshot.get("payment_amount_cents")),
            "changeUponDelivery": snapshot.get("change_upon_delivery"),
            "proof": snapshot.get("proof_of_payment"),
            "verified": snapshot.get("payment_verified"),
        },
        "paymentMethod": snapshot.get("payment_method"),
        "paymentType": snapshot.get("payment_type"),
        "paymentSplitPercent": snapshot.get("payment_split_percent"),
        "paymentReference": snapshot.get("payment_reference"),
        "paymentAmount": cents_to_amount(snapshot.get("payment_amount_cents")),
        "changeUponDelivery": snapshot.get("change_upon_delivery"),
        "proofOfPayment": snapshot.get("proof_of_payment"),
        "shipping": {"address": snapshot.get("address"), "phoneNumber": request.customer_phone or ""},
        "notes": snapshot.get("notes"),
        "fullName": request.customer_name,
        "email": request.customer_email,
        "total": cents_to_amount(request.original_order_total_cents) or 0,
        "reason": request.reason,
        "additionalComments": request.additional_comments or "",
        "submittedAt": to_utc_z(request.submitted_at),
        "originalOrderDate": to_utc_z(request.original_order_date),
        "hasPendingCancellation": status == "cancel_requested",
    }


def get_user_orders(user_key, *, email=None, full_name=None) -> list[dict]:
    """
    A customer's orders across every live partition plus their cancellation
    requests, newest first.

    `user_key == "by-email"` means the caller has no user id.
    """
    if user_key == "all-staff":
        raise ValidationError(
            "This endpoint is for specific user orders. Use /api/orders/all-staff for staff dashboard orders."
        )
    user_id = None if user_key in (None, "", BY_EMAIL_KEY) else str(user_key)

    orders = (
        db.session.query(Order)
        .filter(
            Order.partition.in_(HISTORY_PARTITIONS),
            owner_filter(user_id=user_id, email=email, full_name=full_name),
        )
        .all()
    )
    requests = list_requests_for_owner(user_id=user_id, email=email)
    if full_name:
        by_name = db.session.query(CancellationRequest).filter(CancellationRequest.customer_name == full_name).all()
        seen = {r.id for r in requests}
        requests.extend(r for r in by_name if r.id not in seen)

    pending_cancellations = {
        r.original_order_id for r in requests if r.status in (REQUEST_PENDING_REVIEW, "pending")
    }
    history = [_history_from_order(o, pending_cancellations) for o in orders]
    history.extend(_history_from_cancellation(r) for r in requests)
    history.sort(key=lambda h: h["date"] or "", reverse=True)
    return history


def get_user_stats(user_key, *, email=None, full_name=None) -> dict:
    user_id = None if user_key in (None, "", BY_EMAIL_KEY) else str(user_key)
    owner = owner_filter(user_id=user_id, email=email, full_name=full_name)

    rows = (
        db.session.query(Order.partition, func.count(Order.id), func.coalesce(func.sum(Order.total_cents), 0))
        .filter(owner)
        .group_by(Order.partition)
        .all()
    )
    counts = {partition: count for partition, count, _ in rows}
    spent = sum(total for partition, _, total in rows if partition in SPENDING_PARTITIONS)
    cancellation_count = len(list_requests_for_owner(user_id=user_id, email=email))

    return {
        "totalOrders": sum(counts.get(p, 0) for p in SPENDING_PARTITIONS) + cancellation_count,
        "pendingOrders": counts.get(PARTITION_PENDING, 0),
        "approvedOrders": counts.get(PARTITION_ACCEPTED, 0),
        "deliveredOrders": counts.get(PARTITION_DELIVERED, 0),
        "walkInOrders": counts.get(PARTITION_WALKIN, 0),
        "cancellationRequests": cancellation_count,
        "totalSpent": cents_to_amount(spent),
    }


# =============================================================================
# STAFF VIEWS
# =============================================================================

def list_pending_queue() -> list[dict]:
    orders = (
        OrderStore(PARTITION_PENDING).query()
        .filter(Order.status.in_(PENDING_QUEUE_STATUSES))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
    return [
        {
            "id": o.id,
            "orderNumber": o.order_number,
            "buyer": o.full_name,
            "status": o.status,
            "total": cents_to_amount(o.total_cents),
        }
        for o in orders
    ]


def _archive_as_dashboard_row(archive: ReturnedOrderArchive, *, minimal: bool) -> dict:
    original = archive.original_order_snapshot or {}
    row = archive.to_dict(include_images=not minimal)
    row.update({
        "collection": "returned",
        "displayStatus": "returned",
        "isReturned": True,
        "returnReason": archive.customer_reason,
        "returnedAt": to_utc_z(archive.processed_at),
        "returnProcessedBy": archive.processed_by,
        "fullName": original.get("full_name") or archive.customer_name,
        "email": original.get("email") or archive.customer_email,
        "phoneNumber": original.get("phone_number") or archive.customer_phone,
        "address": original.get("address"),
        "subtotal": cents_to_amount(original.get("subtotal_cents")),
        "deliveryFee": cents_to_amount(original.get("delivery_fee_cents")),
        "paymentMethod": original.get("payment_method"),
        "paymentType": original.get("payment_type"),
        "paymentVerified": original.get("payment_verified"),
        "notes": original.get("notes"),
        "createdAt": original.get("created_at") or to_utc_z(archive.submitted_at),
        "orderDate": original.get("order_date"),
    })
    return row


def list_all_staff_orders(*, minimal: bool = False, limit: int | None = None) -> list[dict]:
    """Dashboard feed: live orders plus decided returns, newest first."""
    query = (
        db.session.query(Order)
        .filter(Order.partition.in_(STAFF_DASHBOARD_PARTITIONS))
        .order_by(Order.created_at.desc(), Order.id.desc())
    )
    if limit:
        query = query.limit(limit)
    rows = [o.to_dict(minimal=minimal) for o in query.all()]

    archive_query = db.session.query(ReturnedOrderArchive).order_by(ReturnedOrderArchive.processed_at.desc())
    if limit:
        archive_query = archive_query.limit(limit)
    rows.extend(_archive_as_dashboard_row(a, minimal=minimal) for a in archive_query.all())

    rows.sort(key=lambda r: r.get("createdAt") or r.get("orderDate") or r.get("returnedAt") or "", reverse=True)
    if limit:
        rows = rows[:limit]
    return rows


def get_order_details(order_id) -> dict:
    oid = try_coerce_id(order_id)
    order = db.session.get(Order, oid) if oid is not None else None
    if order is None:
        raise NotFoundError("Order not found")
    return order.to_dict()


def list_walkin_orders() -> list[Order]:
    return OrderStore(PARTITION_WALKIN).list_all()


# =============================================================================
# STATISTICS
# =============================================================================

def _partition_totals(*, created_from=None, created_to=None) -> dict:
    query = db.session.query(
        Order.partition,
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_cents), 0),
    )
    if created_from is not None:
        query = query.filter(Order.created_at >= created_from)
    if created_to is not None:
        query = query.filter(Order.created_at <= created_to)
    rows = query.group_by(Order.partition).all()
    return {partition: (count, total) for partition, count, total in rows}


def _units_in(partitions) -> int:
    units = 0
    orders = db.session.query(Order.items).filter(Order.partition.in_(partitions)).all()
    for (items,) in orders:
        for line in items or []:
            quantity = line.get("quantity")
            if isinstance(quantity, int):
                units += quantity
    return units


def walkin_stats() -> dict:
    count, total = _partition_totals().get(PARTITION_WALKIN, (0, 0))
    return {
        "totalWalkInOrders": count,
        "totalRevenue": cents_to_amount(total),
        "averageOrderValue": cents_to_amount(round(total / count)) if count else 0,
    }


def staff_overview() -> dict:
    totals = _partition_totals()

    def count(p):
        return totals.get(p, (0, 0))[0]

    revenue = sum(totals.get(p, (0, 0))[1] for p in REVENUE_PARTITIONS)
    open_cancellations = (
        db.session.query(func.count(CancellationRequest.id))
        .filter(CancellationRequest.status == REQUEST_PENDING_REVIEW)
        .scalar()
    )
    open_returns = (
        db.session.query(func.count(ReturnRequest.id))
        .filter(ReturnRequest.status == REQUEST_PENDING_REVIEW)
        .scalar()
    )
    return {
        "totalPending": count(PARTITION_PENDING),
        "totalAccepted": count(PARTITION_ACCEPTED),
        "totalDelivered": count(PARTITION_DELIVERED),
        "totalDenied": count(PARTITION_DENIED),
        "totalReturned": count(PARTITION_RETURNED),
        "totalCancelled": count(PARTITION_CANCELLED),
        "totalWalkIn": count(PARTITION_WALKIN),
        "totalOrders": sum(count(p) for p in SPENDING_PARTITIONS),
        "totalRevenue": cents_to_amount(revenue),
        "totalDeliveredProducts": _units_in((PARTITION_DELIVERED, PARTITION_WALKIN)),
        "openCancellationRequests": open_cancellations or 0,
        "openReturnRequests": open_returns or 0,
        "lastUpdated": to_utc_z(utcnow()),
    }


def analytics(*, start_date=None, end_date=None) -> dict:
    created_from = _parse_date(start_date, "startDate")
    created_to = _parse_date(end_date, "endDate", end_of_day=True)

    totals = _partition_totals(created_from=created_from, created_to=created_to)
    result = {}
    for partition in ANALYTICS_PARTITIONS:
        count, total = totals.get(partition, (0, 0))
        result[partition] = {"count": count, "revenue": cents_to_amount(total)}
    result["totals"] = {
        "orders": sum(totals.get(p, (0, 0))[0] for p in ANALYTICS_PARTITIONS),
        "revenue": cents_to_amount(sum(totals.get(p, (0, 0))[1] for p in ANALYTICS_PARTITIONS)),
    }
    return result
