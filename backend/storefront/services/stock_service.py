# Overview: Stock Ledger; per-product available quantity, checkout holds, decrement and restore.

from __future__ import annotations

from collections import OrderedDict

from flask import current_app
from sqlalchemy.exc import IntegrityError as SAIntegrityError

from ..extensions import db
from ..models import Product, StockReservation
from ..models.catalog import (
    RESERVATION_ACTIVE,
    RESERVATION_EXPIRED,
    RESERVATION_FULFILLED,
    RESERVATION_RELEASED,
)
from ..time_utils import minutes_from_now, to_utc_z, utcnow
from ..validation import (
    ConflictError,
    NotFoundError,
    ValidationError,
    coerce_quantity,
    parse_stock_items,
    try_coerce_id,
)
from .concurrency import commit_or_rollback, lock_for_update, run_with_retry
"""
Stock Ledger Invariants (authoritative)

- Product.stock_quantity is the only authoritative stock figure and never
  goes below zero (CHECK constraint + pre-validation).
- A decrement batch is all-or-nothing: one transaction, every row locked and
  version-checked, nothing applied when any item is missing or short.
- Reservations are advisory holds. They never change stock_quantity; an
  expired hold is void whether or not the sweeper has marked it yet.
- Restores are best-effort per item: unknown products are skipped and logged.
"""


def _require_item_list(items) -> list[dict]:
    if not isinstance(items, list):
        raise ValidationError("Items array is required")
    return parse_stock_items(items)


def _load_product(raw_id, *, lock: bool = False) -> Product | None:
    pid = try_coerce_id(raw_id)
    if pid is None:
        return None
    query = db.session.query(Product).filter(Product.id == pid)
    if lock:
        query = lock_for_update(query)
    return query.first()


def _aggregate(items: list[dict]) -> "OrderedDict[object, int]":
    """Sum quantities per product id, keeping first-seen order."""
    totals: OrderedDict = OrderedDict()
    for item in items:
        key = item["id"]
        pid = try_coerce_id(key)
        key = pid if pid is not None else key
        totals[key] = totals.get(key, 0) + item["quantity"]
    return totals


# =============================================================================
# READS
# =============================================================================

def validate_stock(items) -> dict:
    """
    Read-only availability check for a checkout basket.

    Same input and no intervening mutation -> same output.
    """
    parsed = _require_item_list(items)

    results = []
    all_valid = True
    for item in parsed:
        product = _load_product(item["id"])
        if product is None:
            all_valid = False
            results.append({
                "id": item["id"],
                "name": "Unknown Product",
                "requestedQuantity": item["quantity"],
                "availableStock": 0,
                "valid": False,
                "error": "Product not found",
            })
            continue

        valid = product.stock_quantity >= item["quantity"]
        if not valid:
            all_valid = False
        results.append({
            "id": item["id"],
            "name": product.name,
            "requestedQuantity": item["quantity"],
            "availableStock": product.stock_quantity,
            "valid": valid,
            "error": None if valid else "Insufficient stock",
        })

    return {"allValid": all_valid, "items": results}


def get_stock_levels(product_ids) -> list[dict]:
    if not isinstance(product_ids, list):
        raise ValidationError("Product IDs array is required")

    levels = []
    for raw_id in product_ids:
        product = _load_product(raw_id)
        if product is None:
            continue
        levels.append({
            "id": product.id,
            "name": product.name,
            "stockQuantity": product.stock_quantity,
            "isActive": product.is_active,
        })
    return levels


# =============================================================================
# RESERVATIONS
# =============================================================================

def sweep_expired_reservations(now=None) -> int:
    """Mark active holds past their expiry as expired. Caller commits."""
    now = now or utcnow()
    expired = (
        db.session.query(StockReservation)
        .filter(
            StockReservation.status == RESERVATION_ACTIVE,
            StockReservation.expires_at <= now,
        )
        .all()
    )
    for reservation in expired:
        reservation.status = RESERVATION_EXPIRED
        reservation.resolved_at = now
    if expired:
        current_app.logger.info("Expired %d stock reservation(s)", len(expired))
    return len(expired)


def reserve_stock(items, reservation_id, expires_in_minutes=None) -> dict:
    """
    Record an expiry-bearing hold for a checkout. Never touches stock_quantity.
    """
    if not isinstance(items, list) or not reservation_id:
        raise ValidationError("Items array and reservationId are required")
    parsed = parse_stock_items(items)

    if expires_in_minutes is None:
        minutes = current_app.config["RESERVATION_DEFAULT_MINUTES"]
    else:
        minutes = coerce_quantity(expires_in_minutes, field="expiresInMinutes")
    if minutes > current_app.config["RESERVATION_MAX_MINUTES"]:
        raise ValidationError(
            f"expiresInMinutes cannot exceed {current_app.config['RESERVATION_MAX_MINUTES']}"
        )

    reservation_id = str(reservation_id)
    sweep_expired_reservations()

    existing = db.session.query(StockReservation).filter_by(reservation_id=reservation_id).first()
    if existing is not None:
        raise ConflictError(f"Reservation {reservation_id} already exists")

    reservation = StockReservation(
        reservation_id=reservation_id,
        items=parsed,
        status=RESERVATION_ACTIVE,
        expires_at=minutes_from_now(minutes),
    )
    db.session.add(reservation)
    try:
        commit_or_rollback(context={"reservation_id": reservation_id})
    except SAIntegrityError:
        # Lost a race on the unique reservation_id
        raise ConflictError(f"Reservation {reservation_id} already exists")

    return {
        "reservationId": reservation.reservation_id,
        "expiresAt": to_utc_z(reservation.expires_at),
        "message": f"Stock reserved for {minutes} minutes",
    }


def _resolve_reservation_for_fulfillment(reservation_id: str) -> StockReservation:
    reservation = lock_for_update(
        db.session.query(StockReservation).filter_by(reservation_id=str(reservation_id))
    ).first()
    if reservation is None:
        raise NotFoundError(f"Reservation not found: {reservation_id}")
    if not reservation.is_live():
        raise ConflictError(f"Reservation {reservation_id} is no longer active")
    return reservation


# =============================================================================
# DECREMENT / RESTORE
# =============================================================================

def decrement_stock(updates, *, reservation_id=None) -> dict:
    """
    Atomically subtract a batch of quantities.

    Validation runs for every item before any change; the whole batch shares
    one transaction so a failure anywhere leaves stock untouched.

    Raises:
        ValidationError: malformed payload
        NotFoundError: any product id does not resolve
        ConflictError: any product is short (names available and requested)
    """
    parsed = parse_stock_items(updates, field="updates")
    totals = _aggregate(parsed)

    def _op():
        locked = []
        for raw_id, quantity in totals.items():
            product = _load_product(raw_id, lock=True)
            if product is None:
                raise NotFoundError(f"Product not found: {raw_id}")
            if product.stock_quantity < quantity:
                raise ConflictError(
                    f"Insufficient stock for {product.name}. "
                    f"Available: {product.stock_quantity}, Requested: {quantity}",
                    details={
                        "productId": product.id,
                        "available": product.stock_quantity,
                        "requested": quantity,
                    },
                )
            locked.append((product, quantity))

        reservation = None
        if reservation_id:
            reservation = _resolve_reservation_for_fulfillment(reservation_id)

        results = []
        for product, quantity in locked:
            product.stock_quantity -= quantity
            results.append({
                "productId": product.id,
                "productName": product.name,
                "decrementedQuantity": quantity,
                "newStock": product.stock_quantity,
            })

        if reservation is not None:
            reservation.status = RESERVATION_FULFILLED
            reservation.resolved_at = utcnow()

        commit_or_rollback(context={"operation": "decrement_stock", "items": parsed})
        return results

    try:
        results = run_with_retry(_op)
    except (NotFoundError, ConflictError):
        db.session.rollback()
        raise

    return {"message": "Stock updated successfully", "results": results}


def restore_stock(items, *, reason: str | None = None, reservation_id=None) -> dict:
    """
    Put quantities back on the shelf (cancellation/denial paths).

    When `reservation_id` names a hold that never took stock (active,
    expired or already released) the hold is released and nothing is added
    back. Only a fulfilled hold, or no hold at all, restores quantities.
    """
    parsed = _require_item_list(items)
    reason = reason or "Order cancelled"

    if reservation_id:
        reservation = lock_for_update(
            db.session.query(StockReservation).filter_by(reservation_id=str(reservation_id))
        ).first()
        if reservation is not None and reservation.status != RESERVATION_FULFILLED:
            if reservation.status == RESERVATION_ACTIVE:
                reservation.status = RESERVATION_RELEASED
                reservation.resolved_at = utcnow()
                commit_or_rollback(context={"reservation_id": reservation_id})
            else:
                current_app.logger.info(
                    "Reservation %s already %s; no stock restored", reservation_id, reservation.status
                )
                db.session.rollback()
            return {
                "message": f"Reservation {reservation_id} released",
                "reason": reason,
                "released": True,
                "results": [],
            }

    def _op():
        results = []
        for raw_id, quantity in _aggregate(parsed).items():
            product = _load_product(raw_id, lock=True)
            if product is None:
                current_app.logger.warning("Product not found for restoration: %s", raw_id)
                continue
            product.stock_quantity += quantity
            results.append({
                "productId": product.id,
                "productName": product.name,
                "restoredQuantity": quantity,
                "newStock": product.stock_quantity,
            })
        commit_or_rollback(context={"operation": "restore_stock", "reason": reason})
        return results

    results = run_with_retry(_op)
    return {
        "message": f"Stock restored for {len(results)} products",
        "reason": reason,
        "released": False,
        "results": results,
    }


def restock_items(order_items: list[dict]) -> int:
    """
    Add an order's line quantities back to stock inside the CALLER'S
    transaction (move to Denied, cancellation approval). Does not commit.

    Returns the number of units restored.
    """
    restored = 0
    for line in order_items or []:
        quantity = line.get("quantity")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            continue
        product = _load_product(line.get("item_id"), lock=True)
        if product is None:
            current_app.logger.warning(
                "Restock skipped, product not found: %s", line.get("item_id")
            )
            continue
        product.stock_quantity += quantity
        restored += quantity
    return restored


def set_stock(product_id, quantity) -> Product:
    """Absolute stock override (staff)."""
    if isinstance(quantity, bool) or not isinstance(quantity, (int, float)) or quantity < 0:
        raise ValidationError("Invalid quantity")
    quantity = coerce_quantity(quantity, allow_zero=True)

    def _op():
        product = _load_product(product_id, lock=True)
        if product is None:
            raise NotFoundError("Product not found")
        product.stock_quantity = quantity
        commit_or_rollback(context={"operation": "set_stock", "product_id": product.id})
        return product

    return run_with_retry(_op)
