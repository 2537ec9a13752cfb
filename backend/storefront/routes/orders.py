# Overview: Flask API routes for orders (checkout, moves, staff views, statistics, customer history).

"""
Order API Routes

WHY: The storefront places orders and reads its own history; staff move
orders through the lifecycle and read the dashboard views.

SECURITY:
- Every route requires an identity token
- Moves, walk-in sales, payment verification and dashboard reads are staff only
- Customers only ever see their own orders; `fullName` lookups are staff only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_staff
from ..services import move_service, order_service
from ..services.ledger_service import list_order_events
from ..validation import (
    AccessDeniedError,
    StorefrontError,
    error_response,
    require_fields,
    require_json_object,
    try_coerce_id,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _owner_keys_for(user_key):
    """
    Owner keys the caller may query with.

    Staff may look up anyone (including by fullName); customers only
    themselves.
    """
    identity = g.identity
    if identity.is_staff:
        return (
            user_key,
            request.args.get("email") or None,
            request.args.get("fullName") or None,
        )
    if user_key not in (order_service.BY_EMAIL_KEY, identity.id):
        raise AccessDeniedError("You can only view your own orders")
    return (identity.id or order_service.BY_EMAIL_KEY, identity.email, None)


# =============================================================================
# CHECKOUT
# =============================================================================

@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Checkout: create a Pending order.

    Request body (flat, or legacy {"userId", "order": {...}}):
    {
        "cartItems": [{"id": 1, "name": "Sofa", "quantity": 1, "price": 1500}],
        "fullName": "Ana Cruz",
        "email": "ana@example.com",
        "phoneNumber": "0917...",
        "address": {...},
        "paymentMethod": "gcash",
        "paymentType": "full",
        "deliveryFee": 150,
        "notes": "..."
    }

    Returns:
        201: {success, message, orderId, orderNumber}
        400: Missing/invalid cartItems or owner keys
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        order = order_service.create_order(data, identity=g.identity)
        return jsonify({
            "success": True,
            "message": "Order saved successfully",
            "orderId": order.id,
            "orderNumber": order.order_number,
        }), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save order")
        return jsonify({"success": False, "error": "Failed to save order"}), 500


# =============================================================================
# MOVES
# =============================================================================

@orders_bp.post("/move")
@require_auth
@require_staff
def move_order_route():
    """
    Move an order between lifecycle collections.

    Request body:
    {
        "orderId": 42,
        "operation": "accept",
        "fromCollection": "PendingOrders",
        "toCollection": "AcceptedOrders",
        "denialReason": "...",  (optional, Denied only)
        "returnReason": "...",  (optional, Returned only)
        "returnImage": "data:image/..."  (optional, Returned only)
    }

    Returns:
        200: {success, newOrderId, orderId, operation, fromCollection, toCollection}
        400: Unknown collection, missing fields or disallowed transition
        404: Order not in fromCollection
        500: Commit and rollback both failed
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        require_fields(
            data,
            ("orderId", "fromCollection", "toCollection"),
            message="Missing required fields: orderId, fromCollection, toCollection",
        )

        order = move_service.move_order(
            data["orderId"],
            data["fromCollection"],
            data["toCollection"],
            operation=data.get("operation"),
            actor=g.identity.actor_label,
            denial_reason=data.get("denialReason"),
            return_reason=data.get("returnReason"),
            return_image=data.get("returnImage"),
        )
        return jsonify({
            "success": True,
            "message": "Order moved successfully",
            "newOrderId": order.id,
            "orderId": order.id,
            "operation": data.get("operation"),
            "fromCollection": data["fromCollection"],
            "toCollection": data["toCollection"],
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to move order")
        return jsonify({"success": False, "error": "Failed to move order"}), 500


@orders_bp.get("/<order_id>/events")
@require_auth
@require_staff
def order_events_route(order_id):
    """Audit trail for one order, oldest first (kept after purge)."""
    oid = try_coerce_id(order_id)
    if oid is None:
        return jsonify({"success": False, "error": "Invalid order id"}), 400
    events = list_order_events(oid)
    return jsonify({"success": True, "events": [e.to_dict() for e in events]})


# =============================================================================
# WALK-IN (POS)
# =============================================================================

@orders_bp.post("/walkin")
@require_auth
@require_staff
def create_walkin_route():
    """
    Record a completed POS sale.

    Request body:
    {
        "fullName": "Walk-in Customer",
        "itemsordered": [{"item_id": "1", "item_name": "Chair", "amount_per_item": 2, "price_per_item": 500}],
        "total": 1000,
        "paymentMethod": "cash"
    }

    Returns:
        201: {success, message, insertedId, orderId}
        400: Missing fullName or itemsordered
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        order = order_service.create_walkin_order(data, actor=g.identity.actor_label)
        return jsonify({
            "success": True,
            "message": "Walk-in order saved successfully",
            "insertedId": order.id,
            "orderId": order.order_number,
        }), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to save walk-in order")
        return jsonify({"success": False, "error": "Failed to save walk-in order"}), 500


@orders_bp.get("/walkin")
@require_auth
@require_staff
def list_walkin_route():
    try:
        orders = order_service.list_walkin_orders()
        return jsonify({"success": True, "orders": [o.to_dict() for o in orders], "count": len(orders)})
    except Exception:
        current_app.logger.exception("Failed to fetch walk-in orders")
        return jsonify({"success": False, "error": "Failed to fetch walk-in orders"}), 500


@orders_bp.get("/walkin/stats")
@require_auth
@require_staff
def walkin_stats_route():
    try:
        return jsonify({"success": True, "stats": order_service.walkin_stats()})
    except Exception:
        current_app.logger.exception("Failed to compute walk-in stats")
        return jsonify({"success": False, "error": "Failed to fetch walk-in stats"}), 500


# =============================================================================
# STAFF VIEWS
# =============================================================================

@orders_bp.get("/pending")
@require_auth
@require_staff
def pending_queue_route():
    try:
        return jsonify(order_service.list_pending_queue())
    except Exception:
        current_app.logger.exception("Failed to fetch pending orders")
        return jsonify({"success": False, "error": "Failed to fetch pending orders"}), 500


@orders_bp.get("/all-staff")
@require_auth
@require_staff
def all_staff_orders_route():
    """
    Dashboard feed across live collections plus decided returns.

    Query params:
    - minimal: "true" drops images and proof of payment
    - limit: int (optional)
    """
    minimal = request.args.get("minimal", "").lower() == "true"
    limit = request.args.get("limit", type=int)
    try:
        return jsonify(order_service.list_all_staff_orders(minimal=minimal, limit=limit))
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch staff orders")
        return jsonify({"success": False, "error": "Failed to fetch orders"}), 500


@orders_bp.get("/details/<order_id>")
@require_auth
@require_staff
def order_details_route(order_id):
    try:
        return jsonify(order_service.get_order_details(order_id))
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch order %s", order_id)
        return jsonify({"success": False, "error": "Failed to fetch order details"}), 500


# =============================================================================
# STATISTICS
# =============================================================================

@orders_bp.get("/stats/staff-overview")
@orders_bp.get("/stats/comprehensive")
@require_auth
@require_staff
def staff_overview_route():
    try:
        return jsonify(order_service.staff_overview())
    except Exception:
        current_app.logger.exception("Failed to compute staff overview")
        return jsonify({"success": False, "error": "Failed to fetch statistics"}), 500


@orders_bp.get("/stats/<user_key>")
@require_auth
def user_stats_route(user_key):
    try:
        user_key, email, full_name = _owner_keys_for(user_key)
        return jsonify(order_service.get_user_stats(user_key, email=email, full_name=full_name))
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute user stats")
        return jsonify({"success": False, "error": "Failed to fetch statistics"}), 500


@orders_bp.get("/analytics")
@require_auth
@require_staff
def analytics_route():
    """
    Query params:
    - startDate / endDate: ISO dates (optional, endDate inclusive)
    """
    try:
        result = order_service.analytics(
            start_date=request.args.get("startDate"),
            end_date=request.args.get("endDate"),
        )
        return jsonify({"success": True, "analytics": result})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute analytics")
        return jsonify({"success": False, "error": "Failed to fetch analytics"}), 500


# =============================================================================
# PENDING-ONLY EDITS
# =============================================================================

@orders_bp.put("/<order_id>/payment")
@require_auth
def update_payment_route(order_id):
    """
    Request body: {"paymentUpdates": {"method": "...", "reference": "...", "proof": "..."}}

    Returns:
        200: {success, message, order}
        400: Order no longer Pending
        403: Not the caller's order
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        order = order_service.update_payment(order_id, data.get("paymentUpdates"), identity=g.identity)
        return jsonify({"success": True, "message": "Payment updated successfully", "order": order.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment for order %s", order_id)
        return jsonify({"success": False, "error": "Failed to update payment"}), 500


@orders_bp.put("/<order_id>/verify-payment")
@require_auth
@require_staff
def verify_payment_route(order_id):
    """
    Request body: {"verified": true, "verifiedBy": "...", "verificationNotes": "..."}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        verified = data.get("verified")
        order = order_service.verify_payment(
            order_id,
            verified=verified,
            verified_by=data.get("verifiedBy"),
            verification_notes=data.get("verificationNotes"),
            actor=g.identity.actor_label,
        )
        return jsonify({
            "success": True,
            "message": f"Payment {'verified' if verified else 'rejected'} successfully",
            "order": order.to_dict(),
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to verify payment for order %s", order_id)
        return jsonify({"success": False, "error": "Failed to verify payment"}), 500


@orders_bp.put("/<order_id>/notes")
@require_auth
def update_notes_route(order_id):
    try:
        data = require_json_object(request.get_json(silent=True))
        order = order_service.update_notes(order_id, data.get("notes"), identity=g.identity)
        return jsonify({"success": True, "message": "Notes updated successfully", "order": order.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update notes for order %s", order_id)
        return jsonify({"success": False, "error": "Failed to update notes"}), 500


# =============================================================================
# CUSTOMER HISTORY
# =============================================================================

@orders_bp.get("/<user_key>")
@require_auth
def user_orders_route(user_key):
    """
    Merged history for one owner, newest first.

    Path: the user id, or "by-email" for email-only customers.

    Query params (staff only):
    - email
    - fullName
    """
    try:
        user_key, email, full_name = _owner_keys_for(user_key)
        return jsonify(order_service.get_user_orders(user_key, email=email, full_name=full_name))
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch orders for %s", user_key)
        return jsonify({"success": False, "error": "Failed to fetch orders"}), 500
