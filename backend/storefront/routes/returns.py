# Overview: Flask API routes for return/exchange requests; parses input and returns JSON responses.

"""
Return / Exchange API Routes

WHY: Customers request a return or exchange against an order; staff accept
or reject it and every decision is archived in ReturnedOrders.

DESIGN:
- Requesting a return never removes the order
- Accepting removes the order; rejecting leaves it untouched
- Both decisions keep the customer's image and the staff decision image

SECURITY:
- Submitting requires an identity token
- Listing, deciding and documentation are staff only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_staff
from ..services import return_service
from ..validation import StorefrontError, error_response, require_json_object


returns_bp = Blueprint("returns", __name__, url_prefix="/api/orders")


# =============================================================================
# RETURN REQUESTS
# =============================================================================

@returns_bp.post("/return-request")
@require_auth
def create_return_request_route():
    """
    Request body:
    {
        "orderId": 42,
        "returnType": "return" | "exchange",
        "selectedItems": [{"item_id": "1", "item_name": "Chair", "quantity": 1}],
        "reason": "Damaged on arrival",
        "additionalComments": "...",  (optional)
        "returnImage": "data:image/..."  (optional)
    }

    Returns:
        201: {success, message, requestId}
        400: Missing fields or an open request already exists
        403: Not the caller's order
        404: Order not found
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        return_request = return_service.create_return_request(
            order_id=data.get("orderId"),
            return_type=data.get("returnType"),
            selected_items=data.get("selectedItems"),
            reason=data.get("reason"),
            additional_comments=data.get("additionalComments"),
            return_image=data.get("returnImage"),
            identity=g.identity,
        )
        return jsonify({
            "success": True,
            "message": "Return request submitted successfully",
            "requestId": return_request.id,
        }), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create return request")
        return jsonify({"success": False, "error": "Failed to submit return request"}), 500


@returns_bp.put("/return-request/<request_id>")
@require_auth
@require_staff
def decide_return_request_route(request_id):
    """
    Request body:
    {
        "action": "approve" | "reject",
        "staffNotes": "...",  (optional)
        "returnImage": "data:image/..."  (optional, staff decision image)
    }

    Returns:
        200: {success, message, returnedOrder}
        400: Invalid action
        404: Unknown request or original order gone
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        archive = return_service.decide_return_request(
            request_id,
            action=data.get("action"),
            staff_notes=data.get("staffNotes"),
            return_image=data.get("returnImage"),
            actor=g.identity.actor_label,
        )
        return jsonify({
            "success": True,
            "message": f"Return request {archive.staff_decision} successfully",
            "returnedOrder": archive.to_dict(),
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process return request %s", request_id)
        return jsonify({"success": False, "error": "Failed to process return request"}), 500


@returns_bp.get("/return-requests")
@require_auth
@require_staff
def list_return_requests_route():
    try:
        requests = return_service.list_return_requests()
        return jsonify({"success": True, "requests": [r.to_dict() for r in requests]})
    except Exception:
        current_app.logger.exception("Failed to list return requests")
        return jsonify({"success": False, "error": "Failed to fetch return requests"}), 500


# =============================================================================
# RETURNED ORDERS ARCHIVE
# =============================================================================

@returns_bp.get("/returned")
@require_auth
@require_staff
def list_returned_orders_route():
    """Query params: limit (optional), minimal ("true" drops images)."""
    limit = request.args.get("limit", type=int)
    minimal = request.args.get("minimal", "").lower() == "true"
    try:
        archives = return_service.list_returned_orders(limit=limit)
        return jsonify({
            "success": True,
            "orders": [a.to_dict(include_images=not minimal) for a in archives],
        })
    except Exception:
        current_app.logger.exception("Failed to list returned orders")
        return jsonify({"success": False, "error": "Failed to fetch returned orders"}), 500


@returns_bp.get("/<order_id>/return-documentation")
@require_auth
@require_staff
def return_documentation_route(order_id):
    try:
        return jsonify({"success": True, "documentation": return_service.get_return_documentation(order_id)})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch return documentation for %s", order_id)
        return jsonify({"success": False, "error": "Failed to fetch return documentation"}), 500
