# Overview: Flask API routes for cancellation requests; parses input and returns JSON responses.

"""
Cancellation Request API Routes

WHY: Customers ask to cancel orders that have not shipped; staff approve or
reject each request.

SECURITY:
- Submitting and checking requests requires an identity token
- Listing and deciding requests is staff only
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_staff
from ..services import cancellation_service
from ..validation import StorefrontError, error_response, require_json_object


cancellations_bp = Blueprint("cancellations", __name__, url_prefix="/api/orders")


@cancellations_bp.post("/cancel-request")
@require_auth
def create_cancellation_request_route():
    """
    Request cancellation of a Pending or Accepted order.

    The order leaves the live collections immediately; staff decide later.

    Request body:
    {
        "orderId": 42,
        "reason": "Changed my mind",
        "additionalComments": "..."  (optional)
    }

    Returns:
        201: {success, message, requestId}
        400: Missing fields or order status not cancellable
        403: Not the caller's order
        404: Order not in Pending or Accepted
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        cancel_request = cancellation_service.create_cancellation_request(
            order_id=data.get("orderId"),
            reason=data.get("reason"),
            additional_comments=data.get("additionalComments"),
            identity=g.identity,
        )
        return jsonify({
            "success": True,
            "message": "Cancellation request submitted successfully",
            "requestId": cancel_request.id,
        }), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create cancellation request")
        return jsonify({"success": False, "error": "Failed to submit cancellation request"}), 500


@cancellations_bp.put("/cancellation-request/<request_id>")
@require_auth
@require_staff
def decide_cancellation_request_route(request_id):
    """
    Request body:
    {
        "action": "approve" | "reject",
        "staffNotes": "..."  (optional)
    }

    Returns:
        200: {success, message, request}
        400: Invalid action or request already decided
        404: Unknown request
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        action = data.get("action")
        cancel_request = cancellation_service.decide_cancellation_request(
            request_id,
            action=action,
            staff_notes=data.get("staffNotes"),
            actor=g.identity.actor_label,
        )
        return jsonify({
            "success": True,
            "message": f"Cancellation request {cancel_request.status} successfully",
            "request": cancel_request.to_dict(),
        })
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process cancellation request %s", request_id)
        return jsonify({"success": False, "error": "Failed to process cancellation request"}), 500


@cancellations_bp.get("/cancellation-requests")
@require_auth
@require_staff
def list_cancellation_requests_route():
    """Query params: status (optional)."""
    try:
        requests = cancellation_service.list_cancellation_requests(status=request.args.get("status"))
        return jsonify({"success": True, "requests": [r.to_dict() for r in requests]})
    except Exception:
        current_app.logger.exception("Failed to list cancellation requests")
        return jsonify({"success": False, "error": "Failed to fetch cancellation requests"}), 500


@cancellations_bp.get("/cancellation-request/<request_id>")
@require_auth
@require_staff
def get_cancellation_request_route(request_id):
    try:
        return jsonify({"success": True, "request": cancellation_service.get_cancellation_request(request_id).to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to fetch cancellation request %s", request_id)
        return jsonify({"success": False, "error": "Failed to fetch cancellation request"}), 500


@cancellations_bp.post("/check-cancellation-requests")
@require_auth
def check_cancellation_requests_route():
    """
    Request body: {"orderIds": [1, 2, 3]}

    Returns:
        200: {success, pendingCancellations: {"1": true}}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        pending = cancellation_service.check_pending_cancellations(data.get("orderIds"))
        return jsonify({"success": True, "pendingCancellations": pending})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to check cancellation requests")
        return jsonify({"success": False, "error": "Failed to check cancellation requests"}), 500
