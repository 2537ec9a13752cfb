# Overview: Flask API routes for staff and customer notifications.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_staff
from ..models.notifications import AUDIENCE_STAFF, AUDIENCE_USER
from ..services import notification_service
from ..validation import StorefrontError, error_response


staff_notifications_bp = Blueprint("staff_notifications", __name__, url_prefix="/api/staff/notifications")
notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@staff_notifications_bp.get("")
@require_auth
@require_staff
def unread_staff_notifications_route():
    """Unread staff notifications, newest first."""
    try:
        notes = notification_service.list_staff_notifications(unread_only=True)
        return jsonify({"success": True, "notifications": [n.to_dict() for n in notes]})
    except Exception:
        current_app.logger.exception("Failed to fetch staff notifications")
        return jsonify({"success": False, "error": "Failed to fetch notifications"}), 500


@staff_notifications_bp.get("/all")
@require_auth
@require_staff
def all_staff_notifications_route():
    """Most recent staff notifications, read or not (query param: limit, max 100)."""
    limit = min(request.args.get("limit", notification_service.STAFF_FEED_LIMIT, type=int),
                notification_service.STAFF_FEED_LIMIT)
    try:
        notes = notification_service.list_staff_notifications(unread_only=False, limit=max(limit, 1))
        return jsonify({"success": True, "notifications": [n.to_dict() for n in notes]})
    except Exception:
        current_app.logger.exception("Failed to fetch staff notifications")
        return jsonify({"success": False, "error": "Failed to fetch notifications"}), 500


@staff_notifications_bp.put("/<notification_id>/read")
@require_auth
@require_staff
def mark_staff_notification_read_route(notification_id):
    try:
        note = notification_service.mark_read(notification_id, audience=AUDIENCE_STAFF)
        return jsonify({"success": True, "notification": note.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification %s read", notification_id)
        return jsonify({"success": False, "error": "Failed to update notification"}), 500


@notifications_bp.get("")
@require_auth
def my_notifications_route():
    """The caller's notifications. Email-only identities have none."""
    if not g.identity.id:
        return jsonify({"success": True, "notifications": []})
    try:
        notes = notification_service.list_user_notifications(g.identity.id)
        return jsonify({"success": True, "notifications": [n.to_dict() for n in notes]})
    except Exception:
        current_app.logger.exception("Failed to fetch user notifications")
        return jsonify({"success": False, "error": "Failed to fetch notifications"}), 500


@notifications_bp.put("/<notification_id>/read")
@require_auth
def mark_my_notification_read_route(notification_id):
    try:
        note = notification_service.mark_read(
            notification_id, audience=AUDIENCE_USER, user_id=g.identity.id
        )
        return jsonify({"success": True, "notification": note.to_dict()})
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to mark notification %s read", notification_id)
        return jsonify({"success": False, "error": "Failed to update notification"}), 500
