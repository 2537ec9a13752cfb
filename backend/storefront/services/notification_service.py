# Overview: Notification Sink; staff/user notifications plus best-effort delivery to the external notifier.

from __future__ import annotations

import httpx
from flask import current_app

from ..extensions import db
from ..models import Notification
from ..models.notifications import AUDIENCE_STAFF, AUDIENCE_USER
from ..time_utils import utcnow
from ..validation import NotFoundError, UpstreamError, try_coerce_id


TYPE_CANCELLATION_REQUEST = "cancellation_request"
TYPE_RETURN_REQUEST = "return_request"
TYPE_RETURN_PROCESSED_APPROVED = "return_processed_approved"
TYPE_RETURN_PROCESSED_REJECTED = "return_processed_rejected"
TYPE_ORDER_RETURN_APPROVED = "order_return_approved"
TYPE_ORDER_RETURN_REJECTED = "order_return_rejected"
TYPE_CANCELLATION_PROCESSED_APPROVED = "cancellation_processed_approved"
TYPE_CANCELLATION_PROCESSED_REJECTED = "cancellation_processed_rejected"
TYPE_ORDER_CANCELLATION_APPROVED = "order_cancellation_approved"
TYPE_ORDER_CANCELLATION_REJECTED = "order_cancellation_rejected"

STAFF_FEED_LIMIT = 100


def _append(
    *,
    audience: str,
    type: str,
    title: str,
    message: str,
    user_id=None,
    priority: str = "medium",
    order_id: int | None = None,
    request_id: int | None = None,
    payload: dict | None = None,
) -> Notification:
    note = Notification(
        audience=audience,
        user_id=str(user_id) if user_id not in (None, "") else None,
        type=type,
        title=title,
        message=message,
        priority=priority,
        order_id=order_id,
        request_id=request_id,
        payload=payload or {},
    )
    db.session.add(note)
    db.session.commit()
    return note


def notify_staff(*, type: str, title: str, message: str, **kwargs) -> Notification:
    """Append a staff notification in its own transaction."""
    return _append(audience=AUDIENCE_STAFF, type=type, title=title, message=message, **kwargs)


def notify_user(*, user_id, type: str, title: str, message: str, email: str | None = None, **kwargs) -> Notification:
    """
    Append a user notification in its own transaction, then forward it to
    the external notifier. Webhook failures are logged, never raised.
    """
    note = _append(
        audience=AUDIENCE_USER, user_id=user_id, type=type, title=title, message=message, **kwargs
    )
    if email:
        try:
            deliver_webhook(to=email, type=type, payload={
                "title": title,
                "message": message,
                **(kwargs.get("payload") or {}),
            })
        except UpstreamError as exc:
            current_app.logger.warning("Notifier delivery failed for %s: %s", type, exc.message)
    return note


def deliver_webhook(*, to: str, type: str, payload: dict) -> bool:
    """
    POST {to, type, payload} to NOTIFIER_WEBHOOK_URL.

    Returns False when no webhook is configured.

    Raises:
        UpstreamError: transport failure or non-2xx answer
    """
    url = current_app.config.get("NOTIFIER_WEBHOOK_URL")
    if not url:
        return False
    timeout = current_app.config.get("NOTIFIER_TIMEOUT_SECONDS", 5)
    try:
        response = httpx.post(url, json={"to": to, "type": type, "payload": payload}, timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as exc:
        raise UpstreamError(f"Notifier webhook failed: {exc}") from exc
    return True


def safe_notify(func, **kwargs) -> Notification | None:
    """
    Run a notify_* call so that it can never fail the caller's transition.

    The decision has already been committed when this runs; a failure here is
    logged and the session cleaned up, nothing else.
    """
    try:
        return func(**kwargs)
    except Exception:
        current_app.logger.exception(
            "Notification %s failed (ignored)", kwargs.get("type", func.__name__)
        )
        db.session.rollback()
        return None


# =============================================================================
# READS / READ FLAG
# =============================================================================

def list_staff_notifications(*, unread_only: bool = True, limit: int = STAFF_FEED_LIMIT) -> list[Notification]:
    query = db.session.query(Notification).filter(Notification.audience == AUDIENCE_STAFF)
    if unread_only:
        query = query.filter(Notification.read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def list_user_notifications(user_id, *, limit: int = STAFF_FEED_LIMIT) -> list[Notification]:
    return (
        db.session.query(Notification)
        .filter(Notification.audience == AUDIENCE_USER, Notification.user_id == str(user_id))
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def mark_read(notification_id, *, audience: str, user_id=None) -> Notification:
    nid = try_coerce_id(notification_id)
    note = db.session.get(Notification, nid) if nid is not None else None
    if note is None or note.audience != audience:
        raise NotFoundError("Notification not found")
    if audience == AUDIENCE_USER and note.user_id != str(user_id):
        # Someone else's notification is indistinguishable from a missing one
        raise NotFoundError("Notification not found")
    if not note.read:
        note.read = True
        note.read_at = utcnow()
        db.session.commit()
    return note
