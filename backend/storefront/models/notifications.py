from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow


AUDIENCE_STAFF = "staff"
AUDIENCE_USER = "user"


class Notification(db.Model):
    """
    Staff or customer notification raised by an order workflow.

    Append-only: after creation only `read` / `read_at` ever change.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_audience_read", "audience", "read", "created_at"),
        db.Index("ix_notifications_user", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    audience = db.Column(db.String(16), nullable=False)  # staff, user
    user_id = db.Column(db.String(64), nullable=True)

    type = db.Column(db.String(64), nullable=False)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(16), nullable=False, default="medium")  # low, medium, high

    order_id = db.Column(db.Integer, nullable=True)
    request_id = db.Column(db.Integer, nullable=True)
    payload = db.Column(db.JSON, nullable=True)

    read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "audience": self.audience,
            "userId": self.user_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "orderId": self.order_id,
            "requestId": self.request_id,
            "payload": self.payload or {},
            "read": self.read,
            "readAt": to_utc_z(self.read_at),
            "createdAt": to_utc_z(self.created_at),
        }
