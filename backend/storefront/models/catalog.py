from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z, utcnow
from storefront.validation import cents_to_amount


class Product(db.Model):
    """
    Catalog product with its authoritative on-hand quantity.

    STOCK DESIGN DECISION:
    Product.stock_quantity is the ONLY authoritative stock figure.
    - Checkout holds (StockReservation) never touch it
    - Decrements happen in one transaction with a version check
    - Products are never deleted, only deactivated (order lines keep pointing at them)
    """
    __tablename__ = "products"
    __table_args__ = (
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_non_negative"),
        db.Index("ix_products_active_category", "is_active", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True, index=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(500), nullable=True)

    # Authoritative storage in cents (legacy catalogs carried several price spellings)
    price_cents = db.Column(db.Integer, nullable=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "image": self.image_url,
            "price": cents_to_amount(self.price_cents),
            "stockQuantity": self.stock_quantity,
            "isActive": self.is_active,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }


RESERVATION_ACTIVE = "active"
RESERVATION_FULFILLED = "fulfilled"
RESERVATION_RELEASED = "released"
RESERVATION_EXPIRED = "expired"


class StockReservation(db.Model):
    """
    Time-bounded, advisory hold on stock during an in-progress checkout.

    Never authoritative: expired holds are void whether or not the sweeper
    has visited them yet.
    """
    __tablename__ = "stock_reservations"
    __table_args__ = (
        db.Index("ix_stock_reservations_status_expires", "status", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    reservation_id = db.Column(db.String(128), nullable=False, unique=True)
    items = db.Column(db.JSON, nullable=False, default=list)

    status = db.Column(db.String(16), nullable=False, default=RESERVATION_ACTIVE)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def is_live(self, now=None) -> bool:
        now = now or utcnow()
        return self.status == RESERVATION_ACTIVE and self.expires_at > now

    def to_dict(self) -> dict:
        return {
            "reservationId": self.reservation_id,
            "items": self.items or [],
            "status": self.status,
            "createdAt": to_utc_z(self.created_at),
            "expiresAt": to_utc_z(self.expires_at),
            "resolvedAt": to_utc_z(self.resolved_at),
        }
