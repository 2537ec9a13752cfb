# Overview: Partition-scoped access to the orders table (insert, find, delete, owner queries, listings).

from __future__ import annotations

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Order
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
from ..validation import ValidationError, try_coerce_id
from .concurrency import lock_for_update


# Names accepted at the API boundary (legacy collection names included)
PARTITION_ALIASES = {
    "orders": PARTITION_PENDING,
    "pending": PARTITION_PENDING,
    "pendingorders": PARTITION_PENDING,
    "accepted": PARTITION_ACCEPTED,
    "acceptedorders": PARTITION_ACCEPTED,
    "delivered": PARTITION_DELIVERED,
    "deliveredorders": PARTITION_DELIVERED,
    "denied": PARTITION_DENIED,
    "deniedorders": PARTITION_DENIED,
    "returned": PARTITION_RETURNED,
    "returnedorders": PARTITION_RETURNED,
    "cancelled": PARTITION_CANCELLED,
    "cancelledorders": PARTITION_CANCELLED,
    "walkin": PARTITION_WALKIN,
    "walkinorders": PARTITION_WALKIN,
}

SORT_ORDERS = {
    "created_at_desc": (Order.created_at.desc(), Order.id.desc()),
    "created_at_asc": (Order.created_at.asc(), Order.id.asc()),
    "order_date_desc": (Order.order_date.desc(), Order.id.desc()),
}

FILTERABLE_FIELDS = {"status", "user_id", "email", "source", "order_number"}


def resolve_partition(name) -> str:
    """Map a boundary partition name to its canonical value or raise ValidationError."""
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Collection name is required")
    key = name.strip().lower().replace("_", "").replace("-", "")
    partition = PARTITION_ALIASES.get(key)
    if partition is None:
        raise ValidationError(f"Unknown collection: {name}")
    return partition


def owner_filter(*, user_id=None, email=None, full_name=None):
    """
    OR of the supplied owner keys. String and numeric user ids are one key.

    Fails closed: with no key at all there is nothing to match.
    """
    clauses = []
    if user_id not in (None, ""):
        clauses.append(Order.user_id == str(user_id))
    if email:
        clauses.append(func.lower(Order.email) == str(email).strip().lower())
    if full_name:
        clauses.append(Order.full_name == str(full_name).strip())
    if not clauses:
        raise ValidationError("At least one owner key (userId, email, fullName) is required")
    return or_(*clauses)


class OrderStore:
    """
    One lifecycle partition of the orders table.

    Every read is filtered by partition, so an order that has moved on is
    simply not found here.
    """

    def __init__(self, partition: str):
        if partition not in PARTITIONS:
            partition = resolve_partition(partition)
        self.partition = partition

    def __repr__(self) -> str:
        return f"<OrderStore {self.partition}>"

    def query(self):
        return db.session.query(Order).filter(Order.partition == self.partition)

    def insert(self, order: Order) -> int:
        """Add to the session in this partition and flush for the id. Caller commits."""
        order.partition = self.partition
        db.session.add(order)
        db.session.flush()
        return order.id

    def find_by_id(self, order_id, *, lock: bool = False) -> Order | None:
        oid = try_coerce_id(order_id)
        if oid is None:
            return None
        query = self.query().filter(Order.id == oid)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def delete_by_id(self, order_id) -> bool:
        """Delete within the current transaction. Caller commits."""
        order = self.find_by_id(order_id, lock=True)
        if order is None:
            return False
        db.session.delete(order)
        db.session.flush()
        return True

    def query_by_owner(self, *, user_id=None, email=None, full_name=None) -> list[Order]:
        return (
            self.query()
            .filter(owner_filter(user_id=user_id, email=email, full_name=full_name))
            .order_by(*SORT_ORDERS["created_at_desc"])
            .all()
        )

    def list_all(self, filters: dict | None = None, sort: str = "created_at_desc", limit: int | None = None) -> list[Order]:
        query = self.query()
        for field, value in (filters or {}).items():
            if field not in FILTERABLE_FIELDS:
                raise ValidationError(f"Cannot filter orders by {field}")
            query = query.filter(getattr(Order, field) == value)

        order_by = SORT_ORDERS.get(sort)
        if order_by is None:
            raise ValidationError(f"Unknown sort: {sort}")
        query = query.order_by(*order_by)
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def count(self) -> int:
        return self.query().count()


def find_in_partitions(order_id, partitions, *, lock: bool = False) -> Order | None:
    """First match searching `partitions` in order."""
    for partition in partitions:
        order = OrderStore(partition).find_by_id(order_id, lock=lock)
        if order is not None:
            return order
    return None
