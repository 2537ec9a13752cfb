"""
Order store and move engine tests.

Verifies:
- Partition-scoped lookups and owner queries (fail closed without keys)
- Allowed and disallowed moves, state stamps, identifier preservation
- An order id is in exactly one partition after every move
- Denial restocks; moves write audit events
- Concurrent moves and checkouts resolve to one winner
- A failed rollback surfaces as IntegrityError with its context
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from storefront.extensions import db
from storefront.models import Order, OrderEvent, Product
from storefront.models.orders import (
    PARTITIONS,
    PARTITION_ACCEPTED,
    PARTITION_DELIVERED,
    PARTITION_DENIED,
    PARTITION_PENDING,
    PARTITION_RETURNED,
    PARTITION_WALKIN,
)
from storefront.services import move_service, order_service
from storefront.services.ledger_service import EVENT_MOVED, list_order_events
from storefront.services.order_store import OrderStore, find_in_partitions, resolve_partition
from storefront.validation import ConflictError, IntegrityError, NotFoundError, ValidationError


def partitions_holding(order_id):
    return [p for p in PARTITIONS if OrderStore(p).find_by_id(order_id) is not None]


# =============================================================================
# ORDER STORE
# =============================================================================


class TestOrderStore:

    def test_find_is_partition_scoped(self, make_order):
        order = make_order()
        assert OrderStore(PARTITION_PENDING).find_by_id(order.id).id == order.id
        assert OrderStore(PARTITION_ACCEPTED).find_by_id(order.id) is None
        assert OrderStore(PARTITION_PENDING).find_by_id("not-an-id") is None

    @pytest.mark.parametrize("alias,expected", [
        ("orders", PARTITION_PENDING),
        ("PendingOrders", PARTITION_PENDING),
        ("AcceptedOrders", PARTITION_ACCEPTED),
        ("walk-in", PARTITION_WALKIN),
        ("returned", PARTITION_RETURNED),
    ])
    def test_partition_aliases(self, alias, expected):
        assert resolve_partition(alias) == expected

    def test_unknown_partition(self):
        with pytest.raises(ValidationError, match="Unknown collection"):
            resolve_partition("ShippedOrders")

    def test_owner_query_matches_either_key(self, make_order):
        by_id = make_order(user_id="7", email=None)
        by_email = make_order(user_id=None, email="Ana@Example.com")
        make_order(user_id="8", email="ben@example.com")

        found = OrderStore(PARTITION_PENDING).query_by_owner(user_id=7, email="ana@example.com")
        assert {o.id for o in found} == {by_id.id, by_email.id}

    def test_owner_query_without_keys_fails_closed(self, make_order):
        make_order()
        with pytest.raises(ValidationError):
            OrderStore(PARTITION_PENDING).query_by_owner()

    def test_list_all_filters_and_limits(self, make_order):
        make_order(status="active")
        make_order(status="confirmed")
        store = OrderStore(PARTITION_PENDING)
        assert len(store.list_all({"status": "confirmed"})) == 1
        assert len(store.list_all(limit=1)) == 1
        with pytest.raises(ValidationError):
            store.list_all({"password": "x"})

    def test_delete_by_id(self, make_order):
        order = make_order()
        store = OrderStore(PARTITION_PENDING)
        assert store.delete_by_id(order.id) is True
        db.session.commit()
        assert store.delete_by_id(order.id) is False
        assert store.count() == 0

    def test_find_in_partitions_searches_in_order(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED)
        found = find_in_partitions(order.id, (PARTITION_PENDING, PARTITION_DELIVERED))
        assert found.partition == PARTITION_DELIVERED


# =============================================================================
# MOVE ENGINE
# =============================================================================


class TestMoveOrder:

    def test_accept_stamps_and_preserves_id(self, make_order):
        order = make_order()
        moved = move_service.move_order(order.id, "PendingOrders", "AcceptedOrders",
                                        operation="accept", actor="Store Staff")

        assert moved.id == order.id
        assert OrderStore(PARTITION_PENDING).find_by_id(order.id) is None
        accepted = OrderStore(PARTITION_ACCEPTED).find_by_id(order.id)
        assert accepted.status == "approved"
        assert accepted.approved_at is not None
        assert accepted.last_modified_by == "Store Staff"

    def test_order_is_in_exactly_one_partition_after_each_move(self, make_order):
        order = make_order()
        path = [
            (PARTITION_PENDING, PARTITION_ACCEPTED),
            (PARTITION_ACCEPTED, PARTITION_PENDING),
            (PARTITION_PENDING, PARTITION_ACCEPTED),
            (PARTITION_ACCEPTED, PARTITION_RETURNED),
            (PARTITION_RETURNED, PARTITION_ACCEPTED),
            (PARTITION_ACCEPTED, PARTITION_DELIVERED),
        ]
        for source, target in path:
            move_service.move_order(order.id, source, target, actor="staff")
            assert partitions_holding(order.id) == [target]

    def test_deny_records_reason_and_restocks(self, make_product, make_order, line_item):
        product = make_product(stock=1)
        order = make_order(items=[line_item(product, 2)])

        move_service.move_order(order.id, "pending", "denied", denial_reason="Out of area")

        denied = OrderStore(PARTITION_DENIED).find_by_id(order.id)
        assert denied.status == "denied"
        assert denied.denial_reason == "Out of area"
        assert denied.denied_at is not None
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 3

    def test_deny_without_restock_when_disabled(self, app, make_product, make_order, line_item):
        product = make_product(stock=1)
        order = make_order(items=[line_item(product, 2)])
        app.config["RESTOCK_ON_DENIAL"] = False
        try:
            move_service.move_order(order.id, "pending", "denied")
        finally:
            app.config["RESTOCK_ON_DENIAL"] = True
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 1

    def test_return_keeps_image(self, make_order):
        order = make_order(partition=PARTITION_ACCEPTED)
        move_service.move_order(order.id, "accepted", "returned", actor="Store Staff",
                                return_reason="Damaged", return_image="data:image/png;base64,AAA")
        returned = OrderStore(PARTITION_RETURNED).find_by_id(order.id)
        assert returned.return_reason == "Damaged"
        assert returned.return_image == "data:image/png;base64,AAA"
        assert returned.return_image_uploaded_at is not None
        assert returned.return_processed_by == "Store Staff"

    @pytest.mark.parametrize("source,target", [
        (PARTITION_PENDING, PARTITION_DELIVERED),
        (PARTITION_DELIVERED, PARTITION_PENDING),
        (PARTITION_DENIED, PARTITION_PENDING),
        (PARTITION_WALKIN, PARTITION_ACCEPTED),
    ])
    def test_disallowed_moves(self, make_order, source, target):
        order = make_order(partition=source)
        with pytest.raises(ConflictError, match="Cannot move order"):
            move_service.move_order(order.id, source, target)
        assert partitions_holding(order.id) == [source]

    def test_move_from_wrong_partition(self, make_order):
        order = make_order(partition=PARTITION_ACCEPTED)
        with pytest.raises(NotFoundError, match="Order not found in PendingOrders"):
            move_service.move_order(order.id, "pending", "accepted")

    def test_second_identical_move_fails(self, make_order):
        order = make_order()
        move_service.move_order(order.id, "pending", "accepted")
        with pytest.raises(NotFoundError):
            move_service.move_order(order.id, "pending", "accepted")
        assert partitions_holding(order.id) == [PARTITION_ACCEPTED]

    def test_move_writes_audit_event(self, make_order):
        order = make_order()
        move_service.move_order(order.id, "pending", "accepted", operation="accept", actor="Store Staff")
        events = [e for e in list_order_events(order.id) if e.event_type == EVENT_MOVED]
        assert len(events) == 1
        assert events[0].from_partition == PARTITION_PENDING
        assert events[0].to_partition == PARTITION_ACCEPTED
        assert events[0].operation == "accept"
        assert events[0].actor == "Store Staff"

    def test_failed_move_writes_nothing(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED)
        with pytest.raises(ConflictError):
            move_service.move_order(order.id, "delivered", "returned")
        assert db.session.query(OrderEvent).filter_by(order_id=order.id).count() == 0
        assert db.session.get(Order, order.id).partition == PARTITION_DELIVERED

    def test_concurrent_moves_serialize(self, make_order, monkeypatch):
        """Two staff move the same pending order at once; only one move lands."""
        order = make_order()
        order_id = order.id
        real_find = OrderStore.find_by_id
        calls = {"n": 0}

        def find_while_another_worker_accepts(store, oid, *, lock=False):
            found = real_find(store, oid, lock=lock)
            calls["n"] += 1
            if calls["n"] == 1:
                with Session(db.engine) as other:
                    theirs = other.get(Order, order_id)
                    theirs.partition = PARTITION_ACCEPTED
                    theirs.status = "approved"
                    other.commit()
            return found

        monkeypatch.setattr(OrderStore, "find_by_id", find_while_another_worker_accepts)

        with pytest.raises(NotFoundError):
            move_service.move_order(order_id, "pending", "denied", actor="Second Staff")

        monkeypatch.undo()
        db.session.expire_all()
        winner = db.session.get(Order, order_id)
        assert winner.version_id == 2
        assert winner.denied_at is None
        assert partitions_holding(order_id) == [PARTITION_ACCEPTED]
        assert db.session.query(OrderEvent).filter_by(order_id=order_id).count() == 0

    def test_stale_copy_cannot_overwrite_newer_move(self, make_order):
        order = make_order()
        order_id = order.id
        db.session.expire_all()
        mine = db.session.get(Order, order_id)

        with Session(db.engine) as other:
            theirs = other.get(Order, order_id)
            theirs.partition = PARTITION_ACCEPTED
            other.commit()

        mine.partition = PARTITION_DENIED
        with pytest.raises(StaleDataError):
            db.session.flush()
        db.session.rollback()
        assert partitions_holding(order_id) == [PARTITION_ACCEPTED]

    def test_failed_rollback_raises_integrity_error(self, make_order, monkeypatch):
        order = make_order()

        def broken(*args, **kwargs):
            raise SQLAlchemyError("connection lost")

        session = db.session()
        monkeypatch.setattr(session, "commit", broken)
        monkeypatch.setattr(session, "rollback", broken)

        with pytest.raises(IntegrityError) as exc_info:
            move_service.move_order(order.id, "pending", "accepted", actor="Store Staff")

        monkeypatch.undo()
        db.session.rollback()
        details = exc_info.value.details
        assert details["order_id"] == order.id
        assert details["from"] == PARTITION_PENDING
        assert details["to"] == PARTITION_ACCEPTED
        assert details["actor"] == "Store Staff"
        assert partitions_holding(order.id) == [PARTITION_PENDING]


# =============================================================================
# CHECKOUT
# =============================================================================


class TestCreateOrder:

    def checkout(self, **extra):
        data = {
            "userId": "7",
            "email": "ana@example.com",
            "cartItems": [{"id": 1, "name": "Oak Chair", "quantity": 1, "price": 500}],
        }
        data.update(extra)
        return data

    def test_duplicate_order_number(self, make_order):
        existing = make_order()
        with pytest.raises(ConflictError):
            order_service.create_order(self.checkout(orderNumber=existing.order_number))

    def test_order_number_race_is_a_conflict(self, monkeypatch):
        real_insert = OrderStore.insert

        def insert_after_another_checkout(store, order):
            with Session(db.engine) as other:
                other.add(Order(order_number="ORD-RACE-1", partition=PARTITION_PENDING, items=[]))
                other.commit()
            return real_insert(store, order)

        monkeypatch.setattr(OrderStore, "insert", insert_after_another_checkout)

        with pytest.raises(ConflictError, match="ORD-RACE-1 already exists"):
            order_service.create_order(self.checkout(orderNumber="ORD-RACE-1"))

        monkeypatch.undo()
        assert db.session.query(Order).filter_by(order_number="ORD-RACE-1").count() == 1
        assert db.session.query(OrderEvent).count() == 0
