"""
Cancellation and return/exchange workflow tests.

Verifies:
- Cancellation requests freeze the order and remove it from the live set
- Approval builds a Cancelled order and restocks; rejection restores nothing
- Return decisions are archived with both images; only acceptance removes the order
- Notifications never undo a committed decision
"""

import httpx
import pytest

from storefront.extensions import db
from storefront.models import CancellationRequest, Notification, Order, Product, ReturnRequest, ReturnedOrderArchive
from storefront.models.notifications import AUDIENCE_STAFF, AUDIENCE_USER
from storefront.models.orders import (
    PARTITIONS,
    PARTITION_ACCEPTED,
    PARTITION_CANCELLED,
    PARTITION_DELIVERED,
    PARTITION_PENDING,
)
from storefront.services import cancellation_service, notification_service, return_service
from storefront.services.identity_service import Identity
from storefront.services.order_store import OrderStore
from storefront.validation import AccessDeniedError, ConflictError, NotFoundError, UpstreamError, ValidationError


ANA = Identity(id="7", email="ana@example.com", full_name="Ana Cruz")
BEN = Identity(id="8", email="ben@example.com", full_name="Ben Reyes")
STAFF = Identity(id="staff-1", email="staff@example.com", full_name="Store Staff", is_staff=True)


def live_partitions(order_id):
    return [p for p in PARTITIONS if OrderStore(p).find_by_id(order_id) is not None]


def notifications(audience):
    return db.session.query(Notification).filter_by(audience=audience).order_by(Notification.id).all()


# =============================================================================
# CANCELLATION
# =============================================================================


class TestCancellationRequests:

    def test_request_removes_order_and_keeps_snapshot(self, make_order):
        order = make_order(status="active")
        order_id, order_number = order.id, order.order_number

        request = cancellation_service.create_cancellation_request(
            order_id=order_id, reason="Changed my mind", identity=ANA,
        )

        assert live_partitions(order_id) == []
        assert request.status == "pending_review"
        assert request.original_order_id == order_id
        assert request.order_snapshot["order_number"] == order_number
        assert request.user_id_string == "7"
        assert request.user_id_number == 7
        assert request.source_partition == PARTITION_PENDING

    def test_request_notifies_staff(self, make_order):
        order = make_order()
        cancellation_service.create_cancellation_request(order_id=order.id, reason="Too slow", identity=ANA)
        staff = notifications(AUDIENCE_STAFF)
        assert len(staff) == 1
        assert staff[0].type == "cancellation_request"
        assert staff[0].priority == "high"

    def test_accepted_orders_are_cancellable(self, make_order):
        order = make_order(partition=PARTITION_ACCEPTED, status="approved")
        request = cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)
        assert request.source_partition == PARTITION_ACCEPTED

    def test_delivered_order_cannot_be_cancelled(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED, status="delivered")
        with pytest.raises(NotFoundError, match="cannot be cancelled"):
            cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)
        assert live_partitions(order.id) == [PARTITION_DELIVERED]

    def test_status_must_be_cancellable(self, make_order):
        order = make_order(status="confirmed")
        with pytest.raises(ConflictError, match="cannot be cancelled at this stage"):
            cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)
        assert live_partitions(order.id) == [PARTITION_PENDING]

    def test_cannot_cancel_someone_elses_order(self, make_order):
        order = make_order()
        with pytest.raises(AccessDeniedError):
            cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=BEN)
        assert live_partitions(order.id) == [PARTITION_PENDING]

    def test_missing_reason(self, make_order):
        order = make_order()
        with pytest.raises(ValidationError, match="orderId and reason"):
            cancellation_service.create_cancellation_request(order_id=order.id, reason="  ", identity=ANA)

    def test_approve_builds_cancelled_order_and_restocks(self, make_product, make_order, line_item):
        product = make_product(stock=1)
        order = make_order(items=[line_item(product, 2)])
        request = cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)

        decided = cancellation_service.decide_cancellation_request(
            request.id, action="approve", staff_notes="Refund issued", actor="Store Staff",
        )

        assert decided.status == "approved"
        cancelled = OrderStore(PARTITION_CANCELLED).find_by_id(decided.cancelled_order_id)
        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_request_id == request.id
        assert cancelled.cancellation_reason == "x"
        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 3

    def test_reject_does_not_restore_order(self, make_order):
        order = make_order()
        order_id = order.id
        request = cancellation_service.create_cancellation_request(order_id=order_id, reason="x", identity=ANA)

        decided = cancellation_service.decide_cancellation_request(request.id, action="reject", actor="Store Staff")

        assert decided.status == "rejected"
        assert live_partitions(order_id) == []
        assert db.session.query(Order).count() == 0

    def test_decision_is_final(self, make_order):
        order = make_order()
        request = cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)
        cancellation_service.decide_cancellation_request(request.id, action="reject")
        with pytest.raises(ConflictError):
            cancellation_service.decide_cancellation_request(request.id, action="approve")

    def test_invalid_action(self, make_order):
        with pytest.raises(ValidationError, match="approve' or 'reject"):
            cancellation_service.decide_cancellation_request(1, action="maybe")

    def test_decision_notifies_user_then_staff(self, make_order):
        order = make_order()
        request = cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)
        cancellation_service.decide_cancellation_request(request.id, action="approve")

        user_notes = notifications(AUDIENCE_USER)
        assert [n.type for n in user_notes] == ["order_cancellation_approved"]
        assert user_notes[0].user_id == "7"
        staff_types = [n.type for n in notifications(AUDIENCE_STAFF)]
        assert staff_types == ["cancellation_request", "cancellation_processed_approved"]

    @pytest.mark.parametrize("error", [
        ValidationError("notifier exploded"),
        TypeError("payload is not serializable"),
    ])
    def test_notification_failure_does_not_undo_decision(self, make_order, monkeypatch, error):
        order = make_order()
        request = cancellation_service.create_cancellation_request(order_id=order.id, reason="x", identity=ANA)

        def broken(**kwargs):
            raise error

        monkeypatch.setattr(notification_service, "notify_user", broken)
        monkeypatch.setattr(notification_service, "notify_staff", broken)

        decided = cancellation_service.decide_cancellation_request(request.id, action="approve")
        db.session.expire_all()
        assert db.session.get(CancellationRequest, decided.id).status == "approved"

    def test_check_pending_cancellations(self, make_order):
        first, second = make_order(), make_order()
        cancellation_service.create_cancellation_request(order_id=first.id, reason="x", identity=ANA)
        result = cancellation_service.check_pending_cancellations([first.id, str(second.id), "junk"])
        assert result == {str(first.id): True}


# =============================================================================
# RETURNS
# =============================================================================


class TestReturnRequests:

    def _request(self, order, image="data:image/png;base64,CUSTOMER"):
        return return_service.create_return_request(
            order_id=order.id,
            return_type="return",
            selected_items=[{"item_id": "1", "item_name": "Oak Chair", "quantity": 1}],
            reason="Damaged on arrival",
            return_image=image,
            identity=ANA,
        )

    def test_request_keeps_order(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED, status="delivered")
        request = self._request(order)
        assert request.status == "pending_review"
        assert live_partitions(order.id) == [PARTITION_DELIVERED]
        assert notifications(AUDIENCE_STAFF)[0].type == "return_request"

    def test_second_open_request_conflicts(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED)
        self._request(order)
        with pytest.raises(ConflictError):
            self._request(order)

    def test_missing_fields(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED)
        with pytest.raises(ValidationError, match="orderId, returnType, and selectedItems"):
            return_service.create_return_request(order_id=order.id, return_type="return",
                                                 selected_items=[], identity=ANA)

    def test_unknown_order(self):
        with pytest.raises(NotFoundError):
            return_service.create_return_request(order_id=999999, return_type="return",
                                                 selected_items=[{"item_id": "1"}], identity=ANA)

    def test_accept_archives_and_removes_order(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED, status="delivered")
        order_id = order.id
        request = self._request(order)

        archive = return_service.decide_return_request(
            request.id, action="approve", staff_notes="Pickup Monday",
            return_image="data:image/png;base64,STAFF", actor="Store Staff",
        )

        assert archive.staff_decision == "accepted"
        assert archive.customer_image == "data:image/png;base64,CUSTOMER"
        assert archive.staff_decision_image == "data:image/png;base64,STAFF"
        assert archive.original_order_partition == PARTITION_DELIVERED
        assert archive.original_order_snapshot["original_order_id"] == order_id
        assert live_partitions(order_id) == []
        assert db.session.query(ReturnRequest).count() == 0

        data = archive.to_dict()
        assert data["staffDecision"] == "accepted"
        assert data["customerImage"] == "data:image/png;base64,CUSTOMER"

    def test_reject_archives_and_keeps_order(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED, status="delivered")
        order_id = order.id
        before = order.to_dict()
        request = self._request(order)

        archive = return_service.decide_return_request(request.id, action="reject", actor="Store Staff")

        assert archive.staff_decision == "rejected"
        assert live_partitions(order_id) == [PARTITION_DELIVERED]
        after = db.session.get(Order, order_id).to_dict()
        assert after["status"] == before["status"]
        assert after["itemsordered"] == before["itemsordered"]
        assert db.session.query(ReturnedOrderArchive).count() == 1

    def test_decision_notifies_owner(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED)
        request = self._request(order)
        return_service.decide_return_request(request.id, action="approve")
        assert [n.type for n in notifications(AUDIENCE_USER)] == ["order_return_approved"]
        assert notifications(AUDIENCE_STAFF)[-1].type == "return_processed_approved"

    def test_return_documentation(self, make_order):
        order = make_order(partition=PARTITION_DELIVERED)
        order_id = order.id
        request = self._request(order)
        return_service.decide_return_request(request.id, action="approve", return_image="data:staff")

        doc = return_service.get_return_documentation(order_id)
        assert doc["returnImage"] == "data:image/png;base64,CUSTOMER"
        assert doc["staffDecisionImage"] == "data:staff"
        with pytest.raises(NotFoundError):
            return_service.get_return_documentation(999999)


# =============================================================================
# NOTIFICATION SINK
# =============================================================================


class TestNotifications:

    def test_staff_feed_and_read_flag(self):
        first = notification_service.notify_staff(type="return_request", title="A", message="a")
        notification_service.notify_staff(type="return_request", title="B", message="b")

        assert [n.title for n in notification_service.list_staff_notifications()] == ["B", "A"]

        notification_service.mark_read(first.id, audience=AUDIENCE_STAFF)
        assert [n.title for n in notification_service.list_staff_notifications()] == ["B"]
        assert len(notification_service.list_staff_notifications(unread_only=False)) == 2

    def test_user_cannot_mark_someone_elses_notification(self):
        note = notification_service.notify_user(user_id="7", type="order_return_approved",
                                                title="Approved", message="ok")
        with pytest.raises(NotFoundError):
            notification_service.mark_read(note.id, audience=AUDIENCE_USER, user_id="8")
        assert notification_service.mark_read(note.id, audience=AUDIENCE_USER, user_id="7").read is True

    def test_user_feed_is_scoped(self):
        notification_service.notify_user(user_id="7", type="t", title="Mine", message="m")
        notification_service.notify_user(user_id="8", type="t", title="Theirs", message="m")
        assert [n.title for n in notification_service.list_user_notifications("7")] == ["Mine"]

    def test_webhook_posts_to_notifier(self, app, monkeypatch):
        calls = []

        def fake_post(url, json=None, timeout=None):
            calls.append((url, json))
            return httpx.Response(202, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx, "post", fake_post)
        monkeypatch.setitem(app.config, "NOTIFIER_WEBHOOK_URL", "http://notifier.test/hook")

        notification_service.notify_user(user_id="7", email="ana@example.com",
                                         type="order_return_approved", title="Approved", message="ok")

        assert len(calls) == 1
        url, body = calls[0]
        assert url == "http://notifier.test/hook"
        assert body["to"] == "ana@example.com"
        assert body["type"] == "order_return_approved"
        assert body["payload"]["title"] == "Approved"

    def test_webhook_failure_keeps_stored_notification(self, app, monkeypatch):
        def failing_post(url, json=None, timeout=None):
            raise httpx.ConnectError("connection refused")

        monkeypatch.setattr(httpx, "post", failing_post)
        monkeypatch.setitem(app.config, "NOTIFIER_WEBHOOK_URL", "http://notifier.test/hook")

        note = notification_service.notify_user(user_id="7", email="ana@example.com",
                                                type="t", title="Stored", message="m")
        assert note.id is not None
        assert [n.title for n in notification_service.list_user_notifications("7")] == ["Stored"]

    def test_webhook_error_status_is_upstream_error(self, app, monkeypatch):
        def bad_gateway(url, json=None, timeout=None):
            return httpx.Response(502, request=httpx.Request("POST", url))

        monkeypatch.setattr(httpx, "post", bad_gateway)
        monkeypatch.setitem(app.config, "NOTIFIER_WEBHOOK_URL", "http://notifier.test/hook")

        with pytest.raises(UpstreamError):
            notification_service.deliver_webhook(to="ana@example.com", type="t", payload={})

    def test_no_webhook_configured(self):
        assert notification_service.deliver_webhook(to="ana@example.com", type="t", payload={}) is False
