"""
HTTP API tests.

Verifies:
- Identity token and staff gates (401/403)
- Checkout -> staff move -> customer history, end to end
- Customers never see another customer's orders
- Stock endpoints report failures with the right status
- Pending-only edits, walk-in sales, statistics, notifications
"""

import pytest
from sqlalchemy.exc import SQLAlchemyError

from storefront.extensions import db
from storefront.models import Product
from storefront.models.orders import PARTITION_ACCEPTED, PARTITION_DELIVERED, PARTITION_WALKIN


def checkout_payload(product, quantity=1, **extra):
    payload = {
        "cartItems": [{
            "id": product.id,
            "name": product.name,
            "quantity": quantity,
            "price": product.price_cents / 100,
            "category": product.category,
        }],
        "fullName": "Ana Cruz",
        "email": "ana@example.com",
        "phoneNumber": "09170000000",
        "address": {"city": "Cebu"},
        "paymentMethod": "gcash",
        "deliveryFee": 150,
    }
    payload.update(extra)
    return payload


# =============================================================================
# AUTH GATES
# =============================================================================


class TestAuthGates:

    def test_missing_token(self, client):
        response = client.get('/api/orders/7')
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentication required"

    def test_tampered_token(self, client):
        response = client.get('/api/orders/7', headers={'Authorization': 'Bearer not-a-token'})
        assert response.status_code == 401

    @pytest.mark.parametrize("method,path", [
        ("post", "/api/orders/move"),
        ("get", "/api/orders/pending"),
        ("get", "/api/orders/all-staff"),
        ("get", "/api/orders/stats/staff-overview"),
        ("get", "/api/orders/cancellation-requests"),
        ("put", "/api/orders/return-request/1"),
        ("get", "/api/staff/notifications"),
    ])
    def test_staff_only_routes(self, client, customer_headers, method, path):
        response = getattr(client, method)(path, headers=customer_headers, json={})
        assert response.status_code == 403

    def test_public_catalog(self, client, make_product):
        make_product(name="Oak Chair")
        make_product(name="Hidden", is_active=False)
        response = client.get('/api/products')
        assert response.status_code == 200
        assert [p["name"] for p in response.get_json()] == ["Oak Chair"]


# =============================================================================
# STOCK
# =============================================================================


class TestStockRoutes:

    def test_validate_stock(self, client, make_product):
        product = make_product(stock=2)
        response = client.post('/api/products/validate-stock', json={
            "items": [{"id": product.id, "quantity": 3}],
        })
        assert response.status_code == 200
        data = response.get_json()
        assert data["allValid"] is False
        assert data["items"][0]["availableStock"] == 2

    def test_bulk_stock_insufficient(self, client, customer_headers, make_product):
        product = make_product(stock=2)
        response = client.put('/api/products/bulk-stock', headers=customer_headers, json={
            "updates": [{"id": product.id, "quantity": 3}],
        })
        assert response.status_code == 400
        assert "Insufficient stock for Oak Chair" in response.get_json()["error"]

    def test_bulk_stock_unknown_product(self, client, customer_headers):
        response = client.put('/api/products/bulk-stock', headers=customer_headers, json={
            "updates": [{"id": 999999, "quantity": 1}],
        })
        assert response.status_code == 404

    def test_bulk_stock_requires_token(self, client):
        response = client.put('/api/products/bulk-stock', json={"updates": []})
        assert response.status_code == 401

    def test_set_stock_is_staff_only(self, client, customer_headers, staff_headers, make_product):
        product = make_product(stock=2)
        denied = client.put(f'/api/products/{product.id}/stock', headers=customer_headers,
                            json={"stockQuantity": 10})
        assert denied.status_code == 403

        response = client.put(f'/api/products/{product.id}/stock', headers=staff_headers,
                              json={"stockQuantity": 10})
        assert response.status_code == 200
        assert response.get_json()["product"]["stockQuantity"] == 10

    def test_stock_levels_skip_unknown_ids(self, client, make_product):
        product = make_product(stock=4)
        response = client.post('/api/products/stock-levels', json={"productIds": [product.id, 999999]})
        levels = response.get_json()["stockLevels"]
        assert len(levels) == 1


# =============================================================================
# ORDER FLOW
# =============================================================================


class TestOrderFlow:

    def test_checkout_accept_and_history(self, client, customer_headers, staff_headers, make_product):
        product = make_product(stock=5)

        created = client.post('/api/orders', headers=customer_headers, json=checkout_payload(product, 2))
        assert created.status_code == 201
        order_id = created.get_json()["orderId"]
        assert created.get_json()["orderNumber"].startswith("ORD-")

        stock = client.put('/api/products/bulk-stock', headers=customer_headers, json={
            "updates": [{"id": product.id, "quantity": 2}],
        })
        assert stock.status_code == 200

        moved = client.post('/api/orders/move', headers=staff_headers, json={
            "orderId": order_id,
            "operation": "accept",
            "fromCollection": "PendingOrders",
            "toCollection": "AcceptedOrders",
        })
        assert moved.status_code == 200
        assert moved.get_json()["newOrderId"] == order_id

        history = client.get('/api/orders/7', headers=customer_headers).get_json()
        assert len(history) == 1
        assert history[0]["id"] == order_id
        assert history[0]["collection"] == PARTITION_ACCEPTED
        assert history[0]["total"] == 1150.0

        db.session.expire_all()
        assert db.session.get(Product, product.id).stock_quantity == 3

    def test_checkout_for_someone_else_is_denied(self, client, customer_headers, make_product):
        product = make_product()
        response = client.post('/api/orders', headers=customer_headers,
                               json=checkout_payload(product, userId="8"))
        assert response.status_code == 403

    def test_checkout_without_items(self, client, customer_headers):
        response = client.post('/api/orders', headers=customer_headers, json={"cartItems": []})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Missing or invalid cartItems"

    def test_legacy_wrapped_checkout(self, client, customer_headers, make_product):
        product = make_product()
        response = client.post('/api/orders', headers=customer_headers, json={
            "userId": "7",
            "order": checkout_payload(product),
        })
        assert response.status_code == 201

    def test_disallowed_move_is_400(self, client, staff_headers, make_order):
        order = make_order()
        response = client.post('/api/orders/move', headers=staff_headers, json={
            "orderId": order.id,
            "fromCollection": "PendingOrders",
            "toCollection": "DeliveredOrders",
        })
        assert response.status_code == 400

    def test_move_unknown_collection(self, client, staff_headers, make_order):
        order = make_order()
        response = client.post('/api/orders/move', headers=staff_headers, json={
            "orderId": order.id,
            "fromCollection": "PendingOrders",
            "toCollection": "ShippedOrders",
        })
        assert response.status_code == 400
        assert "Unknown collection" in response.get_json()["error"]

    def test_move_with_failed_rollback_is_500(self, client, staff_headers, make_order, monkeypatch):
        order = make_order()

        def broken(*args, **kwargs):
            raise SQLAlchemyError("connection lost")

        session = db.session()
        monkeypatch.setattr(session, "commit", broken)
        monkeypatch.setattr(session, "rollback", broken)

        response = client.post('/api/orders/move', headers=staff_headers, json={
            "orderId": order.id,
            "fromCollection": "PendingOrders",
            "toCollection": "AcceptedOrders",
        })

        monkeypatch.undo()
        db.session.rollback()
        assert response.status_code == 500
        body = response.get_json()
        assert body["success"] is False
        assert "manual reconciliation" in body["error"]
        assert body["details"]["order_id"] == order.id

    def test_move_events_are_listed(self, client, staff_headers, make_order):
        order = make_order()
        client.post('/api/orders/move', headers=staff_headers, json={
            "orderId": order.id,
            "operation": "accept",
            "fromCollection": "pending",
            "toCollection": "accepted",
        })
        events = client.get(f'/api/orders/{order.id}/events', headers=staff_headers).get_json()["events"]
        assert [e["eventType"] for e in events][-1] == "moved"


# =============================================================================
# CUSTOMER HISTORY
# =============================================================================


class TestCustomerHistory:

    def test_customer_cannot_read_another_history(self, client, other_customer_headers, make_order):
        make_order(user_id="7")
        response = client.get('/api/orders/7', headers=other_customer_headers)
        assert response.status_code == 403

    def test_full_name_is_ignored_for_customers(self, client, other_customer_headers, make_order):
        make_order(user_id="7", full_name="Ana Cruz")
        response = client.get('/api/orders/8?fullName=Ana%20Cruz', headers=other_customer_headers)
        assert response.status_code == 200
        assert response.get_json() == []

    def test_staff_can_look_up_by_full_name(self, client, staff_headers, make_order):
        order = make_order(user_id=None, email=None, full_name="Walk Up")
        response = client.get('/api/orders/by-email?fullName=Walk%20Up', headers=staff_headers)
        assert [h["id"] for h in response.get_json()] == [order.id]

    def test_all_staff_is_not_a_user_key(self, client, staff_headers, make_order):
        make_order()
        response = client.get('/api/orders/all-staff', headers=staff_headers)
        assert response.status_code == 200
        assert isinstance(response.get_json(), list)

    def test_history_includes_cancellation_requests(self, client, customer_headers, make_order):
        order = make_order()
        response = client.post('/api/orders/cancel-request', headers=customer_headers, json={
            "orderId": order.id,
            "reason": "Changed my mind",
        })
        assert response.status_code == 201

        history = client.get('/api/orders/7', headers=customer_headers).get_json()
        assert len(history) == 1
        assert history[0]["status"] == "cancel_requested"
        assert history[0]["hasPendingCancellation"] is True

    def test_user_stats(self, client, customer_headers, make_order):
        make_order(total_cents=100000)
        make_order(partition=PARTITION_DELIVERED, total_cents=50000)
        stats = client.get('/api/orders/stats/7', headers=customer_headers).get_json()
        assert stats["totalOrders"] == 2
        assert stats["pendingOrders"] == 1
        assert stats["totalSpent"] == 1500.0


# =============================================================================
# PENDING-ONLY EDITS
# =============================================================================


class TestPendingEdits:

    def test_owner_updates_payment(self, client, customer_headers, make_order):
        order = make_order()
        response = client.put(f'/api/orders/{order.id}/payment', headers=customer_headers, json={
            "paymentUpdates": {"reference": "GC-123", "proof": "data:image/png;base64,AAA"},
        })
        assert response.status_code == 200
        data = response.get_json()["order"]
        assert data["paymentReference"] == "GC-123"
        assert data["paymentMethod"] == "gcash"

    def test_other_customer_cannot_update_payment(self, client, other_customer_headers, make_order):
        order = make_order()
        response = client.put(f'/api/orders/{order.id}/payment', headers=other_customer_headers, json={
            "paymentUpdates": {"reference": "X"},
        })
        assert response.status_code == 403

    def test_edit_after_acceptance_is_rejected(self, client, customer_headers, make_order):
        order = make_order(partition=PARTITION_ACCEPTED)
        response = client.put(f'/api/orders/{order.id}/notes', headers=customer_headers,
                              json={"notes": "Leave at the gate"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Only pending orders can be modified"

    def test_verify_payment_confirms_order(self, client, staff_headers, make_order):
        order = make_order()
        response = client.put(f'/api/orders/{order.id}/verify-payment', headers=staff_headers, json={
            "verified": True,
            "verificationNotes": "Matched GCash ref",
        })
        assert response.status_code == 200
        data = response.get_json()["order"]
        assert data["status"] == "confirmed"
        assert data["paymentVerified"] is True
        assert data["paymentVerifiedBy"] == "Store Staff"

    def test_verify_payment_requires_boolean(self, client, staff_headers, make_order):
        order = make_order()
        response = client.put(f'/api/orders/{order.id}/verify-payment', headers=staff_headers,
                              json={"verified": "yes"})
        assert response.status_code == 400


# =============================================================================
# WALK-IN AND STATISTICS
# =============================================================================


class TestWalkinAndStats:

    def test_walkin_sale(self, client, staff_headers):
        response = client.post('/api/orders/walkin', headers=staff_headers, json={
            "fullName": "Walk-in Customer",
            "itemsordered": [{"item_id": "1", "item_name": "Stool", "amount_per_item": 2, "price_per_item": 250}],
            "paymentMethod": "cash",
        })
        assert response.status_code == 201

        listed = client.get('/api/orders/walkin', headers=staff_headers).get_json()
        assert listed["count"] == 1
        assert listed["orders"][0]["collection"] == PARTITION_WALKIN

        stats = client.get('/api/orders/walkin/stats', headers=staff_headers).get_json()["stats"]
        assert stats["totalWalkInOrders"] == 1
        assert stats["totalRevenue"] == 500.0

    def test_walkin_requires_items(self, client, staff_headers):
        response = client.post('/api/orders/walkin', headers=staff_headers, json={"fullName": "X"})
        assert response.status_code == 400

    def test_staff_overview(self, client, staff_headers, make_order):
        make_order()
        make_order(partition=PARTITION_ACCEPTED, total_cents=20000)
        make_order(partition=PARTITION_DELIVERED, total_cents=30000)
        make_order(partition="denied", total_cents=99900)

        overview = client.get('/api/orders/stats/staff-overview', headers=staff_headers).get_json()
        assert overview["totalPending"] == 1
        assert overview["totalDenied"] == 1
        assert overview["totalRevenue"] == 500.0
        assert overview["totalDeliveredProducts"] == 2
        assert overview["lastUpdated"].endswith("Z")

    def test_analytics_rejects_bad_dates(self, client, staff_headers):
        response = client.get('/api/orders/analytics?startDate=yesterday', headers=staff_headers)
        assert response.status_code == 400

    def test_analytics_totals(self, client, staff_headers, make_order):
        make_order(total_cents=10000)
        make_order(partition=PARTITION_ACCEPTED, total_cents=20000)
        data = client.get('/api/orders/analytics', headers=staff_headers).get_json()["analytics"]
        assert data["totals"] == {"orders": 2, "revenue": 300.0}


# =============================================================================
# REQUEST WORKFLOWS AND NOTIFICATIONS
# =============================================================================


class TestRequestRoutes:

    def test_return_round_trip(self, client, customer_headers, staff_headers, make_order):
        order = make_order(partition=PARTITION_DELIVERED, status="delivered")
        created = client.post('/api/orders/return-request', headers=customer_headers, json={
            "orderId": order.id,
            "returnType": "exchange",
            "selectedItems": [{"item_id": "1", "quantity": 1}],
            "reason": "Wrong colour",
        })
        assert created.status_code == 201
        request_id = created.get_json()["requestId"]

        decided = client.put(f'/api/orders/return-request/{request_id}', headers=staff_headers,
                             json={"action": "reject", "staffNotes": "Colour matches order"})
        assert decided.status_code == 200
        assert decided.get_json()["message"] == "Return request rejected successfully"

        returned = client.get('/api/orders/returned?minimal=true', headers=staff_headers).get_json()
        assert len(returned["orders"]) == 1

    def test_cancellation_decision(self, client, customer_headers, staff_headers, make_order):
        order = make_order()
        request_id = client.post('/api/orders/cancel-request', headers=customer_headers, json={
            "orderId": order.id,
            "reason": "Found it cheaper",
        }).get_json()["requestId"]

        pending = client.post('/api/orders/check-cancellation-requests', headers=customer_headers,
                              json={"orderIds": [order.id]}).get_json()
        assert pending["pendingCancellations"] == {str(order.id): True}

        decided = client.put(f'/api/orders/cancellation-request/{request_id}', headers=staff_headers,
                             json={"action": "approve"})
        assert decided.status_code == 200
        assert decided.get_json()["message"] == "Cancellation request approved successfully"

        again = client.put(f'/api/orders/cancellation-request/{request_id}', headers=staff_headers,
                           json={"action": "reject"})
        assert again.status_code == 400

    def test_notification_feeds(self, client, customer_headers, staff_headers, make_order):
        order = make_order()
        request_id = client.post('/api/orders/cancel-request', headers=customer_headers, json={
            "orderId": order.id,
            "reason": "x",
        }).get_json()["requestId"]
        client.put(f'/api/orders/cancellation-request/{request_id}', headers=staff_headers,
                   json={"action": "reject"})

        staff_feed = client.get('/api/staff/notifications', headers=staff_headers).get_json()["notifications"]
        assert {n["type"] for n in staff_feed} == {"cancellation_request", "cancellation_processed_rejected"}

        mine = client.get('/api/notifications', headers=customer_headers).get_json()["notifications"]
        assert [n["type"] for n in mine] == ["order_cancellation_rejected"]

        marked = client.put(f'/api/notifications/{mine[0]["id"]}/read', headers=customer_headers)
        assert marked.get_json()["notification"]["read"] is True


# =============================================================================
# SYSTEM
# =============================================================================


class TestSystemRoutes:

    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert response.get_json() == {"success": False, "error": "Not found"}
