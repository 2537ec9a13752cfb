"""
Pytest fixtures for storefront backend tests.

Provides the application on an in-memory database, a per-test table wipe,
product/order factories and identity-token headers.
"""

import pytest
from storefront import create_app
from storefront.config import TestingConfig
from storefront.extensions import db
from storefront.models import Order, Product
from storefront.models.orders import PARTITION_PENDING
from storefront.services import identity_service
from storefront.services.order_store import OrderStore


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh tables for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture
def make_product(db_session):
    """Factory: make_product(name="Chair", stock=5, price_cents=50000)."""
    def _make(name="Oak Chair", stock=5, price_cents=50000, category="Chairs", is_active=True):
        product = Product(
            name=name,
            category=category,
            price_cents=price_cents,
            stock_quantity=stock,
            is_active=is_active,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture
def make_order(db_session):
    """
    Factory: make_order(partition="pending", user_id="7", items=[...]).

    Items default to one line of 2 units of product id 1.
    """
    counter = {"n": 0}

    def _make(partition=PARTITION_PENDING, user_id="7", email="ana@example.com",
              full_name="Ana Cruz", status="active", items=None, total_cents=100000):
        counter["n"] += 1
        order = Order(
            order_number=f"ORD-TEST-{counter['n']}",
            user_id=user_id,
            email=email,
            full_name=full_name,
            phone_number="09170000000",
            items=items if items is not None else [{
                "item_id": "1",
                "item_name": "Oak Chair",
                "quantity": 2,
                "unit_price_cents": 50000,
                "line_total_cents": 100000,
                "item_image": None,
                "category_bucket": "chairs",
                "category_original": "Chairs",
            }],
            status=status,
            subtotal_cents=total_cents,
            total_cents=total_cents,
            payment_method="gcash",
        )
        OrderStore(partition).insert(order)
        db_session.commit()
        return order
    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def customer_headers(app):
    """Customer Ana (user id 7)."""
    token = identity_service.issue_token(user_id="7", email="ana@example.com", full_name="Ana Cruz")
    return auth_headers(token)


@pytest.fixture
def other_customer_headers(app):
    token = identity_service.issue_token(user_id="8", email="ben@example.com", full_name="Ben Reyes")
    return auth_headers(token)


@pytest.fixture
def staff_headers(app):
    token = identity_service.issue_token(user_id="staff-1", email="staff@example.com",
                                         full_name="Store Staff", is_staff=True)
    return auth_headers(token)


@pytest.fixture
def line_item():
    """Factory: internal order line for `product` x `quantity`."""
    def _line(product, quantity=1):
        return {
            "item_id": str(product.id),
            "item_name": product.name,
            "quantity": quantity,
            "unit_price_cents": product.price_cents,
            "line_total_cents": product.price_cents * quantity,
            "item_image": None,
            "category_bucket": "chairs",
            "category_original": product.category,
        }
    return _line
