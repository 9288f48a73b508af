"""
Pytest fixtures for storefront backend tests.

Provides test database setup, one user per role, auth headers, products,
and helpers that drive an order through checkout and delivery.
"""

from datetime import timedelta

import pytest
from storefront import create_app
from storefront.extensions import db
from storefront.models import Product, User
from storefront.services import (
    cart_service,
    checkout_service,
    delivery_service,
    order_service,
    session_service,
)
from storefront.services.auth_service import hash_password
from storefront.statuses import DELIVERY_STATUS_DELIVERED
from storefront.time_utils import utcnow


PASSWORD = "Password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'MAIL_ENABLED': False,
        'REFUND_WINDOW_DAYS': 30,
        'FREE_SHIPPING_THRESHOLD_CENTS': 10000,
        'FLAT_SHIPPING_CENTS': 1500,
        'TAX_RATE_BPS': 800,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='session')
def password_hash():
    """bcrypt is deliberately slow; hash the shared test password once."""
    return hash_password(PASSWORD)


@pytest.fixture(scope='function')
def make_user(db_session, password_hash):
    """Factory: create an active user with the given role."""
    def _make(role="customer", email=None, first_name="Test"):
        user = User(
            email=email or f"{role}-{db_session.query(User).count() + 1}@example.com",
            first_name=first_name,
            last_name="User",
            password_hash=password_hash,
            role=role,
            is_active=True,
        )
        db_session.add(user)
        db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def customer(make_user):
    return make_user("customer", email="customer@example.com", first_name="Casey")


@pytest.fixture(scope='function')
def other_customer(make_user):
    return make_user("customer", email="other@example.com", first_name="Olive")


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin", email="admin@example.com")


@pytest.fixture(scope='function')
def product_manager(make_user):
    return make_user("product_manager", email="pm@example.com")


@pytest.fixture(scope='function')
def sales_manager(make_user):
    return make_user("sales_manager", email="sales@example.com")


@pytest.fixture(scope='function')
def support_agent(make_user):
    return make_user("support_agent", email="support@example.com")


def auth_headers(user) -> dict:
    """Helper to create Authorization headers for a user."""
    _session, token = session_service.create_session(user.id)
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def customer_headers(customer):
    return auth_headers(customer)


@pytest.fixture(scope='function')
def other_customer_headers(other_customer):
    return auth_headers(other_customer)


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def pm_headers(product_manager):
    return auth_headers(product_manager)


@pytest.fixture(scope='function')
def sales_headers(sales_manager):
    return auth_headers(sales_manager)


@pytest.fixture(scope='function')
def support_headers(support_agent):
    return auth_headers(support_agent)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: create an active product with stock."""
    def _make(name="Widget", price_cents=2500, quantity=10, sku=None):
        product = Product(
            sku=sku or f"SKU-{db_session.query(Product).count() + 1:04d}",
            name=name,
            price_cents=price_cents,
            quantity=quantity,
            is_active=True,
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product_a(make_product):
    return make_product(name="Desk Lamp", price_cents=2500, quantity=10, sku="LAMP-01")


@pytest.fixture(scope='function')
def product_b(make_product):
    return make_product(name="Bookshelf", price_cents=8000, quantity=5, sku="SHELF-01")


@pytest.fixture(scope='function')
def place_order(db_session):
    """
    Factory: run the full checkout flow for a customer and return the order.

    lines: [(product, quantity), ...]
    """
    def _place(user, lines, address="1 Main St, Springfield", coupon_code=None):
        owner = cart_service.UserOwner(user.id)
        for product, quantity in lines:
            cart_service.add_item(owner, product.id, quantity)
        session = checkout_service.create_checkout_session(
            user.id, delivery_address=address, coupon_code=coupon_code,
        )
        checkout_service.confirm_payment(session.session_key, user.id)
        return order_service.complete_order(session.session_key, user.id)
    return _place


@pytest.fixture(scope='function')
def delivered_order(place_order, product_manager):
    """
    Factory: place an order, mark every delivery delivered, and optionally
    backdate the order by `age_days`.
    """
    def _make(user, lines, age_days=0):
        order = place_order(user, lines)
        for delivery in list(order.deliveries):
            delivery_service.update_delivery_status(
                delivery.id, DELIVERY_STATUS_DELIVERED, actor_user_id=product_manager.id,
            )
        if age_days:
            order.order_date = utcnow() - timedelta(days=age_days)
            db.session.commit()
        return order
    return _make
