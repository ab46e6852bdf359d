"""
Pytest fixtures for Stockbook backend tests.

Provides test database setup, two tenants (user_a / user_b) with tokens,
catalog/customer builders, and the test client.
"""

import pytest

from stockbook import create_app
from stockbook.extensions import db
from stockbook.models import Category, Customer, User
from stockbook.services import products_service
from stockbook.services.auth_service import hash_password
from stockbook.services.session_service import create_session


TEST_PASSWORD = "password123"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
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
    """Shared bcrypt hash of TEST_PASSWORD, computed once per session."""
    return hash_password(TEST_PASSWORD)


@pytest.fixture(scope='function')
def user_a(db_session, password_hash):
    """Tenant A."""
    user = User(name="Alice Shop", email="alice@example.com", password_hash=password_hash)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_b(db_session, password_hash):
    """Tenant B."""
    user = User(name="Bob Store", email="bob@example.com", password_hash=password_hash)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def token_a(user_a):
    _, token = create_session(user_id=user_a.id)
    return token


@pytest.fixture(scope='function')
def token_b(user_b):
    _, token = create_session(user_id=user_b.id)
    return token


@pytest.fixture(scope='function')
def headers_a(token_a):
    return auth_headers(token_a)


@pytest.fixture(scope='function')
def headers_b(token_b):
    return auth_headers(token_b)


@pytest.fixture(scope='function')
def category_a(db_session, user_a):
    return make_category(db_session, user_a, "Electronics")


@pytest.fixture(scope='function')
def category_b(db_session, user_b):
    return make_category(db_session, user_b, "Electronics")


@pytest.fixture(scope='function')
def product_a(db_session, user_a, category_a):
    """Stock 20, price 10.00."""
    return make_product(user_a, category_a, sku="A-LAPTOP", name="Laptop", price_cents=1000, stock=20)


@pytest.fixture(scope='function')
def product_a2(db_session, user_a, category_a):
    """Stock 5, price 5.00."""
    return make_product(user_a, category_a, sku="A-MOUSE", name="Mouse", price_cents=500, stock=5)


@pytest.fixture(scope='function')
def product_b(db_session, user_b, category_b):
    return make_product(user_b, category_b, sku="B-PHONE", name="Phone", price_cents=2000, stock=10)


@pytest.fixture(scope='function')
def customer_a(db_session, user_a):
    return make_customer(db_session, user_a, "John Smith", "john@example.com")


@pytest.fixture(scope='function')
def customer_b(db_session, user_b):
    return make_customer(db_session, user_b, "Jane Doe", "jane@example.com")


def make_category(session, user, name, **fields) -> Category:
    category = Category(
        user_id=user.id,
        name=name,
        description=fields.pop("description", f"{name} items"),
        **fields,
    )
    session.add(category)
    session.commit()
    return category


def make_product(user, category, *, sku, name, price_cents, stock, threshold=10, cost_cents=None) -> dict:
    """Create through the service so the opening stock lands in the ledger."""
    return products_service.create_product(user_id=user.id, patch={
        "category_id": category.id,
        "name": name,
        "description": f"{name} description",
        "sku": sku,
        "price_cents": price_cents,
        "cost_price_cents": cost_cents if cost_cents is not None else price_cents // 2,
        "stock_quantity": stock,
        "low_stock_threshold": threshold,
    })


def make_customer(session, user, name, email=None, **fields) -> Customer:
    customer = Customer(user_id=user.id, name=name, email=email, **fields)
    session.add(customer)
    session.commit()
    return customer


def invoice_payload(customer_id, *lines, tax=0, discount=0) -> dict:
    """lines: (product_id, quantity, unit_price_cents[, discount_cents])"""
    items = []
    for line in lines:
        product_id, quantity, unit_price = line[:3]
        items.append({
            "product_id": product_id,
            "quantity": quantity,
            "unit_price_cents": unit_price,
            "discount_cents": line[3] if len(line) > 3 else 0,
        })
    return {
        "customer_id": customer_id,
        "items": items,
        "tax_amount_cents": tax,
        "discount_cents": discount,
    }


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
