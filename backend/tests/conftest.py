"""
Pytest fixtures for orderdesk backend tests.

Provides the test app, per-test table wipes, catalog/customer rows and an
inventory factory.
"""

from decimal import Decimal

import pytest

from orderdesk import create_app
from orderdesk.extensions import db
from orderdesk.models import Brand, Category, Customer, InventoryItem, Product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DECREMENT_STOCK_ON_CONFIRM': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data but keep schema."""
    db.session.rollback()
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def brand(db_session):
    row = Brand(name="Glow Lab")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def category(db_session):
    row = Category(name="Lips")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def customer(db_session):
    row = Customer(first_name="Ada", last_name="Obi", email="ada@example.com", instagram_handle="@ada.glam")
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def products(db_session, brand, category):
    """Three products priced 15.00, 10.00 and 5.00."""
    rows = [
        Product(sku="GL-LIP-001", name="Satin Lipstick", base_price=Decimal("15.00"),
                brand_id=brand.id, category_id=category.id),
        Product(sku="GL-LIP-002", name="Lip Gloss", base_price=Decimal("10.00"),
                brand_id=brand.id, category_id=category.id),
        Product(sku="GL-LIP-003", name="Lip Liner", base_price=Decimal("5.00"),
                brand_id=brand.id),
    ]
    db_session.add_all(rows)
    db_session.commit()
    return rows


@pytest.fixture(scope='function')
def make_inventory(db_session):
    """Factory: make_inventory(product, current_stock=..., minimum_stock=...)."""
    def _make(product, *, current_stock=50, minimum_stock=10, cost_price="4.00", selling_price="15.00", **fields):
        item = InventoryItem(
            sku=fields.pop("sku", f"{product.sku}-MW"),
            product_id=product.id,
            location=fields.pop("location", "main_warehouse"),
            current_stock=current_stock,
            minimum_stock=minimum_stock,
            cost_price=Decimal(cost_price),
            selling_price=Decimal(selling_price),
            **fields,
        )
        db_session.add(item)
        db_session.commit()
        return item

    return _make

