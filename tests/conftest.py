"""
Pytest fixtures for Stockroom tests.

Provides the application on an in-memory database, a per-test table wipe,
and seed data (supplier, product, stocked product).
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.services import inventory_service, products_service, supplier_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCKROOM_RETRY_BACKOFF': 0.0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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


@pytest.fixture(scope='function')
def supplier(db_session):
    """Create a supplier with contact details."""
    return supplier_service.create_supplier(
        name="Acme Wholesale",
        phone="555-0100",
        email="orders@acme.test",
    )


@pytest.fixture(scope='function')
def product(db_session, supplier):
    """Create a product priced at 10.00 with no stock."""
    return products_service.create_product(
        name="Widget",
        unit_price_cents=1000,
        supplier_id=supplier.id,
    )


@pytest.fixture(scope='function')
def stocked_product(db_session, product):
    """The Widget after receiving 5 units at 6.00."""
    inventory_service.receive_stock(product_id=product.id, quantity=5, cost_price_cents=600)
    return product
