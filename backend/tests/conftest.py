"""
Pytest fixtures for the stocktake backend tests.

Provides a per-test SQLite database, the app, its connection pool and
stocktake service, a test client and a product factory.
"""

import pytest
from sqlalchemy import select

from app import create_app
from app.extensions import db
from app.models import Product, StocktakeItem, StocktakeSession


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing with its own database file."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'stocktake-test.sqlite3'}",
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()

    yield app

    app.extensions["stocktake_pool"].close()
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def pool(app):
    return app.extensions["stocktake_pool"]


@pytest.fixture(scope='function')
def service(app):
    return app.extensions["stocktake_service"]


@pytest.fixture(scope='function')
def make_product(pool):
    """Factory: insert a product and return its id."""
    counter = {"n": 0}

    def _make(name=None, *, sku=None, barcode=None, stock=0, image_url=None):
        counter["n"] += 1
        with pool.transaction() as s:
            product = Product(
                name=name or f"Product {counter['n']}",
                sku=sku,
                barcode=barcode,
                stock_quantity=stock,
                image_url=image_url,
            )
            s.add(product)
            s.flush()
            return product.id

    return _make


@pytest.fixture(scope='function')
def read(pool):
    """Read helpers that always go through a fresh session."""

    class Reader:
        def stock(self, product_id):
            with pool.session() as s:
                return s.execute(
                    select(Product.stock_quantity).where(Product.id == product_id)
                ).scalar_one()

        def session(self, session_id):
            with pool.session() as s:
                return s.get(StocktakeSession, session_id)

        def items(self, session_id):
            with pool.session() as s:
                return list(
                    s.execute(
                        select(StocktakeItem)
                        .where(StocktakeItem.session_id == session_id)
                        .order_by(StocktakeItem.id)
                    ).scalars()
                )

    return Reader()
