"""
Pytest fixtures for the ledger backend tests.

Provides test database setup, the ledger store/engine, a test client and
small factories for clients, products and sales.
"""

from datetime import datetime, timedelta

import pytest

from agroledger import create_app
from agroledger.extensions import db
from agroledger.models import Client, Product
from agroledger.services.ledger_engine import LedgerEngine
from agroledger.services.ledger_store import LedgerStore
from agroledger.services.sales_service import ItemInput, SaleDraft

BASE_TIME = datetime(2026, 3, 1, 9, 0, 0)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LEDGER_CREDIT_CARD_FEE_PERCENT': 0.0,
        'LEDGER_DEBIT_CARD_FEE_PERCENT': 0.0,
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


@pytest.fixture(scope='function')
def store(db_session):
    return LedgerStore(db_session)


@pytest.fixture(scope='function')
def engine(app, store):
    return LedgerEngine(store, app.config)


@pytest.fixture(scope='function')
def make_client(db_session):
    """Factory: make_client(name="Maria", credit_cents=0)."""
    def _make(name="Maria", **fields):
        c = Client(name=name, **fields)
        db_session.add(c)
        db_session.commit()
        return c
    return _make


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(price_cents=1000, stock=None) - stock given means tracked."""
    counter = {"n": 0}

    def _make(name=None, price_cents=1000, stock=None, **fields):
        counter["n"] += 1
        p = Product(
            name=name or f"Produto {counter['n']}",
            price_cents=price_cents,
            track_stock=stock is not None,
            stock=stock,
            **fields,
        )
        db_session.add(p)
        db_session.commit()
        return p
    return _make


@pytest.fixture(scope='function')
def make_credit_sale(engine, make_product):
    """
    Factory for a CREDIT sale of a given total.

    created_at is stamped at BASE_TIME + minute so FIFO order is deterministic.
    """
    def _make(client, total_cents, minute=0, product=None, quantity=1):
        product = product or make_product(price_cents=total_cents)
        draft = SaleDraft(
            type="CREDIT",
            client_id=client.id,
            items=[ItemInput(product_id=product.id, quantity=quantity, unit_price_cents=total_cents)],
            created_at=BASE_TIME + timedelta(minutes=minute),
        )
        return engine.create_sale(draft)
    return _make
