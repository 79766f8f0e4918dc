"""
Pytest fixtures for retailcore backend tests.

Provides test database setup, two merchants (tenants) with shops, a stocked
catalog, a promotion, and a test client.
"""

import pytest

from retailcore import create_app
from retailcore.extensions import db
from retailcore.models import InventoryItem, Merchant, Promotion, Shop
from retailcore.models.promotions import PROMO_PERCENTAGE
from retailcore.services import stock_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_BACKOFF': 0,
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
def merchant_a(db_session):
    """Create Merchant A (first tenant)."""
    merchant = Merchant(name="Merchant A - Corner Coffee", is_active=True)
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def merchant_b(db_session):
    """Create Merchant B (second tenant)."""
    merchant = Merchant(name="Merchant B - Book Nook", is_active=True)
    db_session.add(merchant)
    db_session.commit()
    return merchant


@pytest.fixture(scope='function')
def shop_a(db_session, merchant_a):
    """Create Shop A1 owned by Merchant A."""
    shop = Shop(merchant_id=merchant_a.id, name="Shop A1")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_a2(db_session, merchant_a):
    """Create Shop A2 owned by Merchant A."""
    shop = Shop(merchant_id=merchant_a.id, name="Shop A2")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_b(db_session, merchant_b):
    """Create Shop B1 owned by Merchant B."""
    shop = Shop(merchant_id=merchant_b.id, name="Shop B1")
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def item_a(db_session, merchant_a, shop_a):
    """Item A: 5.00, 10 on hand at Shop A1."""
    item = InventoryItem(
        merchant_id=merchant_a.id,
        name="Espresso Beans",
        sku="BEAN-A",
        selling_price_cents=500,
        original_price_cents=300,
    )
    db_session.add(item)
    db_session.commit()
    stock_service.stock_in(shop_a.id, merchant_a.id, None, [(item.id, 10)])
    return item


@pytest.fixture(scope='function')
def item_b(db_session, merchant_a, shop_a):
    """Item B: 10.00, 5 on hand at Shop A1."""
    item = InventoryItem(
        merchant_id=merchant_a.id,
        name="Ceramic Mug",
        sku="MUG-B",
        selling_price_cents=1000,
        original_price_cents=650,
    )
    db_session.add(item)
    db_session.commit()
    stock_service.stock_in(shop_a.id, merchant_a.id, None, [(item.id, 5)])
    return item


@pytest.fixture(scope='function')
def foreign_item(db_session, merchant_b, shop_b):
    """Item owned by Merchant B, 10 on hand at Shop B1."""
    item = InventoryItem(
        merchant_id=merchant_b.id,
        name="Paperback",
        sku="BOOK-1",
        selling_price_cents=800,
    )
    db_session.add(item)
    db_session.commit()
    stock_service.stock_in(shop_b.id, merchant_b.id, None, [(item.id, 10)])
    return item


@pytest.fixture(scope='function')
def promo_10pct(db_session, merchant_a):
    """Active merchant-wide 10% promotion, no minimum spend."""
    promotion = Promotion(
        merchant_id=merchant_a.id,
        name="10% off",
        promo_type=PROMO_PERCENTAGE,
        promo_value=1000,
        min_spend_cents=0,
        is_active=True,
    )
    db_session.add(promotion)
    db_session.commit()
    return promotion


@pytest.fixture(scope='function')
def identity_headers():
    """Build trusted gateway headers for a caller."""
    def _headers(merchant_id, actor_id=1, role="merchant", shop_id=None):
        headers = {
            "X-Merchant-Id": str(merchant_id),
            "X-Actor-Id": str(actor_id),
            "X-Actor-Role": role,
        }
        if shop_id is not None:
            headers["X-Shop-Id"] = str(shop_id)
        return headers
    return _headers
