# Overview: Pytest coverage for concurrent checkouts and offline replays against a shared database file.

"""
Concurrency Tests

Runs real threads, each with its own app context and session, against a
file-backed SQLite database so writers actually contend. Verifies that:
1. Concurrent checkouts never oversell and never go negative
2. Every successful checkout gets its own invoice number
3. Concurrent replays of one offline record create exactly one sale
"""

from concurrent.futures import ThreadPoolExecutor
import threading

import pytest

from retailcore import create_app
from retailcore.extensions import db
from retailcore.models import Invoice, InventoryItem, Merchant, Sale, Shop, ShopStock, StockMovement
from retailcore.services import sales_service, stock_service, sync_service
from retailcore.services.sales_service import CartLine
from retailcore.services.stock_service import InsufficientStockError


THREADS = 10


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.sqlite3'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {"connect_args": {"check_same_thread": False, "timeout": 30}},
        'DB_RETRY_ATTEMPTS': 5,
        'DB_RETRY_BACKOFF': 0.01,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def stocked(file_app):
    """One merchant, one shop, one item with 20 on hand."""
    with file_app.app_context():
        merchant = Merchant(name="Busy Bakery", is_active=True)
        db.session.add(merchant)
        db.session.commit()
        shop = Shop(merchant_id=merchant.id, name="Main Street")
        item = InventoryItem(merchant_id=merchant.id, name="Sourdough", sku="SD-1", selling_price_cents=650)
        db.session.add_all([shop, item])
        db.session.commit()
        stock_service.stock_in(shop.id, merchant.id, None, [(item.id, 20)])
        return {"merchant_id": merchant.id, "shop_id": shop.id, "item_id": item.id}


def _run_concurrently(app, work):
    barrier = threading.Barrier(THREADS)

    def _worker(n):
        with app.app_context():
            barrier.wait()
            try:
                return work(n)
            finally:
                db.session.remove()

    with ThreadPoolExecutor(max_workers=THREADS) as pool:
        return list(pool.map(_worker, range(THREADS)))


def test_concurrent_checkouts_never_oversell(file_app, stocked):
    def buy_three(n):
        try:
            sale = sales_service.checkout(
                shop_id=stocked["shop_id"],
                merchant_id=stocked["merchant_id"],
                actor_id=n + 1,
                lines=[CartLine(stocked["item_id"], 3, 650)],
                payment_type="cash",
            )
            return ("sold", sale.id)
        except InsufficientStockError:
            return ("insufficient", None)

    outcomes = _run_concurrently(file_app, buy_three)

    sold = [sale_id for status, sale_id in outcomes if status == "sold"]
    assert len(sold) == 6
    assert len(outcomes) - len(sold) == 4

    with file_app.app_context():
        row = db.session.query(ShopStock).filter_by(
            shop_id=stocked["shop_id"], item_id=stocked["item_id"]
        ).one()
        assert row.quantity == 2

        numbers = [n for (n,) in db.session.query(Invoice.invoice_number).all()]
        assert len(numbers) == 6
        assert len(set(numbers)) == 6
        assert sorted(numbers) == [f"INV-{stocked['merchant_id']:03d}-{n:06d}" for n in range(1, 7)]

        sale_movements = db.session.query(StockMovement).filter_by(movement_type="sale").all()
        assert len(sale_movements) == 6
        assert min(m.new_quantity for m in sale_movements) == 2


def test_concurrent_replays_create_one_sale(file_app, stocked):
    record = {
        "local_id": "tablet-7-0001",
        "shop_id": stocked["shop_id"],
        "items": [{"item_id": stocked["item_id"], "quantity": 2, "selling_price_cents": 650}],
        "payment_type": "cash",
        "timestamp": "2026-05-03T08:15:00Z",
    }

    def replay(n):
        result = sync_service.sync_batch(
            merchant_id=stocked["merchant_id"],
            actor_id=99,
            device_id="tablet-7",
            batch_id=f"retry-{n}",
            records=[record],
        )
        return result.results[0]

    results = _run_concurrently(file_app, replay)

    assert {r.status for r in results} == {"synced"}
    assert len({r.server_id for r in results}) == 1

    with file_app.app_context():
        assert db.session.query(Sale).filter_by(offline_local_id="tablet-7-0001").count() == 1
        assert stock_service.get_quantity(stocked["shop_id"], stocked["item_id"]) == 18
