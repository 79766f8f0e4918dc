# Overview: Pytest coverage for the HTTP surface; status codes, error bodies and caller scoping.

"""
HTTP API tests.

Service semantics are covered in the service tests; these check that each
route resolves the caller, maps service errors to status codes, and shapes
its JSON the way clients expect.
"""

from sqlalchemy.exc import OperationalError

from retailcore.models import Sale
from retailcore.services import invoice_service, sales_service, stock_service
from retailcore.services.invoice_service import InvoiceNumberError


def _cart(item, qty, price):
    return {"item_id": item.id, "quantity": qty, "unit_price_cents": price}


class TestHealth:
    def test_health_reports_database(self, client, db_session):
        resp = client.get("/api/health")

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["timestamp"].endswith("Z")


class TestCheckoutRoutes:
    def test_merchant_checkout_created(
        self, client, identity_headers, merchant_a, shop_a, item_a, item_b, promo_10pct
    ):
        """Merchant sells at a named shop; response carries sale, items and invoice."""
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={
                "shop_id": shop_a.id,
                "items": [_cart(item_a, 2, 500), _cart(item_b, 1, 1000)],
                "payment_type": "cash",
                "promotion_id": promo_10pct.id,
            },
            headers=identity_headers(merchant_a.id, actor_id=5),
        )

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["sale"]["total_amount_cents"] == 1800
        assert body["sale"]["discount_amount_cents"] == 200
        assert body["sale"]["subtotal_cents"] == 2000
        assert body["sale"]["created_by_user_id"] == 5
        assert body["sale"]["staff_id"] is None
        assert len(body["sale"]["items"]) == 2
        assert body["invoice"]["invoice_number"] == f"INV-{merchant_a.id:03d}-000001"
        assert body["invoice"]["sale_id"] == body["sale"]["id"]
        assert stock_service.get_quantity(shop_a.id, item_a.id) == 8

    def test_merchant_checkout_requires_shop(self, client, identity_headers, merchant_a, item_a):
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={"items": [_cart(item_a, 1, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "shop_id required"

    def test_insufficient_stock_conflict(self, client, identity_headers, merchant_a, shop_a, item_a):
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop_a.id, "items": [_cart(item_a, 11, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["error"] == "insufficient stock"
        assert body["details"]["available"] == 10
        assert stock_service.get_quantity(shop_a.id, item_a.id) == 10

    def test_foreign_item_not_found(self, client, identity_headers, merchant_a, shop_a, foreign_item):
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop_a.id, "items": [_cart(foreign_item, 1, 800)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 404
        assert resp.get_json()["details"] == {"item_id": foreign_item.id}

    def test_foreign_shop_forbidden(self, client, identity_headers, merchant_a, shop_b, item_a):
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop_b.id, "items": [_cart(item_a, 1, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 403

    def test_invalid_promotion_bad_request(
        self, db_session, client, identity_headers, merchant_a, shop_a, item_a, promo_10pct
    ):
        promo_10pct.is_active = False
        db_session.commit()

        resp = client.post(
            "/api/merchant/pos/checkout",
            json={
                "shop_id": shop_a.id,
                "items": [_cart(item_a, 1, 500)],
                "payment_type": "cash",
                "promotion_id": promo_10pct.id,
            },
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "promotion is not active"
        assert db_session.query(Sale).count() == 0

    def test_decimal_quantity_rejected(self, client, identity_headers, merchant_a, shop_a, item_a):
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={
                "shop_id": shop_a.id,
                "items": [{"item_id": item_a.id, "quantity": "1.5", "unit_price_cents": 500}],
                "payment_type": "cash",
            },
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 400

    def test_missing_identity_unauthorized(self, client, db_session, shop_a, item_a):
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop_a.id, "items": [_cart(item_a, 1, 500)], "payment_type": "cash"},
        )

        assert resp.status_code == 401

    def test_wrong_role_forbidden(self, client, identity_headers, merchant_a, shop_a, item_a):
        """Staff cannot use the merchant back-office checkout."""
        resp = client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop_a.id, "items": [_cart(item_a, 1, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id, role="staff", shop_id=shop_a.id),
        )

        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Role not allowed"

    def test_staff_checkout_uses_assigned_shop(self, client, identity_headers, merchant_a, shop_a, item_a):
        resp = client.post(
            "/api/staff/pos/checkout",
            json={"items": [_cart(item_a, 1, 500)], "payment_type": "card"},
            headers=identity_headers(merchant_a.id, actor_id=42, role="staff", shop_id=shop_a.id),
        )

        assert resp.status_code == 201
        sale = resp.get_json()["sale"]
        assert sale["shop_id"] == shop_a.id
        assert sale["staff_id"] == 42

    def test_staff_cannot_name_another_shop(self, client, identity_headers, merchant_a, shop_a, shop_a2, item_a):
        resp = client.post(
            "/api/staff/pos/checkout",
            json={"shop_id": shop_a2.id, "items": [_cart(item_a, 1, 500)], "payment_type": "card"},
            headers=identity_headers(merchant_a.id, role="staff", shop_id=shop_a.id),
        )

        assert resp.status_code == 403
        assert stock_service.get_quantity(shop_a.id, item_a.id) == 10

    def test_shop_terminal_checkout(self, client, identity_headers, merchant_a, shop_a, item_b):
        resp = client.post(
            "/api/shop/pos/checkout",
            json={"items": [_cart(item_b, 2, 1000)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id, role="shop", shop_id=shop_a.id),
        )

        assert resp.status_code == 201
        assert resp.get_json()["sale"]["staff_id"] is None
        assert stock_service.get_quantity(shop_a.id, item_b.id) == 3

    def test_shop_terminal_header_for_other_merchant(self, client, identity_headers, merchant_a, shop_b, item_a):
        """A terminal claiming a shop of another merchant is refused."""
        resp = client.post(
            "/api/shop/pos/checkout",
            json={"items": [_cart(item_a, 1, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id, role="shop", shop_id=shop_b.id),
        )

        assert resp.status_code == 403


class TestSaleLookup:
    def test_get_sale_with_invoice(self, client, identity_headers, merchant_a, merchant_b, shop_a, item_a):
        created = client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop_a.id, "items": [_cart(item_a, 1, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant_a.id),
        ).get_json()
        sale_id = created["sale"]["id"]

        resp = client.get(f"/api/sales/{sale_id}", headers=identity_headers(merchant_a.id))
        assert resp.status_code == 200
        assert resp.get_json()["invoice"]["invoice_number"] == created["invoice"]["invoice_number"]

        other = client.get(f"/api/sales/{sale_id}", headers=identity_headers(merchant_b.id))
        assert other.status_code == 404


class TestSyncRoute:
    def test_partial_batch_is_ok(self, client, identity_headers, merchant_a, shop_a, item_a, foreign_item):
        """Partial batches still answer 200; outcomes are per record."""
        payload = {
            "batch_id": "b-1",
            "device_id": "tablet-9",
            "sales": [
                {
                    "local_id": "L1",
                    "shop_id": shop_a.id,
                    "items": [{"item_id": item_a.id, "quantity": 1, "selling_price_cents": 500}],
                    "payment_type": "cash",
                    "timestamp": "2026-05-02T10:00:00Z",
                },
                {
                    "local_id": "L2",
                    "shop_id": shop_a.id,
                    "items": [{"item_id": foreign_item.id, "quantity": 1}],
                    "payment_type": "cash",
                },
            ],
        }

        resp = client.post(
            "/api/sync/sales",
            json=payload,
            headers=identity_headers(merchant_a.id, role="staff", shop_id=shop_a.id),
        )

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["status"] == "partial"
        assert body["sync_batch_id"] == "b-1"
        assert [r["status"] for r in body["results"]] == ["synced", "failed"]
        assert body["results"][0]["server_timestamp"].endswith("Z")
        assert body["results"][1]["error"] == "item not found"

        replay = client.post(
            "/api/sync/sales",
            json=payload,
            headers=identity_headers(merchant_a.id, role="staff", shop_id=shop_a.id),
        ).get_json()
        assert replay["results"][0]["server_id"] == body["results"][0]["server_id"]
        assert stock_service.get_quantity(shop_a.id, item_a.id) == 9

    def test_empty_batch_rejected(self, client, identity_headers, merchant_a):
        resp = client.post(
            "/api/sync/sales",
            json={"batch_id": "b-2", "sales": []},
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "sales required"


class TestPromotionsRoute:
    def test_lists_active_promotions(self, client, identity_headers, merchant_a, shop_a, promo_10pct):
        resp = client.get(
            "/api/pos/promotions",
            headers=identity_headers(merchant_a.id, role="shop", shop_id=shop_a.id),
        )

        assert resp.status_code == 200
        assert [p["id"] for p in resp.get_json()["promotions"]] == [promo_10pct.id]

    def test_other_merchant_sees_nothing(self, client, identity_headers, merchant_b, promo_10pct):
        resp = client.get("/api/pos/promotions", headers=identity_headers(merchant_b.id))

        assert resp.status_code == 200
        assert resp.get_json()["promotions"] == []


class TestStockRoutes:
    def test_stock_in_and_levels(self, client, identity_headers, merchant_a, shop_a2, item_a):
        resp = client.post(
            "/api/stock/in",
            json={"shop_id": shop_a2.id, "items": [{"item_id": item_a.id, "quantity": 7}], "reason": "delivery"},
            headers=identity_headers(merchant_a.id),
        )
        assert resp.status_code == 201
        assert resp.get_json()["movements"][0]["new_quantity"] == 7

        levels = client.get(f"/api/stock/{shop_a2.id}", headers=identity_headers(merchant_a.id))
        assert levels.status_code == 200
        assert [(r["item_id"], r["quantity"]) for r in levels.get_json()["stock"]] == [(item_a.id, 7)]

    def test_transfer_requires_merchant(self, client, identity_headers, merchant_a, shop_a, shop_a2, item_a):
        payload = {"from_shop_id": shop_a.id, "to_shop_id": shop_a2.id, "item_id": item_a.id, "quantity": 3}

        denied = client.post(
            "/api/stock/transfer",
            json=payload,
            headers=identity_headers(merchant_a.id, role="staff", shop_id=shop_a.id),
        )
        assert denied.status_code == 403

        resp = client.post("/api/stock/transfer", json=payload, headers=identity_headers(merchant_a.id))
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["transfer_out"]["new_quantity"] == 7
        assert body["transfer_in"]["new_quantity"] == 3

    def test_adjust_and_movement_ledger(self, client, identity_headers, merchant_a, shop_a, item_a):
        resp = client.post(
            "/api/stock/adjust",
            json={"shop_id": shop_a.id, "item_id": item_a.id, "delta": -2, "reason": "breakage"},
            headers=identity_headers(merchant_a.id),
        )
        assert resp.status_code == 201
        assert resp.get_json()["movement"]["new_quantity"] == 8

        ledger = client.get(
            f"/api/stock/{shop_a.id}/movements?item_id={item_a.id}",
            headers=identity_headers(merchant_a.id),
        ).get_json()["movements"]
        assert [m["movement_type"] for m in ledger] == ["adjustment", "stock_in"]

    def test_adjust_below_zero_conflict(self, client, identity_headers, merchant_a, shop_a, item_a):
        resp = client.post(
            "/api/stock/adjust",
            json={"shop_id": shop_a.id, "item_id": item_a.id, "delta": -20, "reason": "recount"},
            headers=identity_headers(merchant_a.id),
        )

        assert resp.status_code == 409

    def test_staff_cannot_read_other_shop_stock(self, client, identity_headers, merchant_a, shop_a, shop_a2):
        resp = client.get(
            f"/api/stock/{shop_a2.id}",
            headers=identity_headers(merchant_a.id, role="staff", shop_id=shop_a.id),
        )

        assert resp.status_code == 403


class TestServerErrorRoutes:
    def _checkout(self, client, identity_headers, merchant, shop, item):
        return client.post(
            "/api/merchant/pos/checkout",
            json={"shop_id": shop.id, "items": [_cart(item, 2, 500)], "payment_type": "cash"},
            headers=identity_headers(merchant.id),
        )

    def test_database_unavailable_is_503(
        self, db_session, client, identity_headers, monkeypatch, merchant_a, shop_a, item_a
    ):
        def locked(*args, **kwargs):
            raise OperationalError("UPDATE shop_stock", {}, Exception("database is locked"))

        monkeypatch.setattr(sales_service, "decrement_stock", locked)

        resp = self._checkout(client, identity_headers, merchant_a, shop_a, item_a)

        assert resp.status_code == 503
        assert resp.get_json()["error"] == "Checkout failed"
        assert db_session.query(Sale).count() == 0

    def test_invoice_number_failure_is_500_and_rolls_back(
        self, db_session, client, identity_headers, monkeypatch, merchant_a, shop_a, item_a
    ):
        def unavailable(merchant_id):
            raise InvoiceNumberError("invoice sequence unavailable", {"merchant_id": merchant_id})

        monkeypatch.setattr(invoice_service, "next_invoice_number", unavailable)

        resp = self._checkout(client, identity_headers, merchant_a, shop_a, item_a)

        assert resp.status_code == 500
        assert resp.get_json()["error"] == "invoice sequence unavailable"
        assert db_session.query(Sale).count() == 0
        assert stock_service.get_quantity(shop_a.id, item_a.id) == 10


class TestNonObjectBodies:
    """A JSON array body is a client error, not a crash."""

    def test_sync_array_body(self, client, identity_headers, merchant_a):
        resp = client.post("/api/sync/sales", json=[1], headers=identity_headers(merchant_a.id))

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "request body must be a JSON object"

    def test_checkout_array_body(self, client, identity_headers, merchant_a, shop_a):
        resp = client.post(
            "/api/merchant/pos/checkout", json=[{"shop_id": shop_a.id}], headers=identity_headers(merchant_a.id)
        )

        assert resp.status_code == 400

    def test_stock_array_bodies(self, client, identity_headers, merchant_a):
        for path in ("/api/stock/in", "/api/stock/transfer", "/api/stock/adjust"):
            resp = client.post(path, json=[], headers=identity_headers(merchant_a.id))
            assert resp.status_code == 400, path
