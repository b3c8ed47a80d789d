from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from models.coupon import Coupon
from models.delivery import DeliverySettings, DeliveryProvinceRate
from models.order import Order
from models.order_item import OrderItem
from services.catalog import ResolvedLine
from services.checkout import create_order, persist_order, quote_checkout
from schemas.checkout import CartItemIn


class TestCouponPreview:
    """POST /checkout/coupon"""

    def test_preview_end_to_end_example(self, client, catalog, save10):
        resp = client.post(
            "/checkout/coupon",
            json={
                "items": [{"productId": catalog["apron"].id, "variantId": None, "qty": 2}],
                "couponCode": "save10",
                "province": "Gauteng",
            },
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["coupon"] == {"code": "SAVE10", "discount_cents": 1000}
        assert data["subtotal_cents"] == 10000
        assert data["shipping_cents"] == 6000
        assert data["discount_cents"] == 1000
        assert data["total_cents"] == 15000

    def test_preview_invalid_coupon(self, client, catalog):
        resp = client.post(
            "/checkout/coupon",
            json={"items": [{"productId": catalog["apron"].id, "qty": 1}], "couponCode": "BOGUS", "province": "Gauteng"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_coupon"

    def test_preview_rejects_zero_quantity(self, client, catalog, save10):
        resp = client.post(
            "/checkout/coupon",
            json={"items": [{"productId": catalog["apron"].id, "qty": 0}], "couponCode": "SAVE10", "province": "Gauteng"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_preview_below_minimum(self, client, catalog, db):
        db.add(Coupon(code="BIG", discount_type="fixed", discount_value=2000, min_order_value_cents=20000))
        db.commit()
        resp = client.post(
            "/checkout/coupon",
            json={"items": [{"productId": catalog["apron"].id, "qty": 1}], "couponCode": "BIG", "province": "Gauteng"},
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "coupon_not_applicable"

    def test_preview_matches_per_province_rate(self, client, db, catalog, save10):
        settings_row = DeliverySettings(mode="per_province", flat_rate_cents=7000)
        settings_row.province_rates.append(DeliveryProvinceRate(province="Western Cape", rate_cents=4500))
        db.add(settings_row)
        db.commit()

        resp = client.post(
            "/checkout/coupon",
            json={"items": [{"productId": catalog["apron"].id, "qty": 2}], "couponCode": "SAVE10", "province": "western cape"},
        )
        assert resp.json()["shipping_cents"] == 4500

        resp = client.post(
            "/checkout/coupon",
            json={"items": [{"productId": catalog["apron"].id, "qty": 2}], "couponCode": "SAVE10", "province": "Limpopo"},
        )
        assert resp.json()["shipping_cents"] == 7000


class TestCreateOrder:
    """POST /orders/create"""

    def test_creates_pending_order_with_snapshots(self, client, db, catalog, save10, checkout_payload, mock_email_send):
        body = checkout_payload(
            [
                {"productId": catalog["apron"].id, "variantId": None, "qty": 2},
                {"productId": catalog["mug"].id, "variantId": catalog["blue"].id, "qty": 1},
            ],
            coupon_code="SAVE10",
        )
        resp = client.post("/orders/create", json=body)
        assert resp.status_code == 201
        data = resp.json()
        assert data["order_number"] == "ORD-1001"
        # 2 x 5000 + 9000 (variant override), 10% off, 6000 shipping
        assert data["total_cents"] == 19000 - 1900 + 6000

        order = db.get(Order, data["order_id"])
        assert order.status == "pending_payment"
        assert order.coupon_code == "SAVE10"
        assert order.shipping_address_snapshot["province"] == "Gauteng"
        assert [i.unit_price_cents_snapshot for i in order.items] == [5000, 9000]
        assert order.items[1].variant_snapshot["sku"] == "MUG-BLU"

        # stock only moves on payment
        db.refresh(catalog["apron"])
        assert catalog["apron"].stock_qty == 10

        assert len(mock_email_send) == 1
        assert "ORD-1001" in mock_email_send[0]["subject"]

    def test_sequential_order_numbers(self, client, catalog, checkout_payload):
        first = client.post("/orders/create", json=checkout_payload([{"productId": catalog["apron"].id, "qty": 1}]))
        second = client.post("/orders/create", json=checkout_payload([{"productId": catalog["apron"].id, "qty": 1}]))
        assert first.json()["order_number"] == "ORD-1001"
        assert second.json()["order_number"] == "ORD-1002"

    def test_inactive_product_creates_nothing(self, client, db, catalog, checkout_payload):
        body = checkout_payload(
            [
                {"productId": catalog["apron"].id, "qty": 1},
                {"productId": catalog["retired"].id, "qty": 1},
            ]
        )
        resp = client.post("/orders/create", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_product"
        assert db.query(Order).count() == 0
        assert db.query(OrderItem).count() == 0

    def test_variant_of_other_product_rejected(self, client, db, catalog, checkout_payload):
        body = checkout_payload([{"productId": catalog["apron"].id, "variantId": catalog["blue"].id, "qty": 1}])
        resp = client.post("/orders/create", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_variant"
        assert db.query(Order).count() == 0

    def test_invalid_coupon_rejects_checkout(self, client, db, catalog, checkout_payload):
        body = checkout_payload([{"productId": catalog["apron"].id, "qty": 1}], coupon_code="NOTREAL")
        resp = client.post("/orders/create", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_coupon"
        assert db.query(Order).count() == 0

    def test_out_of_stock_variant(self, client, catalog, checkout_payload):
        body = checkout_payload([{"productId": catalog["mug"].id, "variantId": catalog["blue"].id, "qty": 4}])
        resp = client.post("/orders/create", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "out_of_stock"

    def test_empty_cart_is_invalid_request(self, client, checkout_payload):
        resp = client.post("/orders/create", json=checkout_payload([]))
        assert resp.status_code == 400
        assert resp.json()["error"] == "invalid_request"

    def test_quantity_above_limit(self, client, catalog, checkout_payload):
        resp = client.post("/orders/create", json=checkout_payload([{"productId": catalog["apron"].id, "qty": 100}]))
        assert resp.status_code == 400

    def test_email_failure_does_not_fail_order(self, client, db, catalog, checkout_payload):
        with patch("routes.checkout.send_bank_transfer_email", side_effect=RuntimeError("smtp down")):
            resp = client.post("/orders/create", json=checkout_payload([{"productId": catalog["apron"].id, "qty": 1}]))
        assert resp.status_code == 201
        assert db.query(Order).count() == 1


class TestOrderNumbers:
    """Order number allocation"""

    def test_retries_when_number_taken(self, db, catalog):
        quote = quote_checkout(db, [CartItemIn(product_id=catalog["apron"].id, qty=1)], "Gauteng")
        customer = {"email": "a@example.com"}
        address = {"province": "Gauteng"}

        first = persist_order(db, quote.lines, quote.totals, customer, address)
        db.commit()
        assert first.order_number == "ORD-1001"

        # A concurrent writer read the same max and now collides on 1001
        with patch("services.checkout.next_order_seq", side_effect=[1001, 1002]):
            second = persist_order(db, quote.lines, quote.totals, customer, address)
            db.commit()

        assert second.order_number == "ORD-1002"
        assert db.query(Order).count() == 2
        assert db.query(OrderItem).count() == 2

    def test_failed_line_insert_leaves_no_order(self, db, catalog):
        broken = ResolvedLine(product_id=catalog["apron"].id, variant_id=None, qty=1, unit_price_cents=5000, title=None)
        with patch("services.checkout.resolve_prices", return_value=[broken]):
            with pytest.raises(IntegrityError):
                create_order(
                    db,
                    {"email": "a@example.com"},
                    {"province": "Gauteng"},
                    [CartItemIn(product_id=catalog["apron"].id, qty=1)],
                )

        assert db.query(Order).count() == 0
        assert db.query(OrderItem).count() == 0


class TestTrackOrder:
    """GET /orders/{order_number}"""

    def test_lookup_requires_matching_email(self, client, catalog, checkout_payload):
        client.post("/orders/create", json=checkout_payload([{"productId": catalog["apron"].id, "qty": 2}]))

        ok = client.get("/orders/ORD-1001", params={"email": "thandi@example.com"})
        assert ok.status_code == 200
        assert ok.json()["total_cents"] == 16000
        assert ok.json()["items"][0]["line_total_cents"] == 10000

        wrong = client.get("/orders/ORD-1001", params={"email": "someone@example.com"})
        assert wrong.status_code == 404
