import logging

from models.coupon import Coupon
from models.customer import Customer
from models.order import Order
from models.product import Product
from services.fulfillment import apply_payment_success, decrement_stock, upsert_customer_from_order


def _create(client, db, payload) -> Order:
    resp = client.post("/orders/create", json=payload)
    assert resp.status_code == 201
    return db.get(Order, resp.json()["order_id"])


class TestDecrementStock:
    """Conditional stock updates"""

    def test_takes_available_stock(self, db, catalog):
        assert decrement_stock(db, Product, catalog["apron"].id, 4) is True
        db.refresh(catalog["apron"])
        assert catalog["apron"].stock_qty == 6

    def test_floors_at_zero(self, db, catalog):
        assert decrement_stock(db, Product, catalog["apron"].id, 25) is False
        db.refresh(catalog["apron"])
        assert catalog["apron"].stock_qty == 0


class TestApplyPaymentSuccess:
    """Paid-order side effects"""

    def test_shortfall_is_logged(self, client, db, catalog, checkout_payload, caplog, monkeypatch):
        # The services logger does not propagate to the root handler caplog listens on
        monkeypatch.setattr(logging.getLogger("services"), "propagate", True)
        order = _create(client, db, checkout_payload([{"productId": catalog["apron"].id, "qty": 4}]))
        catalog["apron"].stock_qty = 1
        db.commit()

        with caplog.at_level(logging.WARNING, logger="services.fulfillment"):
            shortfalls = apply_payment_success(db, order)
            db.commit()

        assert len(shortfalls) == 1
        assert shortfalls[0].requested == 4
        assert "Insufficient stock" in caplog.text
        db.refresh(catalog["apron"])
        assert catalog["apron"].stock_qty == 0
        assert order.status == "paid"

    def test_coupon_usage_counted(self, client, db, catalog, save10, checkout_payload):
        order = _create(
            client, db, checkout_payload([{"productId": catalog["apron"].id, "qty": 2}], coupon_code="save10")
        )
        apply_payment_success(db, order)
        db.commit()
        assert db.get(Coupon, save10.id).usage_count == 1


class TestCustomerUpsert:
    """Customer aggregates keyed by email"""

    def test_repeat_customer_accumulates(self, client, db, catalog, checkout_payload):
        first = _create(client, db, checkout_payload([{"productId": catalog["apron"].id, "qty": 1}]))
        second = _create(client, db, checkout_payload([{"productId": catalog["apron"].id, "qty": 2}]))

        upsert_customer_from_order(db, first)
        upsert_customer_from_order(db, second)
        db.commit()

        customer = db.query(Customer).one()
        assert customer.email == "thandi@example.com"
        assert customer.total_orders == 2
        assert customer.total_spent_cents == first.total_cents + second.total_cents

    def test_unpaid_order_does_not_count(self, client, db, catalog, checkout_payload):
        order = _create(client, db, checkout_payload([{"productId": catalog["apron"].id, "qty": 1}]))
        customer = upsert_customer_from_order(db, order, is_paid=False)
        db.commit()
        assert customer.total_orders == 0
        assert customer.total_spent_cents == 0
        assert customer.last_order_at is None
