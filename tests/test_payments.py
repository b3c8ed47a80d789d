from datetime import datetime, timedelta
from unittest.mock import Mock, patch

import requests

from core import config as core_config
from models.order import Order
from models.payment import Payment
from models.pending_checkout import PendingCheckout


def _create_order(client, catalog, checkout_payload, qty=2):
    resp = client.post("/orders/create", json=checkout_payload([{"productId": catalog["apron"].id, "qty": qty}]))
    assert resp.status_code == 201
    return resp.json()


class TestPayExistingOrder:
    """POST /payments/yoco/create"""

    def test_creates_initiated_payment_and_returns_redirect(self, client, db, catalog, checkout_payload, yoco_ok):
        order = _create_order(client, catalog, checkout_payload)
        with patch("services.yoco.requests.post", side_effect=yoco_ok):
            resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})

        assert resp.status_code == 200
        assert resp.json() == {"redirectUrl": "https://c.yoco.com/checkout/ch_1"}

        sent = yoco_ok.calls[0]
        assert sent["url"] == "https://payments.yoco.com/api/checkouts"
        assert sent["headers"]["Authorization"] == "Bearer sk_test_123"
        assert sent["json"]["amount"] == 16000
        assert sent["json"]["currency"] == "ZAR"
        assert sent["json"]["successUrl"] == f"https://shop.example.com/checkout/success?orderId={order['order_id']}"

        payment = db.query(Payment).one()
        assert payment.status == "initiated"
        assert payment.provider_payment_id == "ch_1"
        assert sent["json"]["metadata"] == {"orderId": str(order["order_id"]), "paymentId": str(payment.id)}

    def test_unknown_order(self, client, db):
        resp = client.post("/payments/yoco/create", json={"orderId": 999})
        assert resp.status_code == 404

    def test_paid_order_is_not_payable(self, client, db, catalog, checkout_payload):
        order = _create_order(client, catalog, checkout_payload)
        db.get(Order, order["order_id"]).status = "paid"
        db.commit()

        resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})
        assert resp.status_code == 400
        assert resp.json()["error"] == "order_not_payable"
        assert db.query(Payment).count() == 0

    def test_unsupported_currency(self, client, db, catalog, checkout_payload):
        order = _create_order(client, catalog, checkout_payload)
        db.get(Order, order["order_id"]).currency = "USD"
        db.commit()

        resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})
        assert resp.status_code == 400
        assert resp.json()["error"] == "unsupported_currency"

    def test_gateway_rejection_keeps_local_record(self, client, db, catalog, checkout_payload):
        order = _create_order(client, catalog, checkout_payload)
        rejected = Mock(ok=False, status_code=422)
        rejected.json.return_value = {"message": "bad amount"}

        with patch("services.yoco.requests.post", return_value=rejected):
            resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})

        assert resp.status_code == 502
        assert resp.json()["error"] == "yoco_checkout_create_failed"
        payment = db.query(Payment).one()
        assert payment.status == "initiated"
        assert payment.provider_payment_id is None

    def test_malformed_gateway_response(self, client, db, catalog, checkout_payload):
        order = _create_order(client, catalog, checkout_payload)
        odd = Mock(ok=True, status_code=200)
        odd.json.return_value = {"id": "ch_x"}

        with patch("services.yoco.requests.post", return_value=odd):
            resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})

        assert resp.status_code == 502
        assert resp.json()["error"] == "yoco_invalid_response"

    def test_gateway_unreachable(self, client, db, catalog, checkout_payload):
        order = _create_order(client, catalog, checkout_payload)
        with patch("services.yoco.requests.post", side_effect=requests.ConnectionError("refused")):
            resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})
        assert resp.status_code == 502

    def test_missing_secret_key(self, client, db, catalog, checkout_payload, monkeypatch):
        order = _create_order(client, catalog, checkout_payload)
        monkeypatch.setattr(core_config.settings, "YOCO_SECRET_KEY", "")
        resp = client.post("/payments/yoco/create", json={"orderId": order["order_id"]})
        assert resp.status_code == 500
        assert resp.json()["error"] == "yoco_not_configured"


class TestGuestCheckout:
    """POST /payments/yoco/start, /status and /finalize"""

    def _start(self, client, catalog, checkout_payload, yoco_ok, coupon_code=None):
        body = checkout_payload([{"productId": catalog["apron"].id, "qty": 2}], coupon_code=coupon_code)
        with patch("services.yoco.requests.post", side_effect=yoco_ok):
            resp = client.post("/payments/yoco/start", json=body)
        assert resp.status_code == 200
        return resp.json()

    def test_start_parks_the_cart(self, client, db, catalog, save10, checkout_payload, yoco_ok):
        data = self._start(client, catalog, checkout_payload, yoco_ok, coupon_code="SAVE10")
        assert data["redirectUrl"] == "https://c.yoco.com/checkout/ch_1"

        pending = db.get(PendingCheckout, data["pendingCheckoutId"])
        assert pending.status == "initiated"
        assert pending.checkout_id == "ch_1"
        assert pending.amount_cents == 15000
        assert pending.coupon_code == "SAVE10"
        assert pending.items[0]["unit_price_cents"] == 5000
        assert yoco_ok.calls[0]["json"]["metadata"] == {"pendingCheckoutId": pending.id}
        assert db.query(Order).count() == 0

    def test_start_with_invalid_cart_calls_nothing(self, client, db, catalog, checkout_payload, yoco_ok):
        body = checkout_payload([{"productId": catalog["retired"].id, "qty": 1}])
        with patch("services.yoco.requests.post", side_effect=yoco_ok):
            resp = client.post("/payments/yoco/start", json=body)
        assert resp.status_code == 400
        assert yoco_ok.calls == []
        assert db.query(PendingCheckout).count() == 0

    def test_status_before_payment(self, client, catalog, checkout_payload, yoco_ok):
        data = self._start(client, catalog, checkout_payload, yoco_ok)
        resp = client.post("/payments/yoco/status", json={"pendingCheckoutId": data["pendingCheckoutId"]})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "initiated"
        assert body["order"] is None
        assert body["pending_checkout"]["amount_cents"] == 16000

    def test_status_unknown_checkout(self, client, db):
        resp = client.post("/payments/yoco/status", json={"pendingCheckoutId": "00000000-0000-0000-0000-000000000000"})
        assert resp.status_code == 404

    def test_finalize_creates_paid_order_once(self, client, db, catalog, checkout_payload, yoco_ok, mock_email_send):
        data = self._start(client, catalog, checkout_payload, yoco_ok)
        pending_id = data["pendingCheckoutId"]

        first = client.post("/payments/yoco/finalize", json={"pendingCheckoutId": pending_id})
        assert first.status_code == 200
        assert first.json()["status"] == "completed"
        assert first.json()["order_number"] == "ORD-1001"

        second = client.post("/payments/yoco/finalize", json={"pendingCheckoutId": pending_id})
        assert second.json()["order_id"] == first.json()["order_id"]

        assert db.query(Order).count() == 1
        order = db.query(Order).one()
        assert order.status == "paid"
        assert order.total_cents == 16000
        payment = db.query(Payment).one()
        assert payment.status == "succeeded"
        assert payment.provider_payment_id == "ch_1"

        db.refresh(catalog["apron"])
        assert catalog["apron"].stock_qty == 8
        assert len(mock_email_send) == 1

        status = client.post("/payments/yoco/status", json={"pendingCheckoutId": pending_id}).json()
        assert status["status"] == "completed"
        assert status["order"]["order_number"] == "ORD-1001"

    def test_finalize_refuses_expired_checkout(self, client, db, catalog, checkout_payload, yoco_ok):
        data = self._start(client, catalog, checkout_payload, yoco_ok)
        pending = db.get(PendingCheckout, data["pendingCheckoutId"])
        pending.created_at = datetime.utcnow() - timedelta(hours=25)
        db.commit()

        resp = client.post("/payments/yoco/finalize", json={"pendingCheckoutId": pending.id})
        assert resp.status_code == 400
        assert resp.json()["error"] == "checkout_expired"
        assert db.query(Order).count() == 0

    def test_finalize_refuses_failed_checkout(self, client, db, catalog, checkout_payload, yoco_ok):
        data = self._start(client, catalog, checkout_payload, yoco_ok)
        pending = db.get(PendingCheckout, data["pendingCheckoutId"])
        pending.status = "failed"
        db.commit()

        resp = client.post("/payments/yoco/finalize", json={"pendingCheckoutId": pending.id})
        assert resp.status_code == 400
        assert resp.json()["error"] == "checkout_not_in_initiated_state"
        assert db.query(Order).count() == 0
