import base64
import hashlib
import hmac
import json
import time
import uuid
from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, configure_sqlite, get_db
from core import config as core_config
from services import email as email_service
from models.coupon import Coupon
from models.product import Product
from models.profile import Profile
from models.variant import ProductVariant
from security import jwt as jwt_utils

WEBHOOK_SECRET = "whsec_" + base64.b64encode(b"test-webhook-signing-key").decode()


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.JWT_SECRET = "test-secret"
    core_config.settings.TESTING = True
    core_config.settings.YOCO_SECRET_KEY = "sk_test_123"
    core_config.settings.YOCO_WEBHOOK_SECRET = WEBHOOK_SECRET
    core_config.settings.SITE_URL = "https://shop.example.com"
    core_config.settings.DEFAULT_SHIPPING_CENTS = 6000
    yield


@pytest.fixture()
def db():
    engine = configure_sqlite(
        create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()

    def _get_db():
        try:
            yield session
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield session
    finally:
        session.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(autouse=True)
def mock_email_send(monkeypatch):
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(email_service, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def catalog(db):
    """An apron (no variants), a mug with two variants and a retired product."""
    apron = Product(name="Linen Apron", slug="linen-apron", price_cents=5000, stock_qty=10)
    mug = Product(name="Stoneware Mug", slug="stoneware-mug", price_cents=8000, stock_qty=0, has_variants=True)
    retired = Product(name="Old Tote", slug="old-tote", price_cents=3000, stock_qty=5, active=False)
    db.add_all([apron, mug, retired])
    db.flush()

    blue = ProductVariant(
        product_id=mug.id, sku="MUG-BLU", name="Blue", price_cents_override=9000, stock_qty=3,
        attributes={"colour": "blue"},
    )
    white = ProductVariant(product_id=mug.id, sku="MUG-WHT", name="White", stock_qty=5, attributes={"colour": "white"})
    db.add_all([blue, white])
    db.commit()
    return {"apron": apron, "mug": mug, "retired": retired, "blue": blue, "white": white}


@pytest.fixture()
def save10(db):
    coupon = Coupon(code="SAVE10", discount_type="percentage", discount_value=10, min_order_value_cents=5000)
    db.add(coupon)
    db.commit()
    return coupon


@pytest.fixture()
def admin_headers(db):
    db.add(Profile(id="admin-1", email="admin@example.com", role="admin"))
    db.commit()
    return {"Authorization": f"Bearer {jwt_utils.create_access_token('admin-1')}"}


@pytest.fixture()
def customer_headers(db):
    db.add(Profile(id="shopper-1", email="shopper@example.com", role="customer"))
    db.commit()
    return {"Authorization": f"Bearer {jwt_utils.create_access_token('shopper-1')}"}


@pytest.fixture()
def checkout_payload():
    def _payload(items, coupon_code=None, province="Gauteng"):
        body = {
            "customer": {"email": "Thandi@Example.com", "name": "Thandi Mokoena", "phone": "0821234567"},
            "shippingAddress": {
                "line1": "12 Long Street",
                "city": "Johannesburg",
                "province": province,
                "postal_code": "2001",
                "country": "ZA",
            },
            "items": items,
        }
        if coupon_code:
            body["couponCode"] = coupon_code
        return body
    return _payload


def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET, webhook_id: str | None = None, timestamp: str | None = None) -> dict:
    webhook_id = webhook_id or f"msg_{uuid.uuid4().hex}"
    timestamp = timestamp or str(int(time.time()))
    key = base64.b64decode(secret.split("_")[1])
    digest = hmac.new(key, f"{webhook_id}.{timestamp}.".encode() + body, hashlib.sha256).digest()
    return {
        "webhook-id": webhook_id,
        "webhook-timestamp": timestamp,
        "webhook-signature": f"v1,{base64.b64encode(digest).decode()}",
        "content-type": "application/json",
    }


def webhook_body(event_id: str, event_type: str, checkout_id: str | None) -> bytes:
    metadata = {"checkoutId": checkout_id} if checkout_id else {}
    return json.dumps(
        {
            "id": event_id,
            "type": event_type,
            "payload": {"id": f"p_{event_id}", "status": event_type.split(".")[-1], "metadata": metadata},
        }
    ).encode()


@pytest.fixture()
def yoco_ok():
    """requests.post stand-in returning a fresh hosted checkout each call."""
    calls = []

    def _post(url, json=None, headers=None, timeout=None):
        checkout_id = f"ch_{len(calls) + 1}"
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        resp = Mock()
        resp.ok = True
        resp.status_code = 200
        resp.json.return_value = {"id": checkout_id, "redirectUrl": f"https://c.yoco.com/checkout/{checkout_id}"}
        return resp

    _post.calls = calls
    return _post


@pytest.fixture()
def signer():
    return sign_webhook


@pytest.fixture()
def make_event():
    return webhook_body
