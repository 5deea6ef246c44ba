import hashlib
import hmac
import json
import time
from decimal import Decimal

import httpx
import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from payment_hub.main import app as fastapi_app
from payment_hub.database import Base
from payment_hub.checkout import CheckoutHandle
from payment_hub.exceptions import PersistenceFailure, ProviderError
from payment_hub.models import PaymentRecord
import payment_hub.auth

# Setup test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test_temp.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

WEBHOOK_SECRET = "whsec_test"


def compute_signature(payload, timestamp, secret):
    return hmac.new(secret.encode(), f"{timestamp}.".encode() + payload, hashlib.sha256).hexdigest()


@pytest.fixture(autouse=True)
def setup_db():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def client(monkeypatch):
    # Point routes and webhook at the test database
    monkeypatch.setattr("payment_hub.routes.SessionLocal", TestingSessionLocal)
    monkeypatch.setattr("payment_hub.webhook.SessionLocal", TestingSessionLocal)
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", WEBHOOK_SECRET)
    # Bypass auth verification
    fastapi_app.dependency_overrides[payment_hub.auth.verify_token] = lambda: True
    with TestClient(fastapi_app) as c:
        yield c
    fastapi_app.dependency_overrides.clear()


def post_event(client, event, secret=WEBHOOK_SECRET, timestamp=None):
    payload = json.dumps(event).encode()
    timestamp = int(time.time()) if timestamp is None else timestamp
    signature = f"t={timestamp},v1={compute_signature(payload, timestamp, secret)}"
    return client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": signature, "content-type": "application/json"},
    )


def session_completed_event(session_id="cs_1", intent_id="pi_1"):
    return {
        "id": "evt_session",
        "type": "checkout.session.completed",
        "data": {"object": {
            "id": session_id,
            "payment_intent": intent_id,
            "customer_email": "buyer@example.com",
            "amount_total": 1999,
            "currency": "eur",
            "payment_status": "complete",
        }},
    }


def test_create_payment_success(client, mocker):
    adapter = mocker.Mock(return_value=CheckoutHandle(
        checkout_url="https://checkout.stripe.com/c/pay/cs_1", session_id="cs_1"))
    mocker.patch.dict("payment_hub.routes.ADAPTERS", {"stripe": adapter})

    response = client.post(
        "/create-payment/stripe",
        json={"amount": "19.99", "description": "Cinema ticket"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "checkoutUrl": "https://checkout.stripe.com/c/pay/cs_1",
        "sessionId": "cs_1",
        "sessionData": None,
    }
    amount, description, settings = adapter.call_args.args
    assert amount == Decimal("19.99")
    assert description == "Cinema ticket"
    assert settings.stripe_webhook_secret == WEBHOOK_SECRET


def test_create_payment_unknown_provider(client):
    response = client.post("/create-payment/bitcoin", json={"amount": "5.00"})

    assert response.status_code == 404


@pytest.mark.parametrize("amount", ["0", "-3", "abc"])
def test_create_payment_rejects_invalid_amount(client, amount):
    response = client.post("/create-payment/mollie", json={"amount": amount})

    assert response.status_code == 422


def test_create_payment_provider_failure(client, mocker):
    adapter = mocker.Mock(side_effect=ProviderError("mollie", "401 Unauthorized"))
    mocker.patch.dict("payment_hub.routes.ADAPTERS", {"mollie": adapter})

    response = client.post("/create-payment/mollie", json={"amount": "10.00"})

    assert response.status_code == 502
    assert response.json() == {"error": "Mollie checkout failed"}


def test_stripe_webhook_success(client):
    response = post_event(client, session_completed_event())

    assert response.status_code == 200
    assert response.json() == {"received": True}

    db = TestingSessionLocal()
    record = db.query(PaymentRecord).filter_by(session_id="cs_1").first()
    assert record.amount_total == 1999
    assert record.payment_intent_id == "pi_1"
    db.close()


def test_stripe_webhook_invalid_signature(client):
    response = post_event(client, session_completed_event(), secret="whsec_wrong")

    assert response.status_code == 400
    assert response.text.startswith("Webhook Error: ")

    db = TestingSessionLocal()
    assert db.query(PaymentRecord).count() == 0
    db.close()


def test_stripe_webhook_missing_signature(client):
    response = client.post("/webhooks/stripe", content=b"{}")

    assert response.status_code == 400
    assert response.text == "Webhook Error: missing signature header"


def test_stripe_webhook_stale_timestamp(client):
    response = post_event(client, session_completed_event(), timestamp=int(time.time()) - 3600)

    assert response.status_code == 400
    assert "tolerance" in response.text


def test_stripe_webhook_without_configured_secret(client, monkeypatch):
    monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")

    response = post_event(client, session_completed_event(), secret="")

    assert response.status_code == 400


def test_stripe_webhook_unhandled_event_is_acknowledged(client):
    response = post_event(client, {
        "id": "evt_other", "type": "customer.created", "data": {"object": {"id": "cus_1"}},
    })

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_stripe_webhook_store_failure_is_acknowledged(client, mocker):
    mocker.patch(
        "payment_hub.store.PaymentRecordStore.merge",
        side_effect=PersistenceFailure("session_id", "cs_1", RuntimeError("database down")),
    )

    response = post_event(client, session_completed_event())

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_get_payment_record(client):
    post_event(client, session_completed_event())

    response = client.get("/payments/cs_1")

    assert response.status_code == 200
    body = response.json()
    assert body["payment_intent_id"] == "pi_1"
    assert body["customer_email"] == "buyer@example.com"
    assert body["charge_id"] is None


def test_get_payment_record_not_found(client):
    response = client.get("/payments/cs_missing")

    assert response.status_code == 404


def test_stripe_session_lookup(client, mocker):
    session = mocker.Mock()
    session.to_dict.return_value = {"id": "cs_1", "status": "complete"}
    retrieve = mocker.patch("stripe.checkout.Session.retrieve", return_value=session)

    response = client.get("/stripe-session/cs_1")

    assert response.status_code == 200
    assert response.json() == {"id": "cs_1", "status": "complete"}
    assert retrieve.call_args.kwargs["expand"] == ["line_items", "payment_intent"]


def test_mollie_session_rejects_template_id(client):
    response = client.get("/mollie-session/{id}")

    assert response.status_code == 400


def test_mollie_session_lookup(client, mocker):
    mocker.patch("payment_hub.routes.mollie_service.get_payment",
                 return_value={"id": "tr_1", "status": "paid"})

    response = client.get("/mollie-session/tr_1")

    assert response.status_code == 200
    assert response.json()["status"] == "paid"


def test_mollie_config_report(client, monkeypatch):
    monkeypatch.setenv("FRONTEND_URL", "https://shop.example.com")
    monkeypatch.setenv("WEBHOOK_URL", "https://api.example.com")
    monkeypatch.delenv("MOLLIE_API_KEY", raising=False)

    response = client.get("/test-mollie-config")

    assert response.json() == {
        "frontendUrl": "https://shop.example.com",
        "webhookUrl": "https://api.example.com/webhooks/mollie",
        "redirectUrl": "https://shop.example.com/success?mollie_id=test_payment_id",
        "mollieApiKey": "Not set",
        "isLocalhost": False,
    }


def test_verify_token(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "jwt-secret")
    token = jwt.encode({"sub": "frontend"}, "jwt-secret", algorithm="HS256")

    assert payment_hub.auth.verify_token(f"Bearer {token}") == {"sub": "frontend"}

    with pytest.raises(HTTPException) as excinfo:
        payment_hub.auth.verify_token(f"Bearer {token}x")
    assert excinfo.value.status_code == 401

    with pytest.raises(HTTPException):
        payment_hub.auth.verify_token(f"Basic {token}")


def test_routes_require_token(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "jwt-secret")
    with TestClient(fastapi_app) as c:
        response = c.get("/payments/cs_1", headers={"Authorization": "Bearer nope"})

    assert response.status_code == 401


def test_stripe_webhook_bare_path_is_an_alias(client):
    payload = json.dumps(session_completed_event()).encode()
    timestamp = int(time.time())

    response = client.post(
        "/webhooks",
        content=payload,
        headers={"stripe-signature": f"t={timestamp},v1={compute_signature(payload, timestamp, WEBHOOK_SECRET)}"},
    )

    assert response.status_code == 200
    db = TestingSessionLocal()
    assert db.query(PaymentRecord).filter_by(session_id="cs_1").count() == 1
    db.close()


@pytest.mark.parametrize("event", [
    {"id": "evt_list", "type": "charge.updated",
     "data": {"object": {"id": "ch_1", "payment_intent": ["pi_1"]}}},
    {"id": "evt_address", "type": "charge.updated",
     "data": {"object": {"id": "ch_1", "payment_intent": "pi_1",
                         "billing_details": {"address": "1 Main St"}}}},
    {"id": "evt_error", "type": "payment_intent.payment_failed",
     "data": {"object": {"id": "pi_1", "last_payment_error": "card_declined"}}},
])
def test_stripe_webhook_odd_payload_shapes_are_acknowledged(client, event):
    response = post_event(client, event)

    assert response.status_code == 200
    assert response.json() == {"received": True}


def test_stripe_webhook_classifier_crash_is_acknowledged(client, mocker):
    mocker.patch("payment_hub.webhook.classify", side_effect=RuntimeError("boom"))

    response = post_event(client, session_completed_event())

    assert response.status_code == 200
    db = TestingSessionLocal()
    assert db.query(PaymentRecord).count() == 0
    db.close()


def test_create_payment_non_json_provider_reply_is_bad_gateway(client, mocker):
    mocker.patch("httpx.post", return_value=httpx.Response(
        200, text="<html>gateway</html>",
        request=httpx.Request("POST", "https://checkout-test.adyen.com/v71/sessions")))

    response = client.post("/create-payment/adyen", json={"amount": "25.00"})

    assert response.status_code == 502
    assert response.json() == {"error": "Adyen checkout failed"}
