import hashlib
import hmac
import json
import time
from types import SimpleNamespace

import pytest
import stripe

WEBHOOK_SECRET = "whsec_test_secret"


@pytest.fixture
def stripe_sessions(monkeypatch):
    created = []

    def fake_create(**kwargs):
        created.append(kwargs)
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.test/pay/cs_test_123")

    monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
    return created


def signed_headers(payload: str, secret: str = WEBHOOK_SECRET):
    timestamp = int(time.time())
    signature = hmac.new(
        secret.encode("utf-8"), f"{timestamp}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return {"Stripe-Signature": f"t={timestamp},v1={signature}", "Content-Type": "application/json"}


def send_event(client, event_type, order_id, session_id="cs_test_123"):
    payload = json.dumps(
        {
            "id": "evt_1",
            "type": event_type,
            "data": {"object": {"id": session_id, "metadata": {"orderId": order_id}}},
        }
    )
    return client.post("/api/checkout/webhook", data=payload, headers=signed_headers(payload))


def start_checkout(client, headers, gemstone, quantity=1):
    return client.post(
        "/api/checkout/session",
        json={"items": [{"gemstoneId": str(gemstone["_id"]), "quantity": quantity}]},
        headers=headers,
    )


def test_checkout_session_creates_pending_order(client, db, make_gemstone, user_headers, stripe_sessions):
    gemstone = make_gemstone(price=1500.0)

    response = start_checkout(client, user_headers, gemstone, quantity=2)

    body = response.get_json()
    assert response.status_code == 200
    assert body["url"] == "https://checkout.stripe.test/pay/cs_test_123"
    assert body["sessionId"] == "cs_test_123"

    order = db.orders.find_one()
    assert str(order["_id"]) == body["orderId"]
    assert order["status"] == "pending"
    assert order["checkout_session_id"] == "cs_test_123"

    session_kwargs = stripe_sessions[0]
    assert session_kwargs["mode"] == "payment"
    assert session_kwargs["metadata"]["orderId"] == body["orderId"]
    assert session_kwargs["line_items"][0]["price_data"]["unit_amount"] == 150000
    assert session_kwargs["line_items"][0]["price_data"]["currency"] == "inr"
    assert session_kwargs["success_url"] == f"http://shop.test/orders/{body['orderId']}?success=1"


def test_checkout_rejects_insufficient_stock(client, make_gemstone, user_headers, stripe_sessions):
    gemstone = make_gemstone(name="Rare Ruby", stock_count=1)

    response = start_checkout(client, user_headers, gemstone, quantity=3)

    assert response.status_code == 400
    body = response.get_json()
    assert body["error"] == "Stock validation failed"
    assert body["details"] == ["Only 1 units available for Rare Ruby"]
    assert stripe_sessions == []


def test_checkout_requires_items(client, user_headers):
    response = client.post("/api/checkout/session", json={"items": []}, headers=user_headers)

    assert response.status_code == 400
    assert response.get_json()["error"] == "Items are required"


def test_checkout_rolls_back_order_on_stripe_error(client, db, monkeypatch, make_gemstone, user_headers):
    def failing_create(**kwargs):
        raise stripe.StripeError("card network unavailable")

    monkeypatch.setattr(stripe.checkout.Session, "create", failing_create)

    response = start_checkout(client, user_headers, make_gemstone())

    assert response.status_code == 502
    assert db.orders.count_documents({}) == 0
    assert db.order_status_history.count_documents({}) == 0


def test_checkout_without_stripe_key(client, app, make_gemstone, user_headers):
    app.config["STRIPE_SECRET_KEY"] = ""

    response = start_checkout(client, user_headers, make_gemstone())

    assert response.status_code == 500
    assert response.get_json()["error"] == "Payment processor is not configured."


def test_webhook_marks_order_paid_once(client, db, make_gemstone, user, user_headers, stripe_sessions, sent_emails):
    gemstone = make_gemstone(stock_count=4)
    client.put(
        "/api/cart", json={"items": [{"gemstoneId": str(gemstone["_id"]), "quantity": 1}]}, headers=user_headers
    )
    order_id = start_checkout(client, user_headers, gemstone, quantity=3).get_json()["orderId"]

    first = send_event(client, "checkout.session.completed", order_id)
    second = send_event(client, "checkout.session.completed", order_id)

    assert first.get_json() == {"received": True}
    assert second.status_code == 200
    order = db.orders.find_one()
    assert order["payment_status"] == "paid"
    assert order["status"] == "paid"
    assert db.gemstones.find_one({"_id": gemstone["_id"]})["stock_count"] == 1
    assert db.carts.count_documents({"user_id": user["_id"]}) == 0
    assert db.order_status_history.count_documents({"status": "paid"}) == 1
    confirmations = [payload for payload in sent_emails if payload["to"] == [user["email"]]]
    assert len(confirmations) == 1


def test_webhook_clamps_stock_sold_out_before_payment(
    client, db, make_gemstone, user_headers, stripe_sessions, sent_emails
):
    gemstone = make_gemstone(stock_count=4)
    order_id = start_checkout(client, user_headers, gemstone, quantity=3).get_json()["orderId"]
    db.gemstones.update_one({"_id": gemstone["_id"]}, {"$set": {"stock_count": 1}})

    response = send_event(client, "checkout.session.completed", order_id)

    assert response.status_code == 200
    assert db.gemstones.find_one({"_id": gemstone["_id"]})["stock_count"] == 0
    order = db.orders.find_one()
    assert order["stock_reserved"] is True
    assert order["payment_status"] == "paid"


def test_webhook_expired_session_cancels_order(client, db, make_gemstone, user_headers, stripe_sessions):
    order_id = start_checkout(client, user_headers, make_gemstone()).get_json()["orderId"]

    response = send_event(client, "checkout.session.expired", order_id)

    assert response.status_code == 200
    order = db.orders.find_one()
    assert order["status"] == "cancelled"
    assert order["payment_status"] == "expired"


def test_webhook_rejects_bad_signature(client):
    payload = json.dumps({"type": "checkout.session.completed", "data": {"object": {}}})

    response = client.post(
        "/api/checkout/webhook", data=payload, headers=signed_headers(payload, secret="whsec_wrong")
    )

    assert response.status_code == 400
    assert response.get_json()["error"].startswith("Webhook Error:")


def test_webhook_without_secret(client, app):
    app.config["STRIPE_WEBHOOK_SECRET"] = ""

    response = client.post("/api/checkout/webhook", data="{}")

    assert response.status_code == 500
    assert response.get_json()["error"] == "Webhook secret not configured"
