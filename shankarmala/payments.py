import json
from typing import Dict, List

import stripe
from flask import current_app


class PaymentConfigurationError(RuntimeError):
    pass


def require_stripe() -> None:
    secret_key = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret_key:
        raise PaymentConfigurationError("Payment processor is not configured.")
    stripe.api_key = secret_key


def to_line_items(items: List[Dict], currency: str) -> List[Dict]:
    line_items = []
    for item in items:
        product_data = {"name": item["name"]}
        if item.get("image", "").startswith("http"):
            product_data["images"] = [item["image"]]
        line_items.append(
            {
                "price_data": {
                    "currency": currency,
                    "product_data": product_data,
                    "unit_amount": int(round(item["price"] * 100)),
                },
                "quantity": item["quantity"],
            }
        )
    return line_items


def create_session(order_document: Dict, customer_email: str):
    """Open a hosted Stripe Checkout session for a pending order."""
    require_stripe()
    base_url = current_app.config["PUBLIC_BASE_URL"]
    order_id = str(order_document["_id"])
    return stripe.checkout.Session.create(
        payment_method_types=["card"],
        line_items=to_line_items(order_document["items"], current_app.config["STRIPE_CURRENCY"]),
        mode="payment",
        success_url=f"{base_url}/orders/{order_id}?success=1",
        cancel_url=f"{base_url}/checkout?canceled=1",
        metadata={"orderId": order_id, "userId": str(order_document.get("user_id") or "")},
        customer_email=customer_email or None,
    )


def parse_event(payload: bytes, signature: str, secret: str) -> Dict:
    """Verify a webhook signature and return the event as plain data.

    Raises ``stripe.SignatureVerificationError`` for a bad signature and
    ``ValueError`` for a body that is not JSON.
    """
    body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else str(payload)
    stripe.WebhookSignature.verify_header(body, signature or "", secret, tolerance=300)
    event = json.loads(body)
    if not isinstance(event, dict):
        raise ValueError("Event payload must be an object")
    return event
