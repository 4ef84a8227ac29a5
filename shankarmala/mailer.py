from typing import Dict, List, Optional, Tuple

import resend
from flask import current_app, render_template

from .helpers import normalize_email, safe_float, safe_positive_int

PASSWORD_RESET_EXPIRATION_MINUTES = 30


def send_email_via_resend(payload: Dict[str, object], api_key: Optional[str] = None):
    configured_api_key = (api_key or current_app.config.get("RESEND_API_KEY") or "").strip()
    if not configured_api_key:
        return False, "Email delivery is not configured."

    previous_api_key = getattr(resend, "api_key", None)
    resend.api_key = configured_api_key
    try:
        response = resend.Emails.send(payload)
    except Exception as exc:
        return False, str(exc)
    finally:
        resend.api_key = previous_api_key

    if not isinstance(response, dict) or not response.get("id"):
        return False, str(response)

    return True, None


def send_email(recipient_email: str, subject: str, html_body: str, text_body: str):
    normalized_email = normalize_email(recipient_email)
    if not normalized_email:
        return False, "Missing recipient email."

    payload: Dict[str, object] = {
        "from": current_app.config["MAIL_FROM"],
        "to": [normalized_email],
        "subject": subject,
        "html": html_body,
        "text": text_body,
    }
    sent, error = send_email_via_resend(payload)
    if not sent:
        current_app.logger.error(
            "Email '%s' to %s failed: %s", subject, normalized_email, error or "Unknown delivery error"
        )
    return sent, error


def public_url(path: str) -> str:
    return f"{current_app.config['PUBLIC_BASE_URL']}{path}"


def send_verification_email(recipient_email: str, recipient_name: str, token: str):
    verify_url = public_url(f"/verify-email?token={token}")
    html_body = render_template(
        "emails/verify_email.html", recipient_name=recipient_name or "", verify_url=verify_url
    )
    text_body = f"Welcome to Shankarmala! Confirm your email address by opening {verify_url}"
    return send_email(recipient_email, "Verify your Shankarmala account", html_body, text_body)


def send_password_reset_email(recipient_email: str, token: str):
    reset_url = public_url(f"/reset-password?token={token}")
    html_body = render_template(
        "emails/password_reset.html",
        reset_url=reset_url,
        expiration_minutes=PASSWORD_RESET_EXPIRATION_MINUTES,
    )
    text_body = (
        f"Reset your Shankarmala password within {PASSWORD_RESET_EXPIRATION_MINUTES} "
        f"minutes by opening {reset_url}"
    )
    return send_email(recipient_email, "Reset your Shankarmala password", html_body, text_body)


def normalize_order_email_items(items: List[Dict]) -> List[Dict]:
    normalized_items: List[Dict] = []
    for entry in items or []:
        if not isinstance(entry, dict):
            continue
        name = str(entry.get("name") or "").strip() or "Gemstone"
        quantity = safe_positive_int(entry.get("quantity"), 1) or 1
        price_value = round(safe_float(entry.get("price"), 0.0), 2)
        normalized_items.append(
            {
                "name": name,
                "quantity": quantity,
                "price": price_value,
                "line_total": round(price_value * quantity, 2),
            }
        )
    return normalized_items


def _order_context(order_document: Dict) -> Dict[str, object]:
    items = normalize_order_email_items(order_document.get("items"))
    calculated_total = sum(item["line_total"] for item in items)
    return {
        "order_number": order_document.get("order_number") or str(order_document.get("_id")),
        "customer_name": order_document.get("customer_name") or "",
        "customer_email": order_document.get("email") or "",
        "items": items,
        "total": round(safe_float(order_document.get("total"), calculated_total), 2),
        "currency": str(order_document.get("currency") or "INR").upper(),
        "status": order_document.get("status") or "pending",
        "order_url": public_url(f"/orders/{order_document.get('_id')}"),
    }


def send_order_confirmation_email(order_document: Dict) -> Tuple[bool, Optional[str]]:
    context = _order_context(order_document)
    html_body = render_template("emails/order_confirmation.html", **context)
    text_lines = [f"Thank you for your order {context['order_number']}."]
    for item in context["items"]:
        text_lines.append(f"{item['name']} x {item['quantity']}: {item['line_total']:.2f}")
    text_lines.append(f"Total: {context['currency']} {context['total']:.2f}")
    return send_email(
        order_document.get("email"),
        f"Your Shankarmala order {context['order_number']}",
        html_body,
        "\n".join(text_lines),
    )


def send_admin_order_alert(order_document: Dict) -> Tuple[bool, Optional[str]]:
    admin_email = current_app.config.get("ADMIN_NOTIFICATION_EMAIL")
    if not admin_email:
        return False, "Admin notification email is not configured."
    context = _order_context(order_document)
    html_body = render_template("emails/admin_new_order.html", **context)
    text_body = (
        f"New order {context['order_number']} from {context['customer_email']} "
        f"for {context['currency']} {context['total']:.2f}."
    )
    return send_email(admin_email, f"New order {context['order_number']}", html_body, text_body)


def send_order_status_email(order_document: Dict) -> Tuple[bool, Optional[str]]:
    context = _order_context(order_document)
    html_body = render_template("emails/order_status.html", **context)
    text_body = f"Your order {context['order_number']} is now {context['status']}."
    return send_email(
        order_document.get("email"),
        f"Order {context['order_number']} is {context['status']}",
        html_body,
        text_body,
    )
