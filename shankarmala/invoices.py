"""Render order invoices as single-page PDF documents with Pillow."""

import io
from typing import Dict

from PIL import Image, ImageDraw, ImageFont

from .helpers import safe_float, safe_positive_int

PAGE_SIZE = (1240, 1754)  # A4 at 150 dpi
MARGIN = 90
LINE_HEIGHT = 34
MAX_ITEM_ROWS = 30


def _latin1(value) -> str:
    # The bundled bitmap font only covers Latin-1.
    return str(value or "").encode("latin-1", "replace").decode("latin-1")


def _font(size: int):
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        return ImageFont.load_default()


def render_invoice_pdf(order: Dict) -> bytes:
    """Draw the invoice for a serialized order and return the PDF bytes."""
    image = Image.new("RGB", PAGE_SIZE, "white")
    draw = ImageDraw.Draw(image)
    title_font = _font(48)
    body_font = _font(24)
    currency = str(order.get("currency") or "INR").upper()

    y = MARGIN
    draw.text((MARGIN, y), "Shankarmala", fill="#3b2a1a", font=title_font)
    y += 80
    draw.text((MARGIN, y), "INVOICE", fill="#b8860b", font=body_font)
    y += LINE_HEIGHT * 2

    header_lines = [
        f"Order: {order.get('orderNumber') or order.get('id')}",
        f"Date: {(order.get('createdAt') or '')[:10]}",
        f"Customer: {order.get('customerName') or order.get('email') or ''}",
        f"Email: {order.get('email') or ''}",
        f"Status: {order.get('status') or ''}",
    ]
    for line in header_lines:
        draw.text((MARGIN, y), _latin1(line), fill="black", font=body_font)
        y += LINE_HEIGHT
    y += LINE_HEIGHT

    right_edge = PAGE_SIZE[0] - MARGIN
    draw.text((MARGIN, y), "Item", fill="black", font=body_font)
    draw.text((right_edge - 420, y), "Qty", fill="black", font=body_font)
    draw.text((right_edge - 240, y), f"Amount ({currency})", fill="black", font=body_font)
    y += LINE_HEIGHT
    draw.line((MARGIN, y, right_edge, y), fill="#999999", width=2)
    y += 12

    items = order.get("items") or []
    for item in items[:MAX_ITEM_ROWS]:
        quantity = safe_positive_int(item.get("quantity"), 1) or 1
        price = safe_float(item.get("price"), 0.0)
        name = item.get("name") or (item.get("gemstone") or {}).get("name") or "Gemstone"
        draw.text((MARGIN, y), _latin1(name)[:48], fill="black", font=body_font)
        draw.text((right_edge - 420, y), str(quantity), fill="black", font=body_font)
        draw.text((right_edge - 240, y), f"{price * quantity:.2f}", fill="black", font=body_font)
        y += LINE_HEIGHT
    if len(items) > MAX_ITEM_ROWS:
        draw.text(
            (MARGIN, y), f"... and {len(items) - MAX_ITEM_ROWS} more items", fill="black", font=body_font
        )
        y += LINE_HEIGHT

    draw.line((MARGIN, y, right_edge, y), fill="#999999", width=2)
    y += 16
    total = safe_float(order.get("total"), 0.0)
    draw.text((right_edge - 420, y), "Total", fill="black", font=body_font)
    draw.text((right_edge - 240, y), f"{total:.2f}", fill="black", font=body_font)

    buffer = io.BytesIO()
    image.save(buffer, format="PDF", resolution=150.0)
    return buffer.getvalue()
