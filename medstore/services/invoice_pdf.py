from __future__ import annotations

import os
from typing import Any, Dict, List

from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from medstore.config import settings
from medstore.db.sqlite import get_order, get_quotation

SHOP_NAME = "MedStore Surgical Supplies"


def _amount(v) -> str:
    return f"{v:,.{settings.decimals}f}"


def _draw_items(c: canvas.Canvas, y: float, h: float, items: List[Dict[str, Any]]) -> float:
    c.setFont("Helvetica-Bold", 10)
    c.drawString(40, y, "Item")
    c.drawString(310, y, "Qty")
    c.drawString(360, y, "Price")
    c.drawString(470, y, "Total")
    y -= 10
    c.line(40, y, 550, y)
    y -= 16

    c.setFont("Helvetica", 10)
    for it in items:
        name = it["name"]
        if it.get("bulk_applied"):
            name += " (bulk)"
        c.drawString(40, y, name[:48])
        c.drawRightString(340, y, str(it["quantity"]))
        c.drawRightString(440, y, _amount(it["unit_price"]))
        c.drawRightString(550, y, _amount(it["unit_price"] * it["quantity"]))
        y -= 14
        if y < 80:
            c.showPage()
            y = h - 50
            c.setFont("Helvetica", 10)

    y -= 10
    c.line(40, y, 550, y)
    return y - 18


def generate_invoice_pdf(order_number: str) -> str:
    order = get_order(order_number)
    if order is None:
        raise ValueError(f"order not found: {order_number}")

    os.makedirs(settings.export_dir, exist_ok=True)
    path = os.path.join(settings.export_dir, f"invoice_{order_number}.pdf")

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"{SHOP_NAME} - INVOICE {order['order_number']}")
    y -= 20

    c.setFont("Helvetica", 11)
    c.drawString(40, y, f"Customer: {order['customer_name']} <{order['customer_email']}>")
    y -= 16
    c.drawString(40, y, f"Date: {order['created_at']}")
    y -= 16
    c.drawString(40, y, f"Status: {order['status']} / payment {order['payment_status']}")
    y -= 24

    y = _draw_items(c, y, h, order["items"])

    c.setFont("Helvetica", 11)
    c.drawRightString(550, y, f"Subtotal: {_amount(order['subtotal'])}")
    y -= 16
    shipping = "FREE" if order["shipping_amount"] == 0 else _amount(order["shipping_amount"])
    c.drawRightString(550, y, f"Shipping: {shipping}")
    y -= 18
    c.setFont("Helvetica-Bold", 12)
    c.drawRightString(550, y, f"TOTAL: {_amount(order['total_amount'])} {order['currency']}")

    c.save()
    return path


def generate_quotation_pdf(quotation_number: str) -> str:
    q = get_quotation(quotation_number)
    if q is None:
        raise ValueError(f"quotation not found: {quotation_number}")

    os.makedirs(settings.export_dir, exist_ok=True)
    path = os.path.join(settings.export_dir, f"quotation_{quotation_number}.pdf")

    c = canvas.Canvas(path, pagesize=A4)
    w, h = A4

    y = h - 50
    c.setFont("Helvetica-Bold", 14)
    c.drawString(40, y, f"{SHOP_NAME} - QUOTATION {q['quotation_number']}")
    y -= 20

    c.setFont("Helvetica", 11)
    buyer = q["company_name"] or q["customer_name"]
    c.drawString(40, y, f"For: {buyer} ({q['customer_email']})")
    y -= 16
    if q["gst_number"]:
        c.drawString(40, y, f"GST: {q['gst_number']}")
        y -= 16
    c.drawString(40, y, f"Date: {q['created_at']}")
    y -= 24

    y = _draw_items(c, y, h, q["items"])

    c.setFont("Helvetica", 11)
    c.drawRightString(550, y, f"List estimate: {_amount(q['estimated_amount'])} {settings.currency}")
    y -= 18
    if q["quoted_amount"] is not None:
        c.setFont("Helvetica-Bold", 12)
        c.drawRightString(550, y, f"QUOTED: {_amount(q['quoted_amount'])} {settings.currency}")
        y -= 16
        c.setFont("Helvetica", 10)
        c.drawRightString(550, y, f"Valid until {q['valid_until']}")
        y -= 16
    if q["admin_notes"]:
        c.setFont("Helvetica", 10)
        c.drawString(40, y, f"Notes: {q['admin_notes'][:90]}")

    c.save()
    return path
