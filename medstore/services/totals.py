from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Iterable, NamedTuple, Optional

from medstore.config import settings
from medstore.services.pricing import bulk_savings, is_bulk_price_applied


class OrderTotals(NamedTuple):
    total_items: int
    subtotal: Decimal
    shipping: Decimal
    grand_total: Decimal


def shipping_fee(
    subtotal: Decimal,
    free_shipping_threshold: Optional[Decimal] = None,
    flat_shipping_fee: Optional[Decimal] = None,
) -> Decimal:
    threshold = settings.free_shipping_threshold if free_shipping_threshold is None else free_shipping_threshold
    fee = settings.flat_shipping_fee if flat_shipping_fee is None else flat_shipping_fee
    if subtotal >= threshold:
        return Decimal("0")
    return Decimal(fee)


def calculate_totals(
    lines: Iterable,
    free_shipping_threshold: Optional[Decimal] = None,
    flat_shipping_fee: Optional[Decimal] = None,
) -> OrderTotals:
    """
    Subtotal, shipping and grand total for a snapshot of cart lines.

    Recomputed from the lines on every call; nothing is cached because the
    cart may change between reads. Threshold comparison is inclusive.
    """
    total_items = 0
    subtotal = Decimal("0")
    for line in lines:
        total_items += line.quantity
        subtotal += line.total

    shipping = shipping_fee(subtotal, free_shipping_threshold, flat_shipping_fee)
    return OrderTotals(
        total_items=total_items,
        subtotal=subtotal,
        shipping=shipping,
        grand_total=subtotal + shipping,
    )


def amount_to_free_shipping(subtotal: Decimal, free_shipping_threshold: Optional[Decimal] = None) -> Decimal:
    threshold = settings.free_shipping_threshold if free_shipping_threshold is None else free_shipping_threshold
    return max(Decimal("0"), threshold - subtotal)


def describe_cart(cart) -> Dict[str, Any]:
    """
    Cart view for the web layer and checkout: ordered lines with their
    effective prices plus the totals. Amounts stay Decimal.
    """
    lines = cart.lines
    totals = calculate_totals(lines)
    shipping = totals.shipping
    # nothing to ship
    if not lines:
        shipping = Decimal("0")

    items = []
    for line in lines:
        items.append(
            {
                "product_id": line.product_id,
                "product": line.product.to_dict(),
                "quantity": line.quantity,
                "effective_unit_price": line.unit_price,
                "line_total": line.total,
                "bulk_applied": is_bulk_price_applied(line.product, line.quantity),
                "bulk_savings": bulk_savings(line.product, line.quantity),
            }
        )

    return {
        "items": items,
        "total_items": totals.total_items,
        "subtotal": totals.subtotal,
        "shipping": shipping,
        "grand_total": totals.subtotal + shipping,
        "amount_to_free_shipping": amount_to_free_shipping(totals.subtotal) if lines else Decimal("0"),
    }
