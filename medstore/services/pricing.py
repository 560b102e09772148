from __future__ import annotations

from decimal import Decimal

from medstore.catalog.models import Product


def is_bulk_price_applied(product: Product, quantity: int) -> bool:
    # both fields must be set; a bulk price without a threshold is inactive
    if product.bulk_price is None or product.min_bulk_quantity is None:
        return False
    return quantity >= product.min_bulk_quantity


def effective_unit_price(product: Product, quantity: int) -> Decimal:
    if is_bulk_price_applied(product, quantity):
        return product.bulk_price
    return product.price


def line_total(product: Product, quantity: int) -> Decimal:
    return effective_unit_price(product, quantity) * quantity


def bulk_savings(product: Product, quantity: int) -> Decimal:
    return (product.price - effective_unit_price(product, quantity)) * quantity
