from decimal import Decimal

from medstore.bot.handlers import format_order, format_order_detail, format_product, format_quotation, format_stats
from medstore.cart.store import CartStore
from medstore.db.sqlite import create_order_from_cart, create_quotation, ship_order


def test_stats(test_settings):
    text = format_stats(
        {
            "total_revenue": Decimal("1245000"),
            "total_orders": 3,
            "total_products": 12,
            "total_customers": 2,
            "pending_quotations": 1,
        }
    )

    assert "1,245,000.00 INR" in text
    assert "Pending quotations: 1" in text


def test_product_lines(catalog):
    assert format_product(catalog["arthroscope"]) == (
        "• HD Arthroscope [arthroscopy] 520,000.00 INR | bulk 480,000.00 INR from 2 | stock 10"
    )
    assert "bulk" not in format_product(catalog["scalpel"])


def test_order_texts_escape_html(catalog):
    cart = CartStore()
    cart.add_to_cart(catalog["trocar"], 10)
    _, order = create_order_from_cart(cart, {"name": "Dr <b>Rao</b>", "email": "rao@x.in"})
    _, order = ship_order(order["order_number"], "DTDC", "D-77")

    assert "&lt;b&gt;Rao&lt;/b&gt;" in format_order(order)
    detail = format_order_detail(order)
    assert "Disposable Trocar × 10 @ 1,000.00 INR (bulk) = 10,000.00 INR" in detail
    assert "Shipping: 2,500.00 INR" in detail
    assert "tracking D-77" in detail


def test_quotation_line(catalog):
    _, q = create_quotation(
        {"name": "Ravi", "email": "r@apollo.example", "company_name": "Apollo"},
        [("scalpel", 1)],
    )

    assert format_quotation(q) == "• <b>QT-000001</b> Apollo | 1 items | est. 285,000.00 INR | pending"
