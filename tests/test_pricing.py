from decimal import Decimal

from medstore.services.pricing import (
    bulk_savings,
    effective_unit_price,
    is_bulk_price_applied,
    line_total,
)


class TestEffectiveUnitPrice:
    def test_bulk_threshold_is_inclusive(self, product_factory):
        p = product_factory(price=1000, bulk_price=800, min_bulk_quantity=10)

        assert effective_unit_price(p, 10) == Decimal("800")
        assert effective_unit_price(p, 9) == Decimal("1000")
        assert effective_unit_price(p, 250) == Decimal("800")

    def test_bulk_price_without_threshold_never_applies(self, product_factory):
        p = product_factory(price=1000, bulk_price=800)

        for qty in (1, 10, 1000):
            assert effective_unit_price(p, qty) == Decimal("1000")
            assert not is_bulk_price_applied(p, qty)

    def test_threshold_without_bulk_price_never_applies(self, product_factory):
        p = product_factory(price=1000, min_bulk_quantity=2)

        assert effective_unit_price(p, 5) == Decimal("1000")

    def test_plain_product(self, product_factory):
        p = product_factory(price="99.95")

        assert effective_unit_price(p, 3) == Decimal("99.95")


class TestLineAmounts:
    def test_line_total_uses_effective_price(self, product_factory):
        p = product_factory(price=520000, bulk_price=480000, min_bulk_quantity=2)

        assert line_total(p, 1) == Decimal("520000")
        assert line_total(p, 2) == Decimal("960000")

    def test_no_intermediate_rounding(self, product_factory):
        p = product_factory(price="0.333")

        assert line_total(p, 3) == Decimal("0.999")

    def test_bulk_savings(self, product_factory):
        p = product_factory(price=1000, bulk_price=800, min_bulk_quantity=10)

        assert bulk_savings(p, 9) == Decimal("0")
        assert bulk_savings(p, 10) == Decimal("2000")
