import zipfile
from pathlib import Path

import pytest

from medstore.cart.store import CartStore
from medstore.db.sqlite import create_order_from_cart, create_quotation, send_quote
from medstore.services.backup import make_backup_zip
from medstore.services.invoice_pdf import generate_invoice_pdf, generate_quotation_pdf


@pytest.fixture
def order(catalog):
    cart = CartStore()
    cart.add_to_cart(catalog["arthroscope"], 2)
    cart.add_to_cart(catalog["trocar"], 1)
    ok, order = create_order_from_cart(cart, {"name": "Dr. Asha Rao", "email": "asha@cityhospital.in"})
    assert ok
    return order


class TestPdf:
    def test_invoice(self, order, test_settings):
        path = Path(generate_invoice_pdf(order["order_number"]))

        assert path.parent == Path(test_settings.export_dir)
        assert path.name == "invoice_MS-000001.pdf"
        assert path.read_bytes().startswith(b"%PDF")

    def test_invoice_for_missing_order(self, db):
        with pytest.raises(ValueError, match="order not found"):
            generate_invoice_pdf("MS-404")

    def test_quotation(self, catalog):
        _, q = create_quotation(
            {"name": "Ravi", "email": "r@apollo.example", "company_name": "Apollo", "gst_number": "29ABC"},
            [("scalpel", 2)],
        )
        send_quote(q["quotation_number"], "540000", "two sets, installation included")

        path = Path(generate_quotation_pdf(q["quotation_number"]))

        assert path.read_bytes().startswith(b"%PDF")

    def test_long_invoice_spans_pages(self, db):
        from medstore.db.sqlite import add_product

        cart = CartStore()
        for i in range(70):
            ok, p = add_product(f"Suture pack {i}", "plastic-surgery", "150", stock_quantity=100)
            assert ok
            cart.add_to_cart(p, 2)
        _, order = create_order_from_cart(cart, {"name": "A", "email": "a@b.in"})

        path = Path(generate_invoice_pdf(order["order_number"]))

        assert path.stat().st_size > 0


class TestBackup:
    def test_zip_contains_db_and_pdfs(self, order, test_settings):
        generate_invoice_pdf(order["order_number"])

        path = make_backup_zip()

        assert Path(path).parent == Path(test_settings.backup_dir)
        with zipfile.ZipFile(path) as z:
            names = set(z.namelist())
        assert "db/medstore.db" in names
        assert "exports/invoice_MS-000001.pdf" in names

    def test_zip_without_exports(self, db):
        with zipfile.ZipFile(make_backup_zip()) as z:
            assert z.namelist() == ["db/medstore.db"]
