"""
Shared fixtures.

Every test that touches disk gets its own database, export, backup and cart
directories under tmp_path; settings are swapped in each loaded medstore
module so nothing writes to the real data folder.
"""
import dataclasses
import sys
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from medstore.cart.sessions import CartSessions
from medstore.catalog.models import Product
from medstore.config import settings as real_settings
from medstore.db.sqlite import add_product, init_db
from medstore.web.main import create_app

ADMIN_TOKEN = "test-admin-token"


def make_product(
    product_id: str = "p1",
    price="1000",
    bulk_price=None,
    min_bulk_quantity=None,
    **kwargs,
) -> Product:
    return Product(
        id=product_id,
        name=kwargs.pop("name", f"Product {product_id}"),
        price=Decimal(str(price)),
        bulk_price=None if bulk_price is None else Decimal(str(bulk_price)),
        min_bulk_quantity=min_bulk_quantity,
        **kwargs,
    )


@pytest.fixture
def product_factory():
    return make_product


@pytest.fixture
def test_settings(tmp_path, monkeypatch):
    s = dataclasses.replace(
        real_settings,
        db_path=str(tmp_path / "data" / "medstore.db"),
        export_dir=str(tmp_path / "exports"),
        backup_dir=str(tmp_path / "backups"),
        cart_dir=str(tmp_path / "carts"),
        currency="INR",
        decimals=2,
        free_shipping_threshold=Decimal("50000"),
        flat_shipping_fee=Decimal("2500"),
        quote_valid_days=30,
        admin_api_token=ADMIN_TOKEN,
    )
    for name, module in list(sys.modules.items()):
        if name.startswith("medstore") and hasattr(module, "settings"):
            monkeypatch.setattr(module, "settings", s)
    return s


@pytest.fixture
def db(test_settings):
    init_db()
    return test_settings


@pytest.fixture
def catalog(db):
    """Three products: plain, bulk-priced, and one almost out of stock."""
    products = {}
    ok, products["scalpel"] = add_product(
        "Surgical Scalpel Set",
        "plastic-surgery",
        "285000",
        product_id="scalpel",
        stock_quantity=5,
        certifications=["ISO", "CE"],
        description="Precision stainless scalpel set",
        featured=True,
    )
    assert ok
    ok, products["arthroscope"] = add_product(
        "HD Arthroscope",
        "arthroscopy",
        "520000",
        product_id="arthroscope",
        bulk_price="480000",
        min_bulk_quantity=2,
        stock_quantity=10,
        certifications=["FDA"],
    )
    assert ok
    ok, products["trocar"] = add_product(
        "Disposable Trocar",
        "laparoscopy",
        "1200",
        product_id="trocar",
        bulk_price="1000",
        min_bulk_quantity=10,
        stock_quantity=3,
        is_consumable=True,
    )
    assert ok
    return products


@pytest.fixture
def test_client(catalog):
    app = create_app(CartSessions(), admin_token=ADMIN_TOKEN)
    with TestClient(app) as client:
        yield client


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}
