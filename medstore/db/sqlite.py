from __future__ import annotations

import json
import logging
import os
import sqlite3
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from medstore.catalog.models import Product, to_decimal
from medstore.config import settings
from medstore.constants import (
    CATEGORIES,
    CERTIFICATIONS,
    CUSTOMER_HOSPITAL,
    CUSTOMER_INDIVIDUAL,
    CUSTOMER_TYPES,
    ORDER_PREFIX,
    ORDER_STATUSES,
    PAYMENT_STATUSES,
    QUOTATION_PREFIX,
    QUOTATION_STATUSES,
    SORT_NAME,
    SORT_PRICE_HIGH,
    SORT_PRICE_LOW,
)
from medstore.services.pricing import effective_unit_price, is_bulk_price_applied
from medstore.services.totals import calculate_totals
from medstore.utils.validators import is_valid_email, parse_quantity, slugify

logger = logging.getLogger(__name__)

_PRODUCT_FIELDS = (
    "name",
    "slug",
    "category",
    "sub_category",
    "description",
    "price",
    "bulk_price",
    "min_bulk_quantity",
    "in_stock",
    "stock_quantity",
    "brand",
    "model",
    "sku",
    "warranty",
    "certifications",
    "is_consumable",
    "featured",
)


def _connect() -> sqlite3.Connection:
    os.makedirs(os.path.dirname(os.path.abspath(settings.db_path)), exist_ok=True)
    conn = sqlite3.connect(settings.db_path)
    conn.row_factory = sqlite3.Row
    return conn


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def init_db() -> None:
    conn = _connect()
    try:
        with open(os.path.join(os.path.dirname(__file__), "schema.sql"), "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- products ----------------

def _normalize_product_fields(data: Dict[str, Any]) -> Tuple[Optional[str], Dict[str, Any]]:
    """Validate and convert product columns. Returns (error, clean)."""
    clean: Dict[str, Any] = {}
    for key, value in data.items():
        if key not in _PRODUCT_FIELDS:
            return f"unknown field: {key}", {}
        clean[key] = value

    if "name" in clean and not str(clean["name"] or "").strip():
        return "name is required", {}
    if "category" in clean and clean["category"] not in CATEGORIES:
        return f"unknown category: {clean['category']}", {}

    try:
        if "price" in clean:
            price = to_decimal(clean["price"])
            if price < 0:
                return "price must be >= 0", {}
            clean["price"] = str(price)
        if "bulk_price" in clean:
            if clean["bulk_price"] is None or clean["bulk_price"] == "":
                clean["bulk_price"] = None
            else:
                bulk = to_decimal(clean["bulk_price"])
                if bulk < 0:
                    return "bulk_price must be >= 0", {}
                clean["bulk_price"] = str(bulk)
    except ValueError as e:
        return str(e), {}

    if "min_bulk_quantity" in clean and clean["min_bulk_quantity"] not in (None, ""):
        q = parse_quantity(clean["min_bulk_quantity"])
        if q is None or q < 1:
            return "min_bulk_quantity must be a positive integer", {}
        clean["min_bulk_quantity"] = q
    elif "min_bulk_quantity" in clean:
        clean["min_bulk_quantity"] = None

    if "stock_quantity" in clean:
        q = parse_quantity(clean["stock_quantity"])
        if q is None or q < 0:
            return "stock_quantity must be >= 0", {}
        clean["stock_quantity"] = q

    if "certifications" in clean:
        certs = clean["certifications"] or ()
        if isinstance(certs, str):
            certs = [c for c in certs.split(",")]
        certs = [c.strip().upper() for c in certs if c.strip()]
        unknown = [c for c in certs if c not in CERTIFICATIONS]
        if unknown:
            return f"unknown certification: {unknown[0]}", {}
        clean["certifications"] = ",".join(certs)

    for flag in ("in_stock", "is_consumable", "featured"):
        if flag in clean:
            clean[flag] = 1 if clean[flag] else 0

    return None, clean


def add_product(
    name: str,
    category: str,
    price,
    *,
    product_id: Optional[str] = None,
    slug: Optional[str] = None,
    stock_quantity: int = 0,
    in_stock: Optional[bool] = None,
    **extra: Any,
) -> Tuple[bool, Any]:
    data = dict(extra)
    data.update(
        name=name,
        category=category,
        price=price,
        slug=slug or slugify(name),
        stock_quantity=stock_quantity,
    )
    err, clean = _normalize_product_fields(data)
    if err:
        return False, err
    if not clean["slug"]:
        return False, "slug is required"
    if in_stock is None:
        in_stock = clean["stock_quantity"] > 0
    clean["in_stock"] = 1 if in_stock else 0

    pid = product_id or uuid.uuid4().hex
    now = _now()
    cols = ["id", *clean.keys(), "created_at", "updated_at"]
    vals = [pid, *clean.values(), now, now]

    conn = _connect()
    try:
        conn.execute(
            f"INSERT INTO products({', '.join(cols)}) VALUES({', '.join('?' for _ in cols)})",
            vals,
        )
        conn.commit()
    except sqlite3.IntegrityError:
        return False, f"product already exists (id or slug): {clean['slug']}"
    finally:
        conn.close()

    logger.info("product added: %s (%s)", clean["name"], pid)
    return True, get_product(pid)


def update_product(product_id: str, **fields: Any) -> Tuple[bool, Any]:
    if not fields:
        return False, "nothing to update"
    err, clean = _normalize_product_fields(fields)
    if err:
        return False, err
    if "stock_quantity" in clean and "in_stock" not in clean:
        clean["in_stock"] = 1 if clean["stock_quantity"] > 0 else 0

    sets = ", ".join(f"{k}=?" for k in clean)
    conn = _connect()
    try:
        cur = conn.execute(
            f"UPDATE products SET {sets}, updated_at=? WHERE id=?",
            (*clean.values(), _now(), product_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            return False, "product not found"
    except sqlite3.IntegrityError:
        return False, "slug already used by another product"
    finally:
        conn.close()
    return True, get_product(product_id)


def delete_product(product_id: str) -> bool:
    conn = _connect()
    try:
        cur = conn.execute("DELETE FROM products WHERE id=?", (product_id,))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


def get_product(product_id: str) -> Optional[Product]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM products WHERE id=?", (str(product_id),)).fetchone()
        return Product.from_row(row) if row else None
    finally:
        conn.close()


def get_product_by_slug(slug: str) -> Optional[Product]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM products WHERE slug=?", (slug,)).fetchone()
        return Product.from_row(row) if row else None
    finally:
        conn.close()


def list_products(
    category: Optional[str] = None,
    search: Optional[str] = None,
    certifications: Optional[Iterable[str]] = None,
    in_stock_only: bool = False,
    sort: str = "featured",
) -> List[Product]:
    where = []
    params: List[Any] = []
    if category:
        where.append("category = ?")
        params.append(category)
    if search:
        needle = f"%{search.strip().lower()}%"
        where.append("(lower(name) LIKE ? OR lower(coalesce(description, '')) LIKE ? OR lower(category) LIKE ?)")
        params.extend([needle, needle, needle])
    if in_stock_only:
        where.append("in_stock = 1")

    if sort == SORT_PRICE_LOW:
        order = "CAST(price AS REAL) ASC, name COLLATE NOCASE"
    elif sort == SORT_PRICE_HIGH:
        order = "CAST(price AS REAL) DESC, name COLLATE NOCASE"
    elif sort == SORT_NAME:
        order = "name COLLATE NOCASE"
    else:
        order = "featured DESC, name COLLATE NOCASE"

    sql = "SELECT * FROM products"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += f" ORDER BY {order}"

    conn = _connect()
    try:
        products = [Product.from_row(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()

    wanted = {c.strip().upper() for c in (certifications or []) if c.strip()}
    if wanted:
        # any of the selected certifications
        products = [p for p in products if wanted.intersection(p.certifications)]
    return products


# ---------------- customers ----------------

def _check_customer(customer: Dict[str, Any]) -> Optional[str]:
    name = str(customer.get("name") or customer.get("full_name") or "").strip()
    if not name:
        return "customer name is required"
    if not is_valid_email(customer.get("email", "")):
        return "valid customer email is required"
    ctype = customer.get("customer_type") or CUSTOMER_INDIVIDUAL
    if ctype not in CUSTOMER_TYPES:
        return f"unknown customer type: {ctype}"
    if ctype == CUSTOMER_HOSPITAL and not str(customer.get("company_name") or "").strip():
        return "organization name is required for hospital buyers"
    return None


def _upsert_customer(conn: sqlite3.Connection, customer: Dict[str, Any]) -> int:
    now = _now()
    email = customer["email"].strip().lower()
    conn.execute(
        """
        INSERT INTO customers(email, full_name, phone, company_name, gst_number, customer_type,
                              address, city, state, pincode, created_at, updated_at)
        VALUES(?,?,?,?,?,?,?,?,?,?,?,?)
        ON CONFLICT(email) DO UPDATE SET
            full_name=excluded.full_name,
            phone=coalesce(excluded.phone, customers.phone),
            company_name=coalesce(excluded.company_name, customers.company_name),
            gst_number=coalesce(excluded.gst_number, customers.gst_number),
            customer_type=excluded.customer_type,
            address=coalesce(excluded.address, customers.address),
            city=coalesce(excluded.city, customers.city),
            state=coalesce(excluded.state, customers.state),
            pincode=coalesce(excluded.pincode, customers.pincode),
            updated_at=excluded.updated_at
        """,
        (
            email,
            str(customer.get("name") or customer.get("full_name")).strip(),
            customer.get("phone"),
            customer.get("company_name"),
            customer.get("gst_number"),
            customer.get("customer_type") or CUSTOMER_INDIVIDUAL,
            customer.get("address"),
            customer.get("city"),
            customer.get("state"),
            customer.get("pincode"),
            now,
            now,
        ),
    )
    return int(conn.execute("SELECT id FROM customers WHERE email=?", (email,)).fetchone()["id"])


def upsert_customer(customer: Dict[str, Any]) -> Tuple[bool, Any]:
    err = _check_customer(customer)
    if err:
        return False, err
    conn = _connect()
    try:
        cid = _upsert_customer(conn, customer)
        conn.commit()
        return True, cid
    finally:
        conn.close()


def list_customers(search: Optional[str] = None) -> List[Dict[str, Any]]:
    sql = """
        SELECT c.*,
               (SELECT COUNT(*) FROM orders o WHERE o.customer_id = c.id) AS orders_count
        FROM customers c
    """
    params: List[Any] = []
    if search:
        needle = f"%{search.strip().lower()}%"
        sql += " WHERE lower(c.email) LIKE ? OR lower(coalesce(c.full_name, '')) LIKE ? OR lower(coalesce(c.company_name, '')) LIKE ?"
        params = [needle, needle, needle]
    sql += " ORDER BY c.created_at DESC, c.id DESC"

    conn = _connect()
    try:
        return [dict(r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


# ---------------- orders ----------------

def _order_dict(conn: sqlite3.Connection, row: sqlite3.Row) -> Dict[str, Any]:
    order = dict(row)
    for k in ("subtotal", "shipping_amount", "total_amount"):
        order[k] = Decimal(order[k])
    order["shipping_address"] = json.loads(order["shipping_address"] or "{}")
    items = conn.execute(
        "SELECT product_id, name, sku, quantity, unit_price, line_total, bulk_applied "
        "FROM order_items WHERE order_id=? ORDER BY id",
        (order["id"],),
    ).fetchall()
    order["items"] = [
        {
            **dict(it),
            "unit_price": Decimal(it["unit_price"]),
            "line_total": Decimal(it["line_total"]),
            "bulk_applied": bool(it["bulk_applied"]),
        }
        for it in items
    ]
    return order


def create_order_from_cart(
    cart,
    customer: Dict[str, Any],
    shipping_address: Optional[Dict[str, Any]] = None,
    notes: Optional[str] = None,
) -> Tuple[bool, Any]:
    """
    - check cart and customer
    - upsert customer
    - write orders + order_items with the prices the cart shows right now
    - take sold quantities off stock (never below zero)
    """
    lines = cart.lines
    if not lines:
        return False, "cart is empty"
    err = _check_customer(customer)
    if err:
        return False, err

    totals = calculate_totals(lines)
    created_at = _now()

    conn = _connect()
    try:
        conn.execute("BEGIN")
        customer_id = _upsert_customer(conn, customer)

        cur = conn.execute(
            """
            INSERT INTO orders(order_number, customer_id, customer_name, customer_email, customer_phone,
                               shipping_address, notes, subtotal, shipping_amount, total_amount, currency,
                               status, payment_status, created_at, updated_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                f"tmp-{uuid.uuid4().hex}",
                customer_id,
                str(customer.get("name") or customer.get("full_name")).strip(),
                customer["email"].strip().lower(),
                customer.get("phone"),
                json.dumps(shipping_address or {}, ensure_ascii=False),
                notes,
                str(totals.subtotal),
                str(totals.shipping),
                str(totals.grand_total),
                settings.currency,
                "pending",
                "pending",
                created_at,
                created_at,
            ),
        )
        order_id = int(cur.lastrowid)
        order_number = f"{ORDER_PREFIX}-{order_id:06d}"
        conn.execute("UPDATE orders SET order_number=? WHERE id=?", (order_number, order_id))

        for line in lines:
            conn.execute(
                """
                INSERT INTO order_items(order_id, product_id, name, sku, quantity, unit_price, line_total, bulk_applied)
                VALUES(?,?,?,?,?,?,?,?)
                """,
                (
                    order_id,
                    line.product_id,
                    line.product.name,
                    line.product.sku,
                    line.quantity,
                    str(line.unit_price),
                    str(line.total),
                    1 if is_bulk_price_applied(line.product, line.quantity) else 0,
                ),
            )

            # stock is advisory: clamp at zero instead of refusing the order
            row = conn.execute(
                "SELECT stock_quantity FROM products WHERE id=?", (line.product_id,)
            ).fetchone()
            if row is not None:
                left = max(0, int(row["stock_quantity"]) - line.quantity)
                conn.execute(
                    "UPDATE products SET stock_quantity=?, in_stock=?, updated_at=? WHERE id=?",
                    (left, 1 if left > 0 else 0, created_at, line.product_id),
                )

        conn.commit()
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        logger.exception("order creation failed")
        return False, str(e)
    finally:
        conn.close()

    order = get_order(order_number)
    logger.info("order %s created: %s %s", order_number, order["total_amount"], order["currency"])
    return True, order


def get_order(order_number: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM orders WHERE order_number=?", (order_number,)).fetchone()
        return _order_dict(conn, row) if row else None
    finally:
        conn.close()


def list_orders(status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
    where = []
    params: List[Any] = []
    if status:
        where.append("status = ?")
        params.append(status)
    if search:
        needle = f"%{search.strip().lower()}%"
        where.append("(lower(order_number) LIKE ? OR lower(customer_name) LIKE ? OR lower(customer_email) LIKE ?)")
        params.extend([needle, needle, needle])

    sql = "SELECT * FROM orders"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY created_at DESC, id DESC"

    conn = _connect()
    try:
        return [_order_dict(conn, r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def _set_order_fields(order_number: str, **fields: Any) -> Tuple[bool, Any]:
    sets = ", ".join(f"{k}=?" for k in fields)
    conn = _connect()
    try:
        cur = conn.execute(
            f"UPDATE orders SET {sets}, updated_at=? WHERE order_number=?",
            (*fields.values(), _now(), order_number),
        )
        conn.commit()
        if cur.rowcount == 0:
            return False, "order not found"
    finally:
        conn.close()
    return True, get_order(order_number)


def update_order_status(order_number: str, status: str) -> Tuple[bool, Any]:
    if status not in ORDER_STATUSES:
        return False, f"unknown order status: {status}"
    ok, res = _set_order_fields(order_number, status=status)
    if ok:
        logger.info("order %s marked %s", order_number, status)
    return ok, res


def ship_order(order_number: str, courier: str, tracking_number: str) -> Tuple[bool, Any]:
    if not courier.strip() or not tracking_number.strip():
        return False, "courier and tracking number are required"
    return _set_order_fields(
        order_number,
        status="shipped",
        courier=courier.strip(),
        tracking_number=tracking_number.strip(),
    )


def update_payment_status(order_number: str, payment_status: str) -> Tuple[bool, Any]:
    if payment_status not in PAYMENT_STATUSES:
        return False, f"unknown payment status: {payment_status}"
    return _set_order_fields(order_number, payment_status=payment_status)


# ---------------- quotations ----------------

def _quotation_dict(conn: sqlite3.Connection, row: sqlite3.Row) -> Dict[str, Any]:
    q = dict(row)
    q["estimated_amount"] = Decimal(q["estimated_amount"])
    q["quoted_amount"] = None if q["quoted_amount"] is None else Decimal(q["quoted_amount"])
    items = conn.execute(
        "SELECT product_id, name, quantity, unit_price FROM quotation_items WHERE quotation_id=? ORDER BY id",
        (q["id"],),
    ).fetchall()
    q["items"] = [{**dict(it), "unit_price": Decimal(it["unit_price"])} for it in items]
    return q


def create_quotation(
    customer: Dict[str, Any],
    items: Iterable[Tuple[str, Any]],
    message: Optional[str] = None,
) -> Tuple[bool, Any]:
    customer = {"customer_type": CUSTOMER_HOSPITAL, **customer}
    err = _check_customer(customer)
    if err:
        return False, err

    # same product twice in the form counts once, quantities summed
    merged: Dict[str, int] = {}
    for product_id, quantity in items:
        q = parse_quantity(quantity)
        if q is None or q < 1:
            return False, f"quantity must be a positive integer for product {product_id}"
        merged[str(product_id)] = merged.get(str(product_id), 0) + q
    if not merged:
        return False, "at least one product is required"

    priced = []
    for product_id, quantity in merged.items():
        product = get_product(product_id)
        if product is None:
            return False, f"product not found: {product_id}"
        priced.append((product, quantity, effective_unit_price(product, quantity)))
    estimated = sum((unit * q for _, q, unit in priced), Decimal("0"))

    created_at = _now()
    conn = _connect()
    try:
        conn.execute("BEGIN")
        cur = conn.execute(
            """
            INSERT INTO quotations(quotation_number, customer_name, customer_email, customer_phone,
                                   company_name, gst_number, customer_type, message, estimated_amount,
                                   status, created_at, updated_at)
            VALUES(?,?,?,?,?,?,?,?,?,?,?,?)
            """,
            (
                f"tmp-{uuid.uuid4().hex}",
                str(customer.get("name") or customer.get("full_name")).strip(),
                customer["email"].strip().lower(),
                customer.get("phone"),
                customer.get("company_name"),
                customer.get("gst_number"),
                customer["customer_type"],
                message,
                str(estimated),
                "pending",
                created_at,
                created_at,
            ),
        )
        quotation_id = int(cur.lastrowid)
        number = f"{QUOTATION_PREFIX}-{quotation_id:06d}"
        conn.execute("UPDATE quotations SET quotation_number=? WHERE id=?", (number, quotation_id))
        for product, quantity, unit in priced:
            conn.execute(
                "INSERT INTO quotation_items(quotation_id, product_id, name, quantity, unit_price) VALUES(?,?,?,?,?)",
                (quotation_id, product.id, product.name, quantity, str(unit)),
            )
        conn.commit()
    except sqlite3.Error as e:
        conn.execute("ROLLBACK")
        logger.exception("quotation creation failed")
        return False, str(e)
    finally:
        conn.close()

    quotation = get_quotation(number)
    logger.info("quotation %s requested by %s", number, quotation["customer_email"])
    return True, quotation


def get_quotation(quotation_number: str) -> Optional[Dict[str, Any]]:
    conn = _connect()
    try:
        row = conn.execute("SELECT * FROM quotations WHERE quotation_number=?", (quotation_number,)).fetchone()
        return _quotation_dict(conn, row) if row else None
    finally:
        conn.close()


def list_quotations(status: Optional[str] = None, search: Optional[str] = None) -> List[Dict[str, Any]]:
    where = []
    params: List[Any] = []
    if status:
        where.append("status = ?")
        params.append(status)
    if search:
        needle = f"%{search.strip().lower()}%"
        where.append("(lower(quotation_number) LIKE ? OR lower(customer_name) LIKE ? OR lower(customer_email) LIKE ?)")
        params.extend([needle, needle, needle])

    sql = "SELECT * FROM quotations"
    if where:
        sql += " WHERE " + " AND ".join(where)
    sql += " ORDER BY created_at DESC, id DESC"

    conn = _connect()
    try:
        return [_quotation_dict(conn, r) for r in conn.execute(sql, params).fetchall()]
    finally:
        conn.close()


def _set_quotation_fields(quotation_number: str, **fields: Any) -> Tuple[bool, Any]:
    sets = ", ".join(f"{k}=?" for k in fields)
    conn = _connect()
    try:
        cur = conn.execute(
            f"UPDATE quotations SET {sets}, updated_at=? WHERE quotation_number=?",
            (*fields.values(), _now(), quotation_number),
        )
        conn.commit()
        if cur.rowcount == 0:
            return False, "quotation not found"
    finally:
        conn.close()
    return True, get_quotation(quotation_number)


def update_quotation_status(quotation_number: str, status: str) -> Tuple[bool, Any]:
    if status not in QUOTATION_STATUSES:
        return False, f"unknown quotation status: {status}"
    return _set_quotation_fields(quotation_number, status=status)


def send_quote(
    quotation_number: str,
    quoted_amount,
    admin_notes: str = "",
    valid_days: Optional[int] = None,
) -> Tuple[bool, Any]:
    try:
        amount = to_decimal(quoted_amount)
    except ValueError as e:
        return False, str(e)
    if amount <= 0:
        return False, "quoted amount must be > 0"
    days = settings.quote_valid_days if valid_days is None else valid_days
    if days < 1:
        return False, "validity must be at least one day"

    valid_until = (datetime.now() + timedelta(days=days)).strftime("%Y-%m-%d %H:%M:%S")
    ok, res = _set_quotation_fields(
        quotation_number,
        status="quoted",
        quoted_amount=str(amount),
        admin_notes=admin_notes,
        valid_until=valid_until,
    )
    if ok:
        logger.info("quote sent for %s: %s", quotation_number, amount)
    return ok, res


def expire_quotations(now: Optional[datetime] = None) -> int:
    """Mark quoted quotations past valid_until as expired. Returns how many."""
    ts = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    conn = _connect()
    try:
        cur = conn.execute(
            "UPDATE quotations SET status='expired', updated_at=? "
            "WHERE status='quoted' AND valid_until IS NOT NULL AND valid_until < ?",
            (ts, ts),
        )
        conn.commit()
        return cur.rowcount
    finally:
        conn.close()


# ---------------- dashboard ----------------

def dashboard_stats() -> Dict[str, Any]:
    conn = _connect()
    try:
        orders = conn.execute("SELECT total_amount, status FROM orders").fetchall()
        revenue = sum(
            (Decimal(o["total_amount"]) for o in orders if o["status"] == "delivered"),
            Decimal("0"),
        )
        products = conn.execute("SELECT COUNT(*) FROM products").fetchone()[0]
        pending = conn.execute("SELECT COUNT(*) FROM quotations WHERE status='pending'").fetchone()[0]
        customers = conn.execute("SELECT COUNT(*) FROM customers").fetchone()[0]
        return {
            "total_revenue": revenue,
            "total_orders": len(orders),
            "total_products": int(products),
            "pending_quotations": int(pending),
            "total_customers": int(customers),
        }
    finally:
        conn.close()
