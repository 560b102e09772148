from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, Response
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field

from medstore.cart.sessions import CartSessions, new_session_id
from medstore.cart.storage import CartFileStorage, valid_session_id
from medstore.cart.store import CartStore
from medstore.config import settings
from medstore.constants import CATEGORIES, CUSTOMER_INDIVIDUAL, SORT_FEATURED, SORT_KEYS
from medstore.db.sqlite import (
    add_product,
    create_order_from_cart,
    create_quotation,
    dashboard_stats,
    delete_product,
    get_order,
    get_product,
    get_product_by_slug,
    get_quotation,
    init_db,
    list_customers,
    list_orders,
    list_products,
    list_quotations,
    send_quote,
    ship_order,
    update_order_status,
    update_payment_status,
    update_product,
    update_quotation_status,
)
from medstore.services.invoice_pdf import generate_invoice_pdf, generate_quotation_pdf
from medstore.services.totals import describe_cart

logger = logging.getLogger(__name__)

CART_COOKIE = "medstore_cart"


# ---------------- request bodies ----------------

class CartItemIn(BaseModel):
    product_id: str
    # anything goes: the cart normalizes bad quantities itself
    quantity: Any = 1


class QuantityIn(BaseModel):
    quantity: Any


class CustomerIn(BaseModel):
    name: str
    email: str
    phone: Optional[str] = None
    company_name: Optional[str] = None
    gst_number: Optional[str] = None
    customer_type: str = CUSTOMER_INDIVIDUAL


class CheckoutIn(BaseModel):
    customer: CustomerIn
    shipping_address: Dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = None


class QuotationItemIn(BaseModel):
    product_id: str
    quantity: Any = 1


class QuotationIn(BaseModel):
    customer: CustomerIn
    items: List[QuotationItemIn] = Field(default_factory=list)
    from_cart: bool = False
    message: Optional[str] = None


class StatusIn(BaseModel):
    status: str


class PaymentStatusIn(BaseModel):
    payment_status: str


class ShipIn(BaseModel):
    courier: str
    tracking_number: str


class QuoteIn(BaseModel):
    quoted_amount: str
    admin_notes: str = ""
    valid_days: Optional[int] = None


class ProductIn(BaseModel):
    name: str
    category: str
    price: str
    slug: Optional[str] = None
    bulk_price: Optional[str] = None
    min_bulk_quantity: Optional[int] = None
    stock_quantity: int = 0
    brand: str = ""
    model: str = ""
    sku: str = ""
    sub_category: str = ""
    description: str = ""
    warranty: str = ""
    certifications: List[str] = Field(default_factory=list)
    is_consumable: bool = False
    featured: bool = False


# ---------------- dependencies ----------------

def get_session_id(request: Request, response: Response) -> str:
    session_id = request.cookies.get(CART_COOKIE, "")
    if not valid_session_id(session_id):
        session_id = new_session_id()
        response.set_cookie(CART_COOKIE, session_id, httponly=True, samesite="lax")
    return session_id


def get_cart(request: Request, session_id: str = Depends(get_session_id)) -> CartStore:
    sessions: CartSessions = request.app.state.carts
    return sessions.get(session_id)


def peek_cart(request: Request, session_id: str = Depends(get_session_id)) -> CartStore:
    # read-only routes: no registry entry for sessions that never added anything
    sessions: CartSessions = request.app.state.carts
    return sessions.peek(session_id)


def require_admin(request: Request, x_admin_token: str = Header(default="")) -> None:
    expected = request.app.state.admin_token
    if not expected or x_admin_token != expected:
        raise HTTPException(status_code=403, detail="admin token required")


def _rejected(msg: str) -> HTTPException:
    code = 404 if "not found" in msg else 400
    return HTTPException(status_code=code, detail=msg)


# ---------------- catalog ----------------

shop = APIRouter(prefix="/api")


@shop.get("/health")
def health():
    return {"ok": True}


@shop.get("/categories")
def categories():
    counts: Dict[str, int] = {k: 0 for k in CATEGORIES}
    for p in list_products():
        counts[p.category] = counts.get(p.category, 0) + 1
    return [{"id": k, "name": v, "product_count": counts[k]} for k, v in CATEGORIES.items()]


@shop.get("/products")
def products(
    category: Optional[str] = None,
    q: Optional[str] = None,
    cert: Optional[List[str]] = Query(default=None),
    in_stock: bool = False,
    sort: str = SORT_FEATURED,
):
    if sort not in SORT_KEYS:
        raise HTTPException(status_code=400, detail=f"sort must be one of: {', '.join(SORT_KEYS)}")
    rows = list_products(category=category, search=q, certifications=cert, in_stock_only=in_stock, sort=sort)
    return [p.to_dict() for p in rows]


@shop.get("/products/{slug}")
def product_detail(slug: str):
    p = get_product_by_slug(slug)
    if p is None:
        raise HTTPException(status_code=404, detail="product not found")
    return p.to_dict()


# ---------------- cart ----------------

@shop.get("/cart")
def cart_show(cart: CartStore = Depends(peek_cart)):
    return describe_cart(cart)


@shop.post("/cart/items")
def cart_add(body: CartItemIn, cart: CartStore = Depends(get_cart)):
    product = get_product(body.product_id)
    if product is None:
        raise HTTPException(status_code=404, detail="product not found")
    cart.add_to_cart(product, body.quantity)
    return describe_cart(cart)


@shop.patch("/cart/items/{product_id}")
def cart_update(product_id: str, body: QuantityIn, cart: CartStore = Depends(get_cart)):
    cart.update_quantity(product_id, body.quantity)
    return describe_cart(cart)


@shop.delete("/cart/items/{product_id}")
def cart_remove(product_id: str, cart: CartStore = Depends(get_cart)):
    cart.remove_from_cart(product_id)
    return describe_cart(cart)


@shop.delete("/cart")
def cart_clear(cart: CartStore = Depends(get_cart)):
    cart.clear_cart()
    return describe_cart(cart)


# ---------------- checkout / quotation ----------------

@shop.post("/checkout", status_code=201)
def checkout(
    body: CheckoutIn,
    request: Request,
    session_id: str = Depends(get_session_id),
    cart: CartStore = Depends(peek_cart),
):
    ok, res = create_order_from_cart(
        cart,
        body.customer.model_dump(),
        shipping_address=body.shipping_address,
        notes=body.notes,
    )
    if not ok:
        raise _rejected(res)
    cart.clear_cart()
    request.app.state.carts.drop(session_id)
    return res


@shop.post("/quotations", status_code=201)
def quotation_request(body: QuotationIn, cart: CartStore = Depends(peek_cart)):
    items = [(it.product_id, it.quantity) for it in body.items]
    if body.from_cart:
        items.extend((line.product_id, line.quantity) for line in cart.lines)
    ok, res = create_quotation(body.customer.model_dump(), items, message=body.message)
    if not ok:
        raise _rejected(res)
    return res


# ---------------- admin ----------------

admin = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


@admin.get("/stats")
def admin_stats():
    return dashboard_stats()


@admin.get("/orders")
def admin_orders(status: Optional[str] = None, q: Optional[str] = None):
    return list_orders(status=status, search=q)


@admin.get("/orders/{order_number}")
def admin_order(order_number: str):
    order = get_order(order_number)
    if order is None:
        raise HTTPException(status_code=404, detail="order not found")
    return order


@admin.patch("/orders/{order_number}/status")
def admin_order_status(order_number: str, body: StatusIn):
    ok, res = update_order_status(order_number, body.status)
    if not ok:
        raise _rejected(res)
    return res


@admin.patch("/orders/{order_number}/payment")
def admin_order_payment(order_number: str, body: PaymentStatusIn):
    ok, res = update_payment_status(order_number, body.payment_status)
    if not ok:
        raise _rejected(res)
    return res


@admin.post("/orders/{order_number}/ship")
def admin_order_ship(order_number: str, body: ShipIn):
    ok, res = ship_order(order_number, body.courier, body.tracking_number)
    if not ok:
        raise _rejected(res)
    return res


@admin.get("/orders/{order_number}/invoice", response_class=FileResponse)
def admin_order_invoice(order_number: str):
    if get_order(order_number) is None:
        raise HTTPException(status_code=404, detail="order not found")
    path = generate_invoice_pdf(order_number)
    return FileResponse(path, filename=f"invoice_{order_number}.pdf", media_type="application/pdf")


@admin.get("/quotations")
def admin_quotations(status: Optional[str] = None, q: Optional[str] = None):
    return list_quotations(status=status, search=q)


@admin.patch("/quotations/{quotation_number}/status")
def admin_quotation_status(quotation_number: str, body: StatusIn):
    ok, res = update_quotation_status(quotation_number, body.status)
    if not ok:
        raise _rejected(res)
    return res


@admin.post("/quotations/{quotation_number}/quote")
def admin_send_quote(quotation_number: str, body: QuoteIn):
    ok, res = send_quote(quotation_number, body.quoted_amount, body.admin_notes, body.valid_days)
    if not ok:
        raise _rejected(res)
    return res


@admin.get("/quotations/{quotation_number}/pdf", response_class=FileResponse)
def admin_quotation_pdf(quotation_number: str):
    if get_quotation(quotation_number) is None:
        raise HTTPException(status_code=404, detail="quotation not found")
    path = generate_quotation_pdf(quotation_number)
    return FileResponse(path, filename=f"quotation_{quotation_number}.pdf", media_type="application/pdf")


@admin.get("/customers")
def admin_customers(q: Optional[str] = None):
    return list_customers(search=q)


@admin.post("/products", status_code=201)
def admin_product_add(body: ProductIn):
    data = body.model_dump()
    ok, res = add_product(data.pop("name"), data.pop("category"), data.pop("price"), **data)
    if not ok:
        raise _rejected(res)
    return res.to_dict()


@admin.patch("/products/{product_id}")
def admin_product_update(product_id: str, body: Dict[str, Any]):
    ok, res = update_product(product_id, **body)
    if not ok:
        raise _rejected(res)
    return res.to_dict()


@admin.delete("/products/{product_id}", status_code=204)
def admin_product_delete(product_id: str):
    if not delete_product(product_id):
        raise HTTPException(status_code=404, detail="product not found")
    return Response(status_code=204)


# ---------------- app ----------------

def create_app(sessions: Optional[CartSessions] = None, admin_token: Optional[str] = None) -> FastAPI:
    app = FastAPI(title="MedStore")
    app.state.carts = sessions if sessions is not None else CartSessions(CartFileStorage(settings.cart_dir))
    app.state.admin_token = settings.admin_api_token if admin_token is None else admin_token

    @app.on_event("startup")
    def _startup() -> None:
        init_db()

    @app.on_event("shutdown")
    def _shutdown() -> None:
        storage = app.state.carts.storage
        if storage is not None:
            storage.close()

    app.include_router(shop)
    app.include_router(admin)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
