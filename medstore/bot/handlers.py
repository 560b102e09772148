from html import escape

from aiogram import Router
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import FSInputFile, Message, ReplyKeyboardRemove

from medstore.bot.keyboards import categories_kb, main_kb
from medstore.bot.states import ProductAdd, QuoteSend
from medstore.config import settings
from medstore.constants import CATEGORIES, ORDER_STATUSES, QUOTATION_STATUSES
from medstore.db.sqlite import (
    add_product,
    dashboard_stats,
    expire_quotations,
    get_order,
    init_db,
    list_customers,
    list_orders,
    list_products,
    list_quotations,
    send_quote,
    ship_order,
    update_order_status,
)
from medstore.services.backup import make_backup_zip
from medstore.services.invoice_pdf import generate_invoice_pdf, generate_quotation_pdf
from medstore.utils.formatters import money
from medstore.utils.validators import parse_amount, parse_quantity

router = Router()

LIST_LIMIT = 20


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except (AttributeError, TypeError, ValueError):
        return False


def format_stats(stats: dict) -> str:
    return (
        "<b>Dashboard</b>\n"
        f"Revenue (delivered): {money(stats['total_revenue'])}\n"
        f"Orders: {stats['total_orders']}\n"
        f"Products: {stats['total_products']}\n"
        f"Customers: {stats['total_customers']}\n"
        f"Pending quotations: {stats['pending_quotations']}"
    )


def format_product(p) -> str:
    line = f"• {escape(p.name)} [{p.category}] {money(p.price)}"
    if p.bulk_price is not None and p.min_bulk_quantity is not None:
        line += f" | bulk {money(p.bulk_price)} from {p.min_bulk_quantity}"
    line += f" | stock {p.stock_quantity}" if p.in_stock else " | out of stock"
    return line


def format_order(o: dict) -> str:
    return (
        f"• <b>{o['order_number']}</b> {escape(o['customer_name'])} | "
        f"{money(o['total_amount'])} | {o['status']} / {o['payment_status']}"
    )


def format_order_detail(o: dict) -> str:
    lines = [
        f"<b>Order {o['order_number']}</b> ({o['created_at']})",
        f"Customer: {escape(o['customer_name'])} &lt;{escape(o['customer_email'])}&gt;",
        f"Status: {o['status']} / payment {o['payment_status']}",
    ]
    if o["tracking_number"]:
        lines.append(f"Shipped via {escape(o['courier'])}, tracking {escape(o['tracking_number'])}")
    lines.append("")
    for it in o["items"]:
        bulk = " (bulk)" if it["bulk_applied"] else ""
        lines.append(f"  {escape(it['name'])} × {it['quantity']} @ {money(it['unit_price'])}{bulk} = {money(it['line_total'])}")
    lines.append("")
    shipping = "FREE" if o["shipping_amount"] == 0 else money(o["shipping_amount"])
    lines.append(f"Subtotal: {money(o['subtotal'])}")
    lines.append(f"Shipping: {shipping}")
    lines.append(f"<b>Total: {money(o['total_amount'])}</b>")
    return "\n".join(lines)


def format_quotation(q: dict) -> str:
    who = q["company_name"] or q["customer_name"]
    line = f"• <b>{q['quotation_number']}</b> {escape(who)} | {len(q['items'])} items | est. {money(q['estimated_amount'])} | {q['status']}"
    if q["quoted_amount"] is not None:
        line += f" | quoted {money(q['quoted_amount'])}"
    return line


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    init_db()
    await message.answer("✅ MedStore admin bot is running", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelled.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>MedStore admin</b>\n\n"
        "/stats — dashboard\n"
        "/products — catalog\n"
        "/product_add — add a product (wizard)\n\n"
        "<b>Orders</b>\n"
        "/orders [STATUS] — latest orders\n"
        "/order NUMBER — order details\n"
        "/order_status NUMBER STATUS\n"
        "/ship NUMBER COURIER TRACKING\n"
        "/invoice NUMBER — invoice PDF\n\n"
        "<b>Quotations</b>\n"
        "/quotations [STATUS]\n"
        "/quote NUMBER AMOUNT [DAYS] — send a quote\n\n"
        "/customers — customer list\n"
        "/backup — database + PDFs\n"
        "/ping, /cancel"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


@router.message(Command("stats"))
async def cmd_stats(message: Message):
    if not _is_admin(message):
        return
    await message.answer(format_stats(dashboard_stats()))


@router.message(Command("backup"))
async def cmd_backup(message: Message):
    if not _is_admin(message):
        return
    try:
        file_path = make_backup_zip()
        await message.answer_document(FSInputFile(file_path))
    except OSError as e:
        await message.answer(f"❌ Backup failed: {e}")


# ---------------- catalog ----------------

@router.message(Command("products"))
async def cmd_products(message: Message):
    if not _is_admin(message):
        return
    rows = list_products(sort="name")
    if not rows:
        await message.answer("No products yet. Add one: /product_add")
        return
    lines = ["<b>Products:</b>"]
    lines.extend(format_product(p) for p in rows)
    await message.answer("\n".join(lines))


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await state.set_state(ProductAdd.waiting_name)
    await message.answer(
        "1/5) Product name?\nCancel: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Send the name as text. Cancel: /cancel")
        return
    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_category)
    await message.answer("2/5) Category?", reply_markup=categories_kb())


@router.message(ProductAdd.waiting_category)
async def product_add_category(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    category = (message.text or "").strip().lower()
    if category not in CATEGORIES:
        await message.answer(f"Pick one of: {', '.join(CATEGORIES)}", reply_markup=categories_kb())
        return
    await state.update_data(category=category)
    await state.set_state(ProductAdd.waiting_price)
    await message.answer(f"3/5) Unit price in {settings.currency}? Example: 28500", reply_markup=ReplyKeyboardRemove())


@router.message(ProductAdd.waiting_price)
async def product_add_price(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    try:
        price = parse_amount(message.text or "")
    except ValueError:
        await message.answer("Price must be a number, e.g. 28500 or 28500.50")
        return
    await state.update_data(price=str(price))
    await state.set_state(ProductAdd.waiting_bulk)
    await message.answer("4/5) Bulk pricing as 'PRICE MIN_QTY' (e.g. 26000 10), or '-' for none")


@router.message(ProductAdd.waiting_bulk)
async def product_add_bulk(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    raw = (message.text or "").strip()
    if raw != "-":
        parts = raw.split()
        try:
            if len(parts) != 2:
                raise ValueError(raw)
            bulk_price = parse_amount(parts[0])
            min_qty = parse_quantity(parts[1])
            if min_qty is None or min_qty < 1:
                raise ValueError(raw)
        except ValueError:
            await message.answer("Send 'PRICE MIN_QTY', e.g. 26000 10, or '-'")
            return
        await state.update_data(bulk_price=str(bulk_price), min_bulk_quantity=min_qty)
    await state.set_state(ProductAdd.waiting_stock)
    await message.answer("5/5) Stock quantity?")


@router.message(ProductAdd.waiting_stock)
async def product_add_stock(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    qty = parse_quantity(message.text or "")
    if qty is None or qty < 0:
        await message.answer("Stock must be a whole number >= 0")
        return

    data = await state.get_data()
    await state.clear()
    ok, res = add_product(
        data["name"],
        data["category"],
        data["price"],
        stock_quantity=qty,
        bulk_price=data.get("bulk_price"),
        min_bulk_quantity=data.get("min_bulk_quantity"),
    )
    if not ok:
        await message.answer(f"❌ {escape(res)}")
        return
    await message.answer(f"✅ Product added:\n{format_product(res)}")


# ---------------- orders ----------------

@router.message(Command("orders"))
async def cmd_orders(message: Message):
    if not _is_admin(message):
        return
    parts = message.text.split()
    status = parts[1].lower() if len(parts) > 1 else None
    if status and status not in ORDER_STATUSES:
        await message.answer(f"Status must be one of: {', '.join(ORDER_STATUSES)}")
        return
    rows = list_orders(status=status)[:LIST_LIMIT]
    if not rows:
        await message.answer("No orders.")
        return
    await message.answer("\n".join(["<b>Orders:</b>", *(format_order(o) for o in rows)]))


@router.message(Command("order"))
async def cmd_order(message: Message):
    if not _is_admin(message):
        return
    parts = message.text.split()
    if len(parts) != 2:
        await message.answer("Format: /order NUMBER")
        return
    order = get_order(parts[1].upper())
    if order is None:
        await message.answer("❌ order not found")
        return
    await message.answer(format_order_detail(order))


@router.message(Command("order_status"))
async def cmd_order_status(message: Message):
    if not _is_admin(message):
        return
    parts = message.text.split()
    if len(parts) != 3:
        await message.answer(f"Format: /order_status NUMBER STATUS\nStatuses: {', '.join(ORDER_STATUSES)}")
        return
    _, number, status = parts
    ok, res = update_order_status(number.upper(), status.lower())
    if not ok:
        await message.answer(f"❌ {escape(res)}")
        return
    await message.answer(f"✅ {res['order_number']} marked as {res['status']}")


@router.message(Command("ship"))
async def cmd_ship(message: Message):
    if not _is_admin(message):
        return
    parts = message.text.split()
    if len(parts) != 4:
        await message.answer("Format: /ship NUMBER COURIER TRACKING")
        return
    _, number, courier, tracking = parts
    ok, res = ship_order(number.upper(), courier, tracking)
    if not ok:
        await message.answer(f"❌ {escape(res)}")
        return
    await message.answer(f"🚚 {res['order_number']} shipped via {escape(courier)} ({escape(tracking)})")


@router.message(Command("invoice"))
async def cmd_invoice(message: Message):
    if not _is_admin(message):
        return
    parts = message.text.split()
    if len(parts) != 2:
        await message.answer("Format: /invoice NUMBER")
        return
    try:
        pdf_path = generate_invoice_pdf(parts[1].upper())
    except ValueError as e:
        await message.answer(f"❌ {escape(str(e))}")
        return
    await message.answer_document(FSInputFile(pdf_path))


# ---------------- quotations ----------------

@router.message(Command("quotations"))
async def cmd_quotations(message: Message):
    if not _is_admin(message):
        return
    expired = expire_quotations()
    parts = message.text.split()
    status = parts[1].lower() if len(parts) > 1 else None
    if status and status not in QUOTATION_STATUSES:
        await message.answer(f"Status must be one of: {', '.join(QUOTATION_STATUSES)}")
        return
    rows = list_quotations(status=status)[:LIST_LIMIT]
    lines = ["<b>Quotations:</b>"] if rows else ["No quotations."]
    lines.extend(format_quotation(q) for q in rows)
    if expired:
        lines.append(f"\n⌛ {expired} quote(s) just expired")
    await message.answer("\n".join(lines))


@router.message(Command("quote"))
async def cmd_quote(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    parts = message.text.split()
    if len(parts) not in (3, 4):
        await message.answer("Format: /quote NUMBER AMOUNT [DAYS]")
        return
    try:
        amount = parse_amount(parts[2])
    except ValueError:
        await message.answer("AMOUNT must be a number, e.g. 950000")
        return
    days = parse_quantity(parts[3]) if len(parts) == 4 else settings.quote_valid_days
    if days is None or days < 1:
        await message.answer("DAYS must be a positive whole number")
        return

    await state.set_state(QuoteSend.waiting_notes)
    await state.update_data(number=parts[1].upper(), amount=str(amount), days=days)
    await message.answer("Notes for the customer? Send '-' for none.\nCancel: /cancel")


@router.message(QuoteSend.waiting_notes)
async def quote_notes(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    notes = (message.text or "").strip()
    data = await state.get_data()
    await state.clear()

    ok, res = send_quote(data["number"], data["amount"], "" if notes == "-" else notes, data["days"])
    if not ok:
        await message.answer(f"❌ {escape(res)}")
        return
    await message.answer(f"✅ Quote sent: {format_quotation(res)}\nValid until {res['valid_until']}")
    await message.answer_document(FSInputFile(generate_quotation_pdf(res["quotation_number"])))


# ---------------- customers ----------------

@router.message(Command("customers"))
async def cmd_customers(message: Message):
    if not _is_admin(message):
        return
    rows = list_customers()[:LIST_LIMIT]
    if not rows:
        await message.answer("No customers yet.")
        return
    lines = ["<b>Customers:</b>"]
    for c in rows:
        org = f" ({escape(c['company_name'])})" if c["company_name"] else ""
        lines.append(f"• {escape(c['full_name'] or '')}{org} &lt;{escape(c['email'])}&gt; | orders: {c['orders_count']}")
    await message.answer("\n".join(lines))
