from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Mapping, Optional, Tuple


def to_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v
    try:
        return Decimal(str(v))
    except (InvalidOperation, ValueError):
        raise ValueError(f"not a monetary amount: {v!r}")


def _optional_decimal(v: Any) -> Optional[Decimal]:
    if v is None or v == "":
        return None
    return to_decimal(v)


def _optional_int(v: Any) -> Optional[int]:
    if v is None or v == "":
        return None
    return int(v)


def _split_certs(v: Any) -> Tuple[str, ...]:
    if not v:
        return ()
    if isinstance(v, str):
        return tuple(c.strip() for c in v.split(",") if c.strip())
    return tuple(v)


@dataclass(frozen=True)
class Product:
    """
    Catalog item as the cart sees it.

    Frozen: a cart line keeps the instance it was added with, so later
    catalog edits never change what is already in a cart.
    """

    id: str
    name: str
    price: Decimal
    slug: str = ""
    category: str = ""
    bulk_price: Optional[Decimal] = None
    min_bulk_quantity: Optional[int] = None
    in_stock: bool = True
    stock_quantity: int = 0
    brand: str = ""
    model: str = ""
    sku: str = ""
    sub_category: str = ""
    description: str = ""
    warranty: str = ""
    certifications: Tuple[str, ...] = field(default_factory=tuple)
    is_consumable: bool = False
    featured: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Product":
        data = dict(row)
        return cls(
            id=str(data["id"]),
            name=data.get("name") or "",
            price=to_decimal(data.get("price") or 0),
            slug=data.get("slug") or "",
            category=data.get("category") or "",
            bulk_price=_optional_decimal(data.get("bulk_price")),
            min_bulk_quantity=_optional_int(data.get("min_bulk_quantity")),
            in_stock=bool(data.get("in_stock", True)),
            stock_quantity=int(data.get("stock_quantity") or 0),
            brand=data.get("brand") or "",
            model=data.get("model") or "",
            sku=data.get("sku") or "",
            sub_category=data.get("sub_category") or "",
            description=data.get("description") or "",
            warranty=data.get("warranty") or "",
            certifications=_split_certs(data.get("certifications")),
            is_consumable=bool(data.get("is_consumable", False)),
            featured=bool(data.get("featured", False)),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["certifications"] = list(self.certifications)
        return d
