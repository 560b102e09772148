from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, Iterator, List, Optional

from medstore.catalog.models import Product
from medstore.services.pricing import effective_unit_price, line_total
from medstore.utils.validators import parse_quantity

logger = logging.getLogger(__name__)


@dataclass
class CartLine:
    product: Product
    quantity: int

    @property
    def product_id(self) -> str:
        return self.product.id

    @property
    def unit_price(self) -> Decimal:
        return effective_unit_price(self.product, self.quantity)

    @property
    def total(self) -> Decimal:
        return line_total(self.product, self.quantity)


class CartStore:
    """
    Cart of one browsing session.

    Lines keep first-add order and there is at most one line per product id.
    Bad quantities are normalized instead of rejected, so no command here
    raises for user input. Totals are computed from the lines on every read.
    Commands and reads hold an internal lock, so requests sharing a session
    cannot interleave inside a merge.
    """

    def __init__(
        self,
        lines: Optional[List[CartLine]] = None,
        on_change: Optional[Callable[["CartStore"], None]] = None,
    ) -> None:
        self._lines: List[CartLine] = []
        self._lock = threading.RLock()
        self.on_change = on_change
        for line in lines or []:
            self._merge(line.product, line.quantity)

    # ----- commands -----

    def add_to_cart(self, product: Product, quantity: Any = 1) -> None:
        q = parse_quantity(quantity)
        if q is None or q < 1:
            q = 1
        with self._lock:
            self._merge(product, q)
            self._changed()

    def update_quantity(self, product_id: str, quantity: Any) -> None:
        q = parse_quantity(quantity)
        if q is None:
            q = 1
        with self._lock:
            line = self.get_line(product_id)
            if line is None:
                return
            if q < 1:
                self._lines.remove(line)
            else:
                line.quantity = q
            self._changed()

    def remove_from_cart(self, product_id: str) -> None:
        with self._lock:
            line = self.get_line(product_id)
            if line is None:
                return
            self._lines.remove(line)
            self._changed()

    def clear_cart(self) -> None:
        with self._lock:
            self._lines = []
            self._changed()

    # ----- queries -----

    @property
    def lines(self) -> List[CartLine]:
        # detached copies: later commands do not change a list already handed out
        with self._lock:
            return [CartLine(product=line.product, quantity=line.quantity) for line in self._lines]

    def get_line(self, product_id: str) -> Optional[CartLine]:
        with self._lock:
            for line in self._lines:
                if line.product_id == str(product_id):
                    return line
        return None

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def total_price(self) -> Decimal:
        return sum((line.total for line in self.lines), Decimal("0"))

    def __len__(self) -> int:
        return len(self._lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    # ----- persistence -----

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lines": [
                {"product": line.product.to_dict(), "quantity": line.quantity}
                for line in self.lines
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], on_change=None) -> "CartStore":
        """
        Rebuild a cart saved with to_dict().

        Lines with a quantity below 1 are skipped; anything that is not the
        saved shape raises ValueError / KeyError.
        """
        if not isinstance(data, dict) or not isinstance(data.get("lines", []), list):
            raise ValueError("stored cart is not an object with a lines list")
        lines = []
        for raw in data.get("lines", []):
            if not isinstance(raw, dict) or not isinstance(raw.get("product"), dict):
                raise ValueError(f"bad cart line: {raw!r}")
            q = parse_quantity(raw.get("quantity"))
            if q is None or q < 1:
                continue
            lines.append(CartLine(product=Product.from_row(raw["product"]), quantity=q))
        return cls(lines=lines, on_change=on_change)

    # ----- internal -----

    def _merge(self, product: Product, quantity: int) -> None:
        with self._lock:
            line = self.get_line(product.id)
            if line is None:
                self._lines.append(CartLine(product=product, quantity=quantity))
            else:
                line.quantity += quantity

    def _changed(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self)
        except Exception:
            # the in-memory cart stays authoritative
            logger.exception("cart change listener failed")
