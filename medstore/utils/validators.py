from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def parse_quantity(v: Any) -> Optional[int]:
    """
    Integer quantity from form / JSON input, or None when it is not one.
    "3", 3 and 3.0 all give 3; 2.5, "abc" and True give None.
    """
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, float):
        return int(v) if v.is_integer() else None
    if isinstance(v, Decimal):
        return int(v) if v.is_finite() and v == v.to_integral_value() else None
    if isinstance(v, str) and re.fullmatch(r"[+-]?\d+", v.strip()):
        return int(v.strip())
    return None


def parse_amount(text: str) -> Decimal:
    try:
        v = Decimal(str(text).strip().replace(",", "."))
    except InvalidOperation:
        raise ValueError(f"not a number: {text!r}")
    if not v.is_finite() or v < 0:
        raise ValueError(f"amount must be >= 0: {text!r}")
    return v


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match((email or "").strip()))


def slugify(text: str) -> str:
    t = re.sub(r"[^a-z0-9]+", "-", (text or "").strip().lower())
    return t.strip("-")
