# backend/icm/core/numbers.py
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional


def to_number(x: Any) -> Optional[float]:
    """Coerce a record value or rule literal to float; None when it is not a finite number."""
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, Decimal):
        try:
            out = float(x)
        except (InvalidOperation, ValueError):
            return None
    elif isinstance(x, (int, float)):
        out = float(x)
    elif isinstance(x, str):
        s = x.strip().replace(",", "")
        if not s:
            return None
        try:
            out = float(s)
        except ValueError:
            return None
    else:
        return None
    return out if math.isfinite(out) else None
