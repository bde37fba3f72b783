"""Money and quantity arithmetic

Rounding is half-up to 2 places, applied once per line. Order totals sum
already-rounded line totals so there is no penny drift.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Optional
import logging

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(x: Any) -> Optional[Decimal]:
    """
    Parse a wire or input value to Decimal safely.
    
    Always converts via string to avoid float precision issues. Returns None
    for None, empty strings, unparseable and non-finite input.
    
    Examples:
        >>> to_decimal("12.50")
        Decimal('12.50')
        >>> to_decimal(3)
        Decimal('3')
        >>> to_decimal("abc") is None
        True
    """
    if x is None or x == "":
        return None
    
    if isinstance(x, Decimal):
        value = x
    else:
        try:
            value = Decimal(str(x).strip())
        except (InvalidOperation, ValueError, TypeError):
            logger.debug(f"Failed to parse value as Decimal: {x!r}")
            return None
    
    if not value.is_finite():
        return None
    return value


def decimal_to_wire(d: Optional[Decimal]) -> Optional[str]:
    """Render a money value as a fixed two-place string without scientific notation"""
    if d is None:
        return None
    return format(round2(d), "f")


def round2(value: Decimal) -> Decimal:
    """Round half-up to 2 decimal places"""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_quantity(quantity: Any) -> int:
    """Clamp to an integer >= 1. Garbage input collapses to the minimum."""
    value = to_decimal(quantity)
    if value is None:
        return 1
    return max(1, int(value))


def clamp_price(unit_price: Any) -> Decimal:
    """Clamp to a Decimal >= 0. Garbage input collapses to zero."""
    value = to_decimal(unit_price)
    if value is None:
        return ZERO
    return max(ZERO, value)


def line_total(quantity: Any, unit_price: Any) -> Decimal:
    """round2(max(1, quantity) * max(0, unit_price))"""
    return round2(clamp_quantity(quantity) * clamp_price(unit_price))


def order_total(items: Iterable[Any]) -> Decimal:
    """
    Sum line totals of every item that is not removed.
    
    Accepts LineItem models or anything with quantity/unit_price attributes;
    a reconciliation_state of "removed" excludes the item.
    """
    total = ZERO
    for item in items:
        state = getattr(item, "reconciliation_state", None)
        if state is not None and getattr(state, "value", state) == "removed":
            continue
        total += line_total(item.quantity, item.unit_price)
    return round2(total)


def remaining_balance(total: Decimal, amount_paid: Any) -> Decimal:
    """max(0, round2(total - amount_paid))"""
    paid = to_decimal(amount_paid) or ZERO
    return max(ZERO.quantize(CENT), round2(total - paid))
