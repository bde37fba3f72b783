"""Row validation run before any persistence call"""

from decimal import Decimal
from typing import List, Optional, Sequence, Tuple
import logging

from orderdesk.exceptions import RowError, ValidationError
from orderdesk.models.entities import LineItem
from orderdesk.models.money import line_total, order_total

logger = logging.getLogger(__name__)

MAX_QUANTITY = 100000
MAX_UNIT_PRICE = Decimal("10000000")
MAX_PRODUCT_NAME_LENGTH = 200


class ItemRule:
    """Base class for per-row rules"""
    
    field = ""
    
    def validate(self, item: LineItem) -> Tuple[bool, Optional[str]]:
        """
        Validate one active line item
        
        Returns:
            (is_valid, error_message)
        """
        raise NotImplementedError()


class ProductSelected(ItemRule):
    """A row needs a catalog product or a free-text name"""
    
    field = "product_name"
    
    def validate(self, item: LineItem) -> Tuple[bool, Optional[str]]:
        name = (item.product_name or "").strip()
        if not item.product_id and not name:
            return False, "Select a product"
        if len(name) > MAX_PRODUCT_NAME_LENGTH:
            return False, f"Product name is longer than {MAX_PRODUCT_NAME_LENGTH} characters"
        return True, None


class QuantityInRange(ItemRule):
    """Quantity must be a positive integer"""
    
    field = "quantity"
    
    def validate(self, item: LineItem) -> Tuple[bool, Optional[str]]:
        qty = item.quantity
        if isinstance(qty, bool) or not isinstance(qty, int) or qty < 1:
            return False, "Quantity must be a whole number of at least 1"
        if qty > MAX_QUANTITY:
            return False, f"Quantity cannot exceed {MAX_QUANTITY}"
        return True, None


class UnitPriceInRange(ItemRule):
    """Unit price must be finite and non-negative"""
    
    field = "unit_price"
    
    def validate(self, item: LineItem) -> Tuple[bool, Optional[str]]:
        price = item.unit_price
        if price is None or not Decimal(price).is_finite():
            return False, "Unit price must be a number"
        if price < 0:
            return False, "Unit price cannot be negative"
        if price > MAX_UNIT_PRICE:
            return False, f"Unit price cannot exceed {MAX_UNIT_PRICE}"
        return True, None


class PositiveLineTotal(ItemRule):
    """A line must be worth something"""
    
    field = "line_total"
    
    def validate(self, item: LineItem) -> Tuple[bool, Optional[str]]:
        if line_total(item.quantity, item.unit_price) <= 0:
            return False, "Line total must be greater than 0"
        return True, None


DEFAULT_RULES: Tuple[ItemRule, ...] = (
    ProductSelected(),
    QuantityInRange(),
    UnitPriceInRange(),
    PositiveLineTotal(),
)


def collect_row_errors(
    items: Sequence[Tuple[int, LineItem]],
    rules: Sequence[ItemRule] = DEFAULT_RULES,
) -> List[RowError]:
    """
    Run every rule over every active row.
    
    Args:
        items: (index, item) pairs; removed rows are skipped
        
    Returns:
        Row-level errors, plus one entity-level error when nothing is active
    """
    errors: List[RowError] = []
    active = [(index, item) for index, item in items if item.is_active]
    
    if not active:
        errors.append(RowError(index=None, field="items", message="At least one product is required"))
        return errors
    
    for index, item in active:
        numbers_ok = True
        for rule in rules:
            # line total is meaningless once quantity or price is already wrong
            if rule.field == "line_total" and not numbers_ok:
                continue
            is_valid, message = rule.validate(item)
            if not is_valid:
                errors.append(RowError(index=index, field=rule.field, message=message))
                if rule.field in ("quantity", "unit_price"):
                    numbers_ok = False
    
    return errors


def validate_staged_items(items: Sequence[Tuple[int, LineItem]]) -> None:
    """Raise ValidationError listing every offending row"""
    errors = collect_row_errors(items)
    if errors:
        logger.info(f"Staged items rejected: {len(errors)} problem(s)")
        raise ValidationError(errors)


def totals_match(items: Sequence[LineItem], expected_total: Optional[Decimal]) -> Tuple[bool, Optional[str]]:
    """
    Validate: expected_total == sum(line_total) over non-removed items
    
    Returns:
        (is_valid, error_message)
    """
    if expected_total is None:
        return True, None
    computed = order_total(items)
    if computed != expected_total:
        return False, (
            f"Total mismatch: reported total={expected_total} != "
            f"sum(line_total)={computed}, difference={abs(expected_total - computed)}"
        )
    return True, None
