"""Line-item reconciliation"""

from .engine import (
    ReconciliationEngine,
    ReconcileResult,
    ReconcileStrategy,
    ItemOperation,
    OperationKind,
    plan_operations,
)
from .validation import collect_row_errors, validate_staged_items

__all__ = [
    "ReconciliationEngine",
    "ReconcileResult",
    "ReconcileStrategy",
    "ItemOperation",
    "OperationKind",
    "plan_operations",
    "collect_row_errors",
    "validate_staged_items",
]
