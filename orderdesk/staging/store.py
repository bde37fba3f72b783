"""Line-item staging store

Holds the locally edited item collection for one order or lead. Every row
carries its reconciliation state, set at the point of mutation, so a later
save never has to infer intent by diffing field values.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple
import logging

from orderdesk.exceptions import EntityLockedError
from orderdesk.models.entities import LineItem, Product, ReconciliationState
from orderdesk.models.money import clamp_price, clamp_quantity, order_total, remaining_balance

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("quantity", "unit_price")


@dataclass(frozen=True)
class StagedRow:
    """Read-only view of one staged item for rendering"""
    index: int
    item: LineItem
    
    @property
    def hidden(self) -> bool:
        return self.item.reconciliation_state == ReconciliationState.REMOVED


@dataclass(frozen=True)
class StagingSnapshot:
    """Immutable view of the whole store"""
    rows: Tuple[StagedRow, ...]
    total: Decimal
    locked: bool
    
    @property
    def active_rows(self) -> Tuple[StagedRow, ...]:
        return tuple(row for row in self.rows if not row.hidden)
    
    @property
    def has_changes(self) -> bool:
        return any(
            row.item.reconciliation_state != ReconciliationState.UNCHANGED for row in self.rows
        )


class StagingStore:
    """In-memory, ordered, per-entity collection of staged line items"""
    
    def __init__(
        self,
        items: Iterable[LineItem] = (),
        catalog: Sequence[Product] = (),
        locked_status: Optional[str] = None,
    ):
        """
        Args:
            items: Last-known items for the entity (copied, never shared)
            catalog: Product snapshot used for defaults and product changes
            locked_status: When set, every mutation raises EntityLockedError
        """
        self._items: List[LineItem] = [item.model_copy() for item in items]
        self.catalog: List[Product] = list(catalog)
        self.locked_status = locked_status
    
    # ── reads ──
    
    @property
    def items(self) -> List[LineItem]:
        """Copies of every staged row, removed rows included"""
        return [item.model_copy() for item in self._items]
    
    @property
    def active_items(self) -> List[LineItem]:
        return [item.model_copy() for item in self._items if item.is_active]
    
    @property
    def locked(self) -> bool:
        return self.locked_status is not None
    
    @property
    def has_changes(self) -> bool:
        return any(item.reconciliation_state != ReconciliationState.UNCHANGED for item in self._items)
    
    def total(self) -> Decimal:
        return order_total(self._items)
    
    def remaining_balance(self, amount_paid) -> Decimal:
        return remaining_balance(self.total(), amount_paid)
    
    def snapshot(self) -> StagingSnapshot:
        return StagingSnapshot(
            rows=tuple(StagedRow(index=i, item=item.model_copy()) for i, item in enumerate(self._items)),
            total=self.total(),
            locked=self.locked,
        )
    
    def __len__(self) -> int:
        return len(self._items)
    
    # ── mutations ──
    
    def add_item(self, default_product: Optional[Product] = None) -> Optional[int]:
        """
        Append a new row priced from the given (or first active catalog) product.
        
        Returns:
            Index of the new row, or None when no product is available
        """
        self._check_unlocked()
        product = default_product or self._default_product()
        if product is None:
            logger.debug("add_item ignored: no product available to default to")
            return None
        
        self._items.append(
            LineItem(
                id=None,
                product_id=product.id,
                product_name=product.name,
                quantity=1,
                unit_price=clamp_price(product.price),
                reconciliation_state=ReconciliationState.NEW,
            )
        )
        return len(self._items) - 1
    
    def update_item(self, index: int, field: str, value) -> None:
        """Set quantity or unit_price, clamped to the field's minimum"""
        self._check_unlocked()
        if field not in EDITABLE_FIELDS:
            raise ValueError(f"Field '{field}' is not editable; expected one of {EDITABLE_FIELDS}")
        
        item = self._row(index)
        if not item.is_active:
            return
        
        new_value = clamp_quantity(value) if field == "quantity" else clamp_price(value)
        if getattr(item, field) == new_value:
            return
        setattr(item, field, new_value)
        self._mark_modified(item)
    
    def change_product(self, index: int, product_id: str) -> None:
        """Swap the row's product from the catalog; unknown ids are ignored"""
        self._check_unlocked()
        item = self._row(index)
        if not item.is_active:
            return
        
        product = next((p for p in self.catalog if p.id == product_id), None)
        if product is None:
            logger.debug(f"change_product ignored: product {product_id} not in catalog snapshot")
            return
        
        item.product_id = product.id
        item.product_name = product.name
        item.unit_price = clamp_price(product.price)
        self._mark_modified(item)
    
    def remove_item(self, index: int) -> None:
        """Unpersisted rows are dropped; persisted rows become removed tombstones"""
        self._check_unlocked()
        item = self._row(index)
        if not item.is_persisted:
            del self._items[index]
            return
        item.reconciliation_state = ReconciliationState.REMOVED
    
    # ── reconciliation hooks (called as persistence calls succeed) ──
    
    def mark_created(self, item: LineItem, persisted: LineItem) -> None:
        staged = self._find(item)
        if staged is None:
            return
        staged.id = persisted.id
        if staged.reconciliation_state == ReconciliationState.NEW:
            staged.reconciliation_state = ReconciliationState.UNCHANGED
    
    def mark_updated(self, item: LineItem) -> None:
        staged = self._find(item)
        if staged is not None and staged.reconciliation_state == ReconciliationState.MODIFIED:
            staged.reconciliation_state = ReconciliationState.UNCHANGED
    
    def mark_deleted(self, item: LineItem) -> None:
        staged = self._find(item)
        if staged is not None:
            self._items = [i for i in self._items if i is not staged]
    
    def replace_all(self, persisted: Iterable[LineItem]) -> None:
        """Adopt the collaborator's authoritative item set"""
        self._items = [
            item.model_copy(update={"reconciliation_state": ReconciliationState.UNCHANGED})
            for item in persisted
        ]
    
    def staged_rows(self) -> List[Tuple[int, LineItem]]:
        """Live (index, row) pairs for the reconciliation engine. Not for rendering."""
        return list(enumerate(self._items))
    
    # ── helpers ──
    
    def _default_product(self) -> Optional[Product]:
        active = [p for p in self.catalog if p.is_active]
        if active:
            return active[0]
        return self.catalog[0] if self.catalog else None
    
    def _row(self, index: int) -> LineItem:
        if index < 0 or index >= len(self._items):
            raise IndexError(f"No staged item at index {index}")
        return self._items[index]
    
    def _find(self, item: LineItem) -> Optional[LineItem]:
        return next((i for i in self._items if i is item), None)
    
    def _check_unlocked(self) -> None:
        if self.locked_status is not None:
            raise EntityLockedError(self.locked_status)
    
    @staticmethod
    def _mark_modified(item: LineItem) -> None:
        if item.reconciliation_state == ReconciliationState.UNCHANGED:
            item.reconciliation_state = ReconciliationState.MODIFIED
