"""Reconciliation engine

Turns a staged item collection into the minimal set of persistence calls.
Two strategies exist:

- granular: one delete per removed persisted row, one create per new row,
  one update per modified row. Fail-fast: the first failure stops every call
  not yet issued, and only rows whose call succeeded are promoted.
- atomic: the whole active set goes out in one replace-all call. Preferred
  whenever the collaborator offers it because nothing can half-apply.

Staged state is never reset on failure so the user can retry.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional
import asyncio
import logging

from orderdesk.config import settings
from orderdesk.exceptions import PersistenceError
from orderdesk.models.entities import AnyEntity, EntityKind, ItemPayload, LineItem, ReconciliationState
from orderdesk.staging.store import StagingStore
from .validation import validate_staged_items, totals_match

logger = logging.getLogger(__name__)


class ReconcileStrategy(str, Enum):
    """How staged items reach the collaborator"""
    GRANULAR = "granular"
    ATOMIC = "atomic"


class OperationKind(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class ItemOperation:
    """One planned persistence call for one staged row"""
    kind: OperationKind
    index: int
    item: LineItem
    
    @property
    def item_id(self) -> Optional[str]:
        return self.item.id
    
    def payload(self) -> ItemPayload:
        return self.item.to_payload()
    
    def __repr__(self) -> str:
        return f"ItemOperation({self.kind.value}, index={self.index}, id={self.item.id})"


@dataclass
class ReconcileResult:
    """Outcome of one successful reconciliation"""
    strategy: ReconcileStrategy
    operations: List[ItemOperation] = field(default_factory=list)
    entity: Optional[AnyEntity] = None
    calls: int = 0
    total: Decimal = Decimal("0")


def plan_operations(store: StagingStore) -> List[ItemOperation]:
    """
    Compute the minimal per-row operations from reconciliation states.
    
    Rows are visited in collection order; each row yields at most one call.
    """
    operations: List[ItemOperation] = []
    for index, item in store.staged_rows():
        state = item.reconciliation_state
        if state == ReconciliationState.REMOVED:
            if item.is_persisted:
                operations.append(ItemOperation(OperationKind.DELETE, index, item))
        elif state == ReconciliationState.NEW or not item.is_persisted:
            operations.append(ItemOperation(OperationKind.CREATE, index, item))
        elif state == ReconciliationState.MODIFIED:
            operations.append(ItemOperation(OperationKind.UPDATE, index, item))
    return operations


class ReconciliationEngine:
    """Persists a staging store through an injected collaborator"""
    
    def __init__(
        self,
        collaborator,
        strategy: Optional[ReconcileStrategy] = None,
        concurrency: Optional[int] = None,
    ):
        """
        Args:
            collaborator: Object implementing the granular and/or atomic contract
            strategy: Force a strategy; defaults to atomic when available
            concurrency: Max in-flight granular calls (settings.RECONCILE_CONCURRENCY)
        """
        self.collaborator = collaborator
        self.strategy = strategy or self.select_strategy(collaborator)
        self.concurrency = max(1, concurrency or settings.RECONCILE_CONCURRENCY)
        
        if self.strategy == ReconcileStrategy.ATOMIC and not callable(
            getattr(collaborator, "replace_all_items", None)
        ):
            raise ValueError("Atomic reconciliation requires a replace_all_items operation")
    
    @staticmethod
    def select_strategy(collaborator) -> ReconcileStrategy:
        if callable(getattr(collaborator, "replace_all_items", None)):
            return ReconcileStrategy.ATOMIC
        return ReconcileStrategy.GRANULAR
    
    async def reconcile(
        self,
        kind: EntityKind,
        entity_id: str,
        store: StagingStore,
    ) -> ReconcileResult:
        """
        Validate, then persist every staged change.
        
        Raises:
            ValidationError: before any call when a row or the set is invalid
            PersistenceError: when a collaborator call fails
        """
        validate_staged_items(store.staged_rows())
        operations = plan_operations(store)
        
        if not operations:
            logger.debug(f"Nothing to reconcile for {kind.value} {entity_id}")
            return ReconcileResult(strategy=self.strategy, total=store.total())
        
        if self.strategy == ReconcileStrategy.ATOMIC:
            return await self._replace_all(kind, entity_id, store, operations)
        if self.concurrency == 1:
            return await self._run_sequential(kind, entity_id, store, operations)
        return await self._run_concurrent(kind, entity_id, store, operations)
    
    # ── atomic ──
    
    async def _replace_all(
        self,
        kind: EntityKind,
        entity_id: str,
        store: StagingStore,
        operations: List[ItemOperation],
    ) -> ReconcileResult:
        payloads = [item.to_payload() for item in store.active_items]
        staged_total = store.total()
        try:
            entity = await self.collaborator.replace_all_items(kind, entity_id, payloads)
        except Exception as e:
            logger.error(f"Replace-all failed for {kind.value} {entity_id}: {e}", exc_info=True)
            raise PersistenceError(str(e) or type(e).__name__, completed=[], failed=operations) from e
        
        store.replace_all(entity.items)
        is_valid, message = totals_match(entity.items, staged_total)
        if not is_valid:
            # the collaborator is authoritative; the staged figure was only a preview
            logger.warning(f"{kind.value} {entity_id}: {message}")
        
        logger.info(f"Replaced {len(payloads)} item(s) on {kind.value} {entity_id}")
        return ReconcileResult(
            strategy=ReconcileStrategy.ATOMIC,
            operations=operations,
            entity=entity,
            calls=1,
            total=entity.total_amount,
        )
    
    # ── granular ──
    
    async def _execute(self, kind: EntityKind, entity_id: str, store: StagingStore, op: ItemOperation) -> None:
        if op.kind == OperationKind.DELETE:
            await self.collaborator.delete_item(kind, op.item_id)
            store.mark_deleted(op.item)
        elif op.kind == OperationKind.CREATE:
            persisted = await self.collaborator.create_item(kind, entity_id, op.payload())
            store.mark_created(op.item, persisted)
        else:
            await self.collaborator.update_item(kind, op.item_id, op.payload())
            store.mark_updated(op.item)
    
    async def _run_sequential(
        self,
        kind: EntityKind,
        entity_id: str,
        store: StagingStore,
        operations: List[ItemOperation],
    ) -> ReconcileResult:
        completed: List[ItemOperation] = []
        for op in operations:
            try:
                await self._execute(kind, entity_id, store, op)
            except Exception as e:
                logger.error(
                    f"{op.kind.value} failed on {kind.value} {entity_id} after "
                    f"{len(completed)}/{len(operations)} call(s): {e}",
                    exc_info=True,
                )
                raise PersistenceError(str(e) or type(e).__name__, completed=completed, failed=op) from e
            completed.append(op)
        
        logger.info(f"Reconciled {len(completed)} item change(s) on {kind.value} {entity_id}")
        return ReconcileResult(
            strategy=ReconcileStrategy.GRANULAR,
            operations=completed,
            calls=len(completed),
            total=store.total(),
        )
    
    async def _run_concurrent(
        self,
        kind: EntityKind,
        entity_id: str,
        store: StagingStore,
        operations: List[ItemOperation],
    ) -> ReconcileResult:
        semaphore = asyncio.Semaphore(self.concurrency)
        aborted = asyncio.Event()
        completed: List[ItemOperation] = []
        
        async def run(op: ItemOperation) -> None:
            async with semaphore:
                # calls already in flight finish; queued ones are dropped
                if aborted.is_set():
                    return
                try:
                    await self._execute(kind, entity_id, store, op)
                except Exception:
                    aborted.set()
                    raise
                completed.append(op)
        
        results = await asyncio.gather(*(run(op) for op in operations), return_exceptions=True)
        failures = [(op, r) for op, r in zip(operations, results) if isinstance(r, Exception)]
        
        if failures:
            op, error = failures[0]
            logger.error(
                f"{op.kind.value} failed on {kind.value} {entity_id} after "
                f"{len(completed)}/{len(operations)} call(s): {error}",
                exc_info=error,
            )
            raise PersistenceError(str(error) or type(error).__name__, completed=completed, failed=op) from error
        
        logger.info(f"Reconciled {len(completed)} item change(s) on {kind.value} {entity_id}")
        return ReconcileResult(
            strategy=ReconcileStrategy.GRANULAR,
            operations=completed,
            calls=len(completed),
            total=store.total(),
        )
