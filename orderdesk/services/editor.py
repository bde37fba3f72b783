"""Edit session for one order or lead

Ties the staging store, the status gate, the reconciliation engine and the
call recorder together. A save runs in three phases:

1. local checks (lock, status gate, row validation), no network
2. customer fields, items and amount paid
3. the status write, only when phase 2 fully succeeded
"""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union
import asyncio
import logging

from orderdesk.exceptions import (
    EntityLockedError,
    OrderDeskError,
    PersistenceError,
    RowError,
    TransitionRejected,
    ValidationError,
)
from orderdesk.models.entities import (
    AnyEntity,
    CallLogEntry,
    CallOutcome,
    CustomerFields,
    DuplicateMatch,
    EntityKind,
    Product,
    ReconciliationState,
)
from orderdesk.models.money import clamp_price, remaining_balance
from orderdesk.reconciliation import (
    ReconcileResult,
    ReconcileStrategy,
    ReconciliationEngine,
    collect_row_errors,
)
from orderdesk.services.call_log_service import CallOutcomeRecorder
from orderdesk.services.duplicate_service import DuplicateContactDetector
from orderdesk.services.status_service import StatusTransitionValidator
from orderdesk.staging.store import StagingSnapshot, StagingStore

logger = logging.getLogger(__name__)

ORDER_FIELDS = ("name", "phone", "address", "city", "postal_code")
LEAD_FIELDS = ("name", "phone", "address", "city")


@dataclass
class SaveResult:
    """Outcome of one save attempt. Staged state is kept on failure."""
    success: bool
    errors: List[str] = field(default_factory=list)
    row_errors: List[RowError] = field(default_factory=list)
    entity: Optional[AnyEntity] = None
    status_changed: bool = False
    reconcile: Optional[ReconcileResult] = None
    call_log: Optional[CallLogEntry] = None

    @property
    def row_indices(self) -> List[int]:
        return sorted({e.index for e in self.row_errors if e.index is not None})


@dataclass
class SubmitResult:
    """Save and call-log outcomes; each half fails on its own"""
    save: SaveResult
    call_log: Optional[CallLogEntry] = None
    call_error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.save.success and self.call_error is None


@dataclass(frozen=True)
class EditorSnapshot:
    """Everything an edit screen renders"""
    kind: EntityKind
    entity_id: str
    display_id: str
    status: str
    fields: CustomerFields
    items: StagingSnapshot
    amount_paid: Decimal
    remaining_balance: Decimal
    locked: bool
    dirty: bool
    duplicates: Tuple[DuplicateMatch, ...] = ()


class EntityEditor:
    """Stages edits to one entity and saves them through a collaborator"""

    def __init__(
        self,
        entity: AnyEntity,
        collaborator,
        catalog: Sequence[Product] = (),
        strategy: Optional[ReconcileStrategy] = None,
        actor: Optional[str] = None,
        detector: Optional[DuplicateContactDetector] = None,
    ):
        self.collaborator = collaborator
        self.catalog = list(catalog)
        self.actor = actor
        self.kind = EntityKind(entity.kind)
        self.validator = StatusTransitionValidator(self.kind)
        self.engine = ReconciliationEngine(collaborator, strategy=strategy)
        self.recorder = CallOutcomeRecorder(collaborator)
        self.detector = detector or DuplicateContactDetector()
        self._save_lock = asyncio.Lock()
        self._call_lock = asyncio.Lock()
        self._submit_lock = asyncio.Lock()
        self.duplicates: List[DuplicateMatch] = []
        self._rebase(entity)

    @classmethod
    async def load(cls, kind: EntityKind, entity_id: str, collaborator, **kwargs) -> "EntityEditor":
        """Fetch the entity and the catalog snapshot, then open an editor"""
        entity = await collaborator.get_entity(EntityKind(kind), entity_id)
        catalog = await collaborator.list_products()
        return cls(entity, collaborator, catalog=catalog, **kwargs)

    def _rebase(self, entity: AnyEntity) -> None:
        """Adopt a persisted entity as the new baseline and clear staged edits"""
        self.entity = entity
        status = entity.status.value
        locked = self.validator.is_locked(status)
        items = entity.items
        if locked:
            # legacy single-product rows cannot be migrated while locked
            items = [
                item.model_copy(update={"reconciliation_state": ReconciliationState.UNCHANGED})
                if not item.is_persisted and item.reconciliation_state == ReconciliationState.NEW
                else item
                for item in items
            ]
        self.store = StagingStore(
            items,
            self.catalog,
            locked_status=status if locked else None,
        )
        self.fields = entity.customer_fields()
        self.amount_paid = entity.amount_paid
        self._amount_paid_dirty = False

    # ── reads ──

    @property
    def entity_id(self) -> str:
        return self.entity.id

    @property
    def status(self) -> str:
        return self.entity.status.value

    @property
    def locked(self) -> bool:
        return self.store.locked

    @property
    def field_names(self) -> Sequence[str]:
        return ORDER_FIELDS if self.kind == EntityKind.ORDER else LEAD_FIELDS

    def changed_fields(self) -> CustomerFields:
        baseline = self.entity.customer_fields()
        changed = {
            name: getattr(self.fields, name)
            for name in self.field_names
            if (getattr(self.fields, name) or "") != (getattr(baseline, name) or "")
        }
        return CustomerFields(**changed)

    @property
    def dirty(self) -> bool:
        return self.store.has_changes or bool(self.changed_fields().provided()) or self._amount_paid_dirty

    def remaining_balance(self) -> Decimal:
        return remaining_balance(self.store.total(), self.amount_paid)

    def snapshot(self) -> EditorSnapshot:
        return EditorSnapshot(
            kind=self.kind,
            entity_id=self.entity.id,
            display_id=self.entity.display_id,
            status=self.status,
            fields=self.fields.model_copy(),
            items=self.store.snapshot(),
            amount_paid=self.amount_paid,
            remaining_balance=self.remaining_balance(),
            locked=self.locked,
            dirty=self.dirty,
            duplicates=tuple(self.duplicates),
        )

    # ── staged edits ──

    def set_customer_field(self, name: str, value: Optional[str]) -> None:
        if self.locked:
            raise EntityLockedError(self.status)
        if name not in self.field_names:
            raise ValueError(f"'{name}' is not a {self.kind.value} customer field")
        setattr(self.fields, name, value or "")

    def set_amount_paid(self, value) -> None:
        """Staged only; persisted on the next save"""
        if self.kind != EntityKind.ORDER:
            raise ValueError("Only orders track an amount paid")
        amount = clamp_price(value)
        if amount != self.amount_paid:
            self.amount_paid = amount
            self._amount_paid_dirty = amount != self.entity.amount_paid

    async def check_duplicates(self) -> List[DuplicateMatch]:
        """
        Advisory duplicate lookup for the staged phone; errors yield no warnings.

        The result is kept for snapshot() until the next check.
        """
        try:
            matches = await self.detector.check(
                self.fields.phone, self.collaborator, self.kind, self.entity.id
            )
        except Exception as e:
            logger.warning(f"Duplicate check failed for {self.kind.value} {self.entity.id}: {e}")
            matches = []
        self.duplicates = list(matches)
        return list(matches)

    # ── save ──

    def _precheck(self, target_status: Optional[str]) -> Optional[SaveResult]:
        """Phase 1: every local check, before any network call"""
        fields_changed = bool(self.changed_fields().provided())
        if self.locked and (self.store.has_changes or fields_changed):
            return SaveResult(success=False, errors=[EntityLockedError(self.status).message])

        if target_status is not None:
            try:
                self.validator.validate(self.status, target_status, self.fields)
            except TransitionRejected as e:
                return SaveResult(success=False, errors=[e.message])

        if self.store.has_changes:
            row_errors = collect_row_errors(self.store.staged_rows())
            if row_errors:
                return SaveResult(
                    success=False,
                    errors=[str(e) for e in row_errors],
                    row_errors=row_errors,
                )
        return None

    async def save(self, target_status: Optional[Union[str, Enum]] = None) -> SaveResult:
        """
        Persist staged edits, then the status change.

        Never raises for expected failures; inspect SaveResult.success.
        """
        if self._save_lock.locked():
            return SaveResult(success=False, errors=["A save is already in progress"])

        async with self._save_lock:
            target = getattr(target_status, "value", target_status)
            failure = self._precheck(target)
            if failure is not None:
                return failure

            latest: Optional[AnyEntity] = None
            reconciled: Optional[ReconcileResult] = None
            changed = self.changed_fields()

            try:
                if changed.provided():
                    latest = await self.collaborator.update_customer_fields(self.kind, self.entity.id, changed)
                if self.store.has_changes:
                    reconciled = await self.engine.reconcile(self.kind, self.entity.id, self.store)
                    latest = reconciled.entity or latest
                if self._amount_paid_dirty:
                    latest = await self.collaborator.update_amount_paid(self.entity.id, self.amount_paid)
            except ValidationError as e:
                return SaveResult(success=False, errors=[str(r) for r in e.errors], row_errors=e.errors)
            except PersistenceError as e:
                logger.warning(f"Save of {self.kind.value} {self.entity.id} failed: {e.message}")
                return SaveResult(
                    success=False,
                    errors=[f"Changes could not be saved, please retry. {e.message}"],
                    reconcile=reconciled,
                )
            except OrderDeskError as e:
                logger.warning(f"Save of {self.kind.value} {self.entity.id} failed: {e.message}")
                return SaveResult(success=False, errors=[e.message], reconcile=reconciled)
            except Exception as e:
                logger.error(f"Save of {self.kind.value} {self.entity.id} failed: {e}", exc_info=True)
                return SaveResult(success=False, errors=[str(e) or type(e).__name__], reconcile=reconciled)

            self._commit_local(latest)

            status_changed = False
            if target is not None and target != self.status:
                try:
                    latest = await self.collaborator.update_status(
                        self.kind, self.entity.id, target, actor=self.actor
                    )
                except OrderDeskError as e:
                    return SaveResult(success=False, errors=[e.message], entity=self.entity, reconcile=reconciled)
                except Exception as e:
                    logger.error(f"Status change on {self.kind.value} {self.entity.id} failed: {e}", exc_info=True)
                    return SaveResult(
                        success=False,
                        errors=[f"Changes were saved but the status change failed: {e}"],
                        entity=self.entity,
                        reconcile=reconciled,
                    )
                self._rebase(latest)
                status_changed = True

            logger.info(
                f"Saved {self.kind.value} {self.entity.display_id or self.entity.id}"
                + (f" -> {self.status}" if status_changed else "")
            )
            return SaveResult(
                success=True,
                entity=self.entity,
                status_changed=status_changed,
                reconcile=reconciled,
            )

    def _commit_local(self, latest: Optional[AnyEntity]) -> None:
        """Rebase on phase-2 results without another round trip"""
        update = {"items": self.store.items, "amount_paid": self.amount_paid}
        update.update(self.fields.model_dump(include=set(self.field_names)))
        base = latest if latest is not None else self.entity
        self._rebase(base.model_copy(update=update))

    # ── call outcomes ──

    async def add_call_outcome(
        self,
        outcome: Union[str, CallOutcome],
        notes: str = "",
    ) -> SaveResult:
        """
        Append one call log entry; independent of any pending edits.

        Same result shape as save(); a second call while one is in flight is refused.
        """
        if self._call_lock.locked():
            return SaveResult(success=False, errors=["A call outcome is already being saved"])

        async with self._call_lock:
            try:
                entry = await self.recorder.log_call(self.kind, self.entity.id, outcome, notes, agent=self.actor)
            except ValidationError as e:
                return SaveResult(success=False, errors=[str(r) for r in e.errors], row_errors=e.errors)
            except PersistenceError as e:
                logger.warning(f"Call log for {self.kind.value} {self.entity.id} failed: {e.message}")
                return SaveResult(
                    success=False,
                    errors=[f"Call outcome could not be saved, please retry. {e.message}"],
                )
            except OrderDeskError as e:
                return SaveResult(success=False, errors=[e.message])
            except Exception as e:
                logger.error(f"Call log for {self.kind.value} {self.entity.id} failed: {e}", exc_info=True)
                return SaveResult(success=False, errors=[str(e) or type(e).__name__])

            return SaveResult(success=True, entity=self.entity, call_log=entry)

    async def submit(
        self,
        target_status: Optional[Union[str, Enum]] = None,
        outcome: Optional[Union[str, CallOutcome]] = None,
        notes: str = "",
    ) -> SubmitResult:
        """
        Save edits and record a call outcome concurrently.

        A second submit while one is running is refused without any call.
        """
        if self._submit_lock.locked():
            return SubmitResult(save=SaveResult(success=False, errors=["A save is already in progress"]))

        async with self._submit_lock:
            if outcome is None:
                return SubmitResult(save=await self.save(target_status))

            save_result, call_result = await asyncio.gather(
                self.save(target_status),
                self.add_call_outcome(outcome, notes),
            )
            return SubmitResult(
                save=save_result,
                call_log=call_result.call_log,
                call_error=None if call_result.success else "; ".join(call_result.errors),
            )
