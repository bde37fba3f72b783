"""Async persistence collaborator for orders, leads, items and logs

Implements both item contracts consumed by the reconciliation engine
(granular create/update/delete and atomic replace-all), plus status,
customer-field and call-log writes. Every write re-checks the lock and
status gate against the stored row and recomputes the stored total.
"""

from typing import List, Optional, Tuple, Union
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, delete, func
import logging

from orderdesk.config import settings
from orderdesk.exceptions import NotFoundError
from orderdesk.models.database import AsyncSessionLocal
from orderdesk.models.entities import (
    AnyEntity,
    CallLogEntry,
    CallOutcome,
    ContactRef,
    CustomerFields,
    EntityKind,
    ItemPayload,
    LeadStatus,
    LineItem as LineItemPydantic,
    OrderStatus,
    Product as ProductPydantic,
    StatusHistoryEntry,
)
from orderdesk.models.db_models import (
    Order as OrderDB,
    Lead as LeadDB,
    Product as ProductDB,
    StatusHistory as StatusHistoryDB,
    CallLog as CallLogDB,
)
from orderdesk.models.line_item_db_models import LineItem as LineItemDB
from orderdesk.models.db_utils import (
    db_to_pydantic_order,
    db_to_pydantic_lead,
    db_to_pydantic_line_item,
    db_to_pydantic_product,
    db_to_call_log_entry,
    db_to_status_history_entry,
    lead_display_id,
)
from orderdesk.models.money import clamp_price, clamp_quantity, line_total, order_total
from orderdesk.services.intake_service import IntakeService, build_item_row, check_payloads
from orderdesk.services.status_service import StatusTransitionValidator

logger = logging.getLogger(__name__)

EntityRow = Union[OrderDB, LeadDB]

# customer field -> (order column, lead column); None means the kind has no such column
CUSTOMER_COLUMNS = {
    "name": ("customer_name", "name"),
    "phone": ("customer_phone", "telephone"),
    "address": ("customer_address", "address"),
    "city": ("customer_city", "city"),
    "postal_code": ("postal_code", None),
}


def _model_for(kind: EntityKind):
    return OrderDB if EntityKind(kind) == EntityKind.ORDER else LeadDB


def _clear_legacy_product(kind: EntityKind, row: EntityRow) -> None:
    """Once real item rows exist the single-product columns are stale"""
    if kind == EntityKind.ORDER:
        row.product_id = None
        row.product_name = None
    else:
        row.product = None
    row.quantity = None
    row.price = None


class DatabaseService:
    """Async service for order desk persistence"""

    def __init__(self, db: Optional[AsyncSession] = None):
        """
        Args:
            db: Session used by every call that does not pass its own
                (a fresh session per call when omitted)
        """
        self.db = db

    def _session(self, db: Optional[AsyncSession]) -> Tuple[AsyncSession, bool]:
        if db is not None:
            return db, False
        if self.db is not None:
            return self.db, False
        return AsyncSessionLocal(), True

    # ── loading helpers ──

    @staticmethod
    async def _load_row(session: AsyncSession, kind: EntityKind, entity_id: str) -> EntityRow:
        model = _model_for(kind)
        result = await session.execute(select(model).where(model.id == entity_id))
        row = result.scalar_one_or_none()
        if row is None:
            raise NotFoundError("Order" if kind == EntityKind.ORDER else "Lead", entity_id)
        return row

    @staticmethod
    async def _load_items(session: AsyncSession, kind: EntityKind, entity_id: str) -> List[LineItemDB]:
        result = await session.execute(
            select(LineItemDB)
            .where(LineItemDB.entity_kind == kind.value, LineItemDB.entity_id == entity_id)
            .order_by(LineItemDB.position, LineItemDB.created_at)
        )
        return list(result.scalars().all())

    @staticmethod
    async def _load_item(session: AsyncSession, kind: EntityKind, item_id: str) -> LineItemDB:
        result = await session.execute(
            select(LineItemDB).where(LineItemDB.id == item_id, LineItemDB.entity_kind == kind.value)
        )
        item = result.scalar_one_or_none()
        if item is None:
            raise NotFoundError("Line item", item_id)
        return item

    @staticmethod
    async def _to_entity(session: AsyncSession, kind: EntityKind, row: EntityRow) -> AnyEntity:
        items = await DatabaseService._load_items(session, kind, row.id)
        if kind == EntityKind.ORDER:
            return db_to_pydantic_order(row, items)
        return db_to_pydantic_lead(row, items)

    @staticmethod
    async def _refresh_total(session: AsyncSession, kind: EntityKind, row: EntityRow) -> Decimal:
        await session.flush()
        items = await DatabaseService._load_items(session, kind, row.id)
        row.total_amount = order_total(items)
        _clear_legacy_product(kind, row)
        return row.total_amount

    @staticmethod
    def _check_editable(kind: EntityKind, row: EntityRow) -> None:
        StatusTransitionValidator(kind).check_editable(row.status)

    @staticmethod
    def _apply_payload(item: LineItemDB, payload: ItemPayload) -> None:
        item.product_id = payload.product_id
        item.product_name = (payload.product_name or "").strip()
        item.quantity = clamp_quantity(payload.quantity)
        item.unit_price = clamp_price(payload.unit_price)
        item.line_total = line_total(item.quantity, item.unit_price)

    # ── reads ──

    async def get_entity(
        self,
        kind: EntityKind,
        entity_id: str,
        db: Optional[AsyncSession] = None
    ) -> AnyEntity:
        """
        Get an order or lead with its items

        Raises:
            NotFoundError: if the entity does not exist
        """
        kind = EntityKind(kind)
        session, should_close = self._session(db)
        try:
            row = await self._load_row(session, kind, entity_id)
            return await self._to_entity(session, kind, row)
        except NotFoundError:
            raise
        except Exception as e:
            logger.error(f"Error getting {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def list_orders(
        self,
        skip: int = 0,
        limit: int = 100,
        status: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> List[AnyEntity]:
        """List orders, newest first"""
        session, should_close = self._session(db)
        try:
            query = select(OrderDB)
            if status:
                query = query.where(OrderDB.status == status)
            query = query.order_by(OrderDB.display_number.desc()).offset(skip).limit(limit)

            result = await session.execute(query)
            return [
                await self._to_entity(session, EntityKind.ORDER, row)
                for row in result.scalars().all()
            ]
        except Exception as e:
            logger.error(f"Error listing orders: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def list_products(
        self,
        active_only: bool = False,
        db: Optional[AsyncSession] = None
    ) -> List[ProductPydantic]:
        """Catalog snapshot, ordered by name"""
        session, should_close = self._session(db)
        try:
            query = select(ProductDB)
            if active_only:
                query = query.where(ProductDB.is_active.is_(True))
            result = await session.execute(query.order_by(ProductDB.name))
            return [db_to_pydantic_product(p) for p in result.scalars().all()]
        except Exception as e:
            logger.error(f"Error listing products: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def create_product(
        self,
        name: str,
        price: Decimal,
        is_active: bool = True,
        db: Optional[AsyncSession] = None
    ) -> ProductPydantic:
        session, should_close = self._session(db)
        try:
            product = ProductDB(name=name.strip(), price=clamp_price(price), is_active=is_active)
            session.add(product)
            await session.commit()
            logger.info(f"Created product {product.id} ({product.name})")
            return db_to_pydantic_product(product)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error creating product {name}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def list_contacts(
        self,
        include_trashed: bool = True,
        db: Optional[AsyncSession] = None
    ) -> List[ContactRef]:
        """Every order and lead with a phone number, for duplicate detection"""
        session, should_close = self._session(db)
        try:
            order_query = select(OrderDB).where(OrderDB.customer_phone != "")
            if not include_trashed:
                order_query = order_query.where(OrderDB.status != OrderStatus.TRASHED.value)
            orders = (await session.execute(order_query)).scalars().all()
            leads = (await session.execute(select(LeadDB).where(LeadDB.telephone != ""))).scalars().all()

            contacts = [
                ContactRef(
                    kind=EntityKind.ORDER,
                    id=o.id,
                    display_id=o.display_id,
                    name=o.customer_name or "",
                    phone=o.customer_phone,
                    status=o.status,
                )
                for o in orders
            ]
            contacts.extend(
                ContactRef(
                    kind=EntityKind.LEAD,
                    id=l.id,
                    display_id=lead_display_id(l.id),
                    name=l.name or "",
                    phone=l.telephone,
                    status=l.status,
                )
                for l in leads
            )
            return contacts
        except Exception as e:
            logger.error(f"Error listing contacts: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def get_status_history(
        self,
        kind: EntityKind,
        entity_id: str,
        db: Optional[AsyncSession] = None
    ) -> List[StatusHistoryEntry]:
        """Oldest first; the creation entry has from_status None"""
        kind = EntityKind(kind)
        session, should_close = self._session(db)
        try:
            result = await session.execute(
                select(StatusHistoryDB)
                .where(StatusHistoryDB.entity_kind == kind.value, StatusHistoryDB.entity_id == entity_id)
                .order_by(StatusHistoryDB.id)
            )
            return [db_to_status_history_entry(r) for r in result.scalars().all()]
        except Exception as e:
            logger.error(f"Error getting status history for {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    # ── granular item contract ──

    async def create_item(
        self,
        kind: EntityKind,
        entity_id: str,
        payload: ItemPayload,
        db: Optional[AsyncSession] = None
    ) -> LineItemPydantic:
        """
        Append one item row

        Raises:
            NotFoundError: unknown entity
            EntityLockedError: entity status freezes items
            ValidationError: payload breaks a row rule
        """
        kind = EntityKind(kind)
        check_payloads([payload])
        session, should_close = self._session(db)
        try:
            row = await self._load_row(session, kind, entity_id)
            self._check_editable(kind, row)

            result = await session.execute(
                select(func.max(LineItemDB.position))
                .where(LineItemDB.entity_kind == kind.value, LineItemDB.entity_id == entity_id)
            )
            last = result.scalar()
            item = build_item_row(kind, entity_id, payload, 0 if last is None else last + 1)
            session.add(item)
            await self._refresh_total(session, kind, row)
            await session.commit()

            logger.info(f"Created item {item.id} on {kind.value} {entity_id}")
            return db_to_pydantic_line_item(item)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error creating item on {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def update_item(
        self,
        kind: EntityKind,
        item_id: str,
        payload: ItemPayload,
        db: Optional[AsyncSession] = None
    ) -> LineItemPydantic:
        """Overwrite product, quantity and unit price of one item row"""
        kind = EntityKind(kind)
        check_payloads([payload])
        session, should_close = self._session(db)
        try:
            item = await self._load_item(session, kind, item_id)
            row = await self._load_row(session, kind, item.entity_id)
            self._check_editable(kind, row)

            self._apply_payload(item, payload)
            await self._refresh_total(session, kind, row)
            await session.commit()

            logger.info(f"Updated item {item_id} on {kind.value} {row.id}")
            return db_to_pydantic_line_item(item)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error updating item {item_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def delete_item(
        self,
        kind: EntityKind,
        item_id: str,
        db: Optional[AsyncSession] = None
    ) -> None:
        kind = EntityKind(kind)
        session, should_close = self._session(db)
        try:
            item = await self._load_item(session, kind, item_id)
            row = await self._load_row(session, kind, item.entity_id)
            self._check_editable(kind, row)

            await session.delete(item)
            await self._refresh_total(session, kind, row)
            await session.commit()

            logger.info(f"Deleted item {item_id} from {kind.value} {row.id}")
        except Exception as e:
            await session.rollback()
            logger.error(f"Error deleting item {item_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    # ── atomic item contract ──

    async def replace_all_items(
        self,
        kind: EntityKind,
        entity_id: str,
        items: List[ItemPayload],
        db: Optional[AsyncSession] = None
    ) -> AnyEntity:
        """
        Replace the whole item set in one transaction

        Either every row is written or none is; the returned entity carries
        the authoritative items and total.
        """
        kind = EntityKind(kind)
        check_payloads(items)
        session, should_close = self._session(db)
        try:
            row = await self._load_row(session, kind, entity_id)
            self._check_editable(kind, row)

            await session.execute(
                delete(LineItemDB).where(
                    LineItemDB.entity_kind == kind.value,
                    LineItemDB.entity_id == entity_id,
                )
            )
            session.add_all(build_item_row(kind, entity_id, p, i) for i, p in enumerate(items))
            total = await self._refresh_total(session, kind, row)
            await session.commit()

            logger.info(f"Replaced items on {kind.value} {entity_id}: {len(items)} row(s), total {total}")
            return await self._to_entity(session, kind, row)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error replacing items on {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    # ── entity writes ──

    async def update_status(
        self,
        kind: EntityKind,
        entity_id: str,
        status: Union[str, OrderStatus, LeadStatus],
        actor: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> AnyEntity:
        """
        Gate and write a status change with its history entry

        Same-status requests are a no-op with no history entry. A lead that
        becomes confirmed is converted into an order in the same transaction.

        Raises:
            TransitionRejected: gate refused the target status
        """
        kind = EntityKind(kind)
        validator = StatusTransitionValidator(kind)
        session, should_close = self._session(db)
        try:
            row = await self._load_row(session, kind, entity_id)
            current = await self._to_entity(session, kind, row)
            target = validator.parse(status)

            if not validator.validate(row.status, target, current.customer_fields()):
                logger.debug(f"{kind.value} {entity_id} already '{target.value}'")
                return current

            previous = row.status
            row.status = target.value
            session.add(
                StatusHistoryDB(
                    entity_kind=kind.value,
                    entity_id=entity_id,
                    from_status=previous,
                    to_status=target.value,
                    actor=actor,
                )
            )
            if kind == EntityKind.LEAD and target == LeadStatus.CONFIRMED:
                await IntakeService.convert_lead(session, row, actor)

            await session.commit()
            logger.info(f"{kind.value} {entity_id}: {previous} -> {target.value}")
            return await self._to_entity(session, kind, row)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error updating status of {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def update_customer_fields(
        self,
        kind: EntityKind,
        entity_id: str,
        fields: CustomerFields,
        db: Optional[AsyncSession] = None
    ) -> AnyEntity:
        """Write the provided customer fields; fields left as None are untouched"""
        kind = EntityKind(kind)
        session, should_close = self._session(db)
        try:
            row = await self._load_row(session, kind, entity_id)
            self._check_editable(kind, row)

            column_index = 0 if kind == EntityKind.ORDER else 1
            for name, value in fields.provided().items():
                column = CUSTOMER_COLUMNS[name][column_index]
                if column is not None:
                    setattr(row, column, value.strip())
            await session.commit()

            logger.info(f"Updated customer fields on {kind.value} {entity_id}")
            return await self._to_entity(session, kind, row)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error updating customer fields of {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def update_amount_paid(
        self,
        order_id: str,
        amount_paid: Decimal,
        db: Optional[AsyncSession] = None
    ) -> AnyEntity:
        """Record the amount paid on an order (orders only)"""
        session, should_close = self._session(db)
        try:
            row = await self._load_row(session, EntityKind.ORDER, order_id)
            row.amount_paid = clamp_price(amount_paid)
            await session.commit()
            logger.info(f"Order {row.display_id}: amount paid set to {row.amount_paid}")
            return await self._to_entity(session, EntityKind.ORDER, row)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error updating amount paid of order {order_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    # ── call log ──

    async def log_call(
        self,
        kind: EntityKind,
        entity_id: str,
        outcome: Union[str, CallOutcome],
        notes: str = "",
        agent: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> CallLogEntry:
        """Append a call log entry; never touches status or items"""
        kind = EntityKind(kind)
        outcome = CallOutcome(getattr(outcome, "value", outcome))
        session, should_close = self._session(db)
        try:
            await self._load_row(session, kind, entity_id)
            log = CallLogDB(
                entity_kind=kind.value,
                entity_id=entity_id,
                outcome=outcome.value,
                notes=notes or "",
                agent=agent,
            )
            session.add(log)
            await session.commit()
            return db_to_call_log_entry(log)
        except Exception as e:
            await session.rollback()
            logger.error(f"Error logging call on {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    async def get_call_logs(
        self,
        kind: EntityKind,
        entity_id: str,
        limit: Optional[int] = None,
        db: Optional[AsyncSession] = None
    ) -> List[CallLogEntry]:
        """Most recent first, at most settings.CALL_LOG_LIMIT entries"""
        kind = EntityKind(kind)
        session, should_close = self._session(db)
        try:
            result = await session.execute(
                select(CallLogDB)
                .where(CallLogDB.entity_kind == kind.value, CallLogDB.entity_id == entity_id)
                .order_by(CallLogDB.created_at.desc(), CallLogDB.id.desc())
                .limit(limit or settings.CALL_LOG_LIMIT)
            )
            return [db_to_call_log_entry(r) for r in result.scalars().all()]
        except Exception as e:
            logger.error(f"Error getting call logs for {kind.value} {entity_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()
