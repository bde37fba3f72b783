"""Order and lead intake

Creates orders and leads with their initial item rows and the creation
history entry, and converts confirmed leads into orders.
"""

from decimal import Decimal
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func
import logging

from orderdesk.config import settings
from orderdesk.exceptions import NotFoundError, ValidationError
from orderdesk.models.database import AsyncSessionLocal
from orderdesk.models.entities import (
    CustomerFields,
    EntityKind,
    ItemPayload,
    Lead as LeadPydantic,
    LeadStatus,
    LineItem as LineItemPydantic,
    Order as OrderPydantic,
    OrderStatus,
)
from orderdesk.models.db_models import Order as OrderDB, Lead as LeadDB, StatusHistory as StatusHistoryDB
from orderdesk.models.line_item_db_models import LineItem as LineItemDB
from orderdesk.models.db_utils import db_to_pydantic_order, db_to_pydantic_lead, legacy_line_item
from orderdesk.models.money import clamp_price, clamp_quantity, line_total
from orderdesk.reconciliation.validation import collect_row_errors
from orderdesk.services.status_service import StatusTransitionValidator

logger = logging.getLogger(__name__)


def format_display_id(number: int) -> str:
    """ORD- followed by the zero-padded sequence number"""
    return f"ORD-{number:05d}"


def build_item_row(kind: EntityKind, entity_id: str, payload: ItemPayload, position: int) -> LineItemDB:
    quantity = clamp_quantity(payload.quantity)
    unit_price = clamp_price(payload.unit_price)
    return LineItemDB(
        entity_kind=kind.value,
        entity_id=entity_id,
        position=position,
        product_id=payload.product_id,
        product_name=(payload.product_name or "").strip(),
        quantity=quantity,
        unit_price=unit_price,
        line_total=line_total(quantity, unit_price),
    )


def check_payloads(payloads: Sequence[ItemPayload], allow_empty: bool = False) -> None:
    """Apply the staged-item rules to incoming payloads"""
    if allow_empty and not payloads:
        return
    rows = [(i, LineItemPydantic(**p.model_dump())) for i, p in enumerate(payloads)]
    errors = collect_row_errors(rows)
    if errors:
        raise ValidationError(errors)


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class IntakeService:
    """Creates orders and leads"""

    @staticmethod
    async def next_display_number(session: AsyncSession) -> int:
        result = await session.execute(select(func.max(OrderDB.display_number)))
        current = result.scalar()
        if current is None:
            return settings.ORDER_DISPLAY_ID_START
        return max(current + 1, settings.ORDER_DISPLAY_ID_START)

    @staticmethod
    async def _insert_order(
        session: AsyncSession,
        customer: CustomerFields,
        items: Sequence[ItemPayload],
        status: OrderStatus,
        notes: Optional[str] = None,
        amount_paid: Decimal = Decimal("0"),
        source_lead_id: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> OrderDB:
        number = await IntakeService.next_display_number(session)
        order = OrderDB(
            display_number=number,
            display_id=format_display_id(number),
            customer_name=_clean(customer.name),
            customer_phone=_clean(customer.phone),
            customer_city=_clean(customer.city),
            customer_address=_clean(customer.address),
            postal_code=_clean(customer.postal_code),
            status=status.value,
            notes=notes,
            amount_paid=clamp_price(amount_paid),
            source_lead_id=source_lead_id,
            total_amount=Decimal("0"),
        )
        session.add(order)
        await session.flush()

        rows = [build_item_row(EntityKind.ORDER, order.id, p, i) for i, p in enumerate(items)]
        session.add_all(rows)
        order.total_amount = sum((r.line_total for r in rows), Decimal("0"))

        session.add(
            StatusHistoryDB(
                entity_kind=EntityKind.ORDER.value,
                entity_id=order.id,
                from_status=None,
                to_status=status.value,
                actor=actor,
            )
        )
        await session.flush()
        return order

    @staticmethod
    async def create_order(
        customer: CustomerFields,
        items: List[ItemPayload],
        status: str = OrderStatus.PENDING.value,
        notes: Optional[str] = None,
        amount_paid: Decimal = Decimal("0"),
        actor: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> OrderPydantic:
        """
        Create an order with at least one line item

        Args:
            customer: Customer fields (name, phone, address, city, postal_code)
            items: Initial line items
            status: Initial status; gated like any transition
            db: Async database session (optional, creates new if not provided)

        Returns:
            Pydantic Order with its display id assigned
        """
        check_payloads(items)
        validator = StatusTransitionValidator(EntityKind.ORDER)
        initial = validator.parse(status)
        validator.check_complete_info(initial, customer)

        if db:
            session = db
            should_close = False
        else:
            session = AsyncSessionLocal()
            should_close = True

        try:
            order = await IntakeService._insert_order(
                session, customer, items, initial, notes, amount_paid, actor=actor
            )
            await session.commit()

            result = await session.execute(
                select(LineItemDB)
                .where(LineItemDB.entity_kind == EntityKind.ORDER.value, LineItemDB.entity_id == order.id)
                .order_by(LineItemDB.position)
            )
            logger.info(f"Created order {order.display_id} with {len(items)} item(s)")
            return db_to_pydantic_order(order, list(result.scalars().all()))

        except Exception as e:
            await session.rollback()
            logger.error(f"Error creating order: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    @staticmethod
    async def create_lead(
        customer: CustomerFields,
        items: Optional[List[ItemPayload]] = None,
        list_name: Optional[str] = None,
        notes: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> LeadPydantic:
        """Create a lead; items are optional until the lead is worked"""
        items = items or []
        check_payloads(items, allow_empty=True)

        if db:
            session = db
            should_close = False
        else:
            session = AsyncSessionLocal()
            should_close = True

        try:
            lead = LeadDB(
                list_name=list_name,
                name=_clean(customer.name),
                telephone=_clean(customer.phone),
                address=_clean(customer.address),
                city=_clean(customer.city),
                status=LeadStatus.NOT_CONTACTED.value,
                notes=notes,
                total_amount=Decimal("0"),
            )
            session.add(lead)
            await session.flush()

            rows = [build_item_row(EntityKind.LEAD, lead.id, p, i) for i, p in enumerate(items)]
            session.add_all(rows)
            lead.total_amount = sum((r.line_total for r in rows), Decimal("0"))
            session.add(
                StatusHistoryDB(
                    entity_kind=EntityKind.LEAD.value,
                    entity_id=lead.id,
                    from_status=None,
                    to_status=lead.status,
                )
            )
            await session.commit()

            logger.info(f"Created lead {lead.id} with {len(rows)} item(s)")
            return db_to_pydantic_lead(lead, rows)

        except Exception as e:
            await session.rollback()
            logger.error(f"Error creating lead: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()

    @staticmethod
    async def convert_lead(
        session: AsyncSession,
        lead: LeadDB,
        actor: Optional[str] = None,
    ) -> Optional[OrderDB]:
        """
        Create the order for a confirmed lead inside the caller's transaction.

        Idempotent: an existing order with this source_lead_id is returned as is.
        Leads with neither a name nor a phone produce no order.
        """
        result = await session.execute(select(OrderDB).where(OrderDB.source_lead_id == lead.id))
        existing = result.scalar_one_or_none()
        if existing is not None:
            return existing

        if not _clean(lead.name) and not _clean(lead.telephone):
            logger.info(f"Lead {lead.id} confirmed without name or phone; no order created")
            return None

        result = await session.execute(
            select(LineItemDB)
            .where(LineItemDB.entity_kind == EntityKind.LEAD.value, LineItemDB.entity_id == lead.id)
            .order_by(LineItemDB.position)
        )
        lead_items = list(result.scalars().all())
        if lead_items:
            payloads = [
                ItemPayload(
                    product_id=i.product_id,
                    product_name=i.product_name,
                    quantity=i.quantity,
                    unit_price=Decimal(i.unit_price),
                )
                for i in lead_items
            ]
        else:
            payloads = [i.to_payload() for i in legacy_line_item(lead.product, lead.quantity, lead.price)]

        order = await IntakeService._insert_order(
            session,
            CustomerFields(
                name=lead.name,
                phone=lead.telephone,
                city=lead.city,
                address=lead.address,
            ),
            payloads,
            OrderStatus.CONFIRMED,
            notes=lead.notes,
            source_lead_id=lead.id,
            actor=actor,
        )
        logger.info(f"Converted lead {lead.id} into order {order.display_id}")
        return order

    @staticmethod
    async def convert_lead_to_order(
        lead_id: str,
        actor: Optional[str] = None,
        db: Optional[AsyncSession] = None
    ) -> Optional[OrderPydantic]:
        """Standalone conversion; returns None when the lead has no contact data"""
        if db:
            session = db
            should_close = False
        else:
            session = AsyncSessionLocal()
            should_close = True

        try:
            result = await session.execute(select(LeadDB).where(LeadDB.id == lead_id))
            lead = result.scalar_one_or_none()
            if lead is None:
                raise NotFoundError("Lead", lead_id)

            order = await IntakeService.convert_lead(session, lead, actor)
            await session.commit()
            if order is None:
                return None

            result = await session.execute(
                select(LineItemDB)
                .where(LineItemDB.entity_kind == EntityKind.ORDER.value, LineItemDB.entity_id == order.id)
                .order_by(LineItemDB.position)
            )
            return db_to_pydantic_order(order, list(result.scalars().all()))

        except Exception as e:
            await session.rollback()
            logger.error(f"Error converting lead {lead_id}: {e}", exc_info=True)
            raise
        finally:
            if should_close:
                await session.close()
