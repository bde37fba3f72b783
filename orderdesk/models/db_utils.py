"""Utilities for converting between Pydantic and SQLAlchemy models

Entities are normalised into the line-item collection form on load: when no
line-item rows exist but the legacy single-product columns are filled, a
one-item collection is produced with the item marked as new so the next save
persists it as a real row.
"""

from decimal import Decimal
from typing import List, Optional

from .entities import (
    Order as OrderPydantic,
    Lead as LeadPydantic,
    LineItem as LineItemPydantic,
    Product as ProductPydantic,
    CallLogEntry,
    StatusHistoryEntry,
    EntityKind,
    ReconciliationState,
)
from .db_models import Order as OrderDB, Lead as LeadDB, Product as ProductDB, CallLog as CallLogDB, StatusHistory as StatusHistoryDB
from .line_item_db_models import LineItem as LineItemDB
from .money import clamp_quantity, clamp_price


def db_to_pydantic_line_item(item: LineItemDB) -> LineItemPydantic:
    """Persisted rows always load as unchanged"""
    return LineItemPydantic(
        id=item.id,
        product_id=item.product_id,
        product_name=item.product_name or "",
        quantity=item.quantity,
        unit_price=Decimal(item.unit_price if item.unit_price is not None else 0),
        reconciliation_state=ReconciliationState.UNCHANGED,
    )


def legacy_line_item(
    product_name: Optional[str],
    quantity: Optional[int],
    price: Optional[Decimal],
    product_id: Optional[str] = None,
) -> List[LineItemPydantic]:
    """Build the single-item collection for entities that predate line-item rows"""
    if not product_name:
        return []
    return [
        LineItemPydantic(
            id=None,
            product_id=product_id,
            product_name=product_name,
            quantity=clamp_quantity(quantity or 1),
            unit_price=clamp_price(price or 0),
            reconciliation_state=ReconciliationState.NEW,
        )
    ]


def db_to_pydantic_order(order: OrderDB, items: List[LineItemDB]) -> OrderPydantic:
    """Convert SQLAlchemy Order plus its item rows to the Pydantic Order"""
    if items:
        line_items = [db_to_pydantic_line_item(i) for i in items]
    else:
        line_items = legacy_line_item(order.product_name, order.quantity, order.price, order.product_id)
    
    return OrderPydantic(
        id=order.id,
        display_id=order.display_id,
        name=order.customer_name or "",
        phone=order.customer_phone or "",
        address=order.customer_address or "",
        city=order.customer_city or "",
        postal_code=order.postal_code or "",
        status=order.status,
        notes=order.notes,
        amount_paid=Decimal(order.amount_paid or 0),
        source_lead_id=order.source_lead_id,
        items=line_items,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def db_to_pydantic_lead(lead: LeadDB, items: List[LineItemDB]) -> LeadPydantic:
    """Convert SQLAlchemy Lead plus its item rows to the Pydantic Lead"""
    if items:
        line_items = [db_to_pydantic_line_item(i) for i in items]
    else:
        line_items = legacy_line_item(lead.product, lead.quantity, lead.price)
    
    return LeadPydantic(
        id=lead.id,
        display_id=lead_display_id(lead.id),
        name=lead.name or "",
        phone=lead.telephone or "",
        address=lead.address or "",
        city=lead.city or "",
        status=lead.status,
        notes=lead.notes,
        list_name=lead.list_name,
        items=line_items,
        created_at=lead.created_at,
        updated_at=lead.updated_at,
    )


def lead_display_id(lead_id: str) -> str:
    """Leads have no sequence; the short id prefix is their human-facing id"""
    return lead_id[:8]


def db_to_pydantic_product(product: ProductDB) -> ProductPydantic:
    return ProductPydantic(
        id=product.id,
        name=product.name,
        price=Decimal(product.price or 0),
        is_active=bool(product.is_active),
    )


def db_to_call_log_entry(log: CallLogDB) -> CallLogEntry:
    return CallLogEntry(
        id=str(log.id),
        entity_kind=EntityKind(log.entity_kind),
        entity_id=log.entity_id,
        outcome=log.outcome,
        notes=log.notes or "",
        agent=log.agent,
        created_at=log.created_at,
    )


def db_to_status_history_entry(row: StatusHistoryDB) -> StatusHistoryEntry:
    return StatusHistoryEntry(
        entity_kind=EntityKind(row.entity_kind),
        entity_id=row.entity_id,
        from_status=row.from_status,
        to_status=row.to_status,
        actor=row.actor,
        timestamp=row.created_at,
    )
