"""API routes for orders and order items"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from decimal import Decimal
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orderdesk.models.database import get_db
from orderdesk.models.entities import CustomerFields, EntityKind, ItemPayload
from orderdesk.services.db_service import DatabaseService
from orderdesk.services.intake_service import IntakeService
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateOrderRequest(BaseModel):
    """Request model for creating an order"""
    customer: CustomerFields
    items: List[ItemPayload]
    status: str = "pending"
    notes: Optional[str] = Field(default=None, max_length=5000)
    amount_paid: Decimal = Decimal("0")


class StatusUpdateRequest(BaseModel):
    status: str
    actor: Optional[str] = None


class ItemsReplaceRequest(BaseModel):
    items: List[ItemPayload]


class AmountPaidRequest(BaseModel):
    amount_paid: Decimal


@router.get("/orders")
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    status: Optional[str] = None,
    db: AsyncSession = Depends(get_db)
):
    """List orders, newest first"""
    try:
        orders = await DatabaseService(db).list_orders(skip=skip, limit=limit, status=status)
        return {"orders": orders, "count": len(orders)}
    except Exception as e:
        raise to_http_exception(e)


@router.get("/orders/{order_id}")
async def get_order(order_id: str, db: AsyncSession = Depends(get_db)):
    try:
        return await DatabaseService(db).get_entity(EntityKind.ORDER, order_id)
    except Exception as e:
        raise to_http_exception(e)


@router.post("/orders", status_code=201)
async def create_order(request: CreateOrderRequest, db: AsyncSession = Depends(get_db)):
    """
    Create an order
    
    Returns:
        The new order with its ORD- display id
    """
    try:
        return await IntakeService.create_order(
            customer=request.customer,
            items=request.items,
            status=request.status,
            notes=request.notes,
            amount_paid=request.amount_paid,
            db=db,
        )
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/orders/{order_id}/customer")
async def update_order_customer(
    order_id: str,
    fields: CustomerFields,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).update_customer_fields(EntityKind.ORDER, order_id, fields)
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    request: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db)
):
    """Gated status change; same-status requests return the order unchanged"""
    try:
        return await DatabaseService(db).update_status(
            EntityKind.ORDER, order_id, request.status, actor=request.actor
        )
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/orders/{order_id}/amount-paid")
async def update_order_amount_paid(
    order_id: str,
    request: AmountPaidRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).update_amount_paid(order_id, request.amount_paid)
    except Exception as e:
        raise to_http_exception(e)


@router.get("/orders/{order_id}/history")
async def get_order_history(order_id: str, db: AsyncSession = Depends(get_db)):
    try:
        service = DatabaseService(db)
        await service.get_entity(EntityKind.ORDER, order_id)
        return {"history": await service.get_status_history(EntityKind.ORDER, order_id)}
    except Exception as e:
        raise to_http_exception(e)


@router.put("/orders/{order_id}/items")
async def replace_order_items(
    order_id: str,
    request: ItemsReplaceRequest,
    db: AsyncSession = Depends(get_db)
):
    """Replace every item on the order in one transaction"""
    try:
        return await DatabaseService(db).replace_all_items(EntityKind.ORDER, order_id, request.items)
    except Exception as e:
        raise to_http_exception(e)


@router.post("/orders/{order_id}/items", status_code=201)
async def add_order_item(
    order_id: str,
    payload: ItemPayload,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).create_item(EntityKind.ORDER, order_id, payload)
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/order-items/{item_id}")
async def update_order_item(
    item_id: str,
    payload: ItemPayload,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).update_item(EntityKind.ORDER, item_id, payload)
    except Exception as e:
        raise to_http_exception(e)


@router.delete("/order-items/{item_id}")
async def delete_order_item(item_id: str, db: AsyncSession = Depends(get_db)):
    try:
        await DatabaseService(db).delete_item(EntityKind.ORDER, item_id)
        return {"success": True, "item_id": item_id}
    except Exception as e:
        raise to_http_exception(e)
