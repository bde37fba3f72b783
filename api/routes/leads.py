"""API routes for prediction leads and lead items"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orderdesk.models.database import get_db
from orderdesk.models.entities import CustomerFields, EntityKind, ItemPayload
from orderdesk.services.db_service import DatabaseService
from orderdesk.services.intake_service import IntakeService
from .errors import to_http_exception
from .orders import ItemsReplaceRequest, StatusUpdateRequest

logger = logging.getLogger(__name__)

router = APIRouter()


class CreateLeadRequest(BaseModel):
    """Request model for creating a lead"""
    customer: CustomerFields
    items: List[ItemPayload] = Field(default_factory=list)
    list_name: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=5000)


@router.post("/leads", status_code=201)
async def create_lead(request: CreateLeadRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await IntakeService.create_lead(
            customer=request.customer,
            items=request.items,
            list_name=request.list_name,
            notes=request.notes,
            db=db,
        )
    except Exception as e:
        raise to_http_exception(e)


@router.get("/leads/{lead_id}")
async def get_lead(lead_id: str, db: AsyncSession = Depends(get_db)):
    try:
        return await DatabaseService(db).get_entity(EntityKind.LEAD, lead_id)
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/leads/{lead_id}/status")
async def update_lead_status(
    lead_id: str,
    request: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db)
):
    """Status change; confirming a lead also creates its order"""
    try:
        return await DatabaseService(db).update_status(
            EntityKind.LEAD, lead_id, request.status, actor=request.actor
        )
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/leads/{lead_id}/customer")
async def update_lead_customer(
    lead_id: str,
    fields: CustomerFields,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).update_customer_fields(EntityKind.LEAD, lead_id, fields)
    except Exception as e:
        raise to_http_exception(e)


@router.put("/leads/{lead_id}/items")
async def replace_lead_items(
    lead_id: str,
    request: ItemsReplaceRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).replace_all_items(EntityKind.LEAD, lead_id, request.items)
    except Exception as e:
        raise to_http_exception(e)


@router.post("/leads/{lead_id}/items", status_code=201)
async def add_lead_item(
    lead_id: str,
    payload: ItemPayload,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).create_item(EntityKind.LEAD, lead_id, payload)
    except Exception as e:
        raise to_http_exception(e)


@router.patch("/lead-items/{item_id}")
async def update_lead_item(
    item_id: str,
    payload: ItemPayload,
    db: AsyncSession = Depends(get_db)
):
    try:
        return await DatabaseService(db).update_item(EntityKind.LEAD, item_id, payload)
    except Exception as e:
        raise to_http_exception(e)


@router.delete("/lead-items/{item_id}")
async def delete_lead_item(item_id: str, db: AsyncSession = Depends(get_db)):
    try:
        await DatabaseService(db).delete_item(EntityKind.LEAD, item_id)
        return {"success": True, "item_id": item_id}
    except Exception as e:
        raise to_http_exception(e)
