"""API routes for the product catalog"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from decimal import Decimal
from sqlalchemy.ext.asyncio import AsyncSession

from orderdesk.models.database import get_db
from orderdesk.services.db_service import DatabaseService
from .errors import to_http_exception

router = APIRouter()


class CreateProductRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(ge=0)
    is_active: bool = True


@router.get("/products")
async def list_products(active_only: bool = False, db: AsyncSession = Depends(get_db)):
    try:
        products = await DatabaseService(db).list_products(active_only=active_only)
        return {"products": products, "count": len(products)}
    except Exception as e:
        raise to_http_exception(e)


@router.post("/products", status_code=201)
async def create_product(request: CreateProductRequest, db: AsyncSession = Depends(get_db)):
    try:
        return await DatabaseService(db).create_product(request.name, request.price, request.is_active)
    except Exception as e:
        raise to_http_exception(e)
