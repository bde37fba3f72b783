"""API route for duplicate-phone warnings"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orderdesk.models.database import get_db
from orderdesk.models.entities import EntityKind
from orderdesk.services.db_service import DatabaseService
from orderdesk.services.duplicate_service import DuplicateContactDetector
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()


class DuplicateCheckRequest(BaseModel):
    phone: str
    exclude_kind: Optional[EntityKind] = None
    exclude_id: Optional[str] = None


@router.post("/check-phone-duplicates")
async def check_phone_duplicates(request: DuplicateCheckRequest, db: AsyncSession = Depends(get_db)):
    """Advisory only; an empty list means no other record shares the phone"""
    try:
        detector = DuplicateContactDetector()
        matches = await detector.check(
            request.phone, DatabaseService(db), request.exclude_kind, request.exclude_id
        )
        return {"duplicates": matches, "count": len(matches)}
    except Exception as e:
        raise to_http_exception(e)
