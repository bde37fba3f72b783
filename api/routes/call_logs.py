"""API routes for call outcome logging"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from orderdesk.models.database import get_db
from orderdesk.models.entities import EntityKind
from orderdesk.services.call_log_service import CallOutcomeRecorder
from orderdesk.services.db_service import DatabaseService
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter()


class CallLogRequest(BaseModel):
    """Request model for one call outcome"""
    entity_kind: EntityKind
    entity_id: str
    outcome: str
    notes: str = ""
    agent: Optional[str] = None


@router.post("/call-logs", status_code=201)
async def create_call_log(request: CallLogRequest, db: AsyncSession = Depends(get_db)):
    try:
        recorder = CallOutcomeRecorder(DatabaseService(db))
        return await recorder.log_call(
            request.entity_kind,
            request.entity_id,
            request.outcome,
            request.notes,
            agent=request.agent,
        )
    except Exception as e:
        # persistence failures keep their original cause (e.g. unknown entity)
        raise to_http_exception(e.__cause__ if e.__cause__ is not None else e)


@router.get("/call-logs/{entity_kind}/{entity_id}")
async def list_call_logs(
    entity_kind: EntityKind,
    entity_id: str,
    db: AsyncSession = Depends(get_db)
):
    """Most recent first"""
    try:
        recorder = CallOutcomeRecorder(DatabaseService(db))
        logs = await recorder.history(entity_kind, entity_id)
        return {"call_logs": logs, "count": len(logs)}
    except Exception as e:
        raise to_http_exception(e)
