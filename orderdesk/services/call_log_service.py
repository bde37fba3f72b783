"""Call-outcome recording

Each call produces one immutable log entry. Recording a call never touches
status or items, and a failed write here never rolls anything else back.
"""

from typing import List, Optional, Union
import logging

from orderdesk.exceptions import PersistenceError, RowError, ValidationError
from orderdesk.models.entities import CallLogEntry, CallOutcome, EntityKind

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 5000


class CallOutcomeRecorder:
    """Appends call log entries through the persistence collaborator"""
    
    def __init__(self, collaborator):
        self.collaborator = collaborator
    
    @staticmethod
    def parse_outcome(outcome: Union[str, CallOutcome, None]) -> CallOutcome:
        if outcome is None or outcome == "":
            raise ValidationError([RowError(None, "outcome", "Select a call outcome")])
        try:
            return CallOutcome(getattr(outcome, "value", outcome))
        except ValueError:
            allowed = ", ".join(o.value for o in CallOutcome)
            raise ValidationError(
                [RowError(None, "outcome", f"Unknown call outcome '{outcome}'; expected one of: {allowed}")]
            ) from None
    
    async def log_call(
        self,
        kind: EntityKind,
        entity_id: str,
        outcome: Union[str, CallOutcome, None],
        notes: str = "",
        agent: Optional[str] = None,
    ) -> CallLogEntry:
        """
        Validate and append one entry.
        
        Raises:
            ValidationError: unknown outcome or oversized notes (no call made)
            PersistenceError: the collaborator write failed
        """
        parsed = self.parse_outcome(outcome)
        notes = (notes or "").strip()
        if len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(
                [RowError(None, "notes", f"Notes cannot exceed {MAX_NOTES_LENGTH} characters")]
            )
        
        try:
            entry = await self.collaborator.log_call(
                EntityKind(kind), entity_id, parsed, notes, agent=agent
            )
        except Exception as e:
            logger.error(f"Failed to log call on {kind} {entity_id}: {e}", exc_info=True)
            raise PersistenceError(str(e) or type(e).__name__) from e
        
        logger.info(f"Logged call outcome '{parsed.value}' on {EntityKind(kind).value} {entity_id}")
        return entry
    
    async def history(self, kind: EntityKind, entity_id: str) -> List[CallLogEntry]:
        """Most recent first; unknown entities give an empty list"""
        return await self.collaborator.get_call_logs(EntityKind(kind), entity_id)
