"""Order desk services"""

from .call_log_service import CallOutcomeRecorder
from .db_service import DatabaseService
from .duplicate_service import DuplicateContactDetector, normalize_phone
from .editor import EntityEditor, SaveResult, SubmitResult
from .intake_service import IntakeService
from .status_service import StatusTransitionValidator

__all__ = [
    "CallOutcomeRecorder",
    "DatabaseService",
    "DuplicateContactDetector",
    "normalize_phone",
    "EntityEditor",
    "SaveResult",
    "SubmitResult",
    "IntakeService",
    "StatusTransitionValidator",
]
