"""Error taxonomy for save attempts

Every error here is scoped to a single save attempt; none is fatal to the process.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class OrderDeskError(Exception):
    """Base class for order desk errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


@dataclass(frozen=True)
class RowError:
    """A single validation problem. index is None for entity-level problems."""
    index: Optional[int]
    field: str
    message: str

    def __str__(self) -> str:
        if self.index is None:
            return self.message
        return f"Row {self.index + 1}: {self.message}"


class ValidationError(OrderDeskError):
    """Raised before any network call when staged input is invalid"""

    def __init__(self, errors: List[RowError]):
        self.errors = list(errors)
        super().__init__(
            "; ".join(str(e) for e in self.errors) or "Validation failed",
            details={"errors": [e.__dict__ for e in self.errors]},
        )

    @property
    def row_indices(self) -> List[int]:
        return sorted({e.index for e in self.errors if e.index is not None})


class TransitionRejected(OrderDeskError):
    """Raised when the status gate refuses a transition"""

    def __init__(self, target_status: str, reason: str):
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Cannot change status to '{target_status}': {reason}",
            details={"target_status": target_status, "reason": reason},
        )


class EntityLockedError(OrderDeskError):
    """Raised when an item or customer edit hits an entity in a locked status"""

    def __init__(self, status: str):
        self.status = status
        super().__init__(
            f"Products, prices and customer details are locked because the order is '{status}'",
            details={"status": status},
        )


class PersistenceError(OrderDeskError):
    """A collaborator call failed. completed lists operations that succeeded first."""

    def __init__(
        self,
        message: str,
        completed: Optional[List[Any]] = None,
        failed: Optional[Any] = None,
    ):
        self.completed = list(completed or [])
        self.failed = failed
        super().__init__(
            message,
            details={"completed": len(self.completed), "failed": repr(failed) if failed else None},
        )


class NotFoundError(OrderDeskError):
    """Entity, item or product no longer exists"""

    def __init__(self, kind: str, identifier: Any):
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found", details={"kind": kind, "id": identifier})
