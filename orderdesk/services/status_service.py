"""Status transition gate

Orders and leads have distinct status sets. For orders, some statuses freeze
all customer and item edits, and some can only be entered once the customer
record is complete.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import FrozenSet, List, Optional, Type, Union
import logging

from orderdesk.exceptions import EntityLockedError, TransitionRejected
from orderdesk.models.entities import (
    CustomerFields,
    EntityKind,
    LeadStatus,
    OrderStatus,
    StatusHistoryEntry,
)

logger = logging.getLogger(__name__)

REQUIRED_CUSTOMER_FIELDS = ("name", "phone", "city", "address")

ORDER_LOCKED_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.PAID,
})

ORDER_REQUIRES_COMPLETE_INFO: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.CONFIRMED,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.RETURNED,
    OrderStatus.PAID,
    OrderStatus.CANCELLED,
})


@dataclass(frozen=True)
class StatusRules:
    """Status vocabulary and gates for one entity kind"""
    statuses: Type[Enum]
    locked: FrozenSet[Enum]
    requires_complete_info: FrozenSet[Enum]


STATUS_RULES = {
    EntityKind.ORDER: StatusRules(
        statuses=OrderStatus,
        locked=ORDER_LOCKED_STATUSES,
        requires_complete_info=ORDER_REQUIRES_COMPLETE_INFO,
    ),
    EntityKind.LEAD: StatusRules(
        statuses=LeadStatus,
        locked=frozenset(),
        requires_complete_info=frozenset(),
    ),
}


class StatusTransitionValidator:
    """Decides whether an entity may move to a target status"""
    
    def __init__(self, kind: EntityKind):
        self.kind = EntityKind(kind)
        self.rules = STATUS_RULES[self.kind]
    
    def parse(self, status: Union[str, Enum]) -> Enum:
        """Coerce to this kind's status enum; unknown values are rejected"""
        value = getattr(status, "value", status)
        try:
            return self.rules.statuses(value)
        except ValueError:
            raise TransitionRejected(str(value), f"'{value}' is not a valid {self.kind.value} status") from None
    
    def is_locked(self, status: Union[str, Enum]) -> bool:
        return self.parse(status) in self.rules.locked
    
    def check_editable(self, current_status: Union[str, Enum]) -> None:
        """
        Pre-check run before any field or item edit, whatever the target status.
        
        Raises:
            EntityLockedError: if the current status freezes editing
        """
        current = self.parse(current_status)
        if current in self.rules.locked:
            raise EntityLockedError(current.value)
    
    @staticmethod
    def missing_fields(fields: CustomerFields) -> List[str]:
        return [
            name for name in REQUIRED_CUSTOMER_FIELDS
            if not (getattr(fields, name) or "").strip()
        ]
    
    def validate(
        self,
        current_status: Union[str, Enum],
        target_status: Union[str, Enum],
        fields: CustomerFields,
    ) -> bool:
        """
        Gate a transition.
        
        Returns:
            True when the status must be written, False for a same-status no-op
            
        Raises:
            TransitionRejected: when the target needs complete customer info that is missing
        """
        current = self.parse(current_status)
        target = self.parse(target_status)
        
        if target == current:
            return False
        
        self.check_complete_info(target, fields)
        return True
    
    def check_complete_info(self, target_status: Union[str, Enum], fields: CustomerFields) -> None:
        """Raise TransitionRejected when the target needs fields that are blank"""
        target = self.parse(target_status)
        if target not in self.rules.requires_complete_info:
            return
        missing = self.missing_fields(fields)
        if missing:
            logger.info(f"Rejected {self.kind.value} status '{target.value}': missing {', '.join(missing)}")
            raise TransitionRejected(
                target.value,
                f"Name, phone, city and address must be filled before changing status to "
                f"'{target.value}'",
            )
    
    def history_entry(
        self,
        entity_id: str,
        from_status: Optional[Union[str, Enum]],
        to_status: Union[str, Enum],
        actor: Optional[str] = None,
    ) -> StatusHistoryEntry:
        return StatusHistoryEntry(
            entity_kind=self.kind,
            entity_id=entity_id,
            from_status=self.parse(from_status).value if from_status is not None else None,
            to_status=self.parse(to_status).value,
            actor=actor,
            timestamp=datetime.utcnow(),
        )
