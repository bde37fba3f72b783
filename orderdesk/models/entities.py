"""Order desk data models"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Union
from pydantic import BaseModel, Field, computed_field, field_serializer

from . import money


class EntityKind(str, Enum):
    """Which collection an entity lives in"""
    ORDER = "order"
    LEAD = "prediction_lead"


class OrderStatus(str, Enum):
    """Order fulfilment lifecycle"""
    PENDING = "pending"
    TAKE = "take"
    CALL_AGAIN = "call_again"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    RETURNED = "returned"
    PAID = "paid"
    TRASHED = "trashed"
    CANCELLED = "cancelled"


class LeadStatus(str, Enum):
    """Lead funnel"""
    NOT_CONTACTED = "not_contacted"
    NO_ANSWER = "no_answer"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    CONFIRMED = "confirmed"


class CallOutcome(str, Enum):
    """Outcome taxonomy for call log entries"""
    NO_ANSWER = "no_answer"
    INTERESTED = "interested"
    NOT_INTERESTED = "not_interested"
    WRONG_NUMBER = "wrong_number"
    CALL_AGAIN = "call_again"


class ReconciliationState(str, Enum):
    """Staging tag set at the point of mutation"""
    UNCHANGED = "unchanged"
    NEW = "new"
    MODIFIED = "modified"
    REMOVED = "removed"


class Product(BaseModel):
    """Catalog product snapshot"""
    id: str
    name: str
    price: Decimal = Decimal("0")
    is_active: bool = True

    @field_serializer("price", when_used="json")
    def _price_wire(self, value: Decimal) -> str:
        return money.decimal_to_wire(value)


class ItemPayload(BaseModel):
    """Fields sent to the collaborator for create/update/replace"""
    product_id: Optional[str] = None
    product_name: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0")


class LineItem(BaseModel):
    """One product line on an order or lead"""
    id: Optional[str] = None
    product_id: Optional[str] = None
    product_name: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    reconciliation_state: ReconciliationState = ReconciliationState.UNCHANGED
    
    @computed_field
    @property
    def line_total(self) -> Decimal:
        return money.line_total(self.quantity, self.unit_price)
    
    @field_serializer("unit_price", when_used="json")
    def _money_wire(self, value: Decimal) -> str:
        return money.decimal_to_wire(value)
    
    @property
    def is_persisted(self) -> bool:
        return self.id is not None
    
    @property
    def is_active(self) -> bool:
        return self.reconciliation_state != ReconciliationState.REMOVED
    
    def to_payload(self) -> ItemPayload:
        return ItemPayload(
            product_id=self.product_id,
            product_name=self.product_name,
            quantity=self.quantity,
            unit_price=self.unit_price,
        )


class CustomerFields(BaseModel):
    """Partial customer field set; None means "not provided" """
    name: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    
    def provided(self) -> dict:
        return self.model_dump(exclude_none=True)


class Entity(BaseModel):
    """Fields shared by orders and leads"""
    id: str
    display_id: str = ""
    name: str = ""
    phone: str = ""
    address: str = ""
    city: str = ""
    notes: Optional[str] = None
    items: List[LineItem] = Field(default_factory=list)
    amount_paid: Decimal = Decimal("0")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    @field_serializer("amount_paid", when_used="json")
    def _amount_wire(self, value: Decimal) -> str:
        return money.decimal_to_wire(value)
    
    @property
    def active_items(self) -> List[LineItem]:
        return [item for item in self.items if item.is_active]
    
    @property
    def total_amount(self) -> Decimal:
        return money.order_total(self.items)
    
    @property
    def remaining_balance(self) -> Decimal:
        return money.remaining_balance(self.total_amount, self.amount_paid)
    
    def customer_fields(self) -> CustomerFields:
        return CustomerFields(
            name=self.name,
            phone=self.phone,
            address=self.address,
            city=self.city,
        )


class Order(Entity):
    """Order with the full fulfilment lifecycle"""
    kind: EntityKind = EntityKind.ORDER
    status: OrderStatus = OrderStatus.PENDING
    postal_code: str = ""
    source_lead_id: Optional[str] = None
    
    def customer_fields(self) -> CustomerFields:
        fields = super().customer_fields()
        fields.postal_code = self.postal_code
        return fields


class Lead(Entity):
    """Prediction lead with the short contact funnel"""
    kind: EntityKind = EntityKind.LEAD
    status: LeadStatus = LeadStatus.NOT_CONTACTED
    list_name: Optional[str] = None


AnyEntity = Union[Order, Lead]


class StatusHistoryEntry(BaseModel):
    """Append-only record of an accepted transition (from_status None on creation)"""
    entity_kind: EntityKind
    entity_id: str
    from_status: Optional[str] = None
    to_status: str
    actor: Optional[str] = None
    timestamp: datetime
    
    model_config = {"frozen": True}


class CallLogEntry(BaseModel):
    """Append-only call outcome record"""
    id: str
    entity_kind: EntityKind
    entity_id: str
    outcome: CallOutcome
    notes: str = ""
    agent: Optional[str] = None
    created_at: datetime
    
    model_config = {"frozen": True}


class ContactRef(BaseModel):
    """Lightweight row used for duplicate-phone lookups"""
    kind: EntityKind
    id: str
    display_id: str = ""
    name: str = ""
    phone: str = ""
    status: str = ""


class DuplicateMatch(BaseModel):
    """Advisory warning: another entity shares the normalised phone"""
    kind: EntityKind
    entity_id: str
    display_id: str
    name: str = ""
