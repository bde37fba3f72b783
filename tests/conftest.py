"""Pytest configuration and shared fixtures"""

import pytest
import asyncio
import os
import sys
from typing import AsyncGenerator, Dict, List, Optional, Set
from datetime import datetime
from decimal import Decimal
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from orderdesk.models.database import Base, get_db
from orderdesk.models import db_models, line_item_db_models  # noqa: F401
from orderdesk.models.entities import (
    CallLogEntry,
    CallOutcome,
    ContactRef,
    CustomerFields,
    EntityKind,
    ItemPayload,
    Lead,
    LeadStatus,
    LineItem,
    Order,
    OrderStatus,
    Product,
)
from orderdesk.services.db_service import DatabaseService
from orderdesk.services.intake_service import IntakeService


# Test database setup (SQLite in-memory)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False
)

TestingSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False
)


@pytest.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test
    
    Yields:
        Async database session
    """
    # Create tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    
    # Create session
    async with TestingSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()
    
    # Drop tables after test
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
def db_service(db_session) -> DatabaseService:
    return DatabaseService(db_session)


@pytest.fixture
async def api_client(db_session):
    """Async HTTP client bound to the test session (same event loop as the test)"""
    import httpx
    from api.main import app
    
    async def override_get_db():
        yield db_session
    
    app.dependency_overrides[get_db] = override_get_db
    try:
        async with httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test"
        ) as client:
            yield client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def catalog() -> List[Product]:
    """Catalog snapshot with one inactive product first"""
    return [
        Product(id="p-retired", name="Retired Cream", price=Decimal("80.00"), is_active=False),
        Product(id="p-serum", name="Argan Serum", price=Decimal("149.50"), is_active=True),
        Product(id="p-soap", name="Black Soap", price=Decimal("35.00"), is_active=True),
    ]


@pytest.fixture
def complete_customer() -> CustomerFields:
    return CustomerFields(
        name="Amina Benali",
        phone="+212 600-000001",
        city="Rabat",
        address="12 Rue Patrice Lumumba",
        postal_code="10000",
    )


@pytest.fixture
def sample_order(catalog) -> Order:
    """Pending order with two persisted items (total 334.00)"""
    return Order(
        id="order-1",
        display_id="ORD-01001",
        name="Amina Benali",
        phone="0600000001",
        city="Rabat",
        address="12 Rue Patrice Lumumba",
        status=OrderStatus.PENDING,
        items=[
            LineItem(id="item-a", product_id="p-serum", product_name="Argan Serum",
                     quantity=2, unit_price=Decimal("149.50")),
            LineItem(id="item-b", product_id="p-soap", product_name="Black Soap",
                     quantity=1, unit_price=Decimal("35.00")),
        ],
    )


@pytest.fixture
def sample_lead() -> Lead:
    return Lead(
        id="lead-1234567890",
        display_id="lead-123",
        name="Youssef",
        phone="0611223344",
        items=[
            LineItem(id="lead-item-a", product_id="p-soap", product_name="Black Soap",
                     quantity=3, unit_price=Decimal("35.00")),
        ],
    )


@pytest.fixture
async def seeded_products(db_service) -> List[Product]:
    return [
        await db_service.create_product("Argan Serum", Decimal("149.50")),
        await db_service.create_product("Black Soap", Decimal("35.00")),
    ]


@pytest.fixture
async def stored_order(db_session, seeded_products, complete_customer) -> Order:
    serum, soap = seeded_products
    return await IntakeService.create_order(
        customer=complete_customer,
        items=[
            ItemPayload(product_id=serum.id, product_name=serum.name, quantity=2, unit_price=serum.price),
            ItemPayload(product_id=soap.id, product_name=soap.name, quantity=1, unit_price=soap.price),
        ],
        db=db_session,
    )


@pytest.fixture
async def stored_lead(db_session, seeded_products) -> Lead:
    soap = seeded_products[1]
    return await IntakeService.create_lead(
        customer=CustomerFields(name="Youssef", phone="0611223344", city="Fes", address="3 Derb Lamtiyine"),
        items=[ItemPayload(product_id=soap.id, product_name=soap.name, quantity=3, unit_price=soap.price)],
        list_name="February prospects",
        db=db_session,
    )


class InMemoryCollaborator:
    """
    Granular persistence collaborator backed by dicts
    
    fail_calls maps an operation name to the 1-based call numbers that raise.
    """
    
    def __init__(
        self,
        entities=(),
        products=(),
        contacts=(),
        fail_calls: Optional[Dict[str, Set[int]]] = None,
        delay: float = 0,
    ):
        self.entities = {(e.kind, e.id): e.model_copy(deep=True) for e in entities}
        self.products = list(products)
        self.contacts = list(contacts)
        self.fail_calls = fail_calls or {}
        self.delay = delay
        self.calls: List[tuple] = []
        self.call_logs: List[CallLogEntry] = []
        self._counts: Dict[str, int] = {}
        self._next_id = 0
    
    async def _record(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        count = self._counts[name] = self._counts.get(name, 0) + 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if count in self.fail_calls.get(name, set()):
            raise ConnectionError(f"{name} call {count} failed")
    
    def calls_named(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]
    
    def _owner(self, kind, item_id):
        for (entity_kind, _), entity in self.entities.items():
            if entity_kind == kind and any(i.id == item_id for i in entity.items):
                return entity
        return None
    
    async def create_item(self, kind, entity_id, payload: ItemPayload) -> LineItem:
        await self._record("create_item", kind, entity_id, payload)
        self._next_id += 1
        item = LineItem(id=f"new-{self._next_id}", **payload.model_dump())
        entity = self.entities.get((kind, entity_id))
        if entity is not None:
            entity.items = [i for i in entity.items if i.id is not None] + [item]
        return item
    
    async def update_item(self, kind, item_id, payload: ItemPayload) -> LineItem:
        await self._record("update_item", kind, item_id, payload)
        item = LineItem(id=item_id, **payload.model_dump())
        entity = self._owner(kind, item_id)
        if entity is not None:
            entity.items = [item if i.id == item_id else i for i in entity.items]
        return item
    
    async def delete_item(self, kind, item_id) -> None:
        await self._record("delete_item", kind, item_id)
        entity = self._owner(kind, item_id)
        if entity is not None:
            entity.items = [i for i in entity.items if i.id != item_id]
    
    async def get_entity(self, kind, entity_id):
        return self.entities[(kind, entity_id)].model_copy(deep=True)
    
    async def list_products(self, active_only: bool = False):
        return list(self.products)
    
    async def list_contacts(self, include_trashed: bool = True):
        return list(self.contacts)
    
    async def update_status(self, kind, entity_id, status, actor=None):
        await self._record("update_status", kind, entity_id, status)
        entity = self.entities[(kind, entity_id)]
        statuses = OrderStatus if kind == EntityKind.ORDER else LeadStatus
        entity.status = statuses(getattr(status, "value", status))
        return entity.model_copy(deep=True)
    
    async def update_customer_fields(self, kind, entity_id, fields: CustomerFields):
        await self._record("update_customer_fields", kind, entity_id, fields)
        entity = self.entities[(kind, entity_id)]
        for name, value in fields.provided().items():
            if hasattr(entity, name):
                setattr(entity, name, value)
        return entity.model_copy(deep=True)
    
    async def update_amount_paid(self, entity_id, amount_paid):
        await self._record("update_amount_paid", entity_id, amount_paid)
        entity = self.entities[(EntityKind.ORDER, entity_id)]
        entity.amount_paid = amount_paid
        return entity.model_copy(deep=True)
    
    async def log_call(self, kind, entity_id, outcome, notes="", agent=None) -> CallLogEntry:
        await self._record("log_call", kind, entity_id, outcome)
        entry = CallLogEntry(
            id=str(len(self.call_logs) + 1),
            entity_kind=kind,
            entity_id=entity_id,
            outcome=CallOutcome(outcome),
            notes=notes,
            agent=agent,
            created_at=datetime.utcnow(),
        )
        self.call_logs.append(entry)
        return entry
    
    async def get_call_logs(self, kind, entity_id):
        return [e for e in reversed(self.call_logs) if e.entity_kind == kind and e.entity_id == entity_id]


class AtomicInMemoryCollaborator(InMemoryCollaborator):
    """Adds the replace-all contract; totals are recomputed from the payloads"""
    
    async def replace_all_items(self, kind, entity_id, items: List[ItemPayload]):
        await self._record("replace_all_items", kind, entity_id, items)
        entity = self.entities[(kind, entity_id)]
        persisted = []
        for payload in items:
            self._next_id += 1
            persisted.append(LineItem(id=f"r-{self._next_id}", **payload.model_dump()))
        entity.items = persisted
        return entity.model_copy(deep=True)


@pytest.fixture
def make_collaborator():
    """Factory: make_collaborator(atomic=False, **kwargs)"""
    def _make(atomic: bool = False, **kwargs):
        cls = AtomicInMemoryCollaborator if atomic else InMemoryCollaborator
        return cls(**kwargs)
    return _make
