"""Unit tests for database persistence of orders, leads and logs"""

import pytest
from decimal import Decimal
from sqlalchemy import select

from orderdesk.exceptions import EntityLockedError, NotFoundError, TransitionRejected, ValidationError
from orderdesk.models.db_models import Order as OrderDB, Lead as LeadDB
from orderdesk.models.entities import (
    CallOutcome,
    CustomerFields,
    EntityKind,
    ItemPayload,
    LeadStatus,
    OrderStatus,
    ReconciliationState,
)
from orderdesk.services.intake_service import IntakeService, format_display_id


@pytest.mark.unit
@pytest.mark.asyncio
class TestIntake:

    async def test_order_gets_sequential_display_ids(self, db_session, stored_order, complete_customer, seeded_products):
        serum = seeded_products[0]
        second = await IntakeService.create_order(
            customer=complete_customer,
            items=[ItemPayload(product_id=serum.id, product_name=serum.name, quantity=1, unit_price=serum.price)],
            db=db_session,
        )

        assert stored_order.display_id == "ORD-01001"
        assert second.display_id == "ORD-01002"
        assert format_display_id(42) == "ORD-00042"

    async def test_created_order_totals_and_history(self, db_service, stored_order):
        assert stored_order.total_amount == Decimal("334.00")
        assert all(i.reconciliation_state == ReconciliationState.UNCHANGED for i in stored_order.items)

        history = await db_service.get_status_history(EntityKind.ORDER, stored_order.id)
        assert [(h.from_status, h.to_status) for h in history] == [(None, "pending")]

    async def test_order_without_items_rejected(self, db_session, complete_customer):
        with pytest.raises(ValidationError):
            await IntakeService.create_order(customer=complete_customer, items=[], db=db_session)

    async def test_initial_status_is_gated(self, db_session, seeded_products):
        soap = seeded_products[1]
        with pytest.raises(TransitionRejected):
            await IntakeService.create_order(
                customer=CustomerFields(name="No Address", phone="0600000009"),
                items=[ItemPayload(product_name=soap.name, quantity=1, unit_price=soap.price)],
                status="confirmed",
                db=db_session,
            )

    async def test_lead_display_id_is_short_id(self, stored_lead):
        assert stored_lead.display_id == stored_lead.id[:8]
        assert stored_lead.status == LeadStatus.NOT_CONTACTED
        assert stored_lead.total_amount == Decimal("105.00")


@pytest.mark.unit
@pytest.mark.asyncio
class TestItemPersistence:

    async def test_granular_operations_keep_total_in_sync(self, db_service, db_session, stored_order):
        first, second = stored_order.items

        created = await db_service.create_item(
            EntityKind.ORDER, stored_order.id,
            ItemPayload(product_name="Henna", quantity=3, unit_price=Decimal("12.335")),
        )
        await db_service.update_item(
            EntityKind.ORDER, first.id,
            ItemPayload(product_id=first.product_id, product_name=first.product_name,
                        quantity=1, unit_price=first.unit_price),
        )
        await db_service.delete_item(EntityKind.ORDER, second.id)

        order = await db_service.get_entity(EntityKind.ORDER, stored_order.id)
        assert [i.id for i in order.items] == [first.id, created.id]
        assert created.line_total == Decimal("37.01")

        row = (await db_session.execute(select(OrderDB).where(OrderDB.id == stored_order.id))).scalar_one()
        assert row.total_amount == Decimal("186.51")

    async def test_replace_all_items(self, db_service, stored_order):
        order = await db_service.replace_all_items(
            EntityKind.ORDER, stored_order.id,
            [ItemPayload(product_name="Rose Water", quantity=2, unit_price=Decimal("19.99"))],
        )

        assert len(order.items) == 1
        assert order.items[0].id not in {i.id for i in stored_order.items}
        assert order.total_amount == Decimal("39.98")

    async def test_replace_all_rejects_invalid_rows(self, db_service, stored_order):
        with pytest.raises(ValidationError):
            await db_service.replace_all_items(EntityKind.ORDER, stored_order.id, [])

        order = await db_service.get_entity(EntityKind.ORDER, stored_order.id)
        assert len(order.items) == 2

    async def test_locked_order_refuses_item_writes(self, db_service, stored_order):
        await db_service.update_status(EntityKind.ORDER, stored_order.id, "paid")

        with pytest.raises(EntityLockedError):
            await db_service.create_item(
                EntityKind.ORDER, stored_order.id,
                ItemPayload(product_name="Henna", quantity=1, unit_price=Decimal("5")),
            )
        with pytest.raises(EntityLockedError):
            await db_service.delete_item(EntityKind.ORDER, stored_order.items[0].id)
        with pytest.raises(EntityLockedError):
            await db_service.update_customer_fields(
                EntityKind.ORDER, stored_order.id, CustomerFields(city="Tangier")
            )

    async def test_item_of_other_kind_not_found(self, db_service, stored_lead):
        with pytest.raises(NotFoundError):
            await db_service.delete_item(EntityKind.ORDER, stored_lead.items[0].id)

    async def test_legacy_single_product_loads_as_new_item(self, db_service, db_session, stored_lead):
        legacy = LeadDB(name="Old Lead", telephone="0677000000", product="Henna", quantity=2, price=Decimal("15.00"))
        db_session.add(legacy)
        await db_session.commit()

        lead = await db_service.get_entity(EntityKind.LEAD, legacy.id)

        assert len(lead.items) == 1
        item = lead.items[0]
        assert item.id is None
        assert item.reconciliation_state == ReconciliationState.NEW
        assert item.line_total == Decimal("30.00")

        await db_service.create_item(EntityKind.LEAD, legacy.id, item.to_payload())
        migrated = await db_service.get_entity(EntityKind.LEAD, legacy.id)
        assert [i.reconciliation_state for i in migrated.items] == [ReconciliationState.UNCHANGED]
        assert legacy.product is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestStatusPersistence:

    async def test_transition_writes_history(self, db_service, stored_order):
        order = await db_service.update_status(EntityKind.ORDER, stored_order.id, "confirmed", actor="agent-7")

        assert order.status == OrderStatus.CONFIRMED
        history = await db_service.get_status_history(EntityKind.ORDER, stored_order.id)
        assert [(h.from_status, h.to_status, h.actor) for h in history][-1] == ("pending", "confirmed", "agent-7")

    async def test_same_status_writes_nothing(self, db_service, stored_order):
        await db_service.update_status(EntityKind.ORDER, stored_order.id, "pending")

        history = await db_service.get_status_history(EntityKind.ORDER, stored_order.id)
        assert len(history) == 1

    async def test_gate_checked_against_stored_fields(self, db_service, stored_order):
        await db_service.update_customer_fields(EntityKind.ORDER, stored_order.id, CustomerFields(address=" "))

        with pytest.raises(TransitionRejected):
            await db_service.update_status(EntityKind.ORDER, stored_order.id, "shipped")

    async def test_confirmed_lead_becomes_order_once(self, db_service, db_session, stored_lead, stored_order):
        await db_service.update_status(EntityKind.LEAD, stored_lead.id, "confirmed")
        await db_service.update_status(EntityKind.LEAD, stored_lead.id, "interested")
        await db_service.update_status(EntityKind.LEAD, stored_lead.id, "confirmed")

        result = await db_session.execute(select(OrderDB).where(OrderDB.source_lead_id == stored_lead.id))
        orders = result.scalars().all()
        assert len(orders) == 1

        order = await db_service.get_entity(EntityKind.ORDER, orders[0].id)
        assert order.display_id == "ORD-01002"
        assert order.status == OrderStatus.CONFIRMED
        assert order.phone == "0611223344"
        assert [(i.product_name, i.quantity) for i in order.items] == [("Black Soap", 3)]
        assert order.total_amount == Decimal("105.00")

    async def test_convert_lead_without_contact_creates_nothing(self, db_session):
        lead = await IntakeService.create_lead(customer=CustomerFields(), db=db_session)
        assert await IntakeService.convert_lead_to_order(lead.id, db=db_session) is None

    async def test_lead_customer_fields_map_to_lead_columns(self, db_service, stored_lead):
        lead = await db_service.update_customer_fields(
            EntityKind.LEAD, stored_lead.id, CustomerFields(phone="0699999999", postal_code="ignored")
        )
        assert lead.phone == "0699999999"
        assert lead.name == "Youssef"


@pytest.mark.unit
@pytest.mark.asyncio
class TestCallLogsAndContacts:

    async def test_call_logs_most_recent_first_and_limited(self, db_service, stored_order):
        for outcome in ["no_answer", "call_again", "interested"]:
            await db_service.log_call(EntityKind.ORDER, stored_order.id, outcome, notes=outcome)

        logs = await db_service.get_call_logs(EntityKind.ORDER, stored_order.id)
        assert [l.outcome for l in logs] == [
            CallOutcome.INTERESTED, CallOutcome.CALL_AGAIN, CallOutcome.NO_ANSWER
        ]
        assert len(await db_service.get_call_logs(EntityKind.ORDER, stored_order.id, limit=2)) == 2

    async def test_call_logs_for_unknown_entity_are_empty(self, db_service):
        assert await db_service.get_call_logs(EntityKind.LEAD, "missing") == []

    async def test_logging_call_leaves_status_alone(self, db_service, stored_order):
        await db_service.log_call(EntityKind.ORDER, stored_order.id, "not_interested")
        order = await db_service.get_entity(EntityKind.ORDER, stored_order.id)
        assert order.status == OrderStatus.PENDING

    async def test_contacts_cover_orders_and_leads(self, db_service, stored_order, stored_lead):
        await db_service.update_status(EntityKind.ORDER, stored_order.id, "trashed")

        everything = await db_service.list_contacts(include_trashed=True)
        live = await db_service.list_contacts(include_trashed=False)

        assert {(c.kind, c.id) for c in everything} == {
            (EntityKind.ORDER, stored_order.id),
            (EntityKind.LEAD, stored_lead.id),
        }
        assert [c.kind for c in live] == [EntityKind.LEAD]
