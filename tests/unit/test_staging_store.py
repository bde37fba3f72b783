"""Unit tests for the line-item staging store"""

import pytest
from decimal import Decimal

from orderdesk.exceptions import EntityLockedError
from orderdesk.models.entities import LineItem, ReconciliationState
from orderdesk.staging import StagingStore


@pytest.fixture
def persisted_items():
    return [
        LineItem(id="item-a", product_id="p-serum", product_name="Argan Serum",
                 quantity=2, unit_price=Decimal("149.50")),
        LineItem(id="item-b", product_id="p-soap", product_name="Black Soap",
                 quantity=1, unit_price=Decimal("35.00")),
    ]


@pytest.mark.unit
class TestStagingStore:

    def test_add_item_defaults_to_first_active_product(self, catalog):
        store = StagingStore([], catalog)
        index = store.add_item()

        assert index == 0
        item = store.items[0]
        assert item.product_id == "p-serum"
        assert item.quantity == 1
        assert item.unit_price == Decimal("149.50")
        assert item.reconciliation_state == ReconciliationState.NEW
        assert item.id is None

    def test_add_item_without_catalog_is_noop(self):
        store = StagingStore([])
        assert store.add_item() is None
        assert len(store) == 0

    def test_update_marks_persisted_item_modified(self, persisted_items, catalog):
        store = StagingStore(persisted_items, catalog)
        store.update_item(1, "quantity", "3")

        assert store.items[1].quantity == 3
        assert store.items[1].reconciliation_state == ReconciliationState.MODIFIED
        assert store.items[0].reconciliation_state == ReconciliationState.UNCHANGED

    def test_update_new_item_stays_new(self, catalog):
        store = StagingStore([], catalog)
        store.add_item()
        store.update_item(0, "unit_price", "99")

        assert store.items[0].reconciliation_state == ReconciliationState.NEW
        assert store.items[0].unit_price == Decimal("99")

    def test_update_clamps_values(self, persisted_items):
        store = StagingStore(persisted_items)
        store.update_item(0, "quantity", 0)
        store.update_item(1, "unit_price", "-4")

        assert store.items[0].quantity == 1
        assert store.items[1].unit_price == Decimal("0")

    def test_same_value_does_not_mark_modified(self, persisted_items):
        store = StagingStore(persisted_items)
        store.update_item(0, "quantity", 2)
        assert not store.has_changes

    def test_update_rejects_other_fields(self, persisted_items):
        store = StagingStore(persisted_items)
        with pytest.raises(ValueError):
            store.update_item(0, "product_name", "Other")

    def test_change_product_reprices_row(self, persisted_items, catalog):
        store = StagingStore(persisted_items, catalog)
        store.change_product(0, "p-soap")

        item = store.items[0]
        assert item.product_name == "Black Soap"
        assert item.unit_price == Decimal("35.00")
        assert item.reconciliation_state == ReconciliationState.MODIFIED

    def test_change_to_unknown_product_ignored(self, persisted_items, catalog):
        store = StagingStore(persisted_items, catalog)
        store.change_product(0, "p-missing")
        assert store.items[0].product_id == "p-serum"
        assert not store.has_changes

    def test_remove_new_item_drops_row(self, persisted_items, catalog):
        store = StagingStore(persisted_items, catalog)
        index = store.add_item()
        store.remove_item(index)

        assert len(store) == 2
        assert not store.has_changes

    def test_remove_persisted_item_keeps_tombstone(self, persisted_items):
        store = StagingStore(persisted_items)
        store.remove_item(0)

        assert len(store) == 2
        assert store.items[0].reconciliation_state == ReconciliationState.REMOVED
        assert [i.id for i in store.active_items] == ["item-b"]
        assert store.total() == Decimal("35.00")

    def test_snapshot_hides_removed_rows(self, persisted_items):
        store = StagingStore(persisted_items)
        store.remove_item(1)
        snapshot = store.snapshot()

        assert len(snapshot.rows) == 2
        assert [row.index for row in snapshot.active_rows] == [0]
        assert snapshot.total == Decimal("299.00")
        assert snapshot.has_changes

    def test_snapshot_is_detached_from_store(self, persisted_items):
        store = StagingStore(persisted_items)
        snapshot = store.snapshot()
        store.update_item(0, "quantity", 5)

        assert snapshot.rows[0].item.quantity == 2

    def test_remaining_balance(self, persisted_items):
        store = StagingStore(persisted_items)
        assert store.remaining_balance(Decimal("300")) == Decimal("34.00")

    @pytest.mark.parametrize("mutation", [
        lambda s: s.add_item(),
        lambda s: s.update_item(0, "quantity", 4),
        lambda s: s.change_product(0, "p-soap"),
        lambda s: s.remove_item(0),
    ])
    def test_locked_store_rejects_every_mutation(self, persisted_items, catalog, mutation):
        store = StagingStore(persisted_items, catalog, locked_status="paid")

        with pytest.raises(EntityLockedError):
            mutation(store)
        assert not store.has_changes
        assert store.locked

    def test_replace_all_adopts_authoritative_items(self, persisted_items):
        store = StagingStore(persisted_items)
        store.remove_item(0)
        store.replace_all([LineItem(id="x", product_name="Soap", quantity=1, unit_price=Decimal("3"))])

        assert [i.id for i in store.items] == ["x"]
        assert not store.has_changes
