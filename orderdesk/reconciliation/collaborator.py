"""Persistence collaborator contracts consumed by the reconciliation engine"""

from typing import List, Protocol, runtime_checkable

from orderdesk.models.entities import AnyEntity, EntityKind, ItemPayload, LineItem


@runtime_checkable
class GranularItemCollaborator(Protocol):
    """Per-item create/update/delete"""
    
    async def create_item(self, kind: EntityKind, entity_id: str, payload: ItemPayload) -> LineItem:
        ...
    
    async def update_item(self, kind: EntityKind, item_id: str, payload: ItemPayload) -> LineItem:
        ...
    
    async def delete_item(self, kind: EntityKind, item_id: str) -> None:
        ...


@runtime_checkable
class AtomicItemCollaborator(Protocol):
    """Single replace-all call; the collaborator computes authoritative totals"""
    
    async def replace_all_items(
        self, kind: EntityKind, entity_id: str, items: List[ItemPayload]
    ) -> AnyEntity:
        ...
