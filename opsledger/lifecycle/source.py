"""Capability interface every tracked entity type provides to the engine."""

from __future__ import annotations

from typing import Protocol
from uuid import UUID

from opsledger.lifecycle.types import EntitySnapshot, EventKindMapping, LifecycleEvent


class LifecycleSource(Protocol):
    """Read access to one entity type's snapshots and event logs.

    Implementations are bound to a single tenant when constructed; no method
    accepts a tenant id, so cross-tenant reads cannot be expressed.
    """

    entity_kind: str
    mapping: EventKindMapping

    def get_entity(self, entity_id: UUID) -> EntitySnapshot:
        """Return the snapshot or raise ``EntityNotFoundError``."""
        ...

    def get_event_log(self, entity_id: UUID) -> list[LifecycleEvent]:
        ...

    def get_events_by_subject(self, subject_id: UUID) -> list[LifecycleEvent]:
        """Events naming the subject as new or prior holder."""
        ...

    def list_entities_held_by(self, subject_id: UUID) -> list[EntitySnapshot]:
        ...
