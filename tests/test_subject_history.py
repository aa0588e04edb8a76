from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from opsledger.core.exceptions import EntityNotFoundError
from opsledger.lifecycle.proration import Cadence, CycleDefinition
from opsledger.lifecycle.subject_history import collect_subject_history
from opsledger.lifecycle.types import EntitySnapshot, LifecycleEvent
from opsledger.repositories.lifecycle_repository import ASSET_EVENT_MAPPING

TENANT = uuid.uuid4()
ALICE = uuid.uuid4()
BOB = uuid.uuid4()
AS_OF = datetime(2024, 7, 1)


class InMemoryAssets:
    entity_kind = "asset"
    mapping = ASSET_EVENT_MAPPING

    def __init__(self) -> None:
        self.entities: dict[uuid.UUID, EntitySnapshot] = {}
        self.events: dict[uuid.UUID, list[LifecycleEvent]] = {}

    def add(self, tag: str, holder: uuid.UUID | None, events: list[tuple[str, datetime, uuid.UUID]]) -> uuid.UUID:
        entity_id = uuid.uuid4()
        self.entities[entity_id] = EntitySnapshot(
            entity_id=entity_id,
            tenant_id=TENANT,
            created_at=datetime(2024, 1, 1),
            is_active=holder is not None,
            origin_at=datetime(2024, 1, 1),
            current_subject_id=holder,
            label=tag,
        )
        self.events[entity_id] = [
            LifecycleEvent(
                event_id=uuid.uuid4(),
                kind=kind,
                created_at=at,
                sequence=index,
                effective_at=at,
                subject_id=member if kind == "ASSIGNED" else None,
                prior_subject_id=member if kind == "UNASSIGNED" else None,
                entity_id=entity_id,
            )
            for index, (kind, at, member) in enumerate(events, start=1)
        ]
        return entity_id

    def get_entity(self, entity_id: uuid.UUID) -> EntitySnapshot:
        if entity_id not in self.entities:
            raise EntityNotFoundError(self.entity_kind, entity_id)
        return self.entities[entity_id]

    def get_event_log(self, entity_id: uuid.UUID) -> list[LifecycleEvent]:
        return list(self.events.get(entity_id, []))

    def get_events_by_subject(self, subject_id: uuid.UUID) -> list[LifecycleEvent]:
        return [
            event
            for events in self.events.values()
            for event in events
            if subject_id in (event.subject_id, event.prior_subject_id)
        ]

    def list_entities_held_by(self, subject_id: uuid.UUID) -> list[EntitySnapshot]:
        return [entity for entity in self.entities.values() if entity.current_subject_id == subject_id]


def test_current_holdings_come_first_then_most_recent() -> None:
    source = InMemoryAssets()
    old = source.add(
        "LAP-OLD",
        None,
        [("ASSIGNED", datetime(2024, 1, 1), ALICE), ("UNASSIGNED", datetime(2024, 2, 1), ALICE)],
    )
    recent = source.add(
        "LAP-RECENT",
        BOB,
        [
            ("ASSIGNED", datetime(2024, 3, 1), ALICE),
            ("UNASSIGNED", datetime(2024, 5, 1), ALICE),
            ("ASSIGNED", datetime(2024, 5, 1), BOB),
        ],
    )
    current = source.add("LAP-NOW", ALICE, [("ASSIGNED", datetime(2024, 2, 15), ALICE)])

    holdings = collect_subject_history(source, ALICE, as_of=AS_OF)

    assert [holding.entity.entity_id for holding in holdings] == [current, recent, old]
    assert holdings[0].is_current is True
    assert holdings[0].current_interval is not None
    assert holdings[1].is_current is False
    assert holdings[1].total_days == 61
    assert holdings[2].total_days == 31
    assert all(
        interval.subject_id == ALICE for holding in holdings for interval in holding.intervals
    )


def test_unresolvable_entities_are_skipped() -> None:
    source = InMemoryAssets()
    kept = source.add("LAP-1", ALICE, [("ASSIGNED", datetime(2024, 1, 1), ALICE)])
    gone = source.add(
        "LAP-2",
        None,
        [("ASSIGNED", datetime(2024, 1, 1), ALICE), ("UNASSIGNED", datetime(2024, 1, 9), ALICE)],
    )
    del source.entities[gone]

    holdings = collect_subject_history(source, ALICE, as_of=AS_OF)

    assert [holding.entity.entity_id for holding in holdings] == [kept]


def test_entity_with_only_orphan_event_for_subject_is_left_out() -> None:
    source = InMemoryAssets()
    source.add("LAP-STRAY", None, [("UNASSIGNED", datetime(2024, 2, 1), ALICE)])
    kept = source.add(
        "LAP-KEPT",
        None,
        [("ASSIGNED", datetime(2024, 1, 1), ALICE), ("UNASSIGNED", datetime(2024, 1, 9), ALICE)],
    )

    holdings = collect_subject_history(source, ALICE, as_of=AS_OF)

    assert [holding.entity.entity_id for holding in holdings] == [kept]


def test_subject_without_history_gets_empty_list() -> None:
    source = InMemoryAssets()
    source.add("LAP-1", BOB, [("ASSIGNED", datetime(2024, 1, 1), BOB)])

    assert collect_subject_history(source, ALICE, as_of=AS_OF) == []


def test_cost_is_computed_per_holding_from_subject_intervals_only() -> None:
    source = InMemoryAssets()
    source.add(
        "SEAT-1",
        BOB,
        [
            ("ASSIGNED", datetime(2024, 1, 1), ALICE),
            ("UNASSIGNED", datetime(2024, 3, 15), ALICE),
            ("ASSIGNED", datetime(2024, 3, 15), BOB),
        ],
    )

    def definition(_: EntitySnapshot) -> CycleDefinition:
        return CycleDefinition(
            cadence=Cadence.MONTHLY,
            anchor_date=date(2024, 1, 1),
            cost_per_cycle=Decimal("10.00"),
            currency="QAR",
        )

    holdings = collect_subject_history(source, ALICE, as_of=AS_OF, cycle_definition_for=definition)

    assert len(holdings) == 1
    assert holdings[0].cost is not None
    assert holdings[0].cost.cycle_count == 3
    assert holdings[0].cost.total_cost == Decimal("30.00")
