"""Per-subject history across every entity a subject has held."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

import structlog

from opsledger.core.exceptions import LifecycleError
from opsledger.lifecycle.proration import CycleCost, CycleDefinition, compute_cycle_cost
from opsledger.lifecycle.reconstructor import reconstruct
from opsledger.lifecycle.source import LifecycleSource
from opsledger.lifecycle.types import EntitySnapshot, Interval

logger = structlog.get_logger(__name__)

CycleDefinitionLookup = Callable[[EntitySnapshot], CycleDefinition | None]


@dataclass(frozen=True, slots=True)
class SubjectHolding:
    entity: EntitySnapshot
    intervals: tuple[Interval, ...]
    total_days: int
    is_current: bool
    cost: CycleCost | None = None

    @property
    def current_interval(self) -> Interval | None:
        return next((interval for interval in self.intervals if interval.is_open), None)

    @property
    def latest_start(self) -> datetime | None:
        return max((interval.start for interval in self.intervals), default=None)


def _candidate_entity_ids(source: LifecycleSource, subject_id: UUID) -> tuple[list[UUID], dict[UUID, EntitySnapshot]]:
    held = {snapshot.entity_id: snapshot for snapshot in source.list_entities_held_by(subject_id)}
    ordered: list[UUID] = list(held)
    for event in source.get_events_by_subject(subject_id):
        if event.entity_id is not None and event.entity_id not in held and event.entity_id not in ordered:
            ordered.append(event.entity_id)
    return ordered, held


def collect_subject_history(
    source: LifecycleSource,
    subject_id: UUID,
    *,
    as_of: datetime,
    cycle_definition_for: CycleDefinitionLookup | None = None,
) -> list[SubjectHolding]:
    """Intervals of every entity the subject holds or has held, current ones first.

    Entities referenced by old events that can no longer be resolved (for
    example soft-deleted ones) are skipped; the rest of the history is still
    returned. So are entities whose events name the subject without giving it
    an interval, unless the subject holds them now.
    """

    entity_ids, held = _candidate_entity_ids(source, subject_id)
    holdings: list[SubjectHolding] = []

    for entity_id in entity_ids:
        try:
            entity = held.get(entity_id) or source.get_entity(entity_id)
            result = reconstruct(entity, source.get_event_log(entity_id), source.mapping, as_of=as_of)
        except LifecycleError as exc:
            logger.info(
                "subject_history_entity_skipped",
                entity_kind=source.entity_kind,
                entity_id=str(entity_id),
                subject_id=str(subject_id),
                reason=exc.error_code,
            )
            continue

        intervals = tuple(result.for_subject(subject_id))
        if not intervals and entity.current_subject_id != subject_id:
            continue
        cost = None
        if cycle_definition_for is not None:
            definition = cycle_definition_for(entity)
            if definition is not None:
                cost = compute_cycle_cost(intervals, definition, as_of=as_of)

        holdings.append(
            SubjectHolding(
                entity=entity,
                intervals=intervals,
                total_days=sum(interval.days for interval in intervals),
                is_current=any(interval.is_open for interval in intervals),
                cost=cost,
            )
        )

    holdings.sort(key=lambda holding: str(holding.entity.entity_id))
    holdings.sort(key=lambda holding: holding.latest_start or datetime.min, reverse=True)
    holdings.sort(key=lambda holding: not holding.is_current)
    return holdings
