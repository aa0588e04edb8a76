"""Best-effort start resolution for open intervals the event log does not back.

Event logs predate the engine and are incomplete, so an entity can be
currently held with no matching start event. Strategies are tried in order;
the first one that yields a timestamp wins.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from opsledger.lifecycle.types import EntitySnapshot, EventKindMapping, EventRole, EvidenceSource, LifecycleEvent

SOURCE_LABELS: dict[EvidenceSource, str] = {
    EvidenceSource.LOGGED_START: "most recent logged start",
    EvidenceSource.ORIGIN_DATE: "origin date",
    EvidenceSource.RECORD_CREATED: "record creation date",
}


@dataclass(frozen=True, slots=True)
class FallbackContext:
    entity: EntitySnapshot
    events: Sequence[LifecycleEvent]
    mapping: EventKindMapping
    subject_id: UUID | None


@dataclass(frozen=True, slots=True)
class FallbackCandidate:
    start: datetime
    source: EvidenceSource
    notes: str | None = None


@dataclass(frozen=True, slots=True)
class FallbackResolution:
    start: datetime
    source: EvidenceSource
    notes: tuple[str, ...]
    clamped: bool = False


FallbackStrategy = Callable[[FallbackContext], FallbackCandidate | None]


def latest_logged_start(context: FallbackContext) -> FallbackCandidate | None:
    """Most recent START for the current subject, ignoring pairing with ENDs."""

    latest: LifecycleEvent | None = None
    for event in context.events:
        role = context.mapping.role_of(event.kind)
        if role not in (EventRole.START, EventRole.HANDOFF):
            continue
        if event.subject_id != context.subject_id:
            continue
        if latest is None or (event.timestamp, event.created_at, event.sequence) > (
            latest.timestamp,
            latest.created_at,
            latest.sequence,
        ):
            latest = event
    if latest is None:
        return None
    return FallbackCandidate(start=latest.timestamp, source=EvidenceSource.LOGGED_START, notes=latest.notes)


def origin_date(context: FallbackContext) -> FallbackCandidate | None:
    if context.entity.origin_at is None:
        return None
    return FallbackCandidate(start=context.entity.origin_at, source=EvidenceSource.ORIGIN_DATE)


def record_created(context: FallbackContext) -> FallbackCandidate:
    return FallbackCandidate(start=context.entity.created_at, source=EvidenceSource.RECORD_CREATED)


DEFAULT_STRATEGIES: tuple[FallbackStrategy, ...] = (
    latest_logged_start,
    origin_date,
    record_created,
)


def estimation_note(source: EvidenceSource) -> str:
    return f"start estimated from {SOURCE_LABELS.get(source, source.value)}"


def resolve_fallback_start(
    context: FallbackContext,
    *,
    not_before: datetime | None = None,
    strategies: Sequence[FallbackStrategy] = DEFAULT_STRATEGIES,
) -> FallbackResolution:
    """Pick the highest-priority available start for the current subject.

    ``not_before`` is the end of the latest interval already reconstructed; a
    candidate earlier than that is moved up to it so intervals never overlap.
    """

    candidate: FallbackCandidate | None = None
    for strategy in strategies:
        candidate = strategy(context)
        if candidate is not None:
            break
    if candidate is None:
        candidate = record_created(context)

    notes = [estimation_note(candidate.source)]
    if candidate.notes:
        notes.append(candidate.notes)

    start = candidate.start
    clamped = False
    if not_before is not None and start < not_before:
        start = not_before
        clamped = True
        notes.append("start moved to the end of the previous recorded interval")

    return FallbackResolution(start=start, source=candidate.source, notes=tuple(notes), clamped=clamped)
