"""Event-log to interval reconstruction.

The walk is a fold over events sorted by business timestamp with two states,
``NoOpenInterval`` and ``OpenInterval``. Each transition returns the next
state plus whatever intervals it closed and any data-quality issues it found,
so the repair rules can be exercised one event at a time.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from itertools import groupby
from uuid import UUID

import structlog

from opsledger.core.clock import as_naive_utc, utcnow
from opsledger.lifecycle.fallback import (
    DEFAULT_STRATEGIES,
    FallbackContext,
    FallbackStrategy,
    estimation_note,
    resolve_fallback_start,
)
from opsledger.lifecycle.types import (
    DataQualityIssue,
    EntitySnapshot,
    EventKindMapping,
    EventRole,
    EvidenceSource,
    Interval,
    IssueCode,
    LifecycleEvent,
    Reconstruction,
)

logger = structlog.get_logger(__name__)

AUTO_CLOSED_NOTE = "auto-closed: superseded by a later start"
INACTIVE_CLOSED_NOTE = "closed: entity is no longer active, end date unknown"
MISMATCH_CLOSED_NOTE = "closed: current holder differs from the last recorded start"

# Within one instant an open interval is closed before the next one opens.
_TIE_RANK = {EventRole.END: 0, EventRole.HANDOFF: 1, EventRole.START: 2}


def elapsed_days(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``, partial days rounded up, never negative."""

    delta = end - start
    if delta <= timedelta(0):
        return 0
    return delta.days + (1 if delta.seconds or delta.microseconds else 0)


@dataclass(frozen=True, slots=True)
class NoOpenInterval:
    pass


@dataclass(frozen=True, slots=True)
class OpenInterval:
    subject_id: UUID | None
    start: datetime
    estimated: bool = False
    source: EvidenceSource = EvidenceSource.EVENT_LOG
    notes: tuple[str, ...] = ()
    cycle_anchor: date | None = None

    def close(self, end: datetime, *, estimated: bool = False, note: str | None = None) -> Interval:
        end = max(end, self.start)
        notes = self.notes + ((note,) if note else ())
        return Interval(
            subject_id=self.subject_id,
            start=self.start,
            end=end,
            days=elapsed_days(self.start, end),
            estimated=self.estimated or estimated,
            source=self.source,
            notes=notes,
            cycle_anchor=self.cycle_anchor,
        )


WalkState = NoOpenInterval | OpenInterval
NO_OPEN_INTERVAL = NoOpenInterval()


@dataclass(frozen=True, slots=True)
class Transition:
    state: WalkState
    closed: tuple[Interval, ...] = ()
    issues: tuple[DataQualityIssue, ...] = ()


def _notes_of(event: LifecycleEvent) -> tuple[str, ...]:
    return (event.notes,) if event.notes else ()


def _open_from(event: LifecycleEvent) -> OpenInterval:
    return OpenInterval(
        subject_id=event.subject_id,
        start=event.timestamp,
        notes=_notes_of(event),
        cycle_anchor=event.cycle_anchor,
    )


def on_start(state: WalkState, event: LifecycleEvent, mapping: EventKindMapping) -> Transition:
    if event.subject_id is None and mapping.subject_required:
        issue = DataQualityIssue(
            code=IssueCode.MISSING_SUBJECT,
            message=f"{event.kind} event has no subject and was skipped.",
            event_id=event.event_id,
            occurred_at=event.timestamp,
        )
        return Transition(state=state, issues=(issue,))

    if isinstance(state, OpenInterval):
        if state.subject_id == event.subject_id:
            issue = DataQualityIssue(
                code=IssueCode.REDUNDANT_START,
                message=f"{event.kind} repeated for the current holder; interval kept open.",
                event_id=event.event_id,
                occurred_at=event.timestamp,
            )
            return Transition(state=state, issues=(issue,))

        stale = state.close(event.timestamp, estimated=True, note=AUTO_CLOSED_NOTE)
        issue = DataQualityIssue(
            code=IssueCode.STALE_START,
            message=f"{event.kind} arrived while an interval was still open; previous interval auto-closed.",
            event_id=event.event_id,
            occurred_at=event.timestamp,
        )
        return Transition(state=_open_from(event), closed=(stale,), issues=(issue,))

    return Transition(state=_open_from(event))


def on_end(state: WalkState, event: LifecycleEvent, *, seed: OpenInterval | None = None) -> Transition:
    """Close the open interval, or the origin ``seed`` when nothing is open.

    An END with neither has no start to pair with and is discarded.
    """

    if isinstance(state, OpenInterval):
        return Transition(state=NO_OPEN_INTERVAL, closed=(state.close(event.timestamp),))

    if seed is not None:
        return Transition(state=NO_OPEN_INTERVAL, closed=(seed.close(event.timestamp),))

    issue = DataQualityIssue(
        code=IssueCode.ORPHAN_END,
        message=f"{event.kind} event has no matching start and was discarded.",
        event_id=event.event_id,
        occurred_at=event.timestamp,
    )
    return Transition(state=state, issues=(issue,))


def on_handoff(
    state: WalkState,
    event: LifecycleEvent,
    mapping: EventKindMapping,
    *,
    seed: OpenInterval | None = None,
) -> Transition:
    closed: tuple[Interval, ...] = ()
    if isinstance(state, OpenInterval):
        closed = (state.close(event.timestamp),)
    elif seed is not None:
        closed = (seed.close(event.timestamp),)

    started = on_start(NO_OPEN_INTERVAL, event, mapping)
    return Transition(state=started.state, closed=closed + started.closed, issues=started.issues)


def sort_events(events: Iterable[LifecycleEvent]) -> list[LifecycleEvent]:
    """Business timestamp ascending; creation order breaks ties."""

    return sorted(events, key=lambda event: (event.timestamp, event.created_at, event.sequence))


def _origin_seed(entity: EntitySnapshot, subject_id: UUID | None, at: datetime) -> OpenInterval:
    """Interval open from the origin for entity types tracked from their origin.

    A recorded origin date starts the first period; the creation-time stand-in
    is estimated.
    """

    start = min(entity.earliest_start, at)
    if entity.origin_at is not None:
        return OpenInterval(subject_id=subject_id, start=start, source=EvidenceSource.ORIGIN_DATE)
    source = EvidenceSource.RECORD_CREATED
    return OpenInterval(
        subject_id=subject_id,
        start=start,
        estimated=True,
        source=source,
        notes=(estimation_note(source),),
    )


@dataclass(slots=True)
class _Walk:
    entity: EntitySnapshot
    mapping: EventKindMapping
    state: WalkState = NO_OPEN_INTERVAL
    opened_any: bool = False
    closed: list[Interval] = field(default_factory=list)
    issues: list[DataQualityIssue] = field(default_factory=list)

    def _seed_for(self, event: LifecycleEvent) -> OpenInterval | None:
        if self.mapping.origin_opens_interval and not self.opened_any:
            return _origin_seed(self.entity, event.prior_subject_id, event.timestamp)
        return None

    def apply(self, event: LifecycleEvent) -> None:
        role = self.mapping.role_of(event.kind)
        if role is None:
            return
        if role is EventRole.START:
            transition = on_start(self.state, event, self.mapping)
        elif role is EventRole.END:
            transition = on_end(self.state, event, seed=self._seed_for(event))
        else:
            transition = on_handoff(self.state, event, self.mapping, seed=self._seed_for(event))

        if transition.closed or isinstance(transition.state, OpenInterval):
            self.opened_any = True
        self.state = transition.state
        self.closed.extend(transition.closed)
        self.issues.extend(transition.issues)

    def run(self, events: Sequence[LifecycleEvent]) -> None:
        for _, group in groupby(events, key=lambda event: event.timestamp):
            batch = list(group)
            if isinstance(self.state, OpenInterval) and len(batch) > 1:
                batch.sort(key=lambda event: _TIE_RANK.get(self.mapping.role_of(event.kind), 3))
            for event in batch:
                self.apply(event)


def _dedupe(intervals: Iterable[Interval]) -> list[Interval]:
    seen: set[tuple[str, str, str]] = set()
    unique: list[Interval] = []
    for interval in intervals:
        key = interval.dedup_key()
        if key in seen:
            continue
        seen.add(key)
        unique.append(interval)
    return unique


def _log_issues(entity: EntitySnapshot, mapping: EventKindMapping, issues: Sequence[DataQualityIssue]) -> None:
    for issue in issues:
        log = logger.info if issue.code is IssueCode.ESTIMATION_USED else logger.warning
        log(
            "lifecycle_data_quality",
            issue=issue.code.value,
            detail=issue.message,
            entity_kind=mapping.name,
            entity_id=str(entity.entity_id),
            tenant_id=str(entity.tenant_id),
            event_id=str(issue.event_id) if issue.event_id else None,
        )


def reconstruct(
    entity: EntitySnapshot,
    events: Iterable[LifecycleEvent],
    mapping: EventKindMapping,
    *,
    as_of: datetime | None = None,
    strategies: Sequence[FallbackStrategy] = DEFAULT_STRATEGIES,
) -> Reconstruction:
    """Rebuild the entity's state intervals, most recent first.

    Never raises on inconsistent logs: every repair is reported in
    ``Reconstruction.issues`` and estimated intervals are flagged.
    """

    now = as_naive_utc(as_of) if as_of is not None else utcnow()
    ordered = sort_events(events)

    walk = _Walk(entity=entity, mapping=mapping)
    walk.run(ordered)

    closed = list(walk.closed)
    issues = list(walk.issues)
    current: OpenInterval | None = None
    state = walk.state

    def fallback(not_before: datetime | None) -> OpenInterval:
        resolution = resolve_fallback_start(
            FallbackContext(
                entity=entity,
                events=ordered,
                mapping=mapping,
                subject_id=entity.current_subject_id,
            ),
            not_before=not_before,
            strategies=strategies,
        )
        issues.append(
            DataQualityIssue(
                code=IssueCode.ESTIMATION_USED,
                message=f"Open interval start estimated from {resolution.source.value}.",
                occurred_at=resolution.start,
            )
        )
        return OpenInterval(
            subject_id=entity.current_subject_id,
            start=resolution.start,
            estimated=True,
            source=resolution.source,
            notes=resolution.notes,
        )

    if isinstance(state, OpenInterval):
        if not entity.is_active:
            end = entity.inactive_since if entity.inactive_since is not None else state.start
            closed.append(state.close(end, estimated=True, note=INACTIVE_CLOSED_NOTE))
            issues.append(
                DataQualityIssue(
                    code=IssueCode.OPEN_WHILE_INACTIVE,
                    message="Log leaves an interval open but the entity is inactive.",
                    occurred_at=end,
                )
            )
        elif state.subject_id != entity.current_subject_id:
            issues.append(
                DataQualityIssue(
                    code=IssueCode.SUBJECT_MISMATCH,
                    message="Last recorded holder differs from the current holder.",
                    occurred_at=state.start,
                )
            )
            current = fallback(state.start)
            closed.append(state.close(current.start, estimated=True, note=MISMATCH_CLOSED_NOTE))
        else:
            current = state
    elif entity.is_active and mapping.origin_opens_interval and not walk.opened_any:
        current = _origin_seed(entity, entity.current_subject_id, now)
        if current.estimated:
            issues.append(
                DataQualityIssue(
                    code=IssueCode.ESTIMATION_USED,
                    message=f"Open interval start estimated from {current.source.value}.",
                    occurred_at=current.start,
                )
            )
    elif entity.is_active:
        latest_end = max((interval.end for interval in closed if interval.end is not None), default=None)
        current = fallback(latest_end)

    intervals = list(closed)
    if current is not None:
        intervals.append(
            Interval(
                subject_id=current.subject_id,
                start=current.start,
                end=None,
                days=elapsed_days(current.start, now),
                estimated=current.estimated,
                source=current.source,
                notes=current.notes,
                cycle_anchor=current.cycle_anchor,
            )
        )

    unique = _dedupe(intervals)
    unique.sort(key=lambda interval: (interval.start, str(interval.subject_id)), reverse=True)

    _log_issues(entity, mapping, issues)
    return Reconstruction(entity=entity, intervals=unique, issues=issues, as_of=now)

