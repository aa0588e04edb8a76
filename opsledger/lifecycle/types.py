"""Domain types shared by the interval reconstruction engine."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID


class EventRole(str, enum.Enum):
    START = "start"
    END = "end"
    # Ends the current holder's interval and starts the next holder's at one instant.
    HANDOFF = "handoff"


class EvidenceSource(str, enum.Enum):
    EVENT_LOG = "event_log"
    LOGGED_START = "logged_start"
    ORIGIN_DATE = "origin_date"
    RECORD_CREATED = "record_created"


class IssueCode(str, enum.Enum):
    ORPHAN_END = "orphan_end"
    STALE_START = "stale_start"
    REDUNDANT_START = "redundant_start"
    MISSING_SUBJECT = "missing_subject"
    SUBJECT_MISMATCH = "subject_mismatch"
    OPEN_WHILE_INACTIVE = "open_while_inactive"
    ESTIMATION_USED = "estimation_used"


@dataclass(frozen=True, slots=True)
class EventKindMapping:
    """Classifies the event kinds of one entity type.

    ``origin_opens_interval`` marks entity types that are in the tracked state
    from their origin onward, so a leading END closes an interval seeded at
    the origin instead of being discarded.
    """

    name: str
    start_kinds: frozenset[str]
    end_kinds: frozenset[str]
    handoff_kinds: frozenset[str] = frozenset()
    subject_required: bool = True
    origin_opens_interval: bool = False

    def __post_init__(self) -> None:
        overlap = (
            (self.start_kinds & self.end_kinds)
            | (self.start_kinds & self.handoff_kinds)
            | (self.end_kinds & self.handoff_kinds)
        )
        if overlap:
            raise ValueError(f"Event kinds mapped to more than one role: {sorted(overlap)}")

    def role_of(self, kind: str) -> EventRole | None:
        if kind in self.start_kinds:
            return EventRole.START
        if kind in self.end_kinds:
            return EventRole.END
        if kind in self.handoff_kinds:
            return EventRole.HANDOFF
        return None


@dataclass(frozen=True, slots=True)
class LifecycleEvent:
    event_id: UUID
    kind: str
    created_at: datetime
    sequence: int = 0
    effective_at: datetime | None = None
    subject_id: UUID | None = None
    prior_subject_id: UUID | None = None
    notes: str | None = None
    entity_id: UUID | None = None
    # Renewal date declared by the event, for events that restart billing.
    cycle_anchor: date | None = None

    @property
    def timestamp(self) -> datetime:
        """Business timestamp; record creation time when none was supplied."""

        return self.effective_at or self.created_at


@dataclass(frozen=True, slots=True)
class EntitySnapshot:
    entity_id: UUID
    tenant_id: UUID
    created_at: datetime
    is_active: bool
    origin_at: datetime | None = None
    current_subject_id: UUID | None = None
    inactive_since: datetime | None = None
    label: str | None = None

    @property
    def earliest_start(self) -> datetime:
        return self.origin_at or self.created_at


@dataclass(frozen=True, slots=True)
class Interval:
    subject_id: UUID | None
    start: datetime
    end: datetime | None
    days: int
    estimated: bool = False
    source: EvidenceSource = EvidenceSource.EVENT_LOG
    notes: tuple[str, ...] = ()
    cycle_anchor: date | None = None

    @property
    def is_open(self) -> bool:
        return self.end is None

    def end_or(self, as_of: datetime) -> datetime:
        return self.end if self.end is not None else as_of

    def dedup_key(self) -> tuple[str, str, str]:
        subject = str(self.subject_id) if self.subject_id is not None else "-"
        end = self.end.date().isoformat() if self.end is not None else "open"
        return subject, self.start.date().isoformat(), end


@dataclass(frozen=True, slots=True)
class DataQualityIssue:
    code: IssueCode
    message: str
    event_id: UUID | None = None
    occurred_at: datetime | None = None


@dataclass(slots=True)
class Reconstruction:
    entity: EntitySnapshot
    intervals: list[Interval]
    issues: list[DataQualityIssue] = field(default_factory=list)
    as_of: datetime | None = None

    @property
    def open_interval(self) -> Interval | None:
        return next((interval for interval in self.intervals if interval.is_open), None)

    def for_subject(self, subject_id: UUID) -> list[Interval]:
        return [interval for interval in self.intervals if interval.subject_id == subject_id]
