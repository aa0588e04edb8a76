"""Read-side lifecycle service: intervals, utilization, cycle cost, subject history."""

from __future__ import annotations

import enum
from datetime import datetime
from uuid import UUID

from sqlalchemy.orm import Session

from opsledger.core.clock import as_naive_utc, utcnow
from opsledger.core.config import get_settings
from opsledger.core.exceptions import InvalidCycleDefinitionError
from opsledger.lifecycle.proration import Cadence, CycleCost, CycleDefinition, compute_cycle_cost
from opsledger.lifecycle.reconstructor import reconstruct
from opsledger.lifecycle.subject_history import SubjectHolding, collect_subject_history
from opsledger.lifecycle.types import DataQualityIssue, EntitySnapshot, Interval, Reconstruction
from opsledger.lifecycle.utilization import Utilization, compute_utilization
from opsledger.repositories.lifecycle_repository import (
    AssetLifecycleRepository,
    SubscriptionLifecycleRepository,
)


class EntityKind(str, enum.Enum):
    ASSET = "asset"
    SUBSCRIPTION = "subscription"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class LifecycleService:
    """Pure read-and-compute operations over one tenant's entities of one kind.

    Nothing here writes; every call recomputes from the stored event log.
    """

    def __init__(self, db: Session, *, tenant_id: UUID, entity_kind: EntityKind) -> None:
        self.db = db
        self.entity_kind = entity_kind
        self.settings = get_settings()
        self.repo: AssetLifecycleRepository | SubscriptionLifecycleRepository
        if entity_kind is EntityKind.ASSET:
            self.repo = AssetLifecycleRepository(db, tenant_id=tenant_id)
        else:
            self.repo = SubscriptionLifecycleRepository(db, tenant_id=tenant_id)

    @staticmethod
    def _now(as_of: datetime | None) -> datetime:
        return as_naive_utc(as_of) if as_of is not None else utcnow()

    # ---------- Reconstruction ----------
    def reconstruct(self, entity_id: UUID, *, as_of: datetime | None = None) -> Reconstruction:
        entity = self.repo.get_entity(entity_id)
        events = self.repo.get_event_log(entity_id)
        return reconstruct(entity, events, self.repo.mapping, as_of=self._now(as_of))

    def reconstruct_intervals(
        self,
        entity_id: UUID,
        *,
        subject_id: UUID | None = None,
        as_of: datetime | None = None,
    ) -> list[Interval]:
        result = self.reconstruct(entity_id, as_of=as_of)
        if subject_id is None:
            return result.intervals
        return result.for_subject(subject_id)

    # ---------- Utilization ----------
    def compute_utilization(
        self,
        entity_id: UUID,
        *,
        as_of: datetime | None = None,
        include_estimated: bool = True,
    ) -> Utilization:
        now = self._now(as_of)
        result = self.reconstruct(entity_id, as_of=now)
        return compute_utilization(
            result.intervals,
            owned_since=result.entity.earliest_start,
            as_of=now,
            include_estimated=include_estimated,
        )

    # ---------- Cycle cost ----------
    def cycle_definition(self, entity: EntitySnapshot) -> CycleDefinition | None:
        """Billing terms stored on a subscription; assets carry none."""

        if not isinstance(self.repo, SubscriptionLifecycleRepository):
            return None
        subscription = self.repo.require_subscription_row(entity.entity_id)
        anchor = subscription.purchase_date or entity.created_at.date()
        return CycleDefinition(
            cadence=Cadence(subscription.billing_cycle.value),
            anchor_date=anchor,
            cost_per_cycle=subscription.cost_per_cycle,
            currency=subscription.cost_currency or self.settings.default_currency,
        )

    def compute_cycle_cost(
        self,
        entity_id: UUID,
        cycle_definition: CycleDefinition | None = None,
        *,
        as_of: datetime | None = None,
        include_estimated: bool = True,
    ) -> CycleCost:
        now = self._now(as_of)
        result = self.reconstruct(entity_id, as_of=now)
        definition = cycle_definition or self.cycle_definition(result.entity)
        if definition is None:
            raise InvalidCycleDefinitionError(
                f"A cycle definition is required to price {self.entity_kind.value} intervals."
            )
        return compute_cycle_cost(result.intervals, definition, as_of=now, include_estimated=include_estimated)

    # ---------- Subject history ----------
    def get_subject_history(self, subject_id: UUID, *, as_of: datetime | None = None) -> list[SubjectHolding]:
        lookup = self.cycle_definition if self.entity_kind is EntityKind.SUBSCRIPTION else None
        return collect_subject_history(
            self.repo,
            subject_id,
            as_of=self._now(as_of),
            cycle_definition_for=lookup,
        )

    # ---------- Serialization ----------
    @staticmethod
    def serialize_interval(interval: Interval) -> dict[str, object]:
        return {
            "subject_id": str(interval.subject_id) if interval.subject_id is not None else None,
            "start": interval.start.isoformat(),
            "end": _isoformat(interval.end),
            "days": interval.days,
            "estimated": interval.estimated,
            "source": interval.source.value,
            "notes": list(interval.notes),
            "cycle_anchor": interval.cycle_anchor.isoformat() if interval.cycle_anchor is not None else None,
        }

    @staticmethod
    def serialize_issue(issue: DataQualityIssue) -> dict[str, object]:
        return {
            "code": issue.code.value,
            "message": issue.message,
            "event_id": str(issue.event_id) if issue.event_id is not None else None,
            "occurred_at": _isoformat(issue.occurred_at),
        }

    @staticmethod
    def serialize_utilization(utilization: Utilization) -> dict[str, object]:
        return {
            "owned_days": utilization.owned_days,
            "assigned_days": utilization.assigned_days,
            "percentage": str(utilization.percentage),
        }

    @classmethod
    def serialize_cycle_cost(cls, cost: CycleCost) -> dict[str, object]:
        return {
            "currency": cost.currency,
            "cadence": cost.cadence.value,
            "total_cost": str(cost.total_cost),
            "cycle_count": cost.cycle_count,
            "intervals": [
                {
                    **cls.serialize_interval(charge.interval),
                    "cycles": charge.cycles,
                    "cost": str(charge.cost),
                }
                for charge in cost.charges
            ],
        }

    @classmethod
    def serialize_holding(cls, holding: SubjectHolding) -> dict[str, object]:
        current = holding.current_interval
        payload: dict[str, object] = {
            "id": str(holding.entity.entity_id),
            "label": holding.entity.label,
            "origin_at": _isoformat(holding.entity.origin_at),
            "current_subject_id": (
                str(holding.entity.current_subject_id) if holding.entity.current_subject_id else None
            ),
            "is_current": holding.is_current,
            "total_days": holding.total_days,
            "current_period": cls.serialize_interval(current) if current is not None else None,
            "periods": [cls.serialize_interval(interval) for interval in holding.intervals],
        }
        if holding.cost is not None:
            payload["cost"] = cls.serialize_cycle_cost(holding.cost)
        return payload
