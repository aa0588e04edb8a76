"""Billing-cycle counting over reconstructed intervals."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

from opsledger.core.exceptions import InvalidCycleDefinitionError
from opsledger.lifecycle.types import Interval

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")


class Cadence(str, enum.Enum):
    ONE_TIME = "ONE_TIME"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


_MONTHS_PER_STEP = {Cadence.MONTHLY: 1, Cadence.YEARLY: 12}


@dataclass(frozen=True, slots=True)
class CycleDefinition:
    cadence: Cadence
    anchor_date: date
    cost_per_cycle: Decimal
    currency: str

    def __post_init__(self) -> None:
        if self.cost_per_cycle < ZERO:
            raise InvalidCycleDefinitionError("cost_per_cycle must be greater or equal zero.")


@dataclass(frozen=True, slots=True)
class IntervalCharge:
    interval: Interval
    cycles: int
    cost: Decimal


@dataclass(frozen=True, slots=True)
class CycleCost:
    currency: str
    cadence: Cadence
    total_cost: Decimal
    cycle_count: int
    charges: tuple[IntervalCharge, ...]


def _q2(value: Decimal) -> Decimal:
    return value.quantize(Q2, rounding=ROUND_HALF_UP)


def advance(anchor: date, cadence: Cadence, steps: int) -> date:
    """Date ``steps`` cycles after ``anchor``.

    Days past the end of the target month clamp to its last day:
    Jan 31 + 1 month is Feb 29 in leap years and Feb 28 otherwise, and
    Feb 29 + 1 year is Feb 28. Always measured from the anchor, so a
    month-end anchor does not drift after a short month.
    """

    if cadence is Cadence.ONE_TIME:
        return anchor
    return anchor + relativedelta(months=_MONTHS_PER_STEP[cadence] * steps)


def cycle_boundaries(anchor: date, cadence: Cadence, until: date) -> Iterator[date]:
    """Cycle start dates from ``anchor`` up to and including ``until``."""

    if cadence is Cadence.ONE_TIME:
        if anchor <= until:
            yield anchor
        return
    step = 0
    boundary = anchor
    while boundary <= until:
        yield boundary
        step += 1
        boundary = advance(anchor, cadence, step)


@dataclass(frozen=True, slots=True)
class _Schedule:
    """Billing dates of one uninterrupted run of intervals.

    A cycle is charged on the day the run opens and on every renewal after it.
    """

    opened_on: date
    renews_from: date

    def boundaries(self, cadence: Cadence, until: date) -> list[date]:
        dates = {self.opened_on} if self.opened_on <= until else set()
        dates.update(day for day in cycle_boundaries(self.renews_from, cadence, until) if day >= self.opened_on)
        return sorted(dates)


def compute_cycle_cost(
    intervals: Iterable[Interval],
    definition: CycleDefinition,
    *,
    as_of: datetime,
    include_estimated: bool = True,
) -> CycleCost:
    """Count elapsed cycles per interval and price them.

    Intervals are billed in chronological order. The first run is anchored at
    ``definition.anchor_date``. An interval that starts after a gap opens a new
    run: it is charged a cycle on its start date, then on each renewal counted
    from its ``cycle_anchor`` (or from its start date when it has none). An
    interval that starts where the previous one ended, as in a handoff,
    continues the current run. A cycle is elapsed for an interval when its
    billing date falls within the interval (open intervals run to ``as_of``).
    A date already billed is not billed again, and gaps are never billed.
    """

    considered = sorted(
        (interval for interval in intervals if include_estimated or not interval.estimated),
        key=lambda interval: (interval.start, interval.end_or(as_of)),
    )

    cycles_by_interval: list[int] = [0] * len(considered)
    if definition.cadence is Cadence.ONE_TIME:
        for index, interval in enumerate(considered):
            if interval.days > 0:
                cycles_by_interval[index] = 1
                break
    elif considered:
        last_day = max(interval.end_or(as_of) for interval in considered).date()
        billed: set[date] = set()
        schedule = _Schedule(opened_on=definition.anchor_date, renews_from=definition.anchor_date)
        boundaries = schedule.boundaries(definition.cadence, last_day)
        latest_end: datetime | None = None
        for index, interval in enumerate(considered):
            if latest_end is not None and interval.start > latest_end:
                opened_on = interval.start.date()
                schedule = _Schedule(opened_on=opened_on, renews_from=interval.cycle_anchor or opened_on)
                boundaries = schedule.boundaries(definition.cadence, last_day)
            end = interval.end_or(as_of)
            first, last = interval.start.date(), end.date()
            covered = [day for day in boundaries if first <= day <= last and day not in billed]
            billed.update(covered)
            cycles_by_interval[index] = len(covered)
            latest_end = end if latest_end is None else max(latest_end, end)

    charges = tuple(
        IntervalCharge(interval=interval, cycles=cycles, cost=_q2(definition.cost_per_cycle * cycles))
        for interval, cycles in zip(considered, cycles_by_interval)
    )
    cycle_count = sum(cycles_by_interval)
    return CycleCost(
        currency=definition.currency,
        cadence=definition.cadence,
        total_cost=_q2(definition.cost_per_cycle * cycle_count),
        cycle_count=cycle_count,
        charges=charges,
    )
