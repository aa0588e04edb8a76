"""Assigned-versus-owned utilization."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from opsledger.lifecycle.reconstructor import elapsed_days
from opsledger.lifecycle.types import Interval

ZERO = Decimal("0.00")
Q2 = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class Utilization:
    owned_days: int
    assigned_days: int
    percentage: Decimal


def compute_utilization(
    intervals: Iterable[Interval],
    *,
    owned_since: datetime,
    as_of: datetime,
    include_estimated: bool = True,
) -> Utilization:
    owned_days = elapsed_days(owned_since, as_of)
    assigned_days = sum(
        interval.days for interval in intervals if include_estimated or not interval.estimated
    )
    if owned_days == 0:
        return Utilization(owned_days=0, assigned_days=assigned_days, percentage=ZERO)

    percentage = (Decimal(assigned_days) * 100 / Decimal(owned_days)).quantize(Q2, rounding=ROUND_HALF_UP)
    return Utilization(owned_days=owned_days, assigned_days=assigned_days, percentage=percentage)
