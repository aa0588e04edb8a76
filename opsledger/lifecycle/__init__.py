"""Interval reconstruction, proration and utilization engine."""

from opsledger.lifecycle.proration import Cadence, CycleCost, CycleDefinition, advance, compute_cycle_cost
from opsledger.lifecycle.reconstructor import elapsed_days, reconstruct
from opsledger.lifecycle.subject_history import SubjectHolding, collect_subject_history
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
from opsledger.lifecycle.utilization import Utilization, compute_utilization

__all__ = [
    "Cadence",
    "CycleCost",
    "CycleDefinition",
    "DataQualityIssue",
    "EntitySnapshot",
    "EventKindMapping",
    "EventRole",
    "EvidenceSource",
    "Interval",
    "IssueCode",
    "LifecycleEvent",
    "Reconstruction",
    "SubjectHolding",
    "Utilization",
    "advance",
    "collect_subject_history",
    "compute_cycle_cost",
    "compute_utilization",
    "elapsed_days",
    "reconstruct",
]
