"""Services for scheduling logic."""

from .assignments import AssignmentService, ShiftInput
from .constraints import RangeSlot, ScopedConstraint, is_eligible
from .notifier import DatabaseNotifier, Notifier, NullNotifier
from .overlap import ensure_can_assign, ensure_no_overlap
from .plans import PlanService
from .slots import SlotInput, SlotMutator

__all__ = [
    "AssignmentService",
    "ShiftInput",
    "RangeSlot",
    "ScopedConstraint",
    "is_eligible",
    "DatabaseNotifier",
    "Notifier",
    "NullNotifier",
    "ensure_can_assign",
    "ensure_no_overlap",
    "PlanService",
    "SlotInput",
    "SlotMutator",
]
