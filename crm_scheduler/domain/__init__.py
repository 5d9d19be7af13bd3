"""Domain models and data access layer."""

from .models import (
    Assignment,
    AssignmentStatus,
    Base,
    Constraint,
    ConstraintType,
    Notification,
    NotificationType,
    Org,
    Plan,
    PlanStatus,
    Shift,
    ShiftKind,
    Slot,
    SlotStatus,
    User,
    UserRole,
    Workplace,
)
from .repositories import (
    AssignmentRepository,
    ConstraintRepository,
    NotificationRepository,
    OrgRepository,
    PlanRepository,
    SlotRepository,
    UserRepository,
    WorkplaceRepository,
)

__all__ = [
    "Assignment",
    "AssignmentStatus",
    "Base",
    "Constraint",
    "ConstraintType",
    "Notification",
    "NotificationType",
    "Org",
    "Plan",
    "PlanStatus",
    "Shift",
    "ShiftKind",
    "Slot",
    "SlotStatus",
    "User",
    "UserRole",
    "Workplace",
    "AssignmentRepository",
    "ConstraintRepository",
    "NotificationRepository",
    "OrgRepository",
    "PlanRepository",
    "SlotRepository",
    "UserRepository",
    "WorkplaceRepository",
]
