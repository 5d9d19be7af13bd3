"""Constraint checking for auto-assignment candidates."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

from crm_scheduler.domain.models import Constraint
from crm_scheduler.domain.payloads import (
    Availability,
    ConstraintPayload,
    MaxSlotsPerWeek,
    OrgBlacklist,
    parse_payload,
)
from crm_scheduler.errors import BadRequest
from crm_scheduler.timerange import iso_week_key, overlaps

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeSlot:
    """A worker's occupied date range, either persisted or provisional."""

    user_id: str
    date_start: datetime
    date_end: datetime


@dataclass(frozen=True)
class ScopedConstraint:
    """A parsed constraint with its (user, org) scope."""

    payload: ConstraintPayload
    user_id: Optional[str] = None
    org_id: Optional[str] = None

    @classmethod
    def from_record(cls, record: Constraint) -> "ScopedConstraint":
        return cls(
            payload=parse_payload(record.type, record.payload),
            user_id=record.user_id,
            org_id=record.org_id,
        )


def load_constraints(records: Iterable[Constraint]) -> List[ScopedConstraint]:
    """Parse stored constraint rows, skipping (and logging) any that no longer validate."""
    parsed = []
    for record in records:
        try:
            parsed.append(ScopedConstraint.from_record(record))
        except BadRequest as exc:
            logger.warning("Ignoring constraint %s: %s", record.id, exc.message)
    return parsed


def applicable_constraints(
    constraints: Iterable[ScopedConstraint],
    user_id: str,
    org_id: str,
) -> List[ScopedConstraint]:
    """Constraints for this user, plus those scoped org-wide to org_id or globally."""
    return [
        item
        for item in constraints
        if item.user_id == user_id
        or (item.user_id is None and (item.org_id is None or item.org_id == org_id))
    ]


def has_range_conflict(
    user_id: str,
    date_start: datetime,
    date_end: datetime,
    range_slots: Iterable[RangeSlot],
) -> bool:
    """True if the worker already holds a slot overlapping the proposed range."""
    return any(
        slot.user_id == user_id and overlaps(slot.date_start, slot.date_end, date_start, date_end)
        for slot in range_slots
    )


def violates_constraint(
    constraint: ScopedConstraint,
    user_id: str,
    org_id: str,
    date_start: datetime,
    date_end: datetime,
    range_slots: Sequence[RangeSlot],
) -> bool:
    payload = constraint.payload

    if isinstance(payload, OrgBlacklist):
        return org_id in payload.org_ids

    if isinstance(payload, Availability):
        return any(
            overlaps(item.start, item.end, date_start, date_end)
            for item in payload.unavailable
        )

    if isinstance(payload, MaxSlotsPerWeek):
        week = iso_week_key(date_start)
        week_count = sum(
            1
            for slot in range_slots
            if slot.user_id == user_id
            and iso_week_key(slot.date_start) == week
            and overlaps(slot.date_start, slot.date_end, date_start, date_end)
        )
        return week_count >= payload.limit

    return False


def is_eligible(
    user_id: str,
    org_id: str,
    date_start: datetime,
    date_end: datetime,
    constraints: Iterable[ScopedConstraint],
    range_slots: Sequence[RangeSlot],
    respect_constraints: bool = True,
) -> bool:
    """
    Check if a worker may be placed into [date_start, date_end] for an org.

    Args:
        user_id: Candidate worker
        org_id: Target organization
        date_start: Proposed range start
        date_end: Proposed range end
        constraints: Pre-loaded constraints; filtered to those applicable here
        range_slots: Slots already accumulated for the run (persisted and provisional)
        respect_constraints: When False only the hard overlap check applies

    Returns:
        True if the worker can be placed, False otherwise
    """
    if respect_constraints:
        for constraint in applicable_constraints(constraints, user_id, org_id):
            if violates_constraint(constraint, user_id, org_id, date_start, date_end, range_slots):
                logger.debug(
                    "User %s rejected by %s constraint", user_id, constraint.payload.type.value
                )
                return False

    # Hard double-booking check always applies
    return not has_range_conflict(user_id, date_start, date_end, range_slots)
