"""Double-booking and eligibility checks for direct assignments."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from crm_scheduler.domain.models import User, UserRole, Workplace
from crm_scheduler.domain.repositories import AssignmentRepository, UserRepository, WorkplaceRepository
from crm_scheduler.errors import BadRequest, Conflict, NotFound

logger = logging.getLogger(__name__)

DEFAULT_OVERLAP_CEILING = 2


def ensure_no_overlap(
    session: Session,
    user_id: str,
    starts_at: datetime,
    ends_at: Optional[datetime],
    exclude_id: Optional[str] = None,
    ceiling: int = DEFAULT_OVERLAP_CEILING,
) -> int:
    """
    Refuse a placement that would exceed the concurrent ACTIVE assignment ceiling.

    Must run inside the same transaction as the write it guards.

    Returns:
        Number of existing overlapping assignments (always below ``ceiling``)

    Raises:
        Conflict: If the worker already has ``ceiling`` or more overlapping assignments
    """
    count = AssignmentRepository.count_overlapping_active(
        session, user_id, starts_at, ends_at, exclude_id=exclude_id
    )
    if count >= ceiling:
        logger.info("Rejecting assignment for %s: %d overlapping (ceiling %d)", user_id, count, ceiling)
        raise Conflict(
            "Assignment overlaps existing active assignments",
            code="ASSIGNMENT_OVERLAP",
            user_id=user_id,
            overlapping=count,
            ceiling=ceiling,
        )
    return count


def ensure_can_assign(session: Session, user_id: str, workplace_id: str) -> Tuple[User, Workplace]:
    """
    Check that a worker may be placed at a workplace.

    Raises:
        NotFound: If the worker or workplace does not exist
        BadRequest: If the worker has no org, is not an ordinary worker, is a
            system account, or the workplace belongs to another org
    """
    user = UserRepository.get_by_id(session, user_id)
    if user is None:
        raise NotFound("User not found", user_id=user_id)

    if not user.org_id:
        raise BadRequest("User is not attached to an organization", field="userId", user_id=user_id)
    if user.role != UserRole.USER:
        raise BadRequest("Only ordinary workers can be assigned", field="userId", user_id=user_id)
    if user.is_system:
        raise BadRequest("System users cannot be assigned", field="userId", user_id=user_id)

    workplace = WorkplaceRepository.get_by_id(session, workplace_id)
    if workplace is None:
        raise NotFound("Workplace not found", workplace_id=workplace_id)
    if workplace.org_id != user.org_id:
        raise BadRequest(
            "Workplace belongs to a different organization",
            field="workplaceId",
            user_id=user_id,
            workplace_id=workplace_id,
        )

    return user, workplace
