"""Assignment lifecycle: create, update, archive, soft delete, restore and purge."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from crm_scheduler.config import SchedulerConfig
from crm_scheduler.domain.db import transaction
from crm_scheduler.domain.models import (
    Assignment,
    AssignmentStatus,
    NotificationType,
    Shift,
    ShiftKind,
)
from crm_scheduler.domain.repositories import AssignmentRepository, UserRepository
from crm_scheduler.errors import BadRequest, NotFound
from crm_scheduler.timerange import parse_datetime

from .notifier import Notifier, NullNotifier
from .overlap import ensure_can_assign, ensure_no_overlap

logger = logging.getLogger(__name__)

UNSET: Any = object()


@dataclass(frozen=True)
class ShiftInput:
    starts_at: datetime
    ends_at: datetime
    kind: ShiftKind = ShiftKind.DEFAULT

    @classmethod
    def coerce(cls, value: "ShiftInput | Dict[str, Any]") -> "ShiftInput":
        if isinstance(value, cls):
            return value
        return cls(
            starts_at=parse_datetime(value["starts_at"]),
            ends_at=parse_datetime(value["ends_at"]),
            kind=ShiftKind(value.get("kind", ShiftKind.DEFAULT)),
        )


def _validate_shifts(shifts: Sequence[ShiftInput]) -> None:
    for index, shift in enumerate(shifts):
        if shift.ends_at <= shift.starts_at:
            raise BadRequest(
                "Shift must end after it starts",
                field=f"shifts[{index}].endsAt",
            )


def _validate_range(starts_at: datetime, ends_at: Optional[datetime]) -> None:
    if ends_at is not None and ends_at <= starts_at:
        raise BadRequest("endsAt must be after startsAt", field="endsAt")


def _validate_shifts_within(shifts: Sequence[Any], starts_at: datetime, ends_at: Optional[datetime]) -> None:
    """Every shift must lie inside the assignment's own range."""
    for index, shift in enumerate(shifts):
        if shift.starts_at < starts_at or (ends_at is not None and shift.ends_at > ends_at):
            raise BadRequest(
                "Shift falls outside the assignment range",
                field="shifts",
                index=index,
            )


def build_payload(assignment: Assignment) -> Dict[str, Any]:
    """Notification payload describing an assignment."""
    workplace = assignment.workplace
    org = workplace.org if workplace is not None else None
    return {
        "assignmentId": assignment.id,
        "userId": assignment.user_id,
        "workplaceId": assignment.workplace_id,
        "workplaceCode": workplace.code if workplace else None,
        "workplaceName": workplace.name if workplace else None,
        "startsAt": assignment.starts_at.isoformat(),
        "endsAt": assignment.ends_at.isoformat() if assignment.ends_at else None,
        "status": assignment.status.value,
        "orgId": workplace.org_id if workplace else None,
        "orgName": org.name if org else None,
        "orgSlug": org.slug if org else None,
    }


def paginate(query, page: int, page_size: int, order_by) -> Dict[str, Any]:
    if page < 1 or page_size < 1:
        raise BadRequest("page and pageSize must be positive", field="page")
    total = query.count()
    items = query.order_by(*order_by).offset((page - 1) * page_size).limit(page_size).all()
    return {"data": items, "meta": {"total": total, "page": page, "pageSize": page_size}}


class AssignmentService:
    """
    Direct assignment operations gated by the overlap and eligibility checks.

    Each write runs checks and changes inside one transaction; notifications
    are sent only after it committed.
    """

    def __init__(
        self,
        session: Session,
        notifier: Optional[Notifier] = None,
        cfg: Optional[SchedulerConfig] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.notifier = notifier or NullNotifier()
        self.cfg = cfg or SchedulerConfig()
        self.clock = clock

    # ------------------------------------------------------------------ reads

    def get_assignment(self, assignment_id: str) -> Assignment:
        assignment = AssignmentRepository.get_by_id(self.session, assignment_id)
        if assignment is None:
            raise NotFound("Assignment not found", assignment_id=assignment_id)
        return assignment

    def list_assignments(self, page: int = 1, page_size: int = 20, **filters) -> Dict[str, Any]:
        query = AssignmentRepository.filtered(self.session, deleted=False, **filters)
        return paginate(query, page, page_size, [Assignment.starts_at.desc(), Assignment.id])

    def list_trash(self, page: int = 1, page_size: int = 20, **filters) -> Dict[str, Any]:
        query = AssignmentRepository.filtered(self.session, deleted=True, **filters)
        return paginate(query, page, page_size, [Assignment.deleted_at.desc(), Assignment.id])

    def current_workplace_for(self, user_id: str, now: Optional[datetime] = None) -> Optional[Assignment]:
        return AssignmentRepository.current_for_user(self.session, user_id, now or self.clock())

    def history_for(self, user_id: str, take: int = 10) -> List[Assignment]:
        return AssignmentRepository.history_for_user(self.session, user_id, take)

    # ----------------------------------------------------------------- writes

    def create_assignment(
        self,
        user_id: str,
        workplace_id: str,
        starts_at: Optional[datetime] = None,
        ends_at: Optional[datetime] = None,
        shifts: Iterable[ShiftInput | Dict[str, Any]] = (),
        status: AssignmentStatus = AssignmentStatus.ACTIVE,
    ) -> Assignment:
        """
        Place a worker at a workplace.

        When shifts are supplied the assignment range is derived from their
        earliest start and latest end.

        Raises:
            NotFound: Unknown worker or workplace
            BadRequest: Invalid range or ineligible worker
            Conflict: Overlap ceiling reached
        """
        shift_inputs = [ShiftInput.coerce(item) for item in shifts]
        _validate_shifts(shift_inputs)

        if shift_inputs:
            starts_at = min(item.starts_at for item in shift_inputs)
            ends_at = max(item.ends_at for item in shift_inputs)
        if starts_at is None:
            raise BadRequest("startsAt is required", field="startsAt")
        _validate_range(starts_at, ends_at)

        with transaction(self.session):
            ensure_can_assign(self.session, user_id, workplace_id)
            if status == AssignmentStatus.ACTIVE:
                ensure_no_overlap(
                    self.session, user_id, starts_at, ends_at, ceiling=self.cfg.overlap_ceiling
                )

            assignment = Assignment(
                user_id=user_id,
                workplace_id=workplace_id,
                starts_at=starts_at,
                ends_at=ends_at,
                status=status,
                shifts=[Shift(starts_at=s.starts_at, ends_at=s.ends_at, kind=s.kind) for s in shift_inputs],
            )
            self.session.add(assignment)

        logger.info("Created assignment %s for user %s", assignment.id, user_id)
        self._notify(assignment, NotificationType.ASSIGNMENT_CREATED)
        return assignment

    def update_assignment(
        self,
        assignment_id: str,
        user_id: str = UNSET,
        workplace_id: str = UNSET,
        starts_at: datetime = UNSET,
        ends_at: Optional[datetime] = UNSET,
        status: AssignmentStatus = UNSET,
        shifts: Optional[Iterable[ShiftInput | Dict[str, Any]]] = UNSET,
    ) -> Assignment:
        """
        Apply a partial update. Omitted fields keep their value; ``ends_at=None``
        makes the assignment open-ended. A supplied shift list replaces the
        existing one.
        """
        existing = self.get_assignment(assignment_id)
        before = {
            "user_id": existing.user_id,
            "status": existing.status,
            "starts_at": existing.starts_at,
            "ends_at": existing.ends_at,
            "payload": build_payload(existing),
            "org_id": existing.workplace.org_id,
        }

        shift_inputs = None
        if shifts is not UNSET and shifts is not None:
            shift_inputs = [ShiftInput.coerce(item) for item in shifts]
            _validate_shifts(shift_inputs)

        next_user = existing.user_id if user_id is UNSET else user_id
        next_workplace = existing.workplace_id if workplace_id is UNSET else workplace_id
        next_status = existing.status if status is UNSET else status
        next_start = existing.starts_at if starts_at is UNSET else starts_at
        next_end = existing.ends_at if ends_at is UNSET else ends_at
        if shift_inputs:
            if starts_at is UNSET:
                next_start = min(item.starts_at for item in shift_inputs)
            if ends_at is UNSET:
                next_end = max(item.ends_at for item in shift_inputs)
        _validate_range(next_start, next_end)
        kept_shifts = shift_inputs if shift_inputs is not None else list(existing.shifts)
        _validate_shifts_within(kept_shifts, next_start, next_end)

        with transaction(self.session):
            if next_user != existing.user_id or next_workplace != existing.workplace_id:
                ensure_can_assign(self.session, next_user, next_workplace)
            if next_status == AssignmentStatus.ACTIVE:
                ensure_no_overlap(
                    self.session,
                    next_user,
                    next_start,
                    next_end,
                    exclude_id=existing.id,
                    ceiling=self.cfg.overlap_ceiling,
                )

            existing.user_id = next_user
            existing.workplace_id = next_workplace
            existing.status = next_status
            existing.starts_at = next_start
            existing.ends_at = next_end
            if shift_inputs is not None:
                existing.shifts = [
                    Shift(starts_at=s.starts_at, ends_at=s.ends_at, kind=s.kind) for s in shift_inputs
                ]

        self.session.refresh(existing)
        logger.info("Updated assignment %s", existing.id)

        if existing.user_id != before["user_id"]:
            cancelled = dict(before["payload"], status=AssignmentStatus.ARCHIVED.value)
            self.notifier.notify_many(
                self._recipients(before["user_id"], before["org_id"]),
                NotificationType.ASSIGNMENT_CANCELLED,
                cancelled,
            )
            self._notify(existing, NotificationType.ASSIGNMENT_CREATED)
        else:
            event = NotificationType.ASSIGNMENT_UPDATED
            dates_changed = (before["starts_at"], before["ends_at"]) != (existing.starts_at, existing.ends_at)
            if before["status"] != existing.status and existing.status == AssignmentStatus.ARCHIVED:
                event = NotificationType.ASSIGNMENT_CANCELLED
            elif dates_changed:
                event = NotificationType.ASSIGNMENT_MOVED
            self._notify(existing, event)

        return existing

    def complete_assignment(self, assignment_id: str) -> Assignment:
        """Archive an assignment (no-op when already archived)."""
        assignment = self.get_assignment(assignment_id)
        if assignment.status == AssignmentStatus.ARCHIVED:
            return assignment
        with transaction(self.session):
            assignment.status = AssignmentStatus.ARCHIVED
        self._notify(assignment, NotificationType.ASSIGNMENT_CANCELLED)
        return assignment

    def soft_delete_assignment(self, assignment_id: str) -> Assignment:
        """Move an assignment to the trash; status and fields are untouched."""
        assignment = self.get_assignment(assignment_id)
        if assignment.deleted_at is not None:
            return assignment
        with transaction(self.session):
            assignment.deleted_at = self.clock()
        logger.info("Moved assignment %s to trash", assignment.id)
        self._notify(assignment, NotificationType.ASSIGNMENT_CANCELLED)
        return assignment

    def restore_assignment(self, assignment_id: str) -> Assignment:
        """
        Bring an assignment back from the trash.

        An ACTIVE assignment is re-checked against the overlap ceiling since
        other placements may have been made while it was deleted.
        """
        assignment = self.get_assignment(assignment_id)
        if assignment.deleted_at is None:
            return assignment
        with transaction(self.session):
            if assignment.status == AssignmentStatus.ACTIVE:
                ensure_no_overlap(
                    self.session,
                    assignment.user_id,
                    assignment.starts_at,
                    assignment.ends_at,
                    exclude_id=assignment.id,
                    ceiling=self.cfg.overlap_ceiling,
                )
            assignment.deleted_at = None
        logger.info("Restored assignment %s", assignment.id)
        self._notify(assignment, NotificationType.ASSIGNMENT_CREATED)
        return assignment

    def purge_from_trash(self, assignment_ids: Iterable[str]) -> List[str]:
        """Hard-delete assignments. Every id must exist and already be in the trash."""
        ids = list(dict.fromkeys(assignment_ids))
        if not ids:
            raise BadRequest("No assignment ids given", field="ids")

        with transaction(self.session):
            found = {item.id: item for item in AssignmentRepository.get_many(self.session, ids)}
            missing = [item for item in ids if item not in found]
            if missing:
                raise NotFound("Assignments not found", assignment_ids=missing)
            live = [item for item in ids if found[item].deleted_at is None]
            if live:
                raise BadRequest("Only trashed assignments can be deleted", assignment_ids=live)
            for item in ids:
                self.session.delete(found[item])

        logger.info("Purged %d assignment(s) from trash", len(ids))
        return ids

    # ---------------------------------------------------------------- helpers

    def _recipients(self, user_id: str, org_id: Optional[str]) -> List[str]:
        recipients = [user_id]
        if org_id:
            recipients.extend(manager.id for manager in UserRepository.get_managers(self.session, org_id))
        return recipients

    def _notify(self, assignment: Assignment, event: NotificationType) -> None:
        self.notifier.notify_many(
            self._recipients(assignment.user_id, assignment.workplace.org_id),
            event,
            build_payload(assignment),
        )
