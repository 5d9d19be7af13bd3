"""Direct slot mutations inside a plan: bulk assign, bulk move, update, delete."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.orm import Session

from crm_scheduler.domain.db import transaction
from crm_scheduler.domain.models import NotificationType, Plan, Slot, SlotStatus, UserRole
from crm_scheduler.domain.repositories import OrgRepository, SlotRepository, UserRepository
from crm_scheduler.errors import BadRequest, Forbidden, NotFound
from crm_scheduler.timerange import parse_datetime

from .notifier import Notifier, NullNotifier
from .plans import assert_plan_mutable, ensure_plan

logger = logging.getLogger(__name__)

UNSET: Any = object()

MAX_BULK_SLOTS = 500


@dataclass
class SlotInput:
    user_id: str
    org_id: str
    date_start: datetime
    date_end: datetime
    status: Optional[SlotStatus] = None
    color_code: Optional[str] = None
    note: Optional[str] = None
    locked: bool = False

    @classmethod
    def coerce(cls, value: "SlotInput | Dict[str, Any]") -> "SlotInput":
        if isinstance(value, cls):
            return value
        data = dict(value)
        data["date_start"] = _coerce_datetime(data["date_start"], "dateStart")
        data["date_end"] = _coerce_datetime(data["date_end"], "dateEnd")
        if data.get("status") is not None:
            data["status"] = _coerce_status(data["status"])
        return cls(**data)


def _coerce_datetime(value: Any, field: str) -> datetime:
    try:
        return parse_datetime(value)
    except (TypeError, ValueError):
        raise BadRequest(f"{field} is not a valid ISO-8601 datetime", field=field) from None


def _coerce_status(value: Any) -> SlotStatus:
    try:
        return SlotStatus(value)
    except ValueError:
        raise BadRequest(f"Unknown slot status: {value!r}", field="status") from None


def _check_range(date_start: datetime, date_end: datetime, slot_id: Optional[str] = None) -> None:
    if date_end < date_start:
        raise BadRequest("dateEnd must not be before dateStart", field="dateEnd", slot_id=slot_id)


def _locked(slot: Slot) -> Forbidden:
    return Forbidden(f"Slot {slot.id} is locked and cannot be modified", code="SLOT_LOCKED", slot_id=slot.id)


def create_slots(session: Session, plan: Plan, slots: Sequence[SlotInput]) -> List[Slot]:
    """
    Stage new slots for a plan. The caller owns the transaction.

    Colour codes default to the uppercased slug of the slot's org.
    """
    orgs = {org.id: org for org in OrgRepository.get_many(session, (item.org_id for item in slots))}
    missing = sorted({item.org_id for item in slots} - set(orgs))
    if missing:
        raise NotFound("Organization not found", org_ids=missing)

    created = []
    for item in slots:
        _check_range(item.date_start, item.date_end)
        slug = orgs[item.org_id].slug
        created.append(
            Slot(
                plan_id=plan.id,
                user_id=item.user_id,
                org_id=item.org_id,
                date_start=item.date_start,
                date_end=item.date_end,
                status=item.status or SlotStatus.PLANNED,
                color_code=item.color_code or (slug.upper() if slug else None),
                note=item.note,
                locked=bool(item.locked),
            )
        )
    session.add_all(created)
    session.flush()
    return created


class SlotMutator:
    """Mutations on individual plan slots outside the auto-assign path."""

    def __init__(
        self,
        session: Session,
        notifier: Optional[Notifier] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.session = session
        self.notifier = notifier or NullNotifier()
        self.clock = clock

    def bulk_assign(self, plan_id: str, slots: Iterable[SlotInput | Dict[str, Any]]) -> List[Slot]:
        """Create explicit slots, bypassing greedy selection."""
        inputs = [SlotInput.coerce(item) for item in slots]
        if not inputs or len(inputs) > MAX_BULK_SLOTS:
            raise BadRequest(f"Between 1 and {MAX_BULK_SLOTS} slots are required", field="slots")

        with transaction(self.session):
            plan = ensure_plan(self.session, plan_id)
            assert_plan_mutable(plan)
            created = create_slots(self.session, plan, inputs)

        logger.info("Bulk-assigned %d slot(s) to plan %s", len(created), plan_id)
        self._notify([slot.user_id for slot in created], NotificationType.ASSIGNMENT_CREATED, {"planId": plan_id})
        return created

    def bulk_move(
        self,
        plan_id: str,
        slot_ids: Sequence[str],
        new_date_start: Optional[datetime] = None,
        new_date_end: Optional[datetime] = None,
        new_org_id: Optional[str] = None,
        new_user_id: Optional[str] = None,
    ) -> List[Slot]:
        """
        Re-date, re-org or re-assign a set of slots as one batch.

        Any locked slot aborts the whole batch before anything is written.
        """
        slot_ids = list(dict.fromkeys(slot_ids))
        if not slot_ids or len(slot_ids) > MAX_BULK_SLOTS:
            raise BadRequest(f"Between 1 and {MAX_BULK_SLOTS} slot ids are required", field="slotIds")
        if not any(value is not None for value in (new_date_start, new_date_end, new_org_id, new_user_id)):
            raise BadRequest("At least one update field is required", field="slotIds")
        if new_date_start is not None:
            new_date_start = _coerce_datetime(new_date_start, "dateStart")
        if new_date_end is not None:
            new_date_end = _coerce_datetime(new_date_end, "dateEnd")
        if new_date_start is not None and new_date_end is not None:
            _check_range(new_date_start, new_date_end)

        with transaction(self.session):
            plan = ensure_plan(self.session, plan_id)
            assert_plan_mutable(plan)

            slots = SlotRepository.get_many_in_plan(self.session, plan_id, slot_ids)
            if len(slots) != len(slot_ids):
                found = {slot.id for slot in slots}
                raise NotFound(
                    "Some slots were not found in this plan",
                    slot_ids=[item for item in slot_ids if item not in found],
                )
            if new_org_id is not None and OrgRepository.get_by_id(self.session, new_org_id) is None:
                raise NotFound("Organization not found", org_id=new_org_id)

            for slot in slots:
                if slot.locked:
                    raise _locked(slot)
                _check_range(
                    new_date_start or slot.date_start,
                    new_date_end or slot.date_end,
                    slot_id=slot.id,
                )

            previous_users = [slot.user_id for slot in slots]
            for slot in slots:
                slot.date_start = new_date_start or slot.date_start
                slot.date_end = new_date_end or slot.date_end
                slot.org_id = new_org_id or slot.org_id
                slot.user_id = new_user_id or slot.user_id

        logger.info("Moved %d slot(s) in plan %s", len(slots), plan_id)
        self._notify(
            previous_users + [slot.user_id for slot in slots],
            NotificationType.ASSIGNMENT_UPDATED,
            {"planId": plan_id},
        )
        return slots

    def update_slot(
        self,
        plan_id: str,
        slot_id: str,
        user_id: str = UNSET,
        org_id: str = UNSET,
        date_start: datetime = UNSET,
        date_end: datetime = UNSET,
        status: SlotStatus = UNSET,
        color_code: Optional[str] = UNSET,
        note: Optional[str] = UNSET,
        locked: bool = UNSET,
    ) -> Slot:
        """
        Apply a partial update to one slot.

        Raises:
            Forbidden: Date, org or worker change on a locked slot
            BadRequest: Resulting dateEnd before dateStart, or archived plan
            NotFound: Unknown plan or slot
        """
        if date_start is not UNSET:
            date_start = _coerce_datetime(date_start, "dateStart")
        if date_end is not UNSET:
            date_end = _coerce_datetime(date_end, "dateEnd")
        if status is not UNSET:
            status = _coerce_status(status)

        with transaction(self.session):
            plan = ensure_plan(self.session, plan_id)
            assert_plan_mutable(plan)

            slot = SlotRepository.get_in_plan(self.session, plan_id, slot_id)
            if slot is None:
                raise NotFound("Slot not found", plan_id=plan_id, slot_id=slot_id)

            touches_locked = any(value is not UNSET for value in (user_id, org_id, date_start, date_end))
            if slot.locked and touches_locked:
                raise _locked(slot)

            next_start = slot.date_start if date_start is UNSET else date_start
            next_end = slot.date_end if date_end is UNSET else date_end
            _check_range(next_start, next_end, slot_id=slot.id)

            if org_id is not UNSET and OrgRepository.get_by_id(self.session, org_id) is None:
                raise NotFound("Organization not found", org_id=org_id)

            previous_user = slot.user_id
            slot.date_start = next_start
            slot.date_end = next_end
            if user_id is not UNSET:
                slot.user_id = user_id
            if org_id is not UNSET:
                slot.org_id = org_id
            if status is not UNSET:
                slot.status = status
            if color_code is not UNSET:
                slot.color_code = color_code
            if note is not UNSET:
                slot.note = note
            if locked is not UNSET:
                slot.locked = bool(locked)

        self._notify(
            [previous_user, slot.user_id],
            NotificationType.ASSIGNMENT_UPDATED,
            {"planId": plan_id, "slotId": slot_id},
        )
        return slot

    def delete_slot(self, plan_id: str, slot_id: str) -> str:
        with transaction(self.session):
            plan = ensure_plan(self.session, plan_id)
            assert_plan_mutable(plan)

            slot = SlotRepository.get_in_plan(self.session, plan_id, slot_id)
            if slot is None:
                raise NotFound("Slot not found", plan_id=plan_id, slot_id=slot_id)
            if slot.locked:
                raise _locked(slot)

            user_id = slot.user_id
            self.session.delete(slot)

        self._notify(
            [user_id],
            NotificationType.ASSIGNMENT_UPDATED,
            {"planId": plan_id, "slotId": slot_id, "removed": True},
        )
        return slot_id

    # ------------------------------------------------------- worker-side flow

    def schedule_for_worker(self, user_id: str, now: Optional[datetime] = None) -> List[Slot]:
        return SlotRepository.upcoming_for_user(self.session, user_id, now or self.clock())

    def confirm_slot(self, user_id: str, slot_id: str) -> Slot:
        with transaction(self.session):
            slot = SlotRepository.get_for_user(self.session, user_id, slot_id)
            if slot is None:
                raise NotFound("Slot not found", slot_id=slot_id)
            if slot.status == SlotStatus.CANCELLED:
                raise BadRequest("Cancelled slot cannot be confirmed", slot_id=slot_id)
            slot.status = SlotStatus.CONFIRMED

        self._notify(
            [user_id],
            NotificationType.ASSIGNMENT_UPDATED,
            {"planId": slot.plan_id, "slotId": slot_id, "status": SlotStatus.CONFIRMED.value},
        )
        return slot

    def request_swap(self, user_id: str, slot_id: str, comment: str) -> Slot:
        comment = (comment or "").strip()
        if not comment or len(comment) > 500:
            raise BadRequest("Comment must be 1-500 characters", field="comment")

        with transaction(self.session):
            slot = SlotRepository.get_for_user(self.session, user_id, slot_id)
            if slot is None:
                raise NotFound("Slot not found", slot_id=slot_id)
            line = f"[swap] {self.clock().isoformat()} {comment}"
            slot.note = f"{slot.note}\n{line}" if slot.note else line
            slot.status = SlotStatus.REPLACED

        approvers = UserRepository.get_by_roles(self.session, [UserRole.SUPER_ADMIN, UserRole.MANAGER])
        self._notify(
            [approver.id for approver in approvers],
            NotificationType.ASSIGNMENT_UPDATED,
            {
                "planId": slot.plan_id,
                "slotId": slot_id,
                "orgId": slot.org_id,
                "comment": comment,
                "requestedBy": user_id,
            },
        )
        return slot

    def _notify(self, user_ids: Iterable[str], event: NotificationType, payload: Dict[str, Any]) -> None:
        self.notifier.notify_many(user_ids, event, payload)
