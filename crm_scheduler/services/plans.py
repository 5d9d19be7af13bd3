"""Plan lifecycle and constraint management."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from crm_scheduler.domain.db import transaction
from crm_scheduler.domain.models import Constraint, ConstraintType, Plan, PlanStatus, Slot
from crm_scheduler.domain.payloads import parse_payload, payload_to_json
from crm_scheduler.domain.repositories import ConstraintRepository, PlanRepository, SlotRepository
from crm_scheduler.errors import BadRequest, NotFound

from .assignments import paginate

logger = logging.getLogger(__name__)


def ensure_plan(session: Session, plan_id: str) -> Plan:
    plan = PlanRepository.get_by_id(session, plan_id)
    if plan is None:
        raise NotFound("Plan not found", plan_id=plan_id)
    return plan


def assert_plan_mutable(plan: Plan) -> None:
    """Only DRAFT and PUBLISHED plans accept slot changes."""
    if plan.status == PlanStatus.ARCHIVED:
        raise BadRequest("Archived plan cannot be modified", code="PLAN_ARCHIVED", plan_id=plan.id)


class PlanService:
    """Create, publish, archive and delete plans; manage constraints."""

    def __init__(self, session: Session):
        self.session = session

    def create_plan(self, name: str, starts_at: datetime, ends_at: datetime) -> Plan:
        if not name or not name.strip():
            raise BadRequest("Plan name is required", field="name")
        if starts_at > ends_at:
            raise BadRequest("startsAt must be before endsAt", field="endsAt")
        with transaction(self.session):
            plan = Plan(name=name.strip(), starts_at=starts_at, ends_at=ends_at)
            self.session.add(plan)
        logger.info("Created plan %s (%s)", plan.id, plan.name)
        return plan

    def list_plans(
        self,
        status: Optional[PlanStatus] = None,
        range_from: Optional[datetime] = None,
        range_to: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Dict[str, Any]:
        query = PlanRepository.filtered(self.session, status, range_from, range_to)
        return paginate(query, page, page_size, [Plan.starts_at.asc(), Plan.id])

    def get_plan(self, plan_id: str, page: int = 1, page_size: int = 50) -> Dict[str, Any]:
        plan = ensure_plan(self.session, plan_id)
        slots = paginate(
            SlotRepository.by_plan(self.session, plan_id),
            page,
            page_size,
            [Slot.date_start.asc(), Slot.id],
        )
        return {"plan": plan, "slots": slots}

    def publish_plan(self, plan_id: str) -> Plan:
        plan = ensure_plan(self.session, plan_id)
        if plan.status == PlanStatus.PUBLISHED:
            return plan
        if plan.status == PlanStatus.ARCHIVED:
            raise BadRequest("Archived plan cannot be published", code="PLAN_ARCHIVED", plan_id=plan_id)
        with transaction(self.session):
            plan.status = PlanStatus.PUBLISHED
        return plan

    def archive_plan(self, plan_id: str) -> Plan:
        plan = ensure_plan(self.session, plan_id)
        if plan.status == PlanStatus.ARCHIVED:
            return plan
        with transaction(self.session):
            plan.status = PlanStatus.ARCHIVED
        return plan

    def delete_plan(self, plan_id: str) -> str:
        plan = ensure_plan(self.session, plan_id)
        if plan.status != PlanStatus.DRAFT:
            raise BadRequest("Only draft plans can be deleted", plan_id=plan_id)
        with transaction(self.session):
            removed = SlotRepository.delete_by_plan(self.session, plan_id)
            # Bulk delete bypasses the identity map
            self.session.expire(plan, ["slots"])
            self.session.delete(plan)
        logger.info("Deleted plan %s with %d slot(s)", plan_id, removed)
        return plan_id

    # ------------------------------------------------------------ constraints

    def list_constraints(self) -> List[Constraint]:
        return ConstraintRepository.get_all(self.session)

    def upsert_constraint(
        self,
        constraint_type: ConstraintType | str,
        payload: Any,
        user_id: Optional[str] = None,
        org_id: Optional[str] = None,
        constraint_id: Optional[str] = None,
    ) -> Constraint:
        """
        Create or replace a constraint. The payload is validated and stored in
        its canonical form.

        Raises:
            BadRequest: Malformed payload or unknown type
            NotFound: ``constraint_id`` given but no such constraint
        """
        parsed = parse_payload(constraint_type, payload)
        canonical = payload_to_json(parsed)

        with transaction(self.session):
            if constraint_id:
                constraint = ConstraintRepository.get_by_id(self.session, constraint_id)
                if constraint is None:
                    raise NotFound("Constraint not found", constraint_id=constraint_id)
            else:
                constraint = Constraint()
                self.session.add(constraint)
            constraint.type = parsed.type
            constraint.payload = canonical
            constraint.user_id = user_id
            constraint.org_id = org_id

        return constraint
