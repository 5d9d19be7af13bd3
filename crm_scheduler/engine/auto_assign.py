"""AutoAssigner - greedy, constraint-filtered team selection for a plan."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from crm_scheduler.config import SchedulerConfig
from crm_scheduler.domain.db import transaction
from crm_scheduler.domain.models import NotificationType, Org, Slot, SlotStatus, User
from crm_scheduler.domain.repositories import (
    ConstraintRepository,
    OrgRepository,
    SlotRepository,
    UserRepository,
)
from crm_scheduler.errors import BadRequest, NotFound
from crm_scheduler.services.constraints import RangeSlot, is_eligible, load_constraints
from crm_scheduler.services.notifier import Notifier, NullNotifier
from crm_scheduler.services.plans import assert_plan_mutable, ensure_plan
from crm_scheduler.services.slots import SlotInput, create_slots

logger = logging.getLogger(__name__)


@dataclass
class AutoAssignRequest:
    plan_id: str
    org_id: str
    date_start: datetime
    date_end: datetime
    team_size: int
    respect_constraints: bool = True


def rank_candidates(candidates: List[User], tally: Counter) -> List[User]:
    """Least-loaded first; ties broken by id so the order is reproducible."""
    return sorted(candidates, key=lambda user: (tally.get(user.id, 0), user.id))


class AutoAssigner:
    """
    Selects a team for one date range of a plan.

    Candidates are offered in fairness order (fewest slots already held in
    the range first) and filtered through the constraint engine. Each pick is
    added to the accumulated ranges so later candidates see it. There is no
    backtracking: the first ``team_size`` eligible candidates win, and a run
    that cannot fill the team commits nothing.
    """

    def __init__(
        self,
        session: Session,
        notifier: Optional[Notifier] = None,
        cfg: Optional[SchedulerConfig] = None,
    ):
        self.session = session
        self.notifier = notifier or NullNotifier()
        self.cfg = cfg or SchedulerConfig()

    def _validate(self, request: AutoAssignRequest) -> None:
        if request.team_size < 1 or request.team_size > self.cfg.max_team_size:
            raise BadRequest(
                f"teamSize must be between 1 and {self.cfg.max_team_size}",
                field="teamSize",
            )
        if request.date_end < request.date_start:
            raise BadRequest("dateEnd must not be before dateStart", field="dateEnd")

    def select_team(self, request: AutoAssignRequest, org: Org) -> List[SlotInput]:
        """
        Pick workers for the request without writing anything.

        Raises:
            BadRequest: If fewer than ``team_size`` eligible workers exist
        """
        existing = SlotRepository.overlapping_in_plan(
            self.session, request.plan_id, request.date_start, request.date_end
        )
        tally = Counter(slot.user_id for slot in existing)
        range_slots = [RangeSlot(slot.user_id, slot.date_start, slot.date_end) for slot in existing]

        candidates = UserRepository.get_candidates(self.session)
        constraints = []
        if request.respect_constraints:
            constraints = load_constraints(
                ConstraintRepository.get_for_run(
                    self.session, request.org_id, (user.id for user in candidates)
                )
            )

        color_code = org.slug.upper() if org.slug else None
        planned: List[SlotInput] = []

        for user in rank_candidates(candidates, tally):
            if len(planned) >= request.team_size:
                break
            if not is_eligible(
                user.id,
                request.org_id,
                request.date_start,
                request.date_end,
                constraints,
                range_slots,
                respect_constraints=request.respect_constraints,
            ):
                continue

            planned.append(
                SlotInput(
                    user_id=user.id,
                    org_id=request.org_id,
                    date_start=request.date_start,
                    date_end=request.date_end,
                    status=SlotStatus.PLANNED,
                    color_code=color_code,
                )
            )
            range_slots.append(RangeSlot(user.id, request.date_start, request.date_end))

        if len(planned) < request.team_size:
            logger.info(
                "Auto-assign for plan %s found %d of %d workers",
                request.plan_id,
                len(planned),
                request.team_size,
            )
            raise BadRequest(
                "Not enough available workers for auto assignment",
                code="NOT_ENOUGH_WORKERS",
                requested=request.team_size,
                available=len(planned),
            )

        return planned

    def auto_assign(
        self,
        plan_id: str,
        org_id: str,
        date_start: datetime,
        date_end: datetime,
        team_size: int,
        respect_constraints: bool = True,
    ) -> List[Slot]:
        """
        Select and persist a team of ``team_size`` workers in one transaction.

        Raises:
            NotFound: Unknown plan or org
            BadRequest: Archived plan, range outside the plan, invalid input,
                or not enough eligible workers
        """
        request = AutoAssignRequest(plan_id, org_id, date_start, date_end, team_size, respect_constraints)
        self._validate(request)

        with transaction(self.session):
            plan = ensure_plan(self.session, plan_id)
            assert_plan_mutable(plan)
            if date_start < plan.starts_at or date_end > plan.ends_at:
                raise BadRequest(
                    "Dates are outside of plan range",
                    code="OUTSIDE_PLAN_RANGE",
                    plan_id=plan_id,
                )

            org = OrgRepository.get_by_id(self.session, org_id)
            if org is None:
                raise NotFound("Organization not found", org_id=org_id)

            planned = self.select_team(request, org)
            created = create_slots(self.session, plan, planned)

        logger.info("Auto-assigned %d worker(s) to plan %s", len(created), plan_id)
        self.notifier.notify_many(
            [slot.user_id for slot in created],
            NotificationType.ASSIGNMENT_CREATED,
            {"planId": plan_id, "orgId": org_id},
        )
        return created
