"""Tests for the plan lifecycle and constraint management."""

from datetime import datetime

import pytest

from crm_scheduler.domain.models import ConstraintType, PlanStatus, Slot
from crm_scheduler.errors import BadRequest, NotFound
from crm_scheduler.services.plans import PlanService
from crm_scheduler.services.slots import SlotInput, SlotMutator


@pytest.fixture
def plans(db_session, world):
    return PlanService(db_session)


def test_create_and_list_plans(plans):
    feb = plans.create_plan("  February ", datetime(2024, 2, 1), datetime(2024, 2, 29))
    assert feb.name == "February"
    assert feb.status == PlanStatus.DRAFT

    listing = plans.list_plans()
    assert [plan.name for plan in listing["data"]] == ["January", "February"]
    assert plans.list_plans(range_from=datetime(2024, 2, 10))["meta"]["total"] == 1
    assert plans.list_plans(status=PlanStatus.PUBLISHED)["meta"]["total"] == 0


def test_create_plan_validation(plans):
    with pytest.raises(BadRequest):
        plans.create_plan(" ", datetime(2024, 2, 1), datetime(2024, 2, 2))
    with pytest.raises(BadRequest):
        plans.create_plan("Bad", datetime(2024, 2, 2), datetime(2024, 2, 1))


def test_get_plan_with_slots(plans, db_session):
    SlotMutator(db_session).bulk_assign(
        "plan-1",
        [SlotInput("u1", "org-acme", datetime(2024, 1, day), datetime(2024, 1, day + 1)) for day in (9, 2, 5)],
    )
    result = plans.get_plan("plan-1", page=1, page_size=2)
    assert result["plan"].id == "plan-1"
    assert result["slots"]["meta"]["total"] == 3
    assert [slot.date_start.day for slot in result["slots"]["data"]] == [2, 5]

    with pytest.raises(NotFound):
        plans.get_plan("missing")


def test_status_transitions(plans):
    assert plans.publish_plan("plan-1").status == PlanStatus.PUBLISHED
    assert plans.publish_plan("plan-1").status == PlanStatus.PUBLISHED
    assert plans.archive_plan("plan-1").status == PlanStatus.ARCHIVED
    with pytest.raises(BadRequest):
        plans.publish_plan("plan-1")


def test_delete_only_draft_plans(plans, db_session):
    SlotMutator(db_session).bulk_assign(
        "plan-1", [SlotInput("u1", "org-acme", datetime(2024, 1, 2), datetime(2024, 1, 3))]
    )
    assert plans.delete_plan("plan-1") == "plan-1"
    assert db_session.query(Slot).count() == 0

    published = plans.create_plan("March", datetime(2024, 3, 1), datetime(2024, 3, 31))
    plans.publish_plan(published.id)
    with pytest.raises(BadRequest):
        plans.delete_plan(published.id)


def test_upsert_constraint_stores_canonical_payload(plans):
    created = plans.upsert_constraint("ORG_BLACKLIST", ["org-globex", "org-globex"], user_id="u1")
    assert created.type == ConstraintType.ORG_BLACKLIST
    assert created.payload == {"orgIds": ["org-globex"]}

    replaced = plans.upsert_constraint(
        ConstraintType.MAX_SLOTS_PER_WEEK, {"limit": 3}, org_id="org-acme", constraint_id=created.id
    )
    assert replaced.id == created.id
    assert replaced.payload == {"limit": 3}
    assert replaced.user_id is None
    assert [item.id for item in plans.list_constraints()] == [created.id]


def test_upsert_constraint_errors(plans):
    with pytest.raises(BadRequest) as exc:
        plans.upsert_constraint("MAX_SLOTS_PER_WEEK", {"limit": 0})
    assert exc.value.code == "INVALID_CONSTRAINT_PAYLOAD"
    with pytest.raises(NotFound):
        plans.upsert_constraint("MAX_SLOTS_PER_WEEK", {"limit": 1}, constraint_id="missing")
    assert plans.list_constraints() == []
