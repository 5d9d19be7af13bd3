"""Tests for the planner matrix projection."""

from datetime import datetime

import pytest

from crm_scheduler.domain.models import AssignmentStatus
from crm_scheduler.errors import BadRequest
from crm_scheduler.io.planner_matrix import BY_WORKERS, BY_WORKPLACES, PlannerMatrixBuilder, natural_key
from crm_scheduler.services.assignments import AssignmentService

RANGE_FROM = datetime(2024, 1, 1)
RANGE_TO = datetime(2024, 1, 31)


@pytest.fixture
def builder(db_session, world):
    service = AssignmentService(db_session)
    service.create_assignment("u2", "wp-10", datetime(2024, 1, 8), datetime(2024, 1, 12))
    service.create_assignment("u2", "wp-2", datetime(2024, 1, 2), datetime(2024, 1, 4))
    service.create_assignment("u1", "wp-2", datetime(2024, 1, 3), None)
    archived = service.create_assignment("u3", "wp-10", datetime(2024, 1, 5), datetime(2024, 1, 6))
    service.complete_assignment(archived.id)
    service.create_assignment("ux", "wp-gx", datetime(2024, 1, 5), datetime(2024, 1, 6))
    # Outside the range
    service.create_assignment("u3", "wp-2", datetime(2024, 3, 1), datetime(2024, 3, 2))
    return PlannerMatrixBuilder(db_session)


def test_natural_key_orders_numbers_numerically():
    titles = ["WP-10 - b", "wp-2 - a", "WP-3", "Alpha"]
    assert sorted(titles, key=natural_key) == ["Alpha", "wp-2 - a", "WP-3", "WP-10 - b"]


def test_natural_key_collates_text_with_locale(monkeypatch):
    # Stand-in collation that orders text runs back to front
    monkeypatch.setattr("crm_scheduler.io.planner_matrix.locale.strxfrm", lambda text: text[::-1])
    assert sorted(["ab 1", "ba 1"], key=natural_key) == ["ba 1", "ab 1"]


def test_by_workers_rows(builder):
    result = builder.build(BY_WORKERS, RANGE_FROM, RANGE_TO)
    assert result["total"] == 3
    assert [row["title"] for row in result["rows"]] == ["Ann Archer", "bob Baker", "Gil Gray"]

    bob = result["rows"][1]
    assert bob["key"] == "u2"
    assert bob["subtitle"] == "Operator"
    # Slots sorted by start
    assert [slot["workplace"]["code"] for slot in bob["slots"]] == ["WP-2", "WP-10"]
    assert bob["slots"][0]["org"] == {"id": "org-acme", "name": "Acme", "slug": "acme"}

    ann = result["rows"][0]
    assert ann["slots"][0]["to"] is None


def test_by_workplaces_includes_empty_rows(builder):
    result = builder.build(BY_WORKPLACES, RANGE_FROM, RANGE_TO, org_id="org-acme")
    titles = [row["title"] for row in result["rows"]]
    # Inactive WP-0 is out of scope; idle WP-3 appears with no slots
    assert titles == ["WP-2 - Front desk", "WP-3 - Archive room", "WP-10 - Warehouse"]
    assert result["rows"][1]["slots"] == []
    assert result["rows"][0]["subtitle"] == "Main hall"
    assert len(result["rows"][0]["slots"]) == 2


def test_status_filter(builder):
    result = builder.build(BY_WORKERS, RANGE_FROM, RANGE_TO, status=AssignmentStatus.ARCHIVED)
    assert [row["key"] for row in result["rows"]] == ["u3"]


def test_worker_filter(builder):
    result = builder.build(BY_WORKPLACES, RANGE_FROM, RANGE_TO, user_id="u1")
    rows = {row["key"]: row for row in result["rows"]}
    assert [slot["user"]["id"] for slot in rows["wp-2"]["slots"]] == ["u1"]
    assert rows["wp-gx"]["slots"] == []


def test_pagination_applies_to_rows(builder):
    first = builder.build(BY_WORKERS, RANGE_FROM, RANGE_TO, page=1, page_size=2)
    second = builder.build(BY_WORKERS, RANGE_FROM, RANGE_TO, page=2, page_size=2)
    assert first["total"] == second["total"] == 3
    assert [row["key"] for row in first["rows"] + second["rows"]] == ["u1", "u2", "ux"]


def test_invalid_input(builder):
    with pytest.raises(BadRequest):
        builder.build(BY_WORKERS, RANGE_TO, RANGE_FROM)
    with pytest.raises(BadRequest):
        builder.build("byTeams", RANGE_FROM, RANGE_TO)
    with pytest.raises(BadRequest):
        builder.build(BY_WORKERS, RANGE_FROM, RANGE_TO, page_size=500)
    with pytest.raises(BadRequest):
        builder.build(BY_WORKERS, RANGE_FROM, RANGE_TO, page=0)
