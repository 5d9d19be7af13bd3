"""Tests for the assignment lifecycle and the double-booking ceiling."""

from datetime import datetime

import pytest

from crm_scheduler.config import SchedulerConfig
from crm_scheduler.domain.models import Assignment, AssignmentStatus, NotificationType
from crm_scheduler.errors import BadRequest, Conflict, NotFound
from crm_scheduler.services.assignments import AssignmentService
from crm_scheduler.services.overlap import ensure_can_assign, ensure_no_overlap

JAN1 = datetime(2024, 1, 1)
JAN5 = datetime(2024, 1, 5)
JAN8 = datetime(2024, 1, 8)
JAN10 = datetime(2024, 1, 10)


@pytest.fixture
def service(db_session, world, notifier):
    return AssignmentService(db_session, notifier=notifier, clock=lambda: datetime(2024, 1, 3, 12))


def test_third_overlapping_assignment_is_rejected(service, db_session):
    """Two concurrent placements are allowed; the third overlapping one is a Conflict."""
    first = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    second = service.create_assignment("u1", "wp-10", JAN5, JAN8)
    assert first.id != second.id

    before = db_session.query(Assignment).count()
    with pytest.raises(Conflict) as exc:
        service.create_assignment("u1", "wp-idle", JAN5, JAN10)

    assert exc.value.code == "ASSIGNMENT_OVERLAP"
    assert exc.value.details["overlapping"] == 2
    assert db_session.query(Assignment).count() == before


def test_ceiling_scenario_with_nested_ranges(service):
    service.create_assignment("u3", "wp-2", JAN1, JAN10)
    service.create_assignment("u3", "wp-10", JAN5, datetime(2024, 1, 15))
    with pytest.raises(Conflict):
        service.create_assignment("u3", "wp-idle", JAN8, datetime(2024, 1, 20))


def test_touching_ranges_count_as_overlap(service, db_session):
    service.create_assignment("u1", "wp-2", JAN1, JAN5)
    assert ensure_no_overlap(db_session, "u1", JAN5, JAN8) == 1
    assert ensure_no_overlap(db_session, "u1", datetime(2024, 1, 6), JAN8) == 0


def test_open_ended_assignment_blocks_everything_after(service):
    service.create_assignment("u1", "wp-2", JAN1, None)
    service.create_assignment("u1", "wp-10", datetime(2025, 6, 1), datetime(2025, 6, 2))
    with pytest.raises(Conflict):
        service.create_assignment("u1", "wp-idle", datetime(2025, 6, 2), None)


def test_archived_and_deleted_assignments_do_not_count(service):
    kept = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    archived = service.create_assignment("u1", "wp-10", JAN1, JAN5)
    service.complete_assignment(archived.id)
    trashed = service.create_assignment("u1", "wp-10", JAN1, JAN5)
    service.soft_delete_assignment(trashed.id)

    # Only "kept" is live, so one more fits under the ceiling
    extra = service.create_assignment("u1", "wp-idle", JAN1, JAN5)
    assert extra.status == AssignmentStatus.ACTIVE
    assert kept.id != extra.id


def test_archived_status_skips_overlap_check(service):
    service.create_assignment("u1", "wp-2", JAN1, JAN5)
    service.create_assignment("u1", "wp-10", JAN1, JAN5)
    archived = service.create_assignment("u1", "wp-idle", JAN1, JAN5, status=AssignmentStatus.ARCHIVED)
    assert archived.status == AssignmentStatus.ARCHIVED


def test_update_excludes_itself_and_rechecks(service):
    first = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    second = service.create_assignment("u1", "wp-10", JAN1, JAN5)

    # Re-dating within its own window never conflicts with itself
    moved = service.update_assignment(first.id, ends_at=datetime(2024, 1, 4))
    assert moved.ends_at == datetime(2024, 1, 4)

    third = service.create_assignment("u1", "wp-idle", JAN8, JAN10)
    with pytest.raises(Conflict):
        service.update_assignment(third.id, starts_at=JAN1)
    assert service.get_assignment(third.id).starts_at == JAN8
    assert second.status == AssignmentStatus.ACTIVE


def test_shifts_define_assignment_range(service):
    assignment = service.create_assignment(
        "u2",
        "wp-2",
        shifts=[
            {"starts_at": "2024-01-03T09:00:00Z", "ends_at": "2024-01-03T17:00:00Z"},
            {"starts_at": "2024-01-02T09:00:00Z", "ends_at": "2024-01-02T13:00:00Z", "kind": "REMOTE"},
        ],
    )
    assert assignment.starts_at == datetime(2024, 1, 2, 9)
    assert assignment.ends_at == datetime(2024, 1, 3, 17)
    assert [shift.kind.value for shift in assignment.shifts] == ["REMOTE", "DEFAULT"]

    updated = service.update_assignment(
        assignment.id,
        shifts=[{"starts_at": "2024-01-09T09:00:00Z", "ends_at": "2024-01-09T18:00:00Z"}],
    )
    assert len(updated.shifts) == 1
    assert updated.starts_at == datetime(2024, 1, 9, 9)


def test_update_keeps_shifts_inside_range(service):
    assignment = service.create_assignment(
        "u2",
        "wp-2",
        shifts=[
            {"starts_at": "2024-01-02T09:00:00Z", "ends_at": "2024-01-02T17:00:00Z"},
            {"starts_at": "2024-01-03T09:00:00Z", "ends_at": "2024-01-03T17:00:00Z"},
        ],
    )

    # Shrinking the range would strand the kept shifts
    with pytest.raises(BadRequest) as exc:
        service.update_assignment(assignment.id, ends_at=datetime(2024, 1, 2, 12))
    assert exc.value.details["field"] == "shifts"
    with pytest.raises(BadRequest):
        service.update_assignment(assignment.id, starts_at=datetime(2024, 1, 3))

    # An explicit bound does not win over a new shift list that exceeds it
    with pytest.raises(BadRequest):
        service.update_assignment(
            assignment.id,
            ends_at=datetime(2024, 1, 5),
            shifts=[{"starts_at": "2024-01-04T09:00:00Z", "ends_at": "2024-01-06T09:00:00Z"}],
        )

    unchanged = service.get_assignment(assignment.id)
    assert (unchanged.starts_at, unchanged.ends_at) == (datetime(2024, 1, 2, 9), datetime(2024, 1, 3, 17))
    assert len(unchanged.shifts) == 2

    widened = service.update_assignment(assignment.id, ends_at=None)
    assert widened.ends_at is None


def test_invalid_ranges(service):
    with pytest.raises(BadRequest):
        service.create_assignment("u1", "wp-2", JAN5, JAN1)
    with pytest.raises(BadRequest):
        service.create_assignment("u1", "wp-2", JAN5, JAN5)
    with pytest.raises(BadRequest):
        service.create_assignment("u1", "wp-2")
    with pytest.raises(BadRequest):
        service.create_assignment(
            "u1", "wp-2", shifts=[{"starts_at": "2024-01-02T10:00:00", "ends_at": "2024-01-02T09:00:00"}]
        )


def test_ensure_can_assign_errors(db_session, world):
    with pytest.raises(NotFound):
        ensure_can_assign(db_session, "nobody", "wp-2")
    with pytest.raises(NotFound):
        ensure_can_assign(db_session, "u1", "wp-missing")
    with pytest.raises(BadRequest) as exc:
        ensure_can_assign(db_session, "u1", "wp-gx")
    assert exc.value.details["field"] == "workplaceId"
    with pytest.raises(BadRequest):
        ensure_can_assign(db_session, "z-manager", "wp-2")
    with pytest.raises(BadRequest):
        ensure_can_assign(db_session, "admin", "wp-2")

    user, workplace = ensure_can_assign(db_session, "u1", "wp-2")
    assert (user.id, workplace.id) == ("u1", "wp-2")


def test_soft_delete_and_restore_round_trip(service):
    assignment = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    service.soft_delete_assignment(assignment.id)

    assert service.list_assignments()["meta"]["total"] == 0
    trash = service.list_trash()
    assert [item.id for item in trash["data"]] == [assignment.id]

    restored = service.restore_assignment(assignment.id)
    assert restored.deleted_at is None
    assert restored.status == AssignmentStatus.ACTIVE
    assert service.list_trash()["meta"]["total"] == 0


def test_restore_rechecks_ceiling(service):
    trashed = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    service.soft_delete_assignment(trashed.id)
    service.create_assignment("u1", "wp-10", JAN1, JAN5)
    service.create_assignment("u1", "wp-idle", JAN1, JAN5)

    with pytest.raises(Conflict):
        service.restore_assignment(trashed.id)
    assert service.get_assignment(trashed.id).deleted_at is not None


def test_purge_from_trash(service, db_session):
    live = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    trashed = service.create_assignment("u2", "wp-2", JAN1, JAN5)
    service.soft_delete_assignment(trashed.id)

    with pytest.raises(BadRequest):
        service.purge_from_trash([trashed.id, live.id])
    with pytest.raises(NotFound):
        service.purge_from_trash(["missing"])

    assert service.purge_from_trash([trashed.id]) == [trashed.id]
    assert db_session.get(Assignment, trashed.id) is None
    assert db_session.get(Assignment, live.id) is not None


def test_list_filters_and_pagination(service):
    for day in (1, 3, 5):
        service.create_assignment("u2", "wp-idle", datetime(2024, 2, day), datetime(2024, 2, day, 18))
    service.create_assignment("u3", "wp-2", JAN1, JAN5)

    page = service.list_assignments(page=1, page_size=2, user_id="u2")
    assert page["meta"] == {"total": 3, "page": 1, "pageSize": 2}
    # Newest first
    assert [item.starts_at.day for item in page["data"]] == [5, 3]
    assert service.list_assignments(workplace_id="wp-2")["meta"]["total"] == 1


def test_current_workplace_and_history(service):
    past = service.create_assignment("u3", "wp-10", datetime(2023, 12, 1), datetime(2023, 12, 20))
    now = service.create_assignment("u3", "wp-2", JAN1, JAN5)

    assert service.current_workplace_for("u3").id == now.id
    assert service.current_workplace_for("u3", datetime(2023, 12, 10)).id == past.id
    assert service.current_workplace_for("u1") is None
    assert [item.id for item in service.history_for("u3", take=1)] == [now.id]


def test_notifications_reach_worker_and_org_managers(service, notifier):
    assignment = service.create_assignment("u1", "wp-2", JAN1, JAN5)
    recipients, event, payload = notifier.sent[-1]
    assert event == NotificationType.ASSIGNMENT_CREATED
    assert recipients == ["u1", "z-manager"]
    assert payload["workplaceCode"] == "WP-2"
    assert payload["orgSlug"] == "acme"

    service.update_assignment(assignment.id, ends_at=datetime(2024, 1, 6))
    assert notifier.events()[-1] == NotificationType.ASSIGNMENT_MOVED

    service.update_assignment(assignment.id, workplace_id="wp-10")
    assert notifier.events()[-1] == NotificationType.ASSIGNMENT_UPDATED

    service.update_assignment(assignment.id, user_id="u2")
    cancelled, created = notifier.sent[-2], notifier.sent[-1]
    assert cancelled[1] == NotificationType.ASSIGNMENT_CANCELLED and cancelled[0][0] == "u1"
    assert created[1] == NotificationType.ASSIGNMENT_CREATED and created[0][0] == "u2"

    service.complete_assignment(assignment.id)
    assert notifier.events()[-1] == NotificationType.ASSIGNMENT_CANCELLED


def test_failed_write_sends_nothing(service, notifier):
    service.create_assignment("u1", "wp-2", JAN1, JAN5)
    service.create_assignment("u1", "wp-10", JAN1, JAN5)
    sent = len(notifier.sent)
    with pytest.raises(Conflict):
        service.create_assignment("u1", "wp-idle", JAN1, JAN5)
    assert len(notifier.sent) == sent


def test_configurable_ceiling(db_session, world):
    strict = AssignmentService(db_session, cfg=SchedulerConfig(overlap_ceiling=1))
    strict.create_assignment("u1", "wp-2", JAN1, JAN5)
    with pytest.raises(Conflict):
        strict.create_assignment("u1", "wp-10", JAN5, JAN8)
