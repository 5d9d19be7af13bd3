"""Repository classes for data access.

Repositories only read and stage writes; the calling service owns the
transaction (see ``domain.db.transaction``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session, selectinload

from .models import (
    Assignment,
    AssignmentStatus,
    Constraint,
    Notification,
    Org,
    Plan,
    PlanStatus,
    Slot,
    User,
    UserRole,
    Workplace,
)


class OrgRepository:
    """Repository for organization data access."""

    @staticmethod
    def get_by_id(session: Session, org_id: str) -> Optional[Org]:
        return session.get(Org, org_id)

    @staticmethod
    def get_by_slug(session: Session, slug: str) -> Optional[Org]:
        return session.query(Org).filter(Org.slug == slug).first()

    @staticmethod
    def get_many(session: Session, org_ids: Iterable[str]) -> List[Org]:
        org_ids = list(set(org_ids))
        if not org_ids:
            return []
        return session.query(Org).filter(Org.id.in_(org_ids)).all()


class UserRepository:
    """Repository for worker data access."""

    @staticmethod
    def get_by_id(session: Session, user_id: str) -> Optional[User]:
        return session.get(User, user_id)

    @staticmethod
    def get_by_email(session: Session, email: str) -> Optional[User]:
        return session.query(User).filter(User.email == email).first()

    @staticmethod
    def get_candidates(session: Session) -> List[User]:
        """All schedulable users: not privileged, not system accounts."""
        return (
            session.query(User)
            .filter(User.role != UserRole.SUPER_ADMIN)
            .filter(User.is_system.is_(False))
            .order_by(User.id)
            .all()
        )

    @staticmethod
    def get_managers(session: Session, org_id: str) -> List[User]:
        return (
            session.query(User)
            .filter(User.org_id == org_id, User.role == UserRole.MANAGER)
            .all()
        )

    @staticmethod
    def get_by_roles(session: Session, roles: Iterable[UserRole]) -> List[User]:
        return session.query(User).filter(User.role.in_(list(roles))).all()


class WorkplaceRepository:
    """Repository for workplace data access."""

    @staticmethod
    def get_by_id(session: Session, workplace_id: str) -> Optional[Workplace]:
        return session.get(Workplace, workplace_id)

    @staticmethod
    def get_in_scope(
        session: Session,
        org_id: Optional[str] = None,
        include_ids: Iterable[str] = (),
    ) -> List[Workplace]:
        """Active workplaces (optionally of one org) plus any explicitly referenced ones."""
        scope = Workplace.is_active.is_(True)
        if org_id:
            scope = scope & (Workplace.org_id == org_id)
        include_ids = list(set(include_ids))
        if include_ids:
            scope = or_(scope, Workplace.id.in_(include_ids))
        return (
            session.query(Workplace)
            .options(selectinload(Workplace.org))
            .filter(scope)
            .order_by(Workplace.code, Workplace.name)
            .all()
        )


class AssignmentRepository:
    """Repository for assignment data access."""

    @staticmethod
    def get_by_id(session: Session, assignment_id: str) -> Optional[Assignment]:
        return session.get(Assignment, assignment_id)

    @staticmethod
    def get_many(session: Session, assignment_ids: Iterable[str]) -> List[Assignment]:
        return session.query(Assignment).filter(Assignment.id.in_(list(assignment_ids))).all()

    @staticmethod
    def overlapping_active(
        session: Session,
        user_id: str,
        starts_at: datetime,
        ends_at: Optional[datetime],
        exclude_id: Optional[str] = None,
    ) -> Query:
        """
        ACTIVE, non-deleted assignments of a worker overlapping [starts_at, ends_at].

        An open-ended stored assignment or proposed range is treated as unbounded.
        ``exclude_id`` leaves out the record being updated.
        """
        query = session.query(Assignment).filter(
            Assignment.user_id == user_id,
            Assignment.status == AssignmentStatus.ACTIVE,
            Assignment.deleted_at.is_(None),
            or_(Assignment.ends_at.is_(None), Assignment.ends_at >= starts_at),
        )
        if ends_at is not None:
            query = query.filter(Assignment.starts_at <= ends_at)
        if exclude_id is not None:
            query = query.filter(Assignment.id != exclude_id)
        return query

    @staticmethod
    def count_overlapping_active(
        session: Session,
        user_id: str,
        starts_at: datetime,
        ends_at: Optional[datetime],
        exclude_id: Optional[str] = None,
    ) -> int:
        return AssignmentRepository.overlapping_active(
            session, user_id, starts_at, ends_at, exclude_id=exclude_id
        ).count()

    @staticmethod
    def filtered(
        session: Session,
        user_id: Optional[str] = None,
        workplace_id: Optional[str] = None,
        status: Optional[AssignmentStatus] = None,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
        deleted: bool = False,
    ) -> Query:
        query = session.query(Assignment)
        if deleted:
            query = query.filter(Assignment.deleted_at.isnot(None))
        else:
            query = query.filter(Assignment.deleted_at.is_(None))
        if user_id:
            query = query.filter(Assignment.user_id == user_id)
        if workplace_id:
            query = query.filter(Assignment.workplace_id == workplace_id)
        if status:
            query = query.filter(Assignment.status == status)
        if starts_from:
            query = query.filter(Assignment.starts_at >= starts_from)
        if starts_to:
            query = query.filter(Assignment.starts_at <= starts_to)
        return query

    @staticmethod
    def for_matrix(
        session: Session,
        range_from: datetime,
        range_to: datetime,
        status: AssignmentStatus = AssignmentStatus.ACTIVE,
        user_id: Optional[str] = None,
        org_id: Optional[str] = None,
    ) -> List[Assignment]:
        """Non-deleted assignments overlapping the range, with workers, workplaces and shifts loaded."""
        query = (
            session.query(Assignment)
            .options(
                selectinload(Assignment.user),
                selectinload(Assignment.workplace).selectinload(Workplace.org),
                selectinload(Assignment.shifts),
            )
            .filter(
                Assignment.deleted_at.is_(None),
                Assignment.status == status,
                Assignment.starts_at <= range_to,
                or_(Assignment.ends_at.is_(None), Assignment.ends_at >= range_from),
            )
        )
        if user_id:
            query = query.filter(Assignment.user_id == user_id)
        if org_id:
            query = query.join(Workplace, Assignment.workplace_id == Workplace.id).filter(
                Workplace.org_id == org_id
            )
        return query.order_by(Assignment.starts_at).all()

    @staticmethod
    def current_for_user(session: Session, user_id: str, now: datetime) -> Optional[Assignment]:
        return (
            session.query(Assignment)
            .filter(
                Assignment.user_id == user_id,
                Assignment.status == AssignmentStatus.ACTIVE,
                Assignment.deleted_at.is_(None),
                Assignment.starts_at <= now,
                or_(Assignment.ends_at.is_(None), Assignment.ends_at > now),
            )
            .order_by(Assignment.starts_at.desc())
            .first()
        )

    @staticmethod
    def history_for_user(session: Session, user_id: str, take: int = 10) -> List[Assignment]:
        return (
            session.query(Assignment)
            .filter(Assignment.user_id == user_id)
            .order_by(Assignment.starts_at.desc())
            .limit(take)
            .all()
        )


class PlanRepository:
    """Repository for plan data access."""

    @staticmethod
    def get_by_id(session: Session, plan_id: str) -> Optional[Plan]:
        return session.get(Plan, plan_id)

    @staticmethod
    def filtered(
        session: Session,
        status: Optional[PlanStatus] = None,
        range_from: Optional[datetime] = None,
        range_to: Optional[datetime] = None,
    ) -> Query:
        query = session.query(Plan)
        if status:
            query = query.filter(Plan.status == status)
        if range_from:
            query = query.filter(Plan.ends_at >= range_from)
        if range_to:
            query = query.filter(Plan.starts_at <= range_to)
        return query


class SlotRepository:
    """Repository for plan slot data access."""

    @staticmethod
    def get_in_plan(session: Session, plan_id: str, slot_id: str) -> Optional[Slot]:
        return session.query(Slot).filter(Slot.id == slot_id, Slot.plan_id == plan_id).first()

    @staticmethod
    def get_many_in_plan(session: Session, plan_id: str, slot_ids: Iterable[str]) -> List[Slot]:
        return (
            session.query(Slot)
            .filter(Slot.plan_id == plan_id, Slot.id.in_(list(slot_ids)))
            .all()
        )

    @staticmethod
    def get_for_user(session: Session, user_id: str, slot_id: str) -> Optional[Slot]:
        return session.query(Slot).filter(Slot.id == slot_id, Slot.user_id == user_id).first()

    @staticmethod
    def overlapping_in_plan(
        session: Session,
        plan_id: str,
        date_start: datetime,
        date_end: datetime,
    ) -> List[Slot]:
        return (
            session.query(Slot)
            .filter(
                Slot.plan_id == plan_id,
                Slot.date_start <= date_end,
                Slot.date_end >= date_start,
            )
            .order_by(Slot.date_start, Slot.id)
            .all()
        )

    @staticmethod
    def by_plan(session: Session, plan_id: str) -> Query:
        return session.query(Slot).filter(Slot.plan_id == plan_id)

    @staticmethod
    def upcoming_for_user(session: Session, user_id: str, now: datetime) -> List[Slot]:
        return (
            session.query(Slot)
            .filter(Slot.user_id == user_id, Slot.date_end >= now)
            .order_by(Slot.date_start)
            .all()
        )

    @staticmethod
    def delete_by_plan(session: Session, plan_id: str) -> int:
        return (
            session.query(Slot)
            .filter(Slot.plan_id == plan_id)
            .delete(synchronize_session=False)
        )


class ConstraintRepository:
    """Repository for constraint data access."""

    @staticmethod
    def get_by_id(session: Session, constraint_id: str) -> Optional[Constraint]:
        return session.get(Constraint, constraint_id)

    @staticmethod
    def get_all(session: Session) -> List[Constraint]:
        return session.query(Constraint).order_by(Constraint.created_at.desc()).all()

    @staticmethod
    def get_for_run(session: Session, org_id: str, user_ids: Iterable[str]) -> List[Constraint]:
        """Global, org-wide (for org_id) and per-user (for any of user_ids) constraints."""
        user_ids = list(user_ids)
        clauses = [
            (Constraint.user_id.is_(None)) & (Constraint.org_id.is_(None)),
            (Constraint.user_id.is_(None)) & (Constraint.org_id == org_id),
        ]
        if user_ids:
            clauses.append(Constraint.user_id.in_(user_ids))
        return session.query(Constraint).filter(or_(*clauses)).order_by(Constraint.id).all()


class NotificationRepository:
    """Repository for notification data access."""

    @staticmethod
    def get_for_user(session: Session, user_id: str, take: int = 20) -> List[Notification]:
        return (
            session.query(Notification)
            .filter(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(take)
            .all()
        )
