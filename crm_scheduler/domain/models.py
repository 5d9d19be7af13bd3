"""SQLAlchemy models for the workforce scheduling system."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, relationship


def new_id() -> str:
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class UserRole(str, enum.Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class AssignmentStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    ARCHIVED = "ARCHIVED"


class ShiftKind(str, enum.Enum):
    DEFAULT = "DEFAULT"
    OFFICE = "OFFICE"
    REMOTE = "REMOTE"
    DAY_OFF = "DAY_OFF"


class PlanStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class SlotStatus(str, enum.Enum):
    PLANNED = "PLANNED"
    CONFIRMED = "CONFIRMED"
    REPLACED = "REPLACED"
    CANCELLED = "CANCELLED"


class ConstraintType(str, enum.Enum):
    ORG_BLACKLIST = "ORG_BLACKLIST"
    AVAILABILITY = "AVAILABILITY"
    MAX_SLOTS_PER_WEEK = "MAX_SLOTS_PER_WEEK"


class NotificationType(str, enum.Enum):
    ASSIGNMENT_CREATED = "ASSIGNMENT_CREATED"
    ASSIGNMENT_UPDATED = "ASSIGNMENT_UPDATED"
    ASSIGNMENT_MOVED = "ASSIGNMENT_MOVED"
    ASSIGNMENT_CANCELLED = "ASSIGNMENT_CANCELLED"


class Org(Base):
    """Organization owning workplaces and workers."""

    __tablename__ = "orgs"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    slug = Column(String(100), nullable=False, unique=True)  # short code, used for slot colour codes

    users = relationship("User", back_populates="org")
    workplaces = relationship("Workplace", back_populates="org")

    def __repr__(self) -> str:
        return f"<Org(id={self.id}, slug='{self.slug}')>"


class User(Base):
    """A worker (or administrator) that can be scheduled."""

    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=new_id)
    email = Column(String(200), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    position = Column(String(200), nullable=True)
    role = Column(Enum(UserRole), nullable=False, default=UserRole.USER)
    org_id = Column(String(32), ForeignKey("orgs.id"), nullable=True)
    is_system = Column(Boolean, nullable=False, default=False)

    org = relationship("Org", back_populates="users")
    assignments = relationship("Assignment", back_populates="user")
    slots = relationship("Slot", back_populates="user")

    @property
    def display_name(self) -> str:
        if self.full_name and self.full_name.strip():
            return self.full_name
        return self.email or self.id

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class Workplace(Base):
    """A physical or logical place of work belonging to one org."""

    __tablename__ = "workplaces"

    id = Column(String(32), primary_key=True, default=new_id)
    org_id = Column(String(32), ForeignKey("orgs.id"), nullable=False)
    code = Column(String(50), nullable=False)
    name = Column(String(200), nullable=False)
    location = Column(String(300), nullable=True)
    color = Column(String(16), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    org = relationship("Org", back_populates="workplaces")
    assignments = relationship("Assignment", back_populates="workplace")

    def __repr__(self) -> str:
        return f"<Workplace(id={self.id}, code='{self.code}')>"


class Assignment(Base):
    """Placement of a worker at a workplace over [starts_at, ends_at)."""

    __tablename__ = "assignments"

    id = Column(String(32), primary_key=True, default=new_id)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    workplace_id = Column(String(32), ForeignKey("workplaces.id"), nullable=False)
    status = Column(Enum(AssignmentStatus), nullable=False, default=AssignmentStatus.ACTIVE)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=True)  # None = open-ended
    deleted_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="assignments")
    workplace = relationship("Workplace", back_populates="assignments")
    shifts = relationship(
        "Shift",
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="Shift.starts_at",
    )

    def __repr__(self) -> str:
        return f"<Assignment(id={self.id}, user={self.user_id}, workplace={self.workplace_id}, status={self.status})>"


class Shift(Base):
    """Day-level interval nested under an assignment."""

    __tablename__ = "shifts"

    id = Column(String(32), primary_key=True, default=new_id)
    assignment_id = Column(String(32), ForeignKey("assignments.id"), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    kind = Column(Enum(ShiftKind), nullable=False, default=ShiftKind.DEFAULT)

    assignment = relationship("Assignment", back_populates="shifts")

    def __repr__(self) -> str:
        return f"<Shift(id={self.id}, {self.starts_at} - {self.ends_at}, kind={self.kind})>"


class Plan(Base):
    """Named scheduling campaign bounding a set of slots."""

    __tablename__ = "plans"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(200), nullable=False)
    starts_at = Column(DateTime, nullable=False)
    ends_at = Column(DateTime, nullable=False)
    status = Column(Enum(PlanStatus), nullable=False, default=PlanStatus.DRAFT)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    slots = relationship("Slot", back_populates="plan")

    def __repr__(self) -> str:
        return f"<Plan(id={self.id}, name='{self.name}', status={self.status})>"


class Slot(Base):
    """Plan-scoped scheduling record for one worker and one org."""

    __tablename__ = "slots"

    id = Column(String(32), primary_key=True, default=new_id)
    plan_id = Column(String(32), ForeignKey("plans.id"), nullable=False)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    org_id = Column(String(32), ForeignKey("orgs.id"), nullable=False)
    date_start = Column(DateTime, nullable=False)
    date_end = Column(DateTime, nullable=False)
    status = Column(Enum(SlotStatus), nullable=False, default=SlotStatus.PLANNED)
    locked = Column(Boolean, nullable=False, default=False)
    color_code = Column(String(16), nullable=True)
    note = Column(Text, nullable=True)

    plan = relationship("Plan", back_populates="slots")
    user = relationship("User", back_populates="slots")
    org = relationship("Org")

    def __repr__(self) -> str:
        return f"<Slot(id={self.id}, plan={self.plan_id}, user={self.user_id}, {self.date_start} - {self.date_end})>"


class Constraint(Base):
    """Scheduling rule scoped to (user | any) x (org | any)."""

    __tablename__ = "constraints"

    id = Column(String(32), primary_key=True, default=new_id)
    type = Column(Enum(ConstraintType), nullable=False)
    payload = Column(JSON, nullable=False)  # canonical form, see domain.payloads
    user_id = Column(String(32), ForeignKey("users.id"), nullable=True)
    org_id = Column(String(32), ForeignKey("orgs.id"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Constraint(id={self.id}, type={self.type}, user={self.user_id}, org={self.org_id})>"


class Notification(Base):
    """Persisted notification for one recipient."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(32), ForeignKey("users.id"), nullable=False)
    type = Column(Enum(NotificationType), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, user={self.user_id}, type={self.type})>"
