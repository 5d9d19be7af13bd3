"""Planner matrix: assignments projected into rows by worker or by workplace."""

from __future__ import annotations

import locale
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from crm_scheduler.config import SchedulerConfig
from crm_scheduler.domain.models import Assignment, AssignmentStatus, ShiftKind, Workplace
from crm_scheduler.domain.repositories import AssignmentRepository, WorkplaceRepository
from crm_scheduler.errors import BadRequest

BY_WORKERS = "byWorkers"
BY_WORKPLACES = "byWorkplaces"
MODES = (BY_WORKERS, BY_WORKPLACES)

_DIGITS = re.compile(r"(\d+)")


def natural_key(text: str):
    """
    Case-insensitive sort key comparing digit runs numerically ("WP-2" < "WP-10").

    Text runs collate with ``locale.strxfrm``, so ordering follows the
    process LC_COLLATE (plain code-point order under the default C locale).
    """
    parts = _DIGITS.split((text or "").casefold())
    return [(0, int(part), "") if part.isdigit() else (1, 0, locale.strxfrm(part)) for part in parts if part]


@dataclass
class MatrixShift:
    starts_at: datetime
    ends_at: datetime
    kind: ShiftKind

    def to_dict(self) -> Dict[str, Any]:
        return {"from": self.starts_at.isoformat(), "to": self.ends_at.isoformat(), "kind": self.kind.value}


@dataclass
class MatrixSlot:
    id: str
    starts_at: datetime
    ends_at: Optional[datetime]
    status: AssignmentStatus
    user: Dict[str, Any]
    workplace: Dict[str, Any]
    org: Optional[Dict[str, Any]]
    shifts: List[MatrixShift] = field(default_factory=list)

    @classmethod
    def from_assignment(cls, assignment: Assignment) -> "MatrixSlot":
        user = assignment.user
        workplace = assignment.workplace
        org = workplace.org
        return cls(
            id=assignment.id,
            starts_at=assignment.starts_at,
            ends_at=assignment.ends_at,
            status=assignment.status,
            user={
                "id": user.id,
                "email": user.email,
                "fullName": user.full_name,
                "position": user.position,
            },
            workplace={
                "id": workplace.id,
                "code": workplace.code,
                "name": workplace.name,
                "location": workplace.location,
                "color": workplace.color,
            },
            org={"id": org.id, "name": org.name, "slug": org.slug} if org else None,
            shifts=[MatrixShift(s.starts_at, s.ends_at, s.kind) for s in assignment.shifts],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "from": self.starts_at.isoformat(),
            "to": self.ends_at.isoformat() if self.ends_at else None,
            "code": self.workplace["code"],
            "name": self.workplace["name"],
            "status": self.status.value,
            "user": self.user,
            "workplace": self.workplace,
            "org": self.org,
            "shifts": [shift.to_dict() for shift in self.shifts],
        }


@dataclass
class MatrixRow:
    key: str
    title: str
    subtitle: Optional[str]
    slots: List[MatrixSlot] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "title": self.title,
            "subtitle": self.subtitle,
            "slots": [slot.to_dict() for slot in self.slots],
        }


def workplace_title(workplace: Workplace) -> str:
    parts = [part.strip() for part in (workplace.code, workplace.name) if part and part.strip()]
    return " - ".join(parts) if parts else "Workplace"


class PlannerMatrixBuilder:
    """
    Read-only projection used by the interactive planner and the exporter.

    Rows are sorted by title (numeric-aware), slots inside a row by start
    time, and pagination applies to rows so a row is never split.
    """

    def __init__(self, session: Session, cfg: Optional[SchedulerConfig] = None):
        self.session = session
        self.cfg = cfg or SchedulerConfig()

    def collect_rows(
        self,
        mode: str,
        range_from: datetime,
        range_to: datetime,
        user_id: Optional[str] = None,
        org_id: Optional[str] = None,
        status: Optional[AssignmentStatus] = None,
    ) -> List[MatrixRow]:
        if mode not in MODES:
            raise BadRequest(f"Unknown planner mode: {mode}", field="mode")
        if range_from > range_to:
            raise BadRequest("from must not be after to", field="to")

        assignments = AssignmentRepository.for_matrix(
            self.session,
            range_from,
            range_to,
            status=status or AssignmentStatus.ACTIVE,
            user_id=user_id,
            org_id=org_id,
        )

        rows: Dict[str, MatrixRow] = {}
        if mode == BY_WORKPLACES:
            in_scope = WorkplaceRepository.get_in_scope(
                self.session,
                org_id=org_id,
                include_ids=(assignment.workplace_id for assignment in assignments),
            )
            for workplace in in_scope:
                subtitle = workplace.location.strip() if workplace.location else None
                rows[workplace.id] = MatrixRow(workplace.id, workplace_title(workplace), subtitle or None)
            for assignment in assignments:
                rows[assignment.workplace_id].slots.append(MatrixSlot.from_assignment(assignment))
        else:
            for assignment in assignments:
                row = rows.get(assignment.user_id)
                if row is None:
                    user = assignment.user
                    row = MatrixRow(user.id, user.display_name, user.position or None)
                    rows[user.id] = row
                row.slots.append(MatrixSlot.from_assignment(assignment))

        ordered = sorted(rows.values(), key=lambda row: (natural_key(row.title), row.key))
        for row in ordered:
            row.slots.sort(key=lambda slot: (slot.starts_at, slot.id))
        return ordered

    def build(
        self,
        mode: str,
        range_from: datetime,
        range_to: datetime,
        page: int = 1,
        page_size: Optional[int] = None,
        user_id: Optional[str] = None,
        org_id: Optional[str] = None,
        status: Optional[AssignmentStatus] = None,
    ) -> Dict[str, Any]:
        """
        Build one page of the planner matrix.

        Returns:
            Dict with mode, from, to, page, pageSize, total (row count) and rows
        """
        page_size = self.cfg.default_page_size if page_size is None else page_size
        max_page_size = self.cfg.max_page_size
        if page < 1 or page_size < 1 or page_size > max_page_size:
            raise BadRequest(f"page must be >= 1 and pageSize within 1..{max_page_size}", field="pageSize")

        rows = self.collect_rows(mode, range_from, range_to, user_id, org_id, status)
        start = (page - 1) * page_size
        return {
            "mode": mode,
            "from": range_from.isoformat(),
            "to": range_to.isoformat(),
            "page": page,
            "pageSize": page_size,
            "total": len(rows),
            "rows": [row.to_dict() for row in rows[start:start + page_size]],
        }
