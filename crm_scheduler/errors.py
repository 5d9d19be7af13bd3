"""Error taxonomy raised by the scheduling core.

All errors are raised from the validation step, before any write reaches the
database. Callers tell them apart by ``kind``:

- NotFound: a referenced worker/workplace/plan/slot/assignment does not exist
- BadRequest: structurally invalid input or an ineligible worker
- Conflict: the double-booking ceiling would be exceeded
- Forbidden: mutation of a locked slot
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class carrying a machine-readable kind, code and details."""

    kind = "ERROR"
    default_code = "SCHEDULING_ERROR"

    def __init__(self, message: str, code: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


class NotFound(SchedulingError):
    kind = "NOT_FOUND"
    default_code = "NOT_FOUND"


class BadRequest(SchedulingError):
    kind = "BAD_REQUEST"
    default_code = "BAD_REQUEST"


class Conflict(SchedulingError):
    kind = "CONFLICT"
    default_code = "CONFLICT"


class Forbidden(SchedulingError):
    kind = "FORBIDDEN"
    default_code = "FORBIDDEN"
