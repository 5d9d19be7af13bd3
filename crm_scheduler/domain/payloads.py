"""Typed constraint payloads and their parser.

Constraint payloads are persisted as JSON. Each constraint type has exactly
one canonical shape; ``parse_payload`` validates raw input at write time and
``payload_to_json`` renders the canonical form that is stored.

Canonical shapes:
    ORG_BLACKLIST       {"orgIds": ["org-1", ...]}
    AVAILABILITY        {"unavailable": [{"from": iso, "to": iso}, ...]}
    MAX_SLOTS_PER_WEEK  {"limit": 3}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Tuple, Union

from crm_scheduler.errors import BadRequest
from crm_scheduler.timerange import parse_datetime

from .models import ConstraintType

logger = logging.getLogger(__name__)

INVALID_PAYLOAD = "INVALID_CONSTRAINT_PAYLOAD"


@dataclass(frozen=True)
class OrgBlacklist:
    org_ids: Tuple[str, ...]

    type = ConstraintType.ORG_BLACKLIST


@dataclass(frozen=True)
class UnavailableRange:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class Availability:
    unavailable: Tuple[UnavailableRange, ...]

    type = ConstraintType.AVAILABILITY


@dataclass(frozen=True)
class MaxSlotsPerWeek:
    limit: int

    type = ConstraintType.MAX_SLOTS_PER_WEEK


ConstraintPayload = Union[OrgBlacklist, Availability, MaxSlotsPerWeek]


def _invalid(ctype: ConstraintType, message: str) -> BadRequest:
    return BadRequest(message, code=INVALID_PAYLOAD, type=ctype.value)


def _parse_blacklist(raw: Any) -> OrgBlacklist:
    ctype = ConstraintType.ORG_BLACKLIST
    if isinstance(raw, dict):
        if "orgIds" not in raw:
            raise _invalid(ctype, "ORG_BLACKLIST payload object must contain 'orgIds'")
        raw = raw["orgIds"]
    if not isinstance(raw, list):
        raise _invalid(ctype, "ORG_BLACKLIST payload must be a list of org ids or {'orgIds': [...]}")
    if not all(isinstance(item, str) and item for item in raw):
        raise _invalid(ctype, "ORG_BLACKLIST org ids must be non-empty strings")
    return OrgBlacklist(org_ids=tuple(dict.fromkeys(raw)))


def _parse_availability(raw: Any) -> Availability:
    ctype = ConstraintType.AVAILABILITY
    if not isinstance(raw, dict) or not isinstance(raw.get("unavailable"), list):
        raise _invalid(ctype, "AVAILABILITY payload must be {'unavailable': [{'from': ..., 'to': ...}]}")

    ranges: List[UnavailableRange] = []
    for index, item in enumerate(raw["unavailable"]):
        if not isinstance(item, dict):
            raise _invalid(ctype, f"AVAILABILITY entry {index} must be an object")
        if not item.get("from") or not item.get("to"):
            # A range without both bounds never blocks anyone
            logger.warning("Dropping AVAILABILITY entry %d without both bounds", index)
            continue
        try:
            start = parse_datetime(item["from"])
            end = parse_datetime(item["to"])
        except ValueError as exc:
            raise _invalid(ctype, f"AVAILABILITY entry {index} has an invalid date: {exc}") from exc
        if end < start:
            raise _invalid(ctype, f"AVAILABILITY entry {index} ends before it starts")
        ranges.append(UnavailableRange(start=start, end=end))
    return Availability(unavailable=tuple(ranges))


def _parse_max_slots(raw: Any) -> MaxSlotsPerWeek:
    ctype = ConstraintType.MAX_SLOTS_PER_WEEK
    limit = raw.get("limit") if isinstance(raw, dict) else None
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise _invalid(ctype, "MAX_SLOTS_PER_WEEK payload must be {'limit': <positive integer>}")
    return MaxSlotsPerWeek(limit=limit)


_PARSERS = {
    ConstraintType.ORG_BLACKLIST: _parse_blacklist,
    ConstraintType.AVAILABILITY: _parse_availability,
    ConstraintType.MAX_SLOTS_PER_WEEK: _parse_max_slots,
}


def parse_payload(ctype: ConstraintType | str, raw: Any) -> ConstraintPayload:
    """
    Validate a raw constraint payload and return its typed form.

    Raises:
        BadRequest: If the type is unknown or the payload is malformed
    """
    try:
        ctype = ConstraintType(ctype)
    except ValueError:
        raise BadRequest(f"Unknown constraint type: {ctype}", code=INVALID_PAYLOAD, type=str(ctype))
    return _PARSERS[ctype](raw)


def payload_to_json(payload: ConstraintPayload) -> dict:
    """Render the canonical JSON form stored in the database."""
    if isinstance(payload, OrgBlacklist):
        return {"orgIds": list(payload.org_ids)}
    if isinstance(payload, Availability):
        return {
            "unavailable": [
                {"from": item.start.isoformat(), "to": item.end.isoformat()}
                for item in payload.unavailable
            ]
        }
    return {"limit": payload.limit}
