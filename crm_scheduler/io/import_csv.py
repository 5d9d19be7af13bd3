"""CSV import utilities to seed orgs, workplaces and workers."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd
from sqlalchemy.orm import Session

from crm_scheduler.domain.db import transaction
from crm_scheduler.domain.models import Org, User, UserRole, Workplace
from crm_scheduler.domain.repositories import OrgRepository, UserRepository
from crm_scheduler.errors import BadRequest

logger = logging.getLogger(__name__)

TRUE_VALUES = {"TRUE", "T", "1", "YES", "Y"}


def _read(csv_path: str | Path, required: tuple) -> pd.DataFrame:
    df = pd.read_csv(csv_path, dtype=str)

    # Normalize column names
    df.columns = df.columns.str.lower().str.strip()

    missing = [column for column in required if column not in df.columns]
    if missing:
        raise BadRequest(f"{csv_path}: missing column(s) {missing}", field="columns")
    return df


def _text(row: pd.Series, column: str) -> str | None:
    value = row.get(column)
    if value is None or pd.isna(value):
        return None
    value = str(value).strip()
    return value or None


def _org_for(session: Session, slug: str | None, csv_path) -> Org:
    org = OrgRepository.get_by_slug(session, slug) if slug else None
    if org is None:
        raise BadRequest(f"{csv_path}: unknown org slug {slug!r}", field="org_slug")
    return org


def import_orgs_csv(session: Session, csv_path: str | Path) -> int:
    """
    Import organizations (columns: name, slug). Existing slugs are skipped.

    Returns:
        Number of orgs created
    """
    df = _read(csv_path, ("name", "slug"))
    df["slug"] = df["slug"].str.strip().str.lower()
    df = df.drop_duplicates(subset=["slug"], keep="last")

    created = 0
    with transaction(session):
        for _, row in df.iterrows():
            slug = _text(row, "slug")
            if not slug or OrgRepository.get_by_slug(session, slug) is not None:
                continue
            session.add(Org(name=_text(row, "name") or slug, slug=slug))
            created += 1

    logger.info("Imported %d org(s) from %s", created, csv_path)
    return created


def import_workplaces_csv(session: Session, csv_path: str | Path) -> int:
    """
    Import workplaces.

    Columns: org_slug, code, name, and optionally location, color, is_active.

    Returns:
        Number of workplaces created
    """
    df = _read(csv_path, ("org_slug", "code", "name"))

    workplaces = []
    with transaction(session):
        for _, row in df.iterrows():
            org = _org_for(session, _text(row, "org_slug"), csv_path)
            active = _text(row, "is_active")
            workplaces.append(
                Workplace(
                    org_id=org.id,
                    code=_text(row, "code"),
                    name=_text(row, "name"),
                    location=_text(row, "location"),
                    color=_text(row, "color"),
                    is_active=active is None or active.upper() in TRUE_VALUES,
                )
            )
        session.add_all(workplaces)

    logger.info("Imported %d workplace(s) from %s", len(workplaces), csv_path)
    return len(workplaces)


def import_workers_csv(session: Session, csv_path: str | Path) -> int:
    """
    Import workers.

    Columns: email, and optionally full_name, position, role, org_slug.
    Emails already present are skipped; role defaults to USER.

    Returns:
        Number of workers created
    """
    df = _read(csv_path, ("email",))
    df["email"] = df["email"].str.strip().str.lower()
    df = df.drop_duplicates(subset=["email"], keep="last")
    if "role" in df.columns:
        df["role"] = df["role"].str.upper()

    created = 0
    with transaction(session):
        for _, row in df.iterrows():
            email = _text(row, "email")
            if not email or UserRepository.get_by_email(session, email) is not None:
                continue

            role_name = _text(row, "role") or UserRole.USER.value
            try:
                role = UserRole(role_name)
            except ValueError:
                raise BadRequest(f"{csv_path}: unknown role {role_name!r}", field="role") from None

            slug = _text(row, "org_slug")
            session.add(
                User(
                    email=email,
                    full_name=_text(row, "full_name"),
                    position=_text(row, "position"),
                    role=role,
                    org_id=_org_for(session, slug, csv_path).id if slug else None,
                )
            )
            created += 1

    logger.info("Imported %d worker(s) from %s", created, csv_path)
    return created
