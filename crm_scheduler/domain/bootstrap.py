"""Idempotent first-run setup: default organization and system administrator."""

from __future__ import annotations

import logging
from typing import Tuple

from sqlalchemy.orm import Session

from crm_scheduler.config import BootstrapConfig

from .db import transaction
from .models import Org, User, UserRole
from .repositories import OrgRepository, UserRepository

logger = logging.getLogger(__name__)


def bootstrap_defaults(session: Session, cfg: BootstrapConfig) -> Tuple[Org, User]:
    """
    Ensure the default org and admin account exist. Safe to call repeatedly.

    Must be invoked explicitly once at process start.
    """
    with transaction(session):
        org = OrgRepository.get_by_slug(session, cfg.org_slug)
        if org is None:
            org = Org(name=cfg.org_name, slug=cfg.org_slug)
            session.add(org)
            session.flush()
            logger.info("Created default org %s", cfg.org_slug)

        admin = UserRepository.get_by_email(session, cfg.admin_email)
        if admin is None:
            admin = User(
                email=cfg.admin_email,
                full_name=cfg.admin_full_name,
                position="Administrator",
                role=UserRole.SUPER_ADMIN,
                org_id=org.id,
                is_system=True,
            )
            session.add(admin)
            logger.info("Created system administrator %s", cfg.admin_email)

    return org, admin
