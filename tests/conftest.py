"""Pytest configuration and shared fixtures."""

from datetime import datetime
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crm_scheduler.domain.models import Base, Org, Plan, User, UserRole, Workplace
from crm_scheduler.services.notifier import Notifier


def pytest_configure(config):
    """Configure pytest."""
    # Add custom markers
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


class RecordingNotifier(Notifier):
    """Keeps every delivered notification in memory."""

    def __init__(self):
        super().__init__()
        self.sent = []

    def deliver(self, recipients, event_type, payload):
        self.sent.append((list(recipients), event_type, payload))

    def events(self):
        return [event for _, event, _ in self.sent]


@pytest.fixture
def engine():
    """In-memory database shared by every session of one test."""
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine)


@pytest.fixture
def db_session(session_factory):
    """Create in-memory database session for testing."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def world(db_session):
    """Two orgs with workplaces, three workers, a manager, an admin and a draft plan."""
    acme = Org(id="org-acme", name="Acme", slug="acme")
    globex = Org(id="org-globex", name="Globex", slug="globex")

    workplaces = [
        Workplace(id="wp-10", org_id="org-acme", code="WP-10", name="Warehouse", location="Dock 3"),
        Workplace(id="wp-2", org_id="org-acme", code="WP-2", name="Front desk", location="Main hall"),
        Workplace(id="wp-idle", org_id="org-acme", code="WP-3", name="Archive room"),
        Workplace(id="wp-old", org_id="org-acme", code="WP-0", name="Closed site", is_active=False),
        Workplace(id="wp-gx", org_id="org-globex", code="GX-1", name="Lab"),
    ]

    users = [
        User(id="u1", email="ann@acme.test", full_name="Ann Archer", position="Operator", org_id="org-acme"),
        User(id="u2", email="bob@acme.test", full_name="bob Baker", position="Operator", org_id="org-acme"),
        User(id="u3", email="cid@acme.test", full_name="Cid Cole", position="Driver", org_id="org-acme"),
        User(id="ux", email="gil@globex.test", full_name="Gil Gray", org_id="org-globex"),
        User(id="z-manager", email="mia@acme.test", full_name="Mia Manager", role=UserRole.MANAGER, org_id="org-acme"),
        User(id="admin", email="root@acme.test", role=UserRole.SUPER_ADMIN, org_id="org-acme", is_system=True),
    ]

    plan = Plan(id="plan-1", name="January", starts_at=datetime(2024, 1, 1), ends_at=datetime(2024, 1, 31))

    db_session.add_all([acme, globex, *workplaces, *users, plan])
    db_session.commit()

    return SimpleNamespace(
        acme=acme,
        globex=globex,
        plan=plan,
        users={user.id: user for user in users},
        workplaces={workplace.id: workplace for workplace in workplaces},
    )
