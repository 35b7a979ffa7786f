"""Pytest configuration and fixtures for ChoreKeeper tests."""

from datetime import datetime

import pytest

from chorekeeper.app import create_app, get_engine
from chorekeeper.engine import build_engine
from chorekeeper.models import db, Family, User
from chorekeeper.repositories.memory import (
    InMemoryChoreRepository,
    RecordingPointLedger,
    StaticFamilyPolicy,
    StaticRoleDirectory,
)

FAMILY_ID = 1
PARENT_ID = 10
KID_ID = 20
OTHER_KID_ID = 21
OUTSIDER_ID = 99

# Monday
NOW = datetime(2024, 1, 1, 9, 0)


class FakeClock:
    """Settable clock passed to the engine components."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


# =============================================================================
# In-memory engine
# =============================================================================

@pytest.fixture
def clock():
    return FakeClock(NOW)


@pytest.fixture
def repository():
    return InMemoryChoreRepository()


@pytest.fixture
def ledger():
    return RecordingPointLedger()


@pytest.fixture
def roles():
    return StaticRoleDirectory({
        FAMILY_ID: {PARENT_ID: 'parent', KID_ID: 'kid', OTHER_KID_ID: 'kid'},
    })


@pytest.fixture
def policy():
    return StaticFamilyPolicy(requires_verification=False)


@pytest.fixture
def engine(repository, ledger, roles, policy, clock):
    return build_engine(repository, ledger, roles, policy, clock=clock)


@pytest.fixture
def service(engine):
    return engine.service


@pytest.fixture
def pending_chore(service):
    """A one-time chore assigned to the kid, due tomorrow."""
    return service.create_one_time_chore(
        'Take out trash',
        10,
        datetime(2024, 1, 2, 18, 0),
        description='Roll bins to curb',
        assigned_to_user_id=KID_ID,
        created_by_user_id=PARENT_ID,
        family_id=FAMILY_ID,
    )


# =============================================================================
# Flask app with SQL collaborators
# =============================================================================

@pytest.fixture(scope='function')
def app():
    """Create application instance for testing."""
    app = create_app('testing')

    yield app

    # Clean up
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create database session for tests."""
    with app.app_context():
        yield db.session


@pytest.fixture
def sql_engine(app, db_session):
    """The app's engine, used inside the app context."""
    return get_engine(app)


@pytest.fixture
def family(db_session):
    """Create a family that does not require verification."""
    family = Family(name='Test Family', requires_verification=False)
    db_session.add(family)
    db_session.commit()
    return family


@pytest.fixture
def parent_user(db_session, family):
    """Create a parent user for testing."""
    user = User(
        username='Test Parent',
        role='parent',
        family_id=family.id,
        points=0
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def kid_user(db_session, family):
    """Create a kid user for testing."""
    user = User(
        username='Test Kid',
        role='kid',
        family_id=family.id,
        points=50
    )
    db_session.add(user)
    db_session.commit()
    return user
