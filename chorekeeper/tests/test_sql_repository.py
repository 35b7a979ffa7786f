"""Tests for the Flask-SQLAlchemy collaborators."""

from datetime import datetime, timedelta

import pytest

from chorekeeper import models
from chorekeeper.engine import build_engine
from chorekeeper.entities import Chore, ChoreStatus
from chorekeeper.errors import InvalidDataError, PointLedgerError
from chorekeeper.models import PointsHistory, User
from chorekeeper.repositories.sql import (
    SqlChoreRepository,
    SqlFamilyPolicy,
    SqlPointLedger,
    SqlRoleDirectory,
)

from conftest import NOW


@pytest.fixture
def repo(db_session):
    return SqlChoreRepository()


@pytest.fixture
def engine_sql(db_session, clock):
    """SQL collaborators with a fixed clock."""
    return build_engine(
        SqlChoreRepository(),
        SqlPointLedger(),
        SqlRoleDirectory(),
        SqlFamilyPolicy(default=False),
        clock=clock,
    )


def make_chore(**overrides):
    values = dict(title='Dishes', points=10, due_date=NOW)
    values.update(overrides)
    return Chore(**values)


class TestSqlChoreRepository:
    """Tests for SqlChoreRepository."""

    def test_create_and_get(self, repo):
        chore_id = repo.create(make_chore(description='After dinner', icon_id='plate'))

        chore = repo.get(chore_id)
        assert isinstance(chore, Chore)
        assert chore.id == chore_id
        assert chore.title == 'Dishes'
        assert chore.description == 'After dinner'
        assert chore.status == ChoreStatus.PENDING
        assert chore.icon_id == 'plate'
        assert chore.is_recurring is False

    def test_get_missing(self, repo):
        assert repo.get(404) is None

    def test_update(self, repo):
        chore_id = repo.create(make_chore())

        assert repo.update(chore_id, {'status': ChoreStatus.COMPLETED, 'completed_at': NOW})

        chore = repo.get(chore_id)
        assert chore.status == ChoreStatus.COMPLETED
        assert chore.completed_at == NOW
        assert repo.update(404, {'title': 'Nothing'}) is False

    def test_update_unknown_field(self, repo):
        chore_id = repo.create(make_chore())
        with pytest.raises(InvalidDataError):
            repo.update(chore_id, {'colour': 'blue'})

    def test_soft_delete(self, repo):
        chore_id = repo.create(make_chore())

        assert repo.soft_delete(chore_id, NOW)
        assert repo.soft_delete(chore_id, NOW) is False
        assert repo.get(chore_id).deleted_at == NOW
        assert repo.list() == []
        assert [c.id for c in repo.list(include_deleted=True)] == [chore_id]

    def test_duplicate_instance_rejected(self, repo):
        parent_id = repo.create(make_chore(is_recurring=True, recurring_pattern='daily:18:00'))
        due = datetime(2024, 1, 2, 18, 0)
        repo.create(make_chore(parent_chore_id=parent_id, due_date=due))

        with pytest.raises(InvalidDataError):
            repo.create(make_chore(parent_chore_id=parent_id, due_date=due))
        assert len(repo.get_child_chores(parent_id)) == 1

    def test_list_filters(self, repo):
        first = repo.create(make_chore(assigned_to_user_id=1, family_id=1,
                                       due_date=datetime(2024, 1, 2)))
        second = repo.create(make_chore(assigned_to_user_id=2, family_id=1,
                                        due_date=datetime(2024, 1, 1)))
        repo.create(make_chore(family_id=2, due_date=datetime(2024, 1, 3),
                               status=ChoreStatus.MISSED))

        assert [c.id for c in repo.list(family_id=1)] == [second, first]
        assert [c.id for c in repo.list(user_id=1)] == [first]
        assert len(repo.list(status=ChoreStatus.MISSED)) == 1
        assert [c.id for c in repo.list(due_after=datetime(2024, 1, 2),
                                        due_before=datetime(2024, 1, 2))] == [first]

    def test_overdue_excludes_templates(self, repo):
        repo.create(make_chore(is_recurring=True, recurring_pattern='daily:18:00'))
        chore_id = repo.create(make_chore())

        overdue = repo.get_overdue_chores(NOW + timedelta(hours=1))

        assert [c.id for c in overdue] == [chore_id]


class TestSqlPointLedger:
    """Tests for SqlPointLedger."""

    def test_allocate_and_deduct(self, db_session, kid_user):
        ledger = SqlPointLedger()
        chore_id = SqlChoreRepository().create(make_chore(assigned_to_user_id=kid_user.id))

        ledger.allocate(10, kid_user.id, chore_id, NOW)
        ledger.deduct(4, kid_user.id, chore_id, NOW)

        user = db_session.get(User, kid_user.id)
        assert user.points == 56
        history = PointsHistory.query.filter_by(user_id=kid_user.id).order_by(PointsHistory.id).all()
        assert [h.points_delta for h in history] == [10, -4]
        assert all(h.chore_id == chore_id for h in history)
        assert all(h.created_at == NOW for h in history)
        assert history[1].reason == f'Missed chore {chore_id}'

    def test_missing_user(self, db_session):
        with pytest.raises(PointLedgerError):
            SqlPointLedger().allocate(10, 404, None, NOW)


class TestSqlRoleDirectory:
    """Tests for SqlRoleDirectory."""

    def test_roles(self, family, parent_user, kid_user):
        roles = SqlRoleDirectory()

        assert roles.is_parent(parent_user.id, family.id)
        assert not roles.is_parent(kid_user.id, family.id)
        assert roles.is_member(kid_user.id, family.id)
        assert not roles.is_member(kid_user.id, family.id + 1)
        assert not roles.is_parent(None, family.id)


class TestSqlFamilyPolicy:
    """Tests for SqlFamilyPolicy."""

    def test_family_setting(self, db_session, family, kid_user):
        policy = SqlFamilyPolicy(default=True)
        assert policy.is_verification_required(kid_user.id, family.id) is False

        family.requires_verification = True
        db_session.commit()
        assert policy.is_verification_required(kid_user.id, family.id) is True

    def test_default(self, db_session):
        policy = SqlFamilyPolicy(default=True)
        assert policy.is_verification_required(1, None) is True
        assert policy.is_verification_required(1, 404) is True


class TestEngineWithDatabase:
    """End-to-end flows through the SQL collaborators."""

    def test_recurring_mon_wed_fri_two_weeks(self, engine_sql, family, parent_user, kid_user):
        """Six instances over two weeks, each stored once."""
        engine_sql.scheduler.horizon_months = 0
        parent, children = engine_sql.service.create_recurring_chore(
            'Feed the cat', 5, 'weekly', days_of_week=[2, 4, 6], due_time='18:00',
            assigned_to_user_id=kid_user.id, created_by_user_id=parent_user.id,
            family_id=family.id,
        )
        assert children == []

        end = NOW + timedelta(days=14)
        created = engine_sql.generator.generate_chore_instances(parent, NOW, end)
        again = engine_sql.generator.generate_chore_instances(parent, NOW, end)

        assert len(created) == 6
        assert again == []
        rows = models.Chore.query.filter_by(parent_chore_id=parent.id).all()
        assert len(rows) == 6
        assert len({row.due_date for row in rows}) == 6
        assert {row.due_date.weekday() for row in rows} == {0, 2, 4}

    def test_complete_awards_points(self, engine_sql, db_session, family, parent_user, kid_user):
        service = engine_sql.service
        chore = service.create_one_time_chore(
            'Take out trash', 10, datetime(2024, 1, 2, 18, 0),
            assigned_to_user_id=kid_user.id, created_by_user_id=parent_user.id,
            family_id=family.id,
        )

        completed = service.complete_chore(chore.id, kid_user.id)

        assert completed.status == ChoreStatus.COMPLETED
        assert db_session.get(User, kid_user.id).points == 60
        assert db_session.get(models.Chore, chore.id).status == 'completed'

    def test_family_requires_verification(self, engine_sql, db_session, family, parent_user, kid_user):
        family.requires_verification = True
        db_session.commit()
        service = engine_sql.service
        chore = service.create_one_time_chore(
            'Take out trash', 10, datetime(2024, 1, 2, 18, 0),
            assigned_to_user_id=kid_user.id, created_by_user_id=parent_user.id,
            family_id=family.id,
        )

        assert service.complete_chore(chore.id, kid_user.id).status == ChoreStatus.PENDING_VERIFICATION
        assert db_session.get(User, kid_user.id).points == 50

        service.reject_chore(chore.id, parent_user.id, reason='Not done')
        assert db_session.get(User, kid_user.id).points == 50
        assert db_session.get(models.Chore, chore.id).rejection_reason == 'Not done'

    def test_overdue_scan_deducts_points(self, engine_sql, db_session, clock, family, kid_user):
        service = engine_sql.service
        service.create_one_time_chore('Homework', 15, NOW, assigned_to_user_id=kid_user.id,
                                      family_id=family.id)
        clock.now = NOW + timedelta(hours=2)

        assert service.check_overdue_chores() == 1
        assert service.check_overdue_chores() == 0
        assert db_session.get(User, kid_user.id).points == 35
