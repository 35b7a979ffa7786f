"""Tests for chore instance generation."""

from datetime import datetime, timedelta

import pytest

from chorekeeper.entities import Chore, ChoreStatus, Weekday
from chorekeeper.errors import InvalidRecurringPatternError
from chorekeeper.utils.recurrence import parse

from conftest import FAMILY_ID, KID_ID, NOW, PARENT_ID


def make_parent(repository, pattern, family_id=FAMILY_ID, due_date=NOW):
    parent = Chore(
        title='Feed the cat',
        points=5,
        due_date=due_date,
        is_recurring=True,
        recurring_pattern=pattern,
        assigned_to_user_id=KID_ID,
        created_by_user_id=PARENT_ID,
        family_id=family_id,
        icon_id='cat',
    )
    parent.id = repository.create(parent)
    return parent


@pytest.fixture
def generator(engine):
    return engine.generator


class TestGenerateDueDates:
    """Tests for generate_due_dates."""

    def test_daily_inclusive_boundaries(self, generator):
        """Occurrences exactly on start and end are included."""
        dates = generator.generate_due_dates(
            'daily:09:00', datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 3, 9, 0)
        )
        assert dates == [datetime(2024, 1, d, 9, 0) for d in (1, 2, 3)]

    def test_daily_skips_time_before_start(self, generator):
        """An occurrence earlier on the start day is excluded."""
        dates = generator.generate_due_dates(
            'daily:08:00', datetime(2024, 1, 1, 9, 0), datetime(2024, 1, 3, 9, 0)
        )
        assert dates == [datetime(2024, 1, 2, 8, 0), datetime(2024, 1, 3, 8, 0)]

    def test_weekly_sunday_wednesday_over_two_weeks(self, generator):
        """weekly:1,4 over 14 days yields exactly 4 dates."""
        start = NOW
        dates = generator.generate_due_dates('weekly:1,4:18:00', start, start + timedelta(days=14))

        assert len(dates) == 4
        assert dates == sorted(set(dates))
        assert all(d.weekday() in (6, 2) for d in dates)

    def test_monthly_31_clamps_in_february(self, generator):
        """monthly:31 lands on Feb 29 in a leap year, then back on the 31st."""
        dates = generator.generate_due_dates(
            'monthly:31:22:00', datetime(2024, 1, 1), datetime(2024, 4, 30, 23, 0)
        )
        assert dates == [
            datetime(2024, 1, 31, 22, 0),
            datetime(2024, 2, 29, 22, 0),
            datetime(2024, 3, 31, 22, 0),
            datetime(2024, 4, 30, 22, 0),
        ]

    def test_monthly_31_non_leap_year(self, generator):
        dates = generator.generate_due_dates(
            'monthly:31:22:00', datetime(2023, 2, 1), datetime(2023, 2, 28, 23, 0)
        )
        assert dates == [datetime(2023, 2, 28, 22, 0)]

    def test_last_day_of_month(self, generator):
        """monthly:last lands on the true last day, including leap Februaries."""
        dates = generator.generate_due_dates(
            'monthly:last:22:00', datetime(2023, 12, 15), datetime(2024, 3, 31, 23, 0)
        )
        assert [d.date().isoformat() for d in dates] == [
            '2023-12-31', '2024-01-31', '2024-02-29', '2024-03-31'
        ]

    def test_one_time_and_invalid_yield_nothing(self, generator):
        end = NOW + timedelta(days=30)
        assert generator.generate_due_dates('one_time', NOW, end) == []
        assert generator.generate_due_dates('bogus', NOW, end) == []
        assert generator.generate_due_dates(None, NOW, end) == []

    def test_start_after_end(self, generator):
        assert generator.generate_due_dates('daily:10:00', NOW, NOW - timedelta(days=1)) == []

    def test_deterministic(self, generator):
        pattern = parse('weekly:2,4,6:18:00')
        end = NOW + timedelta(days=60)
        assert generator.generate_due_dates(pattern, NOW, end) == \
            generator.generate_due_dates(pattern, NOW, end)


class TestGenerateNextDueDate:
    """Tests for generate_next_due_date."""

    def test_weekly_next(self, generator):
        pattern = parse('weekly:2:18:00')
        # From Monday 09:00 the next Monday-pattern date is a week later
        assert generator.generate_next_due_date(pattern, NOW) == datetime(2024, 1, 8, 18, 0)

    def test_first_due_date_same_day(self, generator):
        pattern = parse('weekly:2:18:00')
        assert generator.first_due_date(pattern, NOW) == datetime(2024, 1, 1, 18, 0)

    def test_one_time_raises(self, generator):
        with pytest.raises(InvalidRecurringPatternError):
            generator.generate_next_due_date(parse('one_time'), NOW)


class TestGenerateChoreInstances:
    """Tests for generate_chore_instances."""

    def test_creates_children_from_parent(self, generator, repository):
        """Children copy the parent's fields and start pending."""
        parent = make_parent(repository, 'weekly:2,4,6:18:00')

        children = generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=14))

        assert len(children) == 6
        for child in children:
            stored = repository.get(child.id)
            assert stored.parent_chore_id == parent.id
            assert stored.status == ChoreStatus.PENDING
            assert not stored.is_recurring
            assert stored.recurring_pattern is None
            assert stored.title == 'Feed the cat'
            assert stored.points == 5
            assert stored.assigned_to_user_id == KID_ID
            assert stored.family_id == FAMILY_ID
            assert stored.icon_id == 'cat'
        assert len({c.due_date for c in children}) == 6

    def test_idempotent(self, generator, repository):
        """A second identical call creates nothing."""
        parent = make_parent(repository, 'daily:20:00')
        end = NOW + timedelta(days=7)

        first = generator.generate_chore_instances(parent, NOW, end)
        second = generator.generate_chore_instances(parent, NOW, end)

        assert len(first) == 7
        assert second == []
        assert len(repository.get_child_chores(parent.id)) == 7

    def test_overlapping_windows(self, generator, repository):
        """Overlapping windows only add the new dates."""
        parent = make_parent(repository, 'daily:20:00')

        generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=3))
        added = generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=5))

        assert [c.due_date.day for c in added] == [4, 5]

    def test_deleted_children_are_not_recreated(self, generator, repository):
        """Tombstoned children still occupy their date."""
        parent = make_parent(repository, 'daily:20:00')
        children = generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=2))
        repository.soft_delete(children[0].id, NOW)

        again = generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=2))

        assert again == []

    def test_non_recurring_parent(self, generator, repository):
        chore = Chore(title='Once', points=1, due_date=NOW)
        chore.id = repository.create(chore)
        with pytest.raises(InvalidRecurringPatternError):
            generator.generate_chore_instances(chore, NOW, NOW + timedelta(days=3))

    def test_invalid_pattern(self, generator, repository):
        parent = make_parent(repository, 'weekly:9:18:00')
        with pytest.raises(InvalidRecurringPatternError):
            generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=3))


class TestGenerateAllRecurringChores:
    """Tests for batch generation."""

    def test_continues_from_latest_child(self, generator, repository, clock):
        parent = make_parent(repository, 'daily:20:00')
        generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=2))

        report = generator.generate_all_recurring_chores(end_date=NOW + timedelta(days=4))

        assert report.created == 2
        assert int(report) == 2
        assert len(repository.get_child_chores(parent.id)) == 4

    def test_gap_is_not_backfilled(self, generator, repository, clock):
        """After a long pause generation restarts from now, not from the last instance."""
        parent = make_parent(repository, 'daily:20:00')
        generator.generate_chore_instances(parent, NOW, NOW + timedelta(days=1))
        clock.now = datetime(2024, 4, 1, 9, 0)

        report = generator.generate_all_recurring_chores(end_date=datetime(2024, 4, 3, 9, 0))

        assert report.created == 2
        due_dates = [c.due_date for c in repository.get_child_chores(parent.id)]
        assert due_dates == [
            datetime(2024, 1, 1, 20, 0),
            datetime(2024, 4, 1, 20, 0),
            datetime(2024, 4, 2, 20, 0),
        ]

    def test_bad_parent_is_skipped_and_reported(self, generator, repository):
        good = make_parent(repository, 'daily:20:00')
        bad = make_parent(repository, 'monthly:99:20:00')

        report = generator.generate_all_recurring_chores(end_date=NOW + timedelta(days=2))

        assert report.created == 2
        assert report.failed_parent_ids == [bad.id]
        assert len(repository.get_child_chores(good.id)) == 2

    def test_family_filter(self, generator, repository):
        ours = make_parent(repository, 'daily:20:00')
        theirs = make_parent(repository, 'daily:20:00', family_id=FAMILY_ID + 1)

        generator.generate_all_recurring_chores(family_id=FAMILY_ID, end_date=NOW + timedelta(days=1))

        assert repository.get_child_chores(ours.id)
        assert repository.get_child_chores(theirs.id) == []

    def test_deleted_parent_is_ignored(self, generator, repository):
        parent = make_parent(repository, 'daily:20:00')
        repository.soft_delete(parent.id, NOW)

        report = generator.generate_all_recurring_chores(end_date=NOW + timedelta(days=3))

        assert report.created == 0
        assert report.failures == []

    def test_next_month(self, generator, repository):
        """generate_next_month_chores covers one calendar month from now."""
        parent = make_parent(repository, 'weekly:2:18:00')

        report = generator.generate_next_month_chores()

        # Mondays from Jan 1 through Feb 1 09:00
        assert report.created == 5
        due_dates = [c.due_date for c in repository.get_child_chores(parent.id)]
        assert due_dates[0] == datetime(2024, 1, 1, 18, 0)
        assert due_dates[-1] == datetime(2024, 1, 29, 18, 0)
        assert all(d.weekday() == Weekday.MONDAY.to_python() for d in due_dates)
