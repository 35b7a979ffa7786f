"""Tests for the local clock."""

from datetime import timedelta

from chorekeeper.utils.timezone import DEFAULT_TIMEZONE, get_timezone, local_naive_now, local_now


def test_timezone_from_environment(monkeypatch):
    monkeypatch.setenv('TZ', 'Europe/Berlin')
    assert get_timezone().key == 'Europe/Berlin'


def test_unknown_timezone_falls_back(monkeypatch):
    monkeypatch.setenv('TZ', 'Mars/Olympus_Mons')
    assert get_timezone().key == DEFAULT_TIMEZONE


def test_explicit_name():
    assert get_timezone('UTC').key == 'UTC'


def test_local_naive_now_is_wall_clock():
    """The naive clock matches the aware one with tzinfo dropped."""
    naive = local_naive_now()
    aware = local_now()
    assert naive.tzinfo is None
    assert abs(aware.replace(tzinfo=None) - naive) < timedelta(seconds=5)
