import datetime as dt
from zoneinfo import ZoneInfo

import pytest

UTC = dt.timezone.utc


@pytest.fixture
def utc():
    return UTC


@pytest.fixture
def berlin():
    """A zone with DST changes (last Sundays of March and October)"""
    return ZoneInfo("Europe/Berlin")


@pytest.fixture
def at():
    """at(day, hour, minute=0, tz=UTC) -> aware datetime on 2024-01-<day>"""
    def _at(day: int, hour: int, minute: int = 0, tz: dt.tzinfo = UTC, month: int = 1) -> dt.datetime:
        return dt.datetime(2024, month, day, hour, minute, tzinfo=tz)
    return _at


@pytest.fixture
def monday():
    """Monday 2024-01-01 00:00 UTC"""
    return dt.datetime(2024, 1, 1, tzinfo=UTC)
