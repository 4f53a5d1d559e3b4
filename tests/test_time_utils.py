from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from noor_progress.errors import TimezoneUnresolved
from noor_progress.time_utils import last_n_days, local_day, local_today, resolve_zone


def test_local_day_crosses_midnight_in_child_zone() -> None:
    moment = datetime(2025, 3, 1, 22, 30, tzinfo=timezone.utc)
    assert local_day(moment, "Asia/Riyadh") == date(2025, 3, 2)
    assert local_day(moment, "UTC") == date(2025, 3, 1)
    assert local_day(moment, "America/New_York") == date(2025, 3, 1)


def test_local_day_rejects_naive_timestamp() -> None:
    with pytest.raises(TimezoneUnresolved):
        local_day(datetime(2025, 3, 1, 12, 0), "UTC")


def test_unknown_or_missing_zone_is_unresolved() -> None:
    with pytest.raises(TimezoneUnresolved):
        resolve_zone("Mars/Olympus_Mons")
    with pytest.raises(TimezoneUnresolved):
        resolve_zone(None)
    assert resolve_zone("Europe/London") == ZoneInfo("Europe/London")


def test_local_today_falls_back_to_given_clock() -> None:
    now = datetime(2025, 3, 1, 23, 0, tzinfo=timezone.utc)
    assert local_today(now, "Asia/Riyadh") == date(2025, 3, 2)
    assert local_today(now, None) == date(2025, 3, 1)


def test_last_n_days_oldest_first() -> None:
    assert last_n_days(date(2025, 3, 1), 3) == [date(2025, 2, 27), date(2025, 2, 28), date(2025, 3, 1)]
    assert last_n_days(date(2025, 3, 1), 1) == [date(2025, 3, 1)]
