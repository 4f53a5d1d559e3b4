from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from noor_progress.errors import TimezoneUnresolved

DEFAULT_TZ = "UTC"


def now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def resolve_zone(tz_name: str | None) -> ZoneInfo:
    if not tz_name:
        raise TimezoneUnresolved("no timezone configured")
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise TimezoneUnresolved(f"unknown timezone {tz_name!r}") from exc


def local_day(moment: datetime, tz_name: str | None) -> date:
    """Calendar day of ``moment`` in the given zone.

    Naive datetimes cannot be placed in a zone and are rejected rather than
    guessed.
    """
    if moment.tzinfo is None or moment.utcoffset() is None:
        raise TimezoneUnresolved(f"timestamp {moment.isoformat()} has no offset")
    return moment.astimezone(resolve_zone(tz_name)).date()


def local_today(now: datetime, tz_name: str | None) -> date:
    try:
        return local_day(now, tz_name)
    except TimezoneUnresolved:
        return now.date()


def last_n_days(today: date, n: int) -> list[date]:
    """Oldest first, ending with ``today``."""
    return [today - timedelta(days=offset) for offset in range(n - 1, -1, -1)]

