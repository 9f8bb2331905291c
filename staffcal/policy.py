from __future__ import annotations

import calendar
import os
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo

# Sunday-first, matching the day_of_week column on staff_schedules.
DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
SUNDAY = 0
MONDAY = 1
THURSDAY = 4
SATURDAY = 6

SEASON_START = (5, 25)
SEASON_END = (9, 30)

USER_ROLES = ("staff", "mechanic", "master", "manager", "owner")
CALENDAR_ROLES = frozenset({"staff", "mechanic", "master", "manager"})
MANAGER_ROLES = frozenset({"master", "manager"})

# Local day boundaries for timestamps such as a schedule's created_at.
CALENDAR_TIMEZONE = ZoneInfo(os.getenv("CALENDAR_TIMEZONE", "America/New_York"))


@dataclass(frozen=True)
class SeasonStatus:
    in_season: bool
    label: str
    date_range: str
    class_name: str


@dataclass(frozen=True)
class Holiday:
    date: date
    name: str


def day_of_week(d: date) -> int:
    return (d.weekday() + 1) % 7


def local_date(value: datetime | date, tz: ZoneInfo | None = None) -> date:
    if not isinstance(value, datetime):
        return value
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz or CALENDAR_TIMEZONE).date()


def is_weekend(dow: int) -> bool:
    return dow in (SUNDAY, SATURDAY)


def is_in_season(d: date) -> bool:
    return SEASON_START <= (d.month, d.day) <= SEASON_END


def is_off_season_weekend(d: date, now: date) -> bool:
    """Weekend date judged against the season at ``now``, not at ``d``."""
    return is_weekend(day_of_week(d)) and not is_in_season(now)


def current_season_status(now: date) -> SeasonStatus:
    if is_in_season(now):
        return SeasonStatus(in_season=True, label="ON SEASON", date_range="May 25 - Sep 30", class_name="season-on")
    return SeasonStatus(in_season=False, label="OFF SEASON", date_range="Oct 1 - May 24", class_name="season-off")


def _nth_weekday_of_month(year: int, month: int, dow: int, n: int) -> date:
    first = date(year, month, 1)
    offset = (dow - day_of_week(first)) % 7
    return first + timedelta(days=offset + (n - 1) * 7)


def _last_weekday_of_month(year: int, month: int, dow: int) -> date:
    last = date(year, month, calendar.monthrange(year, month)[1])
    offset = (day_of_week(last) - dow) % 7
    return last - timedelta(days=offset)


@lru_cache(maxsize=32)
def federal_holidays(year: int) -> tuple[Holiday, ...]:
    # No observed-date shifting when a fixed-date holiday lands on a weekend.
    return (
        Holiday(date(year, 1, 1), "New Year's Day"),
        Holiday(_nth_weekday_of_month(year, 1, MONDAY, 3), "MLK Jr. Day"),
        Holiday(_nth_weekday_of_month(year, 2, MONDAY, 3), "Presidents' Day"),
        Holiday(_last_weekday_of_month(year, 5, MONDAY), "Memorial Day"),
        Holiday(date(year, 6, 19), "Juneteenth"),
        Holiday(date(year, 7, 4), "Independence Day"),
        Holiday(_nth_weekday_of_month(year, 9, MONDAY, 1), "Labor Day"),
        Holiday(_nth_weekday_of_month(year, 10, MONDAY, 2), "Columbus Day"),
        Holiday(date(year, 11, 11), "Veterans Day"),
        Holiday(_nth_weekday_of_month(year, 11, THURSDAY, 4), "Thanksgiving"),
        Holiday(date(year, 12, 25), "Christmas Day"),
    )


def holiday_for(d: date) -> Holiday | None:
    for holiday in federal_holidays(d.year):
        if holiday.date == d:
            return holiday
    return None
