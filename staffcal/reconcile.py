from __future__ import annotations

import calendar
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Literal

from staffcal.policy import Holiday, day_of_week, holiday_for, is_in_season, is_weekend, local_date

ApprovalStatus = Literal["not_required", "pending", "approved", "denied"]
OverrideStatus = Literal["working", "approved_day_off", "sick_leave"]
TimeOffStatus = Literal["pending", "approved", "rejected"]
TimeOffType = Literal["vacation", "sick_leave", "personal_day", "unpaid"]
DayColor = Literal["blue", "green", "amber", "red", "purple", "emerald", "teal", "gray"]

OFF_OVERRIDE_STATUSES = frozenset({"sick_leave", "approved_day_off"})


@dataclass(frozen=True)
class StaffMember:
    id: int
    name: str
    role: str = "staff"


@dataclass(frozen=True)
class WeeklyEntry:
    user_id: int
    day_of_week: int
    is_working_day: bool
    created_at: datetime | date
    approval_status: ApprovalStatus = "not_required"
    start_time: str | None = None
    end_time: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class OverrideEntry:
    user_id: int
    override_date: date
    status: OverrideStatus
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class TimeOffEntry:
    user_id: int
    start_date: date
    end_date: date
    status: TimeOffStatus
    time_off_type: TimeOffType = "vacation"
    start_time: str | None = None
    end_time: str | None = None
    is_partial_day: bool = False
    hours_taken: float | None = None
    id: int | None = None

    def covers(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date


@dataclass
class ScheduleSnapshot:
    weekly: dict[tuple[int, int], WeeklyEntry] = field(default_factory=dict)
    overrides: dict[tuple[int, date], OverrideEntry] = field(default_factory=dict)
    time_off: list[TimeOffEntry] = field(default_factory=list)
    time_off_by_user: dict[int, list[TimeOffEntry]] = field(default_factory=dict)

    @classmethod
    def build(
        cls,
        weekly: Iterable[WeeklyEntry] = (),
        overrides: Iterable[OverrideEntry] = (),
        time_off: Iterable[TimeOffEntry] = (),
    ) -> ScheduleSnapshot:
        # Keyed like the store's unique constraints; a later row replaces an earlier one.
        weekly_map = {(w.user_id, w.day_of_week): w for w in weekly}
        override_map = {(o.user_id, o.override_date): o for o in overrides}
        requests = list(time_off)
        by_user: dict[int, list[TimeOffEntry]] = defaultdict(list)
        for request in requests:
            by_user[request.user_id].append(request)
        return cls(weekly=weekly_map, overrides=override_map, time_off=requests, time_off_by_user=dict(by_user))

    def requests_for(self, user_id: int) -> list[TimeOffEntry]:
        return self.time_off_by_user.get(user_id, [])

    def requests_on(self, d: date, user_ids: set[int] | None = None) -> list[TimeOffEntry]:
        return [r for r in self.time_off if r.covers(d) and (user_ids is None or r.user_id in user_ids)]


@dataclass(frozen=True)
class EvaluationContext:
    # Weekly schedules only project into evaluation_year.
    evaluation_year: int
    evaluation_now: date
    viewer_id: int | None = None
    effective_role: str | None = None


@dataclass(frozen=True)
class PartialDayInfo:
    user_id: int
    start_time: str
    end_time: str
    label: str


@dataclass(frozen=True)
class DayClassification:
    date: date
    color: DayColor
    holiday: Holiday | None
    working_staff: list[StaffMember]
    off_staff: list[StaffMember]
    partial_day_info: list[PartialDayInfo]


def _time_to_minutes(value: str) -> int:
    parts = value.split(":")
    return int(parts[0]) * 60 + int(parts[1])


def minutes_between(start: str, end: str) -> int:
    return _time_to_minutes(end) - _time_to_minutes(start)


def format_time_12h(value: str) -> str:
    hours, minutes = value.split(":")[:2]
    hour = int(hours)
    suffix = "PM" if hour >= 12 else "AM"
    display_hour = 12 if hour % 12 == 0 else hour % 12
    return f"{display_hour}:{minutes} {suffix}"


def _has_full_day_time_off(user_id: int, d: date, snapshot: ScheduleSnapshot) -> bool:
    return any(
        r.status == "approved" and not r.is_partial_day and r.covers(d)
        for r in snapshot.requests_for(user_id)
    )


def _weekly_schedule_applies(entry: WeeklyEntry | None, d: date, ctx: EvaluationContext) -> bool:
    if entry is None or not entry.is_working_day or entry.day_of_week != day_of_week(d):
        return False
    if d < local_date(entry.created_at):
        return False
    # A schedule only projects into the year currently on display.
    if d.year != ctx.evaluation_year:
        return False
    if is_weekend(entry.day_of_week) and not is_in_season(ctx.evaluation_now):
        if entry.approval_status == "approved":
            return True
        # Denied requesters still see their own attempted shift.
        return entry.approval_status == "denied" and ctx.viewer_id == entry.user_id
    return True


def is_working(user_id: int, d: date, snapshot: ScheduleSnapshot, ctx: EvaluationContext) -> bool:
    if _has_full_day_time_off(user_id, d, snapshot):
        return False
    override = snapshot.overrides.get((user_id, d))
    if override is not None:
        if override.status in OFF_OVERRIDE_STATUSES:
            return False
        if override.status == "working":
            return True
    return _weekly_schedule_applies(snapshot.weekly.get((user_id, day_of_week(d))), d, ctx)


def is_off(user_id: int, d: date, snapshot: ScheduleSnapshot) -> bool:
    """Looser than ``not is_working``: holds even with no regular schedule."""
    if _has_full_day_time_off(user_id, d, snapshot):
        return True
    override = snapshot.overrides.get((user_id, d))
    return override is not None and override.status in OFF_OVERRIDE_STATUSES


def partial_day_info(user_id: int, d: date, snapshot: ScheduleSnapshot) -> list[PartialDayInfo]:
    out: list[PartialDayInfo] = []
    for r in snapshot.requests_for(user_id):
        if r.status != "approved" or not r.is_partial_day or not r.covers(d):
            continue
        if not r.start_time or not r.end_time:
            continue
        label = f"Off {format_time_12h(r.start_time)}-{format_time_12h(r.end_time)}"
        out.append(PartialDayInfo(user_id=user_id, start_time=r.start_time, end_time=r.end_time, label=label))
    return out


def _weekend_schedule_statuses(d: date, user_ids: set[int], snapshot: ScheduleSnapshot) -> set[str]:
    dow = day_of_week(d)
    return {
        entry.approval_status
        for (user_id, entry_dow), entry in snapshot.weekly.items()
        if entry_dow == dow and user_id in user_ids and entry.is_working_day
    }


def classify_date(
    d: date,
    roster: list[StaffMember],
    snapshot: ScheduleSnapshot,
    ctx: EvaluationContext,
) -> DayClassification:
    user_ids = {member.id for member in roster}
    holiday = holiday_for(d)
    working = [m for m in roster if is_working(m.id, d, snapshot, ctx)]
    off = [m for m in roster if is_off(m.id, d, snapshot)]
    partial: list[PartialDayInfo] = []
    for member in roster:
        partial.extend(partial_day_info(member.id, d, snapshot))

    statuses = {r.status for r in snapshot.requests_on(d, user_ids)}
    off_season_weekend = is_weekend(day_of_week(d)) and not is_in_season(ctx.evaluation_now)
    weekend_statuses = _weekend_schedule_statuses(d, user_ids, snapshot) if off_season_weekend else set()

    color: DayColor
    if holiday is not None:
        color = "blue"
    elif "approved" in statuses:
        color = "green"
    elif "pending" in statuses:
        color = "amber"
    elif "rejected" in statuses:
        color = "red"
    elif "pending" in weekend_statuses:
        color = "purple"
    elif "approved" in weekend_statuses:
        color = "emerald"
    elif working:
        color = "teal"
    else:
        color = "gray"

    return DayClassification(
        date=d,
        color=color,
        holiday=holiday,
        working_staff=working,
        off_staff=off,
        partial_day_info=partial,
    )


def classify_month(
    year: int,
    month: int,
    roster: list[StaffMember],
    snapshot: ScheduleSnapshot,
    ctx: EvaluationContext,
) -> list[DayClassification]:
    days_in_month = calendar.monthrange(year, month)[1]
    return [classify_date(date(year, month, day), roster, snapshot, ctx) for day in range(1, days_in_month + 1)]


# (previous status, off-season weekend working day) -> (requires_approval, next status).
# Saving never distinguishes a re-save from a first save, so an approved or
# denied weekend day goes back to pending whenever the condition still holds.
APPROVAL_RULES: dict[tuple[ApprovalStatus | None, bool], tuple[bool, ApprovalStatus]] = {
    (None, True): (True, "pending"),
    (None, False): (False, "not_required"),
    ("not_required", True): (True, "pending"),
    ("not_required", False): (False, "not_required"),
    ("pending", True): (True, "pending"),
    ("pending", False): (False, "not_required"),
    ("approved", True): (True, "pending"),
    ("approved", False): (False, "not_required"),
    ("denied", True): (True, "pending"),
    ("denied", False): (False, "not_required"),
}


def derive_approval_state(
    prev_status: ApprovalStatus | None,
    off_season_weekend_working: bool,
) -> tuple[bool, ApprovalStatus]:
    return APPROVAL_RULES[(prev_status, off_season_weekend_working)]
