from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable

from staffcal.reconcile import OverrideEntry, StaffMember, TimeOffEntry

HOURS_PER_DAY = 8


@dataclass
class StaffStats:
    user_id: int
    name: str
    approved_days: float = 0
    sick_days: int = 0
    requested_days: float = 0
    approved_by_type: dict[str, float] = field(default_factory=lambda: defaultdict(float))
    requested_by_type: dict[str, float] = field(default_factory=lambda: defaultdict(float))


def calculate_days_between(request: TimeOffEntry) -> float:
    """Day-equivalent of a request: inclusive days, or hours / 8 for a partial day."""
    if request.is_partial_day and request.hours_taken:
        return request.hours_taken / HOURS_PER_DAY
    return (request.end_date - request.start_date).days + 1


def compute_staff_stats(
    year: int,
    roster: Iterable[StaffMember],
    requests: Iterable[TimeOffEntry],
    overrides: Iterable[OverrideEntry],
) -> dict[int, StaffStats]:
    stats = {member.id: StaffStats(user_id=member.id, name=member.name) for member in roster}

    for request in requests:
        record = stats.get(request.user_id)
        if record is None or request.start_date.year != year:
            continue
        days = calculate_days_between(request)
        if request.status == "approved":
            record.approved_days += days
            record.approved_by_type[request.time_off_type] += days
        elif request.status == "pending":
            record.requested_days += days
            record.requested_by_type[request.time_off_type] += days

    for override in overrides:
        record = stats.get(override.user_id)
        if record is None or override.override_date.year != year:
            continue
        if override.status == "approved_day_off":
            record.approved_days += 1
            record.approved_by_type["approved_day_off"] += 1
        elif override.status == "sick_leave":
            record.sick_days += 1

    return stats
