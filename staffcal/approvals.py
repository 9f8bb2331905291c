from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from staffcal.errors import InvalidState, PermissionDenied, ValidationFailure
from staffcal.models import ScheduleOverride, TimeOffRequest, WeeklySchedule, utcnow
from staffcal.policy import DAY_NAMES, MANAGER_ROLES, is_in_season, is_weekend
from staffcal.reconcile import derive_approval_state, minutes_between
from staffcal.store import ScheduleStore

logger = logging.getLogger(__name__)

TIME_OFF_TYPES = ("vacation", "sick_leave", "personal_day", "unpaid")
OVERRIDE_STATUSES = ("working", "approved_day_off", "sick_leave")
DEFAULT_OVERRIDE_STATUS = "default"
DEFAULT_SHIFT_START = "08:00"
DEFAULT_SHIFT_END = "17:00"


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str

    @property
    def is_manager(self) -> bool:
        return self.role in MANAGER_ROLES


@dataclass(frozen=True)
class NotificationEvent:
    user_id: int
    kind: str
    message: str
    reference_id: int | None = None


@dataclass(frozen=True)
class TimeOffDraft:
    user_id: int
    start_date: date | None
    end_date: date | None
    time_off_type: str = "vacation"
    start_time: str | None = None
    end_time: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class DaySchedule:
    day_of_week: int
    is_working_day: bool
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None


def format_time_off_type(value: str) -> str:
    return " ".join(word.capitalize() for word in value.split("_"))


def _format_range(start: date, end: date) -> str:
    if start == end:
        return start.isoformat()
    return f"{start.isoformat()} to {end.isoformat()}"


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _check_time(value: str, field: str) -> str:
    parts = value.split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValidationFailure("Time must be formatted as HH:MM", field=field)
    hours, minutes = int(parts[0]), int(parts[1])
    if hours > 23 or minutes > 59:
        raise ValidationFailure("Time must be formatted as HH:MM", field=field)
    return f"{hours:02d}:{minutes:02d}"


def _check_time_window(start_time: str | None, end_time: str | None) -> tuple[str | None, str | None]:
    start_time, end_time = _clean(start_time), _clean(end_time)
    if start_time is None and end_time is None:
        return None, None
    if start_time is None:
        raise ValidationFailure("Start time is required when an end time is given", field="start_time")
    if end_time is None:
        raise ValidationFailure("End time is required when a start time is given", field="end_time")
    start_time = _check_time(start_time, "start_time")
    end_time = _check_time(end_time, "end_time")
    if minutes_between(start_time, end_time) <= 0:
        raise ValidationFailure("End time must be after start time", field="end_time")
    return start_time, end_time


def validate_time_off(draft: TimeOffDraft) -> dict[str, Any]:
    if draft.start_date is None:
        raise ValidationFailure("Please select a start date", field="start_date")
    if draft.end_date is None:
        raise ValidationFailure("Please select an end date", field="end_date")
    if draft.end_date < draft.start_date:
        raise ValidationFailure("End date must be on or after start date", field="end_date")
    if draft.time_off_type not in TIME_OFF_TYPES:
        raise ValidationFailure(f"Unknown time off type: {draft.time_off_type}", field="time_off_type")
    start_time, end_time = _check_time_window(draft.start_time, draft.end_time)

    is_partial_day = draft.start_date == draft.end_date and start_time is not None and end_time is not None
    hours_taken = None
    if start_time is not None and end_time is not None:
        hours_taken = minutes_between(start_time, end_time) / 60
    return {
        "user_id": draft.user_id,
        "start_date": draft.start_date,
        "end_date": draft.end_date,
        "start_time": start_time,
        "end_time": end_time,
        "is_partial_day": is_partial_day,
        "hours_taken": hours_taken,
        "time_off_type": draft.time_off_type,
        "status": "pending",
        "reason": _clean(draft.reason),
    }


def review_transition(current_status: str | None, action: str, notes: str | None) -> dict[str, Any]:
    """pending -> approved | rejected. Both targets are terminal."""
    if current_status is None:
        raise InvalidState("Time off request not found")
    if current_status != "pending":
        raise InvalidState(f"Time off request is already {current_status}")
    notes = _clean(notes)
    if action == "approve":
        return {"status": "approved", "review_notes": notes}
    if action == "reject":
        if notes is None:
            raise ValidationFailure("Please provide a reason for rejection", field="review_notes")
        return {"status": "rejected", "review_notes": notes}
    raise ValidationFailure(f"Unknown review action: {action}", field="action")


def weekend_transition(current_status: str | None, action: str, reason: str | None) -> dict[str, Any]:
    """pending -> approved | denied. Only pending weekend days can be decided."""
    if current_status is None:
        raise InvalidState("Work schedule not found")
    if current_status != "pending":
        raise InvalidState(f"Weekend schedule is {current_status}, not pending")
    reason = _clean(reason)
    if action == "approve":
        return {"approval_status": "approved", "denial_reason": None}
    if action == "deny":
        if reason is None:
            raise ValidationFailure("Please provide a reason for denial", field="denial_reason")
        return {"approval_status": "denied", "denial_reason": reason}
    raise ValidationFailure(f"Unknown weekend action: {action}", field="action")


def _require_manager(actor: Actor, action: str) -> None:
    if not actor.is_manager:
        raise PermissionDenied(f"Only managers can {action}")


def submit_time_off(store: ScheduleStore, draft: TimeOffDraft, actor: Actor) -> TimeOffRequest:
    if draft.user_id != actor.user_id and not actor.is_manager:
        raise PermissionDenied("Only managers can request time off for another staff member")
    values = validate_time_off(draft)
    request = store.insert_time_off_request(values)
    logger.info("Time off request %s submitted for user %s", request.id, request.user_id)
    return request


def _review_time_off(
    store: ScheduleStore,
    request_id: int,
    actor: Actor,
    action: str,
    notes: str | None,
    now: datetime | None,
) -> tuple[TimeOffRequest, NotificationEvent]:
    _require_manager(actor, "review time off requests")
    request = store.get_time_off_request(request_id)
    patch = review_transition(request.status if request is not None else None, action, notes)
    patch["reviewed_by"] = actor.user_id
    patch["reviewed_at"] = now or utcnow()

    verb = "approved" if patch["status"] == "approved" else "rejected"
    message = (
        f"Your {format_time_off_type(request.time_off_type)} request for "
        f"{_format_range(request.start_date, request.end_date)} was {verb}."
    )
    if patch["review_notes"]:
        message += f" Notes: {patch['review_notes']}"
    event = NotificationEvent(
        user_id=request.user_id,
        kind=f"time_off_{verb}",
        message=message,
        reference_id=request.id,
    )
    updated = store.update_time_off_request(request_id, patch, notifications=[event], expected_status="pending")
    logger.info("Time off request %s %s by user %s", request_id, verb, actor.user_id)
    return updated, event


def approve_time_off(
    store: ScheduleStore,
    request_id: int,
    actor: Actor,
    notes: str | None = None,
    now: datetime | None = None,
) -> tuple[TimeOffRequest, NotificationEvent]:
    return _review_time_off(store, request_id, actor, "approve", notes, now)


def reject_time_off(
    store: ScheduleStore,
    request_id: int,
    actor: Actor,
    notes: str | None,
    now: datetime | None = None,
) -> tuple[TimeOffRequest, NotificationEvent]:
    return _review_time_off(store, request_id, actor, "reject", notes, now)


def delete_time_off(store: ScheduleStore, request_id: int, actor: Actor) -> None:
    request = store.get_time_off_request(request_id)
    if request is None:
        raise InvalidState("Time off request not found")
    if not actor.is_manager:
        if request.user_id != actor.user_id:
            raise PermissionDenied("You can only delete your own time off requests")
        if request.status != "pending":
            raise InvalidState(f"Time off request is already {request.status}")
    store.delete_time_off_request(request_id)
    logger.info("Time off request %s deleted by user %s", request_id, actor.user_id)


def _decide_weekend(
    store: ScheduleStore,
    schedule_id: int,
    actor: Actor,
    action: str,
    reason: str | None,
    now: datetime | None,
) -> tuple[WeeklySchedule, NotificationEvent]:
    _require_manager(actor, "approve weekend work")
    schedule = store.get_weekly_schedule(schedule_id)
    patch = weekend_transition(schedule.approval_status if schedule is not None else None, action, reason)
    patch["approved_by"] = actor.user_id
    patch["approved_at"] = now or utcnow()

    day_name = DAY_NAMES[schedule.day_of_week]
    if patch["approval_status"] == "approved":
        kind = "weekend_schedule_approved"
        message = f"Your {day_name} work schedule was approved."
    else:
        kind = "weekend_schedule_denied"
        message = f"Your {day_name} work schedule was denied. Reason: {patch['denial_reason']}"
    event = NotificationEvent(user_id=schedule.user_id, kind=kind, message=message, reference_id=schedule.id)
    updated = store.update_weekly_schedule(schedule_id, patch, notifications=[event], expected_status="pending")
    logger.info("Weekend schedule %s %s by user %s", schedule_id, patch["approval_status"], actor.user_id)
    return updated, event


def approve_weekend_schedule(
    store: ScheduleStore,
    schedule_id: int,
    actor: Actor,
    now: datetime | None = None,
) -> tuple[WeeklySchedule, NotificationEvent]:
    return _decide_weekend(store, schedule_id, actor, "approve", None, now)


def deny_weekend_schedule(
    store: ScheduleStore,
    schedule_id: int,
    actor: Actor,
    reason: str | None,
    now: datetime | None = None,
) -> tuple[WeeklySchedule, NotificationEvent]:
    return _decide_weekend(store, schedule_id, actor, "deny", reason, now)


def build_weekly_rows(
    user_id: int,
    days: list[DaySchedule],
    existing: dict[int, WeeklySchedule],
    today: date,
) -> list[dict[str, Any]]:
    seen: set[int] = set()
    rows: list[dict[str, Any]] = []
    for day in days:
        if not 0 <= day.day_of_week <= 6:
            raise ValidationFailure("day_of_week must be between 0 and 6", field="day_of_week")
        if day.day_of_week in seen:
            raise ValidationFailure(f"{DAY_NAMES[day.day_of_week]} was submitted twice", field="day_of_week")
        seen.add(day.day_of_week)

        start_time = end_time = None
        if day.is_working_day:
            start_time, end_time = _check_time_window(
                day.start_time or DEFAULT_SHIFT_START,
                day.end_time or DEFAULT_SHIFT_END,
            )

        needs_approval = is_weekend(day.day_of_week) and not is_in_season(today) and day.is_working_day
        prev = existing.get(day.day_of_week)
        prev_status = prev.approval_status if prev is not None else None
        requires_approval, approval_status = derive_approval_state(prev_status, needs_approval)
        row: dict[str, Any] = {
            "user_id": user_id,
            "day_of_week": day.day_of_week,
            "is_working_day": day.is_working_day,
            "start_time": start_time,
            "end_time": end_time,
            "notes": _clean(day.notes),
            "requires_approval": requires_approval,
            "approval_status": approval_status,
        }
        if approval_status != prev_status:
            row.update({"approved_by": None, "approved_at": None, "denial_reason": None})
        rows.append(row)
    return rows


def save_weekly_schedule(
    store: ScheduleStore,
    user_id: int,
    days: list[DaySchedule],
    actor: Actor,
    today: date,
) -> list[WeeklySchedule]:
    _require_manager(actor, "edit work schedules")
    existing = {row.day_of_week: row for row in store.list_weekly_schedules([user_id])}
    rows = build_weekly_rows(user_id, days, existing, today)
    saved = store.save_weekly_schedule(rows)
    pending = [DAY_NAMES[row.day_of_week] for row in saved if row.approval_status == "pending"]
    if pending:
        logger.info("Weekend work for user %s awaiting approval: %s", user_id, ", ".join(pending))
    return saved


def set_override(
    store: ScheduleStore,
    user_id: int,
    override_date: date,
    status: str,
    actor: Actor,
    start_time: str | None = None,
    end_time: str | None = None,
    notes: str | None = None,
) -> ScheduleOverride | None:
    """Upsert the override for one date; ``"default"`` removes it."""
    _require_manager(actor, "change daily schedules")
    if status == DEFAULT_OVERRIDE_STATUS:
        existing = store.get_override(user_id, override_date)
        if existing is None:
            raise InvalidState("Schedule override not found")
        store.delete_override(existing.id)
        logger.info("Override for user %s on %s reverted to default", user_id, override_date)
        return None
    if status not in OVERRIDE_STATUSES:
        raise ValidationFailure(f"Unknown override status: {status}", field="status")
    start_time, end_time = _check_time_window(start_time, end_time)
    return store.upsert_override(
        {
            "user_id": user_id,
            "override_date": override_date,
            "status": status,
            "start_time": start_time,
            "end_time": end_time,
            "notes": _clean(notes),
            "created_by": actor.user_id,
        }
    )
