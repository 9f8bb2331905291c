from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from staffcal.approvals import (
    Actor,
    DaySchedule,
    NotificationEvent,
    TimeOffDraft,
    approve_time_off,
    approve_weekend_schedule,
    delete_time_off,
    deny_weekend_schedule,
    format_time_off_type,
    reject_time_off,
    review_transition,
    save_weekly_schedule,
    set_override,
    submit_time_off,
    validate_time_off,
    weekend_transition,
)
from staffcal.errors import InvalidState, PermissionDenied, StoreError, ValidationFailure
from staffcal.models import User
from staffcal.store import ChangeFeed, ScheduleStore

MANAGER = Actor(user_id=100, role="manager")
STAFF = Actor(user_id=1, role="staff")
OTHER_STAFF = Actor(user_id=2, role="mechanic")
OFF_SEASON = date(2024, 11, 1)
IN_SEASON = date(2024, 7, 1)
REVIEWED_AT = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def store(db_session, feed):
    return ScheduleStore(db_session, feed)


def draft(**overrides):
    values = {"user_id": 1, "start_date": date(2024, 3, 4), "end_date": date(2024, 3, 6)}
    values.update(overrides)
    return TimeOffDraft(**values)


def test_validate_time_off_requires_dates_in_order():
    with pytest.raises(ValidationFailure) as missing:
        validate_time_off(draft(start_date=None))
    assert missing.value.field == "start_date"

    with pytest.raises(ValidationFailure) as reversed_range:
        validate_time_off(draft(end_date=date(2024, 3, 1)))
    assert reversed_range.value.field == "end_date"

    with pytest.raises(ValidationFailure):
        validate_time_off(draft(time_off_type="sabbatical"))


def test_validate_time_off_derives_partial_day_and_hours():
    values = validate_time_off(draft(end_date=date(2024, 3, 4), start_time="9:00", end_time="12:30"))
    assert values["is_partial_day"] is True
    assert values["hours_taken"] == 3.5
    assert values["start_time"] == "09:00"
    assert values["status"] == "pending"

    multi_day = validate_time_off(draft(start_time="09:00", end_time="12:00"))
    assert multi_day["is_partial_day"] is False


def test_validate_time_off_rejects_inverted_and_half_windows():
    with pytest.raises(ValidationFailure) as inverted:
        validate_time_off(draft(start_time="13:00", end_time="09:00"))
    assert inverted.value.field == "end_time"

    with pytest.raises(ValidationFailure) as half:
        validate_time_off(draft(end_time="09:00"))
    assert half.value.field == "start_time"


def test_review_transition_rules():
    assert review_transition("pending", "approve", None) == {"status": "approved", "review_notes": None}
    assert review_transition("pending", "reject", " overlap ") == {"status": "rejected", "review_notes": "overlap"}

    with pytest.raises(ValidationFailure) as no_notes:
        review_transition("pending", "reject", "  ")
    assert no_notes.value.field == "review_notes"

    for terminal in ("approved", "rejected"):
        with pytest.raises(InvalidState):
            review_transition(terminal, "reject", None)
    with pytest.raises(InvalidState):
        review_transition(None, "approve", None)


def test_weekend_transition_rules():
    assert weekend_transition("pending", "approve", None) == {"approval_status": "approved", "denial_reason": None}
    with pytest.raises(ValidationFailure):
        weekend_transition("pending", "deny", "")
    with pytest.raises(InvalidState):
        weekend_transition("approved", "deny", "too late")


def test_format_time_off_type():
    assert format_time_off_type("sick_leave") == "Sick Leave"
    assert format_time_off_type("vacation") == "Vacation"


def test_staff_cannot_file_for_someone_else(store):
    with pytest.raises(PermissionDenied):
        submit_time_off(store, draft(user_id=2), STAFF)
    assert submit_time_off(store, draft(user_id=2), MANAGER).user_id == 2


def test_approval_updates_request_and_writes_notification(store, feed):
    events = []
    feed.subscribe(events.append)
    request = submit_time_off(store, draft(), STAFF)

    with pytest.raises(PermissionDenied):
        approve_time_off(store, request.id, STAFF)

    row, event = approve_time_off(store, request.id, MANAGER, notes="Enjoy", now=REVIEWED_AT)
    assert row.status == "approved"
    assert row.reviewed_by == MANAGER.user_id
    assert event.kind == "time_off_approved"
    assert event.message == "Your Vacation request for 2024-03-04 to 2024-03-06 was approved. Notes: Enjoy"

    [stored] = store.list_notifications(STAFF.user_id)
    assert stored.reference_id == request.id
    assert [(e.table, e.action) for e in events] == [
        ("staff_time_off_requests", "insert"),
        ("staff_time_off_requests", "update"),
    ]

    with pytest.raises(InvalidState):
        reject_time_off(store, request.id, MANAGER, notes="changed my mind")


def test_review_write_is_guarded_on_pending_status(store, feed):
    events = []
    request = submit_time_off(store, draft(), STAFF)
    approve_time_off(store, request.id, MANAGER)
    feed.subscribe(events.append)

    late = NotificationEvent(user_id=STAFF.user_id, kind="time_off_rejected", message="late", reference_id=request.id)
    with pytest.raises(InvalidState):
        store.update_time_off_request(
            request.id,
            {"status": "rejected", "review_notes": "late"},
            notifications=[late],
            expected_status="pending",
        )
    assert store.get_time_off_request(request.id).status == "approved"
    assert [n.kind for n in store.list_notifications(STAFF.user_id)] == ["time_off_approved"]
    assert events == []


def test_rejection_requires_notes_and_leaves_request_pending(store):
    request = submit_time_off(store, draft(), STAFF)
    with pytest.raises(ValidationFailure):
        reject_time_off(store, request.id, MANAGER, notes=None)
    assert store.get_time_off_request(request.id).status == "pending"
    assert store.list_notifications(STAFF.user_id) == []

    row, event = reject_time_off(store, request.id, MANAGER, notes="Short staffed")
    assert row.status == "rejected"
    assert event.kind == "time_off_rejected"


def test_delete_rules(store):
    mine = submit_time_off(store, draft(), STAFF)
    with pytest.raises(PermissionDenied):
        delete_time_off(store, mine.id, OTHER_STAFF)

    approve_time_off(store, mine.id, MANAGER)
    with pytest.raises(InvalidState):
        delete_time_off(store, mine.id, STAFF)

    delete_time_off(store, mine.id, MANAGER)
    assert store.get_time_off_request(mine.id) is None
    with pytest.raises(InvalidState):
        delete_time_off(store, mine.id, MANAGER)

    pending = submit_time_off(store, draft(), STAFF)
    delete_time_off(store, pending.id, STAFF)
    assert store.get_time_off_request(pending.id) is None


def week(*working_days, **times):
    return [DaySchedule(day_of_week=d, is_working_day=d in working_days, **times) for d in range(7)]


def test_weekly_save_applies_default_times_and_weekend_approval(store):
    with pytest.raises(PermissionDenied):
        save_weekly_schedule(store, 1, week(1), STAFF, OFF_SEASON)

    saved = save_weekly_schedule(store, 1, week(1, 6), MANAGER, OFF_SEASON)
    by_day = {row.day_of_week: row for row in saved}
    assert len(saved) == 7
    assert (by_day[1].start_time, by_day[1].end_time) == ("08:00", "17:00")
    assert by_day[1].approval_status == "not_required"
    assert by_day[6].approval_status == "pending"
    assert by_day[6].requires_approval is True
    assert by_day[0].start_time is None

    in_season = save_weekly_schedule(store, 2, week(6), MANAGER, IN_SEASON)
    assert {row.day_of_week: row for row in in_season}[6].approval_status == "not_required"


def test_weekend_decisions_and_resave_reverts_to_pending(store):
    saved = save_weekly_schedule(store, 1, week(6), MANAGER, OFF_SEASON)
    saturday = next(row for row in saved if row.day_of_week == 6)

    with pytest.raises(ValidationFailure):
        deny_weekend_schedule(store, saturday.id, MANAGER, reason=" ")

    row, event = approve_weekend_schedule(store, saturday.id, MANAGER, now=REVIEWED_AT)
    assert row.approval_status == "approved"
    assert row.approved_by == MANAGER.user_id
    assert event.message == "Your Saturday work schedule was approved."

    with pytest.raises(InvalidState):
        deny_weekend_schedule(store, saturday.id, MANAGER, reason="late")

    resaved = save_weekly_schedule(store, 1, week(6), MANAGER, OFF_SEASON)
    saturday = next(row for row in resaved if row.day_of_week == 6)
    assert saturday.approval_status == "pending"
    assert saturday.approved_by is None

    row, event = deny_weekend_schedule(store, saturday.id, MANAGER, reason="No cover")
    assert row.denial_reason == "No cover"
    assert event.message == "Your Saturday work schedule was denied. Reason: No cover"
    assert len(store.list_notifications(1)) == 2


def test_weekend_write_is_guarded_on_pending_status(store):
    saved = save_weekly_schedule(store, 1, week(6), MANAGER, OFF_SEASON)
    saturday = next(row for row in saved if row.day_of_week == 6)
    deny_weekend_schedule(store, saturday.id, MANAGER, reason="No cover")

    with pytest.raises(InvalidState):
        store.update_weekly_schedule(saturday.id, {"approval_status": "approved"}, expected_status="pending")
    assert {row.id: row for row in store.list_weekly_schedules([1])}[saturday.id].approval_status == "denied"
    with pytest.raises(InvalidState):
        store.update_weekly_schedule(saturday.id + 100, {"approval_status": "approved"}, expected_status="pending")


def test_weekly_save_is_all_or_nothing(store):
    save_weekly_schedule(store, 1, week(1), MANAGER, IN_SEASON)
    bad = week(1, 2)
    bad[2] = DaySchedule(day_of_week=2, is_working_day=True, start_time="18:00", end_time="09:00")
    with pytest.raises(ValidationFailure):
        save_weekly_schedule(store, 1, bad, MANAGER, IN_SEASON)

    duplicated = week(1) + [DaySchedule(day_of_week=3, is_working_day=True)]
    with pytest.raises(ValidationFailure):
        save_weekly_schedule(store, 1, duplicated, MANAGER, IN_SEASON)

    rows = {row.day_of_week: row for row in store.list_weekly_schedules([1])}
    assert rows[2].is_working_day is False
    assert rows[3].is_working_day is False


def test_set_override_upserts_and_default_removes(store):
    day = date(2024, 6, 10)
    with pytest.raises(PermissionDenied):
        set_override(store, 1, day, "sick_leave", STAFF)
    with pytest.raises(ValidationFailure):
        set_override(store, 1, day, "vacation", MANAGER)

    first = set_override(store, 1, day, "working", MANAGER, start_time="10:00", end_time="14:00")
    second = set_override(store, 1, day, "sick_leave", MANAGER)
    assert second.id == first.id
    assert second.status == "sick_leave"
    assert second.created_by == MANAGER.user_id

    assert set_override(store, 1, day, "default", MANAGER) is None
    assert store.get_override(1, day) is None


def test_reverting_a_missing_override_is_invalid_state(store):
    with pytest.raises(InvalidState):
        set_override(store, 1, date(2024, 6, 10), "default", MANAGER)


def test_store_snapshot_uses_overlap_and_scopes_users(store):
    submit_time_off(store, draft(start_date=date(2024, 2, 26), end_date=date(2024, 3, 2)), STAFF)
    submit_time_off(store, draft(user_id=2, start_date=date(2024, 3, 10), end_date=date(2024, 3, 10)), MANAGER)
    set_override(store, 1, date(2024, 3, 5), "approved_day_off", MANAGER)

    snapshot = store.load_snapshot(date(2024, 3, 1), date(2024, 3, 31), [1])
    assert [r.start_date for r in snapshot.time_off] == [date(2024, 2, 26)]
    assert (1, date(2024, 3, 5)) in snapshot.overrides


def test_listener_failure_does_not_block_others(store, feed):
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    feed.subscribe(broken)
    unsubscribe = feed.subscribe(seen.append)
    submit_time_off(store, draft(), STAFF)
    assert len(seen) == 1

    unsubscribe()
    submit_time_off(store, draft(), STAFF)
    assert len(seen) == 1


def test_store_errors_are_typed(store, db_session):
    db_session.add(User(email="dup@example.com", password_hash="x", role="staff"))
    db_session.commit()
    with pytest.raises(StoreError) as exc:
        store.save_user(User(email="dup@example.com", password_hash="y", role="staff"), "insert")
    assert exc.value.kind == "store_error"
    assert exc.value.cause is not None
