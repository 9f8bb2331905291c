from __future__ import annotations

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from staffcal.main import app
from staffcal.policy import holiday_for
from staffcal.store import ChangeEvent, change_feed

BOOTSTRAP_TOKEN = "test-bootstrap-token"
YEAR = 2099
MONTH = 11
OFF_SEASON_AS_OF = "2099-11-01"


def bootstrap_master(client: TestClient, email: str = "master@example.com", password: str = "master-password-123"):
    return client.post(
        "/auth/bootstrap",
        headers={"X-Bootstrap-Token": BOOTSTRAP_TOKEN},
        json={"email": email, "password": password},
    )


def login(client: TestClient, email: str, password: str):
    return client.post("/auth/login", json={"email": email, "password": password})


def first_weekday(dow: int) -> date:
    """First non-holiday date in the test month with the given ``date.weekday()``."""
    d = date(YEAR, MONTH, 1)
    while d.weekday() != dow or holiday_for(d) is not None:
        d += timedelta(days=1)
    return d


@pytest.fixture
def crew():
    manager = TestClient(app)
    bootstrap_master(manager)
    created = manager.post(
        "/api/staff",
        json={
            "email": "deckhand@example.com",
            "temporary_password": "deckhand-password-1",
            "first_name": "Dana",
            "last_name": "Hull",
        },
    )
    staff = TestClient(app)
    login(staff, "deckhand@example.com", "deckhand-password-1")
    return manager, staff, created.json()["id"]


def save_week(client: TestClient, user_id: int, *working_days: int, as_of: str = OFF_SEASON_AS_OF):
    days = [{"day_of_week": d, "is_working_day": d in working_days} for d in range(7)]
    return client.put(f"/api/schedules/{user_id}", params={"as_of": as_of}, json={"days": days})


def calendar(client: TestClient, **headers) -> dict[str, dict]:
    res = client.get(
        "/api/calendar",
        params={"year": YEAR, "month": MONTH, "as_of": OFF_SEASON_AS_OF},
        headers=headers,
    )
    assert res.status_code == 200
    body = res.json()
    assert body["season"]["label"] == "OFF SEASON"
    return {day["date"]: day for day in body["days"]}


def test_season_status_and_holidays(crew):
    manager, _, _ = crew
    season = manager.get("/api/season-status", params={"as_of": "2024-07-04"}).json()
    assert season == {"in_season": True, "label": "ON SEASON", "date_range": "May 25 - Sep 30", "class_name": "season-on"}

    holidays = manager.get("/api/holidays/2024").json()
    assert len(holidays) == 11
    assert {"date": "2024-05-27", "name": "Memorial Day"} in holidays


def test_weekly_schedule_and_weekend_approval_shape_the_calendar(crew):
    manager, staff, staff_id = crew
    monday = first_weekday(0)
    saturday = first_weekday(5)

    saved = save_week(manager, staff_id, 1, 6)
    assert saved.status_code == 200
    by_day = {row["day_of_week"]: row for row in saved.json()}
    assert by_day[1]["start_time"] == "08:00"
    assert by_day[6]["approval_status"] == "pending"
    assert save_week(staff, staff_id, 1).status_code == 403

    pending = manager.get("/api/approvals/pending").json()
    assert pending == {"time_off_requests": 0, "weekend_schedules": 1}

    days = calendar(manager)
    assert days[monday.isoformat()]["color"] == "teal"
    assert [m["name"] for m in days[monday.isoformat()]["working_staff"]] == ["Dana Hull"]
    assert days[saturday.isoformat()]["color"] == "purple"
    assert days[saturday.isoformat()]["working_staff"] == []

    denied = manager.post(f"/api/schedules/{by_day[6]['id']}/deny", json={"reason": ""})
    assert denied.status_code == 400
    assert denied.json()["kind"] == "validation"
    assert denied.json()["field"] == "denial_reason"

    approved = manager.post(f"/api/schedules/{by_day[6]['id']}/approve")
    assert approved.status_code == 200
    assert approved.json()["approval_status"] == "approved"

    days = calendar(manager)
    assert days[saturday.isoformat()]["color"] == "emerald"
    assert [m["name"] for m in days[saturday.isoformat()]["working_staff"]] == ["Dana Hull"]

    again = manager.post(f"/api/schedules/{by_day[6]['id']}/approve")
    assert again.status_code == 409
    assert again.json()["kind"] == "invalid_state"

    notes = staff.get("/api/notifications/me").json()
    assert [n["message"] for n in notes] == ["Your Saturday work schedule was approved."]


def test_time_off_lifecycle_over_http(crew):
    manager, staff, staff_id = crew
    monday = first_weekday(0)
    save_week(manager, staff_id, 1)

    created = staff.post(
        "/api/time-off",
        json={"start_date": monday.isoformat(), "end_date": (monday + timedelta(days=2)).isoformat(), "reason": "Trip"},
    )
    assert created.status_code == 201
    request = created.json()
    assert request["user_id"] == staff_id
    assert request["status"] == "pending"

    for_someone_else = staff.post(
        "/api/time-off",
        json={"user_id": staff_id + 100, "start_date": monday.isoformat(), "end_date": monday.isoformat()},
    )
    assert for_someone_else.status_code == 403
    assert for_someone_else.json()["kind"] == "forbidden"

    invalid = staff.post("/api/time-off", json={"start_date": monday.isoformat()})
    assert invalid.status_code == 400
    assert invalid.json() == {"kind": "validation", "detail": "Please select an end date", "field": "end_date"}

    assert calendar(manager)[monday.isoformat()]["color"] == "amber"
    assert manager.get("/api/approvals/pending").json()["time_off_requests"] == 1

    assert staff.post(f"/api/time-off/{request['id']}/approve", json={}).status_code == 403
    rejected_without_notes = manager.post(f"/api/time-off/{request['id']}/reject", json={})
    assert rejected_without_notes.status_code == 400
    assert rejected_without_notes.json()["field"] == "review_notes"

    approved = manager.post(f"/api/time-off/{request['id']}/approve", json={"notes": "Have fun"})
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"

    day = calendar(manager)[monday.isoformat()]
    assert day["color"] == "green"
    assert day["working_staff"] == []
    assert [m["name"] for m in day["off_staff"]] == ["Dana Hull"]

    listed = staff.get(
        "/api/time-off",
        params={"start_date": f"{YEAR}-{MONTH:02d}-01", "end_date": f"{YEAR}-{MONTH:02d}-30", "status": "approved"},
    )
    assert [r["id"] for r in listed.json()] == [request["id"]]

    stats = staff.get("/api/stats", params={"year": YEAR}).json()
    assert stats == [
        {
            "user_id": staff_id,
            "name": "Dana Hull",
            "approved_days": 3,
            "sick_days": 0,
            "requested_days": 0,
            "approved_by_type": {"vacation": 3},
            "requested_by_type": {},
        }
    ]

    [note] = staff.get("/api/notifications/me").json()
    assert note["kind"] == "time_off_approved"
    assert note["message"].endswith("was approved. Notes: Have fun")
    read = staff.post(f"/api/notifications/{note['id']}/read")
    assert read.status_code == 200
    assert read.json()["read_at"] is not None
    assert staff.get("/api/notifications/me", params={"unread_only": True}).json() == []
    assert manager.post(f"/api/notifications/{note['id']}/read").status_code == 409

    assert staff.delete(f"/api/time-off/{request['id']}").status_code == 409
    assert manager.delete(f"/api/time-off/{request['id']}").status_code == 200


def test_partial_day_request_is_shown_as_partial(crew):
    manager, staff, staff_id = crew
    monday = first_weekday(0)
    save_week(manager, staff_id, 1)

    created = staff.post(
        "/api/time-off",
        json={
            "start_date": monday.isoformat(),
            "end_date": monday.isoformat(),
            "start_time": "13:00",
            "end_time": "17:00",
            "time_off_type": "personal_day",
        },
    ).json()
    assert created["is_partial_day"] is True
    assert created["hours_taken"] == 4
    approved_without_body = manager.post(f"/api/time-off/{created['id']}/approve")
    assert approved_without_body.status_code == 200
    assert approved_without_body.json()["review_notes"] is None

    day = calendar(manager)[monday.isoformat()]
    assert [m["name"] for m in day["working_staff"]] == ["Dana Hull"]
    assert day["partial_day_info"][0]["label"] == "Off 1:00 PM-5:00 PM"

    stats = manager.get("/api/stats", params={"year": YEAR}).json()
    dana = next(s for s in stats if s["user_id"] == staff_id)
    assert dana["approved_by_type"] == {"personal_day": 0.5}


def test_overrides_replace_the_weekly_schedule(crew):
    manager, staff, staff_id = crew
    monday = first_weekday(0)
    tuesday = monday + timedelta(days=1)
    save_week(manager, staff_id, 1)

    sick = manager.put(
        "/api/overrides",
        json={"user_id": staff_id, "override_date": monday.isoformat(), "status": "sick_leave"},
    )
    assert sick.status_code == 200
    extra = manager.put(
        "/api/overrides",
        json={
            "user_id": staff_id,
            "override_date": tuesday.isoformat(),
            "status": "working",
            "start_time": "10:00",
            "end_time": "14:00",
        },
    )
    assert extra.json()["start_time"] == "10:00"
    assert staff.put(
        "/api/overrides",
        json={"user_id": staff_id, "override_date": monday.isoformat(), "status": "working"},
    ).status_code == 403

    days = calendar(manager)
    assert days[monday.isoformat()]["working_staff"] == []
    assert [m["name"] for m in days[monday.isoformat()]["off_staff"]] == ["Dana Hull"]
    assert [m["name"] for m in days[tuesday.isoformat()]["working_staff"]] == ["Dana Hull"]

    listed = staff.get(
        "/api/overrides",
        params={"start_date": monday.isoformat(), "end_date": tuesday.isoformat()},
    ).json()
    assert [o["status"] for o in listed] == ["sick_leave", "working"]

    reverted = manager.put(
        "/api/overrides",
        json={"user_id": staff_id, "override_date": monday.isoformat(), "status": "default"},
    )
    assert reverted.status_code == 200
    assert reverted.json() is None
    assert [m["name"] for m in calendar(manager)[monday.isoformat()]["working_staff"]] == ["Dana Hull"]

    again = manager.put(
        "/api/overrides",
        json={"user_id": staff_id, "override_date": monday.isoformat(), "status": "default"},
    )
    assert again.status_code == 409
    assert again.json()["kind"] == "invalid_state"


def test_staff_only_see_their_own_rows(crew):
    manager, staff, staff_id = crew
    manager.post(
        "/api/staff",
        json={"email": "engineer@example.com", "temporary_password": "engineer-pass-1", "role": "mechanic"},
    )
    engineer_id = next(u["id"] for u in manager.get("/api/staff").json() if u["email"] == "engineer@example.com")
    save_week(manager, staff_id, 1)
    save_week(manager, engineer_id, 1)

    monday = first_weekday(0).isoformat()
    assert len(calendar(manager)[monday]["working_staff"]) == 2
    assert [m["id"] for m in calendar(staff)[monday]["working_staff"]] == [staff_id]
    assert {row["user_id"] for row in staff.get("/api/schedules").json()} == {staff_id}
    assert staff.get("/api/schedules", params={"user_id": engineer_id}).json() == []
    assert staff.get("/api/approvals/pending").status_code == 403


def test_committed_changes_reach_change_feed_listeners(crew):
    manager, _, staff_id = crew
    seen: list[ChangeEvent] = []
    unsubscribe = change_feed.subscribe(seen.append)
    try:
        save_week(manager, staff_id, 1)
    finally:
        unsubscribe()
    assert len(seen) == 7
    assert {event.table for event in seen} == {"staff_schedules"}
    assert {event.action for event in seen} == {"insert"}
