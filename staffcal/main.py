from __future__ import annotations

import logging
import os
import secrets
from datetime import date, datetime, timedelta, timezone
from typing import Literal

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from staffcal.approvals import (
    Actor,
    DaySchedule,
    TimeOffDraft,
    approve_time_off,
    approve_weekend_schedule,
    delete_time_off,
    deny_weekend_schedule,
    reject_time_off,
    save_weekly_schedule,
    set_override,
    submit_time_off,
)
from staffcal.db import get_db
from staffcal.errors import CalendarError
from staffcal.models import SessionRecord, User, utcnow
from staffcal.policy import CALENDAR_ROLES, USER_ROLES, current_season_status, federal_holidays
from staffcal.reconcile import DayClassification, EvaluationContext, classify_month
from staffcal.reporting import compute_staff_stats
from staffcal.security import MIN_PASSWORD_LENGTH, hash_password, verify_password
from staffcal.store import ChangeEvent, ScheduleStore, change_feed, override_entry, staff_member, time_off_entry

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Staff Calendar")

SESSION_COOKIE_NAME = "session_id"
SESSION_MAX_AGE_SECONDS = 14 * 24 * 60 * 60
EFFECTIVE_ROLE_HEADER = "X-Effective-Role"

ERROR_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "invalid_state": status.HTTP_409_CONFLICT,
    "store_error": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def _log_change(event: ChangeEvent) -> None:
    logger.debug("%s %s %s", event.table, event.action, event.record_id)


change_feed.subscribe(_log_change)


@app.middleware("http")
async def disable_cache_for_auth_and_api(request: Request, call_next):
    response = await call_next(request)
    path = request.url.path
    if path.startswith("/api/") or path.startswith("/auth/"):
        response.headers["Cache-Control"] = "no-store, no-cache, max-age=0, must-revalidate"
        response.headers["Pragma"] = "no-cache"
    return response


@app.exception_handler(CalendarError)
async def calendar_error_handler(request: Request, exc: CalendarError) -> JSONResponse:
    status_code = ERROR_STATUS.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    return JSONResponse(status_code=status_code, content=exc.as_dict())


Role = Literal["staff", "mechanic", "master", "manager", "owner"]


class AuthPayload(BaseModel):
    email: str
    password: str


class StaffCreatePayload(BaseModel):
    email: str
    temporary_password: str
    first_name: str = ""
    last_name: str = ""
    role: Role = "staff"


class StaffPatchPayload(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    role: Role | None = None
    temporary_password: str | None = None
    is_active: bool | None = None


class UserOut(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: Role
    is_active: bool
    created_at: datetime

    @classmethod
    def from_orm_user(cls, user: User) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_active=user.is_active,
            created_at=user.created_at,
        )


class SeasonStatusOut(BaseModel):
    in_season: bool
    label: str
    date_range: str
    class_name: str


class HolidayOut(BaseModel):
    date: date
    name: str


class StaffMemberOut(BaseModel):
    id: int
    name: str
    role: str


class PartialDayOut(BaseModel):
    user_id: int
    start_time: str
    end_time: str
    label: str


class DayOut(BaseModel):
    date: date
    color: str
    holiday: HolidayOut | None = None
    working_staff: list[StaffMemberOut]
    off_staff: list[StaffMemberOut]
    partial_day_info: list[PartialDayOut]

    @classmethod
    def from_classification(cls, day: DayClassification) -> "DayOut":
        holiday = HolidayOut(date=day.holiday.date, name=day.holiday.name) if day.holiday else None
        return cls(
            date=day.date,
            color=day.color,
            holiday=holiday,
            working_staff=[StaffMemberOut(id=m.id, name=m.name, role=m.role) for m in day.working_staff],
            off_staff=[StaffMemberOut(id=m.id, name=m.name, role=m.role) for m in day.off_staff],
            partial_day_info=[
                PartialDayOut(user_id=p.user_id, start_time=p.start_time, end_time=p.end_time, label=p.label)
                for p in day.partial_day_info
            ],
        )


class CalendarMonthOut(BaseModel):
    year: int
    month: int
    season: SeasonStatusOut
    days: list[DayOut]


class DayScheduleIn(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    is_working_day: bool = False
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None


class WeeklySchedulePayload(BaseModel):
    days: list[DayScheduleIn] = Field(min_length=1, max_length=7)


class WeeklyScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    day_of_week: int
    is_working_day: bool
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None
    requires_approval: bool
    approval_status: Literal["not_required", "pending", "approved", "denied"]
    denial_reason: str | None = None
    approved_by: int | None = None
    approved_at: datetime | None = None
    created_at: datetime


class WeekendDenyPayload(BaseModel):
    reason: str = ""


class OverridePayload(BaseModel):
    user_id: int
    override_date: date
    status: Literal["working", "approved_day_off", "sick_leave", "default"]
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None


class OverrideOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    override_date: date
    status: Literal["working", "approved_day_off", "sick_leave"]
    start_time: str | None = None
    end_time: str | None = None
    notes: str | None = None
    created_by: int | None = None


class TimeOffPayload(BaseModel):
    user_id: int | None = None
    start_date: date | None = None
    end_date: date | None = None
    start_time: str | None = None
    end_time: str | None = None
    time_off_type: Literal["vacation", "sick_leave", "personal_day", "unpaid"] = "vacation"
    reason: str | None = None


class TimeOffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    start_date: date
    end_date: date
    start_time: str | None = None
    end_time: str | None = None
    is_partial_day: bool
    hours_taken: float | None = None
    time_off_type: str
    status: Literal["pending", "approved", "rejected"]
    reason: str | None = None
    review_notes: str | None = None
    reviewed_by: int | None = None
    reviewed_at: datetime | None = None
    submitted_at: datetime


class ReviewPayload(BaseModel):
    notes: str | None = None


class StaffStatsOut(BaseModel):
    user_id: int
    name: str
    approved_days: float
    sick_days: int
    requested_days: float
    approved_by_type: dict[str, float]
    requested_by_type: dict[str, float]


class PendingApprovalsOut(BaseModel):
    time_off_requests: int
    weekend_schedules: int


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    kind: str
    message: str
    reference_id: int | None = None
    created_at: datetime
    read_at: datetime | None = None


def normalize_email(email: str) -> str:
    return email.strip().lower()


def ensure_valid_email(email: str) -> str:
    normalized = normalize_email(email)
    if "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="A valid email is required")
    return normalized


def ensure_password_strength(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )


def request_is_https(request: Request) -> bool:
    forwarded_proto = request.headers.get("x-forwarded-proto", "")
    if forwarded_proto:
        first_proto = forwarded_proto.split(",")[0].strip().lower()
        if first_proto:
            return first_proto == "https"
    return request.url.scheme == "https"


def set_session_cookie(response: Response, request: Request, session_id: str) -> None:
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=session_id,
        max_age=SESSION_MAX_AGE_SECONDS,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def clear_session_cookie(response: Response, request: Request) -> None:
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        httponly=True,
        samesite="lax",
        secure=request_is_https(request),
        path="/",
    )


def create_session(db: Session, user_id: int) -> str:
    session_id = secrets.token_urlsafe(32)
    while db.get(SessionRecord, session_id) is not None:
        session_id = secrets.token_urlsafe(32)
    db.add(
        SessionRecord(
            session_id=session_id,
            user_id=user_id,
            expires_at=utcnow() + timedelta(seconds=SESSION_MAX_AGE_SECONDS),
        )
    )
    db.commit()
    return session_id


def get_session_user(db: Session, session_id: str | None) -> User | None:
    if not session_id:
        return None
    session = db.get(SessionRecord, session_id)
    if session is None:
        return None
    expires_at = session.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    if expires_at <= utcnow():
        db.delete(session)
        db.commit()
        return None
    user = db.get(User, session.user_id)
    if user is None or not user.is_active:
        db.delete(session)
        db.commit()
        return None
    return user


def get_current_user(request: Request, db: Session = Depends(get_db)) -> User:
    user = get_session_user(db, request.cookies.get(SESSION_COOKIE_NAME))
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def effective_role(user: User, requested_role: str | None) -> str:
    # Only a master may view the calendar as another role.
    if user.role == "master" and requested_role in USER_ROLES:
        return requested_role
    return user.role


def get_actor(
    current_user: User = Depends(get_current_user),
    requested_role: str | None = Header(default=None, alias=EFFECTIVE_ROLE_HEADER),
) -> Actor:
    role = effective_role(current_user, requested_role)
    if role not in CALENDAR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Staff calendar access required")
    return Actor(user_id=current_user.id, role=role)


def get_manager(actor: Actor = Depends(get_actor)) -> Actor:
    if not actor.is_manager:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Manager access required")
    return actor


def get_store(db: Session = Depends(get_db)) -> ScheduleStore:
    return ScheduleStore(db)


def visible_user_ids(actor: Actor) -> list[int] | None:
    return None if actor.is_manager else [actor.user_id]


def ensure_active_master_remains(db: Session, target_user: User, patch: StaffPatchPayload) -> None:
    next_role = patch.role if patch.role is not None else target_user.role
    next_is_active = patch.is_active if patch.is_active is not None else target_user.is_active
    if target_user.role != "master" or target_user.is_active is False:
        return
    if next_role == "master" and next_is_active:
        return
    active_masters = db.scalar(select(func.count(User.id)).where(User.role == "master", User.is_active.is_(True))) or 0
    if active_masters <= 1:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="At least one active master must remain")


@app.post("/auth/bootstrap", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def auth_bootstrap(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    bootstrap_token: str | None = Header(default=None, alias="X-Bootstrap-Token"),
) -> UserOut:
    configured_token = os.getenv("BOOTSTRAP_TOKEN", "")
    if not configured_token:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Bootstrap token is not configured")
    if bootstrap_token != configured_token:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid bootstrap token")
    if (db.scalar(select(func.count(User.id))) or 0) > 0:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Bootstrap is only allowed before the first user exists")
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.password)
    user = ScheduleStore(db).save_user(
        User(email=email, password_hash=hash_password(payload.password), role="master", is_active=True),
        "insert",
    )
    set_session_cookie(response, request, create_session(db, user.id))
    logger.info("Bootstrapped master account %s", user.email)
    return UserOut.from_orm_user(user)


@app.post("/auth/login", response_model=UserOut)
def auth_login(
    payload: AuthPayload,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> UserOut:
    email = ensure_valid_email(payload.email)
    user = db.scalar(select(User).where(User.email == email))
    if user is None or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    set_session_cookie(response, request, create_session(db, user.id))
    return UserOut.from_orm_user(user)


@app.post("/auth/logout")
def auth_logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> dict[str, bool]:
    session_id = request.cookies.get(SESSION_COOKIE_NAME)
    if session_id:
        session = db.get(SessionRecord, session_id)
        if session is not None:
            db.delete(session)
            db.commit()
    clear_session_cookie(response, request)
    return {"ok": True}


@app.get("/auth/me", response_model=UserOut)
def auth_me(current_user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.from_orm_user(current_user)


@app.get("/api/staff", response_model=list[UserOut])
def list_staff(
    include_inactive: bool = False,
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> list[UserOut]:
    users = store.list_staff(visible_user_ids(actor), include_inactive=include_inactive and actor.is_manager)
    return [UserOut.from_orm_user(user) for user in users]


@app.post("/api/staff", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_staff(
    payload: StaffCreatePayload,
    _: Actor = Depends(get_manager),
    db: Session = Depends(get_db),
    store: ScheduleStore = Depends(get_store),
) -> UserOut:
    email = ensure_valid_email(payload.email)
    ensure_password_strength(payload.temporary_password)
    if db.scalar(select(User).where(User.email == email)) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="User already exists")
    user = store.save_user(
        User(
            email=email,
            password_hash=hash_password(payload.temporary_password),
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            role=payload.role,
            is_active=True,
        ),
        "insert",
    )
    return UserOut.from_orm_user(user)


@app.patch("/api/staff/{user_id}", response_model=UserOut)
def patch_staff(
    user_id: int,
    payload: StaffPatchPayload,
    _: Actor = Depends(get_manager),
    db: Session = Depends(get_db),
    store: ScheduleStore = Depends(get_store),
) -> UserOut:
    user = store.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    updates = payload.model_dump(exclude_none=True)
    if not updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No updates were provided")
    ensure_active_master_remains(db, user, payload)
    if payload.temporary_password:
        ensure_password_strength(payload.temporary_password)
        user.password_hash = hash_password(payload.temporary_password)
    for key in ("first_name", "last_name", "role", "is_active"):
        if key in updates:
            setattr(user, key, updates[key])
    return UserOut.from_orm_user(store.save_user(user, "update"))


@app.get("/api/season-status", response_model=SeasonStatusOut)
def season_status(as_of: date | None = None, _: Actor = Depends(get_actor)) -> SeasonStatusOut:
    season = current_season_status(as_of or date.today())
    return SeasonStatusOut(**season.__dict__)


@app.get("/api/holidays/{year}", response_model=list[HolidayOut])
def holidays(year: int, _: Actor = Depends(get_actor)) -> list[HolidayOut]:
    return [HolidayOut(date=h.date, name=h.name) for h in federal_holidays(year)]


@app.get("/api/calendar", response_model=CalendarMonthOut)
def calendar_month(
    year: int = Query(ge=1900, le=9999),
    month: int = Query(ge=1, le=12),
    as_of: date | None = None,
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> CalendarMonthOut:
    now = as_of or date.today()
    ids = visible_user_ids(actor)
    first = date(year, month, 1)
    last = (first.replace(day=28) + timedelta(days=4)).replace(day=1) - timedelta(days=1)
    roster = [staff_member(user) for user in store.list_staff(ids)]
    snapshot = store.load_snapshot(first, last, ids)
    ctx = EvaluationContext(evaluation_year=year, evaluation_now=now, viewer_id=actor.user_id, effective_role=actor.role)
    days = classify_month(year, month, roster, snapshot, ctx)
    return CalendarMonthOut(
        year=year,
        month=month,
        season=SeasonStatusOut(**current_season_status(now).__dict__),
        days=[DayOut.from_classification(day) for day in days],
    )


@app.get("/api/stats", response_model=list[StaffStatsOut])
def staff_stats(
    year: int = Query(ge=1900, le=9999),
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> list[StaffStatsOut]:
    ids = visible_user_ids(actor)
    start, end = date(year, 1, 1), date(year, 12, 31)
    roster = [staff_member(user) for user in store.list_staff(ids, include_inactive=True)]
    requests = [time_off_entry(row) for row in store.list_time_off_requests(start, end, ids)]
    overrides = [override_entry(row) for row in store.list_overrides(start, end, ids)]
    stats = compute_staff_stats(year, roster, requests, overrides)
    return [
        StaffStatsOut(
            user_id=record.user_id,
            name=record.name,
            approved_days=round(record.approved_days, 2),
            sick_days=record.sick_days,
            requested_days=round(record.requested_days, 2),
            approved_by_type={k: round(v, 2) for k, v in record.approved_by_type.items()},
            requested_by_type={k: round(v, 2) for k, v in record.requested_by_type.items()},
        )
        for record in stats.values()
    ]


@app.get("/api/approvals/pending", response_model=PendingApprovalsOut)
def pending_approvals(
    _: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> PendingApprovalsOut:
    pending_requests = store.list_time_off_requests(date.min, date.max, status="pending")
    return PendingApprovalsOut(
        time_off_requests=len(pending_requests),
        weekend_schedules=len(store.list_pending_weekend_schedules()),
    )


@app.get("/api/schedules", response_model=list[WeeklyScheduleOut])
def list_weekly_schedules(
    user_id: int | None = None,
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> list[WeeklyScheduleOut]:
    ids = visible_user_ids(actor)
    if user_id is not None:
        ids = [user_id] if ids is None or user_id in ids else []
    return [WeeklyScheduleOut.model_validate(row) for row in store.list_weekly_schedules(ids)]


@app.put("/api/schedules/{user_id}", response_model=list[WeeklyScheduleOut])
def put_weekly_schedule(
    user_id: int,
    payload: WeeklySchedulePayload,
    as_of: date | None = None,
    actor: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> list[WeeklyScheduleOut]:
    if store.get_user(user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    days = [DaySchedule(**day.model_dump()) for day in payload.days]
    saved = save_weekly_schedule(store, user_id, days, actor, as_of or date.today())
    return [WeeklyScheduleOut.model_validate(row) for row in saved]


@app.post("/api/schedules/{schedule_id}/approve", response_model=WeeklyScheduleOut)
def approve_weekend(
    schedule_id: int,
    actor: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> WeeklyScheduleOut:
    row, _ = approve_weekend_schedule(store, schedule_id, actor)
    return WeeklyScheduleOut.model_validate(row)


@app.post("/api/schedules/{schedule_id}/deny", response_model=WeeklyScheduleOut)
def deny_weekend(
    schedule_id: int,
    payload: WeekendDenyPayload,
    actor: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> WeeklyScheduleOut:
    row, _ = deny_weekend_schedule(store, schedule_id, actor, payload.reason)
    return WeeklyScheduleOut.model_validate(row)


@app.get("/api/overrides", response_model=list[OverrideOut])
def list_overrides(
    start_date: date,
    end_date: date,
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> list[OverrideOut]:
    rows = store.list_overrides(start_date, end_date, visible_user_ids(actor))
    return [OverrideOut.model_validate(row) for row in rows]


@app.put("/api/overrides", response_model=OverrideOut | None)
def put_override(
    payload: OverridePayload,
    actor: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> OverrideOut | None:
    row = set_override(
        store,
        payload.user_id,
        payload.override_date,
        payload.status,
        actor,
        start_time=payload.start_time,
        end_time=payload.end_time,
        notes=payload.notes,
    )
    return OverrideOut.model_validate(row) if row is not None else None


@app.get("/api/time-off", response_model=list[TimeOffOut])
def list_time_off(
    start_date: date,
    end_date: date,
    status_filter: Literal["pending", "approved", "rejected"] | None = Query(default=None, alias="status"),
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> list[TimeOffOut]:
    rows = store.list_time_off_requests(start_date, end_date, visible_user_ids(actor), status=status_filter)
    return [TimeOffOut.model_validate(row) for row in rows]


@app.post("/api/time-off", response_model=TimeOffOut, status_code=status.HTTP_201_CREATED)
def create_time_off(
    payload: TimeOffPayload,
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> TimeOffOut:
    draft = TimeOffDraft(
        user_id=payload.user_id if payload.user_id is not None else actor.user_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        time_off_type=payload.time_off_type,
        start_time=payload.start_time,
        end_time=payload.end_time,
        reason=payload.reason,
    )
    return TimeOffOut.model_validate(submit_time_off(store, draft, actor))


@app.post("/api/time-off/{request_id}/approve", response_model=TimeOffOut)
def approve_time_off_request(
    request_id: int,
    payload: ReviewPayload | None = None,
    actor: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> TimeOffOut:
    row, _ = approve_time_off(store, request_id, actor, payload.notes if payload else None)
    return TimeOffOut.model_validate(row)


@app.post("/api/time-off/{request_id}/reject", response_model=TimeOffOut)
def reject_time_off_request(
    request_id: int,
    payload: ReviewPayload | None = None,
    actor: Actor = Depends(get_manager),
    store: ScheduleStore = Depends(get_store),
) -> TimeOffOut:
    row, _ = reject_time_off(store, request_id, actor, payload.notes if payload else None)
    return TimeOffOut.model_validate(row)


@app.delete("/api/time-off/{request_id}")
def delete_time_off_request(
    request_id: int,
    actor: Actor = Depends(get_actor),
    store: ScheduleStore = Depends(get_store),
) -> dict[str, bool]:
    delete_time_off(store, request_id, actor)
    return {"ok": True}


@app.get("/api/notifications/me", response_model=list[NotificationOut])
def my_notifications(
    unread_only: bool = False,
    current_user: User = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
) -> list[NotificationOut]:
    rows = store.list_notifications(current_user.id, unread_only=unread_only)
    return [NotificationOut.model_validate(row) for row in rows]


@app.post("/api/notifications/{notification_id}/read", response_model=NotificationOut)
def read_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    store: ScheduleStore = Depends(get_store),
) -> NotificationOut:
    return NotificationOut.model_validate(store.mark_notification_read(notification_id, current_user.id))


@app.get("/health")
def health() -> dict[str, bool | str]:
    return {"ok": True, "env": os.getenv("ENVIRONMENT", "local")}
