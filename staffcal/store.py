from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Protocol

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from staffcal.errors import InvalidState, StoreError
from staffcal.models import Notification, ScheduleOverride, TimeOffRequest, User, WeeklySchedule, utcnow
from staffcal.policy import CALENDAR_ROLES
from staffcal.reconcile import OverrideEntry, ScheduleSnapshot, StaffMember, TimeOffEntry, WeeklyEntry

logger = logging.getLogger(__name__)

WEEKLY_SCHEDULE_FIELDS = (
    "is_working_day",
    "start_time",
    "end_time",
    "notes",
    "requires_approval",
    "approval_status",
    "denial_reason",
    "approved_by",
    "approved_at",
)


class NotificationLike(Protocol):
    user_id: int
    kind: str
    message: str
    reference_id: int | None


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    action: str
    record_id: int | None


ChangeListener = Callable[[ChangeEvent], None]


class ChangeFeed:
    def __init__(self) -> None:
        self._listeners: list[ChangeListener] = []

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, events: Iterable[ChangeEvent]) -> None:
        for event in events:
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    # Already committed; keep notifying the remaining listeners.
                    logger.exception("Change listener failed for %s %s", event.table, event.action)


change_feed = ChangeFeed()


def staff_member(user: User) -> StaffMember:
    return StaffMember(id=user.id, name=user.display_name, role=user.role)


def weekly_entry(row: WeeklySchedule) -> WeeklyEntry:
    return WeeklyEntry(
        id=row.id,
        user_id=row.user_id,
        day_of_week=row.day_of_week,
        is_working_day=row.is_working_day,
        created_at=row.created_at,
        approval_status=row.approval_status,
        start_time=row.start_time,
        end_time=row.end_time,
    )


def override_entry(row: ScheduleOverride) -> OverrideEntry:
    return OverrideEntry(
        id=row.id,
        user_id=row.user_id,
        override_date=row.override_date,
        status=row.status,
        start_time=row.start_time,
        end_time=row.end_time,
        notes=row.notes,
    )


def time_off_entry(row: TimeOffRequest) -> TimeOffEntry:
    return TimeOffEntry(
        id=row.id,
        user_id=row.user_id,
        start_date=row.start_date,
        end_date=row.end_date,
        status=row.status,
        time_off_type=row.time_off_type,
        start_time=row.start_time,
        end_time=row.end_time,
        is_partial_day=row.is_partial_day,
        hours_taken=row.hours_taken,
    )


class ScheduleStore:
    def __init__(self, db: Session, feed: ChangeFeed | None = None):
        self.db = db
        self.feed = feed if feed is not None else change_feed

    @contextmanager
    def _reading(self) -> Iterator[None]:
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Schedule store read failed")
            raise StoreError(exc) from exc

    def _patch_row(
        self,
        model,
        row_id: int,
        patch: dict[str, Any],
        status_column,
        expected_status: str | None,
        noun: str,
    ):
        stmt = update(model).where(model.id == row_id).values(**patch)
        if expected_status is not None:
            stmt = stmt.where(status_column == expected_status)
        if not self.db.execute(stmt).rowcount:
            if self.db.get(model, row_id) is None:
                raise InvalidState(f"{noun} not found")
            raise InvalidState(f"{noun} is no longer {expected_status}")
        return self.db.get(model, row_id, populate_existing=True)

    @contextmanager
    def _writing(self, events: list[ChangeEvent]) -> Iterator[None]:
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Schedule store write failed")
            raise StoreError(exc) from exc
        except Exception:
            self.db.rollback()
            raise
        self.feed.publish(events)

    # Staff profiles

    def list_staff(self, user_ids: Iterable[int] | None = None, include_inactive: bool = False) -> list[User]:
        stmt = select(User).where(User.role.in_(sorted(CALENDAR_ROLES)))
        if not include_inactive:
            stmt = stmt.where(User.is_active.is_(True))
        if user_ids is not None:
            stmt = stmt.where(User.id.in_(list(user_ids)))
        with self._reading():
            return list(self.db.scalars(stmt.order_by(User.first_name, User.last_name, User.id)).all())

    def get_user(self, user_id: int) -> User | None:
        with self._reading():
            return self.db.get(User, user_id)

    def save_user(self, user: User, action: str) -> User:
        events: list[ChangeEvent] = []
        with self._writing(events):
            self.db.add(user)
            self.db.flush()
            events.append(ChangeEvent("users", action, user.id))
        return user

    # Weekly schedules

    def list_weekly_schedules(self, user_ids: Iterable[int] | None = None) -> list[WeeklySchedule]:
        stmt = select(WeeklySchedule).order_by(WeeklySchedule.user_id, WeeklySchedule.day_of_week)
        if user_ids is not None:
            stmt = stmt.where(WeeklySchedule.user_id.in_(list(user_ids)))
        with self._reading():
            return list(self.db.scalars(stmt).all())

    def list_pending_weekend_schedules(self) -> list[WeeklySchedule]:
        stmt = (
            select(WeeklySchedule)
            .where(WeeklySchedule.approval_status == "pending")
            .order_by(WeeklySchedule.user_id, WeeklySchedule.day_of_week)
        )
        with self._reading():
            return list(self.db.scalars(stmt).all())

    def get_weekly_schedule(self, schedule_id: int) -> WeeklySchedule | None:
        with self._reading():
            return self.db.get(WeeklySchedule, schedule_id)

    def _upsert_weekly(self, values: dict[str, Any]) -> tuple[WeeklySchedule, str]:
        row = self.db.scalar(
            select(WeeklySchedule).where(
                WeeklySchedule.user_id == values["user_id"],
                WeeklySchedule.day_of_week == values["day_of_week"],
            )
        )
        action = "update"
        if row is None:
            row = WeeklySchedule(user_id=values["user_id"], day_of_week=values["day_of_week"])
            action = "insert"
        for key in WEEKLY_SCHEDULE_FIELDS:
            if key in values:
                setattr(row, key, values[key])
        self.db.add(row)
        self.db.flush()
        return row, action

    def upsert_weekly_schedule(self, values: dict[str, Any]) -> WeeklySchedule:
        events: list[ChangeEvent] = []
        with self._writing(events):
            row, action = self._upsert_weekly(values)
            events.append(ChangeEvent("staff_schedules", action, row.id))
        return row

    def save_weekly_schedule(self, rows: list[dict[str, Any]]) -> list[WeeklySchedule]:
        events: list[ChangeEvent] = []
        saved: list[WeeklySchedule] = []
        with self._writing(events):
            for values in rows:
                row, action = self._upsert_weekly(values)
                saved.append(row)
                events.append(ChangeEvent("staff_schedules", action, row.id))
        return saved

    def update_weekly_schedule(
        self,
        schedule_id: int,
        patch: dict[str, Any],
        notifications: Iterable[NotificationLike] = (),
        expected_status: str | None = None,
    ) -> WeeklySchedule:
        events: list[ChangeEvent] = []
        with self._writing(events):
            row = self._patch_row(
                WeeklySchedule,
                schedule_id,
                patch,
                WeeklySchedule.approval_status,
                expected_status,
                "Work schedule",
            )
            self._add_notifications(notifications)
            events.append(ChangeEvent("staff_schedules", "update", row.id))
        return row

    # Overrides

    def list_overrides(
        self,
        start: date,
        end: date,
        user_ids: Iterable[int] | None = None,
    ) -> list[ScheduleOverride]:
        stmt = (
            select(ScheduleOverride)
            .where(ScheduleOverride.override_date >= start, ScheduleOverride.override_date <= end)
            .order_by(ScheduleOverride.override_date, ScheduleOverride.user_id)
        )
        if user_ids is not None:
            stmt = stmt.where(ScheduleOverride.user_id.in_(list(user_ids)))
        with self._reading():
            return list(self.db.scalars(stmt).all())

    def get_override(self, user_id: int, override_date: date) -> ScheduleOverride | None:
        with self._reading():
            return self.db.scalar(
                select(ScheduleOverride).where(
                    ScheduleOverride.user_id == user_id,
                    ScheduleOverride.override_date == override_date,
                )
            )

    def upsert_override(self, values: dict[str, Any]) -> ScheduleOverride:
        events: list[ChangeEvent] = []
        with self._writing(events):
            row = self.db.scalar(
                select(ScheduleOverride).where(
                    ScheduleOverride.user_id == values["user_id"],
                    ScheduleOverride.override_date == values["override_date"],
                )
            )
            action = "update"
            if row is None:
                row = ScheduleOverride(user_id=values["user_id"], override_date=values["override_date"])
                action = "insert"
            for key in ("status", "start_time", "end_time", "notes", "created_by"):
                if key in values:
                    setattr(row, key, values[key])
            self.db.add(row)
            self.db.flush()
            events.append(ChangeEvent("staff_schedule_overrides", action, row.id))
        return row

    def delete_override(self, override_id: int) -> None:
        events: list[ChangeEvent] = []
        with self._writing(events):
            result = self.db.execute(delete(ScheduleOverride).where(ScheduleOverride.id == override_id))
            if not result.rowcount:
                raise InvalidState("Schedule override not found")
            events.append(ChangeEvent("staff_schedule_overrides", "delete", override_id))

    # Time off requests

    def list_time_off_requests(
        self,
        start: date,
        end: date,
        user_ids: Iterable[int] | None = None,
        status: str | None = None,
    ) -> list[TimeOffRequest]:
        """Requests overlapping ``start``..``end`` inclusive."""
        stmt = (
            select(TimeOffRequest)
            .where(and_(TimeOffRequest.start_date <= end, TimeOffRequest.end_date >= start))
            .order_by(TimeOffRequest.start_date, TimeOffRequest.id)
        )
        if user_ids is not None:
            stmt = stmt.where(TimeOffRequest.user_id.in_(list(user_ids)))
        if status is not None:
            stmt = stmt.where(TimeOffRequest.status == status)
        with self._reading():
            return list(self.db.scalars(stmt).all())

    def get_time_off_request(self, request_id: int) -> TimeOffRequest | None:
        with self._reading():
            return self.db.get(TimeOffRequest, request_id)

    def insert_time_off_request(self, values: dict[str, Any]) -> TimeOffRequest:
        events: list[ChangeEvent] = []
        with self._writing(events):
            row = TimeOffRequest(**values)
            self.db.add(row)
            self.db.flush()
            events.append(ChangeEvent("staff_time_off_requests", "insert", row.id))
        return row

    def update_time_off_request(
        self,
        request_id: int,
        patch: dict[str, Any],
        notifications: Iterable[NotificationLike] = (),
        expected_status: str | None = None,
    ) -> TimeOffRequest:
        events: list[ChangeEvent] = []
        with self._writing(events):
            row = self._patch_row(
                TimeOffRequest,
                request_id,
                patch,
                TimeOffRequest.status,
                expected_status,
                "Time off request",
            )
            self._add_notifications(notifications)
            events.append(ChangeEvent("staff_time_off_requests", "update", row.id))
        return row

    def delete_time_off_request(self, request_id: int) -> None:
        events: list[ChangeEvent] = []
        with self._writing(events):
            result = self.db.execute(delete(TimeOffRequest).where(TimeOffRequest.id == request_id))
            if not result.rowcount:
                raise InvalidState("Time off request not found")
            events.append(ChangeEvent("staff_time_off_requests", "delete", request_id))

    # Notifications outbox

    def _add_notifications(self, notifications: Iterable[NotificationLike]) -> None:
        for event in notifications:
            self.db.add(
                Notification(
                    user_id=event.user_id,
                    kind=event.kind,
                    message=event.message,
                    reference_id=event.reference_id,
                )
            )

    def list_notifications(self, user_id: int, unread_only: bool = False) -> list[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        with self._reading():
            return list(self.db.scalars(stmt.order_by(Notification.created_at.desc(), Notification.id.desc())).all())

    def mark_notification_read(self, notification_id: int, user_id: int) -> Notification:
        with self._writing([]):
            row = self.db.get(Notification, notification_id)
            if row is None or row.user_id != user_id:
                raise InvalidState("Notification not found")
            if row.read_at is None:
                row.read_at = utcnow()
        return row

    # Snapshots

    def load_snapshot(
        self,
        start: date,
        end: date,
        user_ids: Iterable[int] | None = None,
    ) -> ScheduleSnapshot:
        ids = list(user_ids) if user_ids is not None else None
        return ScheduleSnapshot.build(
            weekly=[weekly_entry(row) for row in self.list_weekly_schedules(ids)],
            overrides=[override_entry(row) for row in self.list_overrides(start, end, ids)],
            time_off=[time_off_entry(row) for row in self.list_time_off_requests(start, end, ids)],
        )
