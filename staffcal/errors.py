from __future__ import annotations


class CalendarError(Exception):
    kind = "error"

    def __init__(self, message: str, *, field: str | None = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def as_dict(self) -> dict[str, str | None]:
        return {"kind": self.kind, "detail": self.message, "field": self.field}


class ValidationFailure(CalendarError):
    kind = "validation"


class InvalidState(CalendarError):
    kind = "invalid_state"


class PermissionDenied(CalendarError):
    kind = "forbidden"


class StoreError(CalendarError):
    kind = "store_error"

    def __init__(self, cause: BaseException, message: str = "Schedule store operation failed"):
        super().__init__(message)
        self.cause = cause
