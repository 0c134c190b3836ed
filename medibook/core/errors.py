"""Typed error kinds returned by the scheduling and authorization core.

Every error is terminal for the call that raised it: the core never retries.
``status_code`` is the HTTP status the API layer renders it with.
"""

from __future__ import annotations


class SchedulingError(Exception):
    """Base class for all user-facing core errors."""

    status_code: int = 400
    kind: str = "error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail()
        super().__init__(self.detail)

    @classmethod
    def default_detail(cls) -> str:
        return cls.kind.replace("_", " ")

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.detail}


class Unauthenticated(SchedulingError):
    status_code = 401
    kind = "unauthenticated"


class Forbidden(SchedulingError):
    status_code = 403
    kind = "forbidden"


class NotFound(SchedulingError):
    status_code = 404
    kind = "not_found"


class InvalidSlot(SchedulingError):
    status_code = 422
    kind = "invalid_slot"


class InvalidRequest(SchedulingError):
    status_code = 422
    kind = "invalid_request"


class SlotTaken(SchedulingError):
    """The doctor already has a pending or confirmed booking for the slot.

    Expected outcome of concurrent booking; the caller should pick another slot.
    """

    status_code = 409
    kind = "slot_taken"

    @classmethod
    def default_detail(cls) -> str:
        return "This time slot is already booked, please choose another slot"


class InvalidTransition(SchedulingError):
    status_code = 409
    kind = "invalid_transition"


class ProfileIncomplete(SchedulingError):
    status_code = 409
    kind = "profile_incomplete"

    @classmethod
    def default_detail(cls) -> str:
        return "Doctor profile has no linked doctor record yet"


class StorageFault(SchedulingError):
    """Unexpected storage failure. Rendered opaquely to callers."""

    status_code = 500
    kind = "internal_error"

    @classmethod
    def default_detail(cls) -> str:
        return "Internal server error"
