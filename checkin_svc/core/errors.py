from __future__ import annotations
from typing import Any

class CheckinError(Exception):
    """Base for every error the scan/import services report to their caller."""
    code = "error"

    def __init__(self, message: str, *, code: str | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

class ValidationError(CheckinError):
    code = "validation_error"

class NotFound(CheckinError):
    code = "not_found"

class StateConflict(CheckinError):
    """Requested action is illegal for the attendee's current status."""

    def __init__(self, message: str, *, code: str, attendee: Any = None, within_cooldown: bool = False):
        super().__init__(message, code=code)
        self.attendee = attendee
        self.within_cooldown = within_cooldown

class ConcurrencyConflict(CheckinError):
    """Optimistic update matched no rows: someone else changed the attendee first."""
    code = "concurrent_update"

    def __init__(self, message: str = "Ticket was updated by another scan, please retry", *, attendee: Any = None):
        super().__init__(message)
        self.attendee = attendee

class StoreUnavailable(CheckinError):
    code = "store_unavailable"

    def __init__(self, message: str = "Attendee store unavailable, please retry"):
        super().__init__(message)
