"""
Attendance state machine for ticket scans.

    not_checked_in --check_in--> checked_in --check_out--> checked_out
                                     ^                          |
                                     +--------check_in----------+

Every scan states its intent (check_in or check_out). The machine only
validates that intent against the current status; it never turns a
check_in into a check_out or the other way round.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict

from ..models import AttendanceStatus, ScanAction
from .errors import ValidationError

# rejection codes
NOT_CHECKED_IN = "not_checked_in"
ALREADY_INSIDE = "already_inside"
ALREADY_CHECKED_OUT = "already_checked_out"

REJECTION_MESSAGES = {
    NOT_CHECKED_IN: "Not yet checked in",
    ALREADY_INSIDE: "Ticket already inside. Entry denied.",
    ALREADY_CHECKED_OUT: "Already checked out",
}

@dataclass(frozen=True)
class Transition:
    action: ScanAction
    status: AttendanceStatus
    changes: Dict[str, Any] = field(default_factory=dict)

@dataclass(frozen=True)
class Rejection:
    code: str
    message: str
    # set when a repeated check_in lands inside the rapid-rescan window
    within_cooldown: bool = False

def parse_action(raw: str | ScanAction | None) -> ScanAction:
    if isinstance(raw, ScanAction):
        return raw
    value = (raw or "").strip().lower()
    if not value:
        raise ValidationError("Scan action is required")
    try:
        return ScanAction(value)
    except ValueError:
        raise ValidationError(f"Invalid scan action: {raw!r}, expected check_in or check_out")

def _as_utc(dt: datetime) -> datetime:
    # some drivers (sqlite) hand back naive datetimes for timezone columns
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)

def _reject(code: str, *, within_cooldown: bool = False) -> Rejection:
    return Rejection(code=code, message=REJECTION_MESSAGES[code], within_cooldown=within_cooldown)

def decide(
    status: AttendanceStatus | str,
    action: ScanAction | str,
    *,
    now: datetime,
    check_in_time: datetime | None = None,
    cooldown_seconds: int = 10,
) -> Transition | Rejection:
    """Return the transition for `action` from `status`, or why it is refused."""
    status = AttendanceStatus(status)
    action = parse_action(action)

    if action is ScanAction.CHECK_IN:
        if status is AttendanceStatus.CHECKED_IN:
            # always refused; the cooldown only labels likely double submissions
            within = False
            if check_in_time is not None:
                elapsed = (_as_utc(now) - _as_utc(check_in_time)).total_seconds()
                within = 0 <= elapsed < cooldown_seconds
            return _reject(ALREADY_INSIDE, within_cooldown=within)
        # first entry or re-entry
        return Transition(
            action=ScanAction.CHECK_IN,
            status=AttendanceStatus.CHECKED_IN,
            changes={
                "status": AttendanceStatus.CHECKED_IN,
                "check_in_time": now,
                "check_out_time": None,
            },
        )

    if status is AttendanceStatus.NOT_CHECKED_IN:
        return _reject(NOT_CHECKED_IN)
    if status is AttendanceStatus.CHECKED_OUT:
        return _reject(ALREADY_CHECKED_OUT)
    return Transition(
        action=ScanAction.CHECK_OUT,
        status=AttendanceStatus.CHECKED_OUT,
        changes={
            "status": AttendanceStatus.CHECKED_OUT,
            "check_out_time": now,
        },
    )
