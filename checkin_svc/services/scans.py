from __future__ import annotations
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from sqlalchemy import select, update
from sqlalchemy.exc import InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from ..core.config import get_settings
from ..core.errors import ConcurrencyConflict, NotFound, StateConflict, StoreUnavailable, ValidationError
from ..core.nats import publish_scan
from ..core.state_machine import Rejection, Transition, decide, parse_action
from ..db import store_call
from ..models import AttendanceStatus, Attendee, ScanAction, ScanLog

settings = get_settings()
logger = logging.getLogger(__name__)

def _now():
    return datetime.now(timezone.utc)

def _clean(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None

@dataclass
class ScanOutcome:
    attendee: Attendee
    action: ScanAction
    status: AttendanceStatus
    scanned_at: datetime
    log_recorded: bool = True

async def get_attendee_by_identifier(db: AsyncSession, scan_identifier: str, *, fresh: bool = False) -> Attendee | None:
    q = select(Attendee).where(Attendee.scan_identifier == scan_identifier)
    if fresh:
        # bypass the identity map so a concurrent writer's changes are visible
        q = q.execution_options(populate_existing=True)
    return (await db.execute(q)).scalar_one_or_none()

async def _compare_and_swap(
    db: AsyncSession, attendee_id: uuid.UUID, expected: AttendanceStatus, values: dict
) -> bool:
    # status read during lookup is part of the predicate: at most one racing writer wins
    res = await store_call(
        db.execute(
            update(Attendee)
            .where(Attendee.id == attendee_id, Attendee.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        ),
        what="attendee update",
    )
    if res.rowcount != 1:
        await db.rollback()
        return False
    # the commit runs outside the store timeout: a commit cancelled mid-flight has no known outcome
    try:
        await db.commit()
    except (OperationalError, InterfaceError, OSError) as e:
        logger.error("Commit of attendee %s failed, outcome unknown: %s", attendee_id, e)
        raise StoreUnavailable() from e
    return True

async def _rollback_quietly(db: AsyncSession, attendee_id: uuid.UUID) -> None:
    try:
        await db.rollback()
    except (SQLAlchemyError, OSError) as e:
        logger.error("Rollback after failed scan log append for attendee %s failed: %s", attendee_id, e)

async def _append_log(
    db: AsyncSession,
    *,
    attendee_id: uuid.UUID,
    action: ScanAction,
    device_id: str | None,
    operator_name: str | None,
    at: datetime,
) -> bool:
    """Best effort: the attendee change is already committed and stays committed."""
    db.add(ScanLog(
        attendee_id=attendee_id, scan_type=action, device_id=device_id,
        operator_name=operator_name, created_at=at,
    ))
    try:
        await store_call(db.commit(), what="scan log append")
    except (SQLAlchemyError, StoreUnavailable) as e:
        logger.error("Scan log append failed for attendee %s (%s): %s", attendee_id, action.value, e)
        await _rollback_quietly(db, attendee_id)
        return False
    return True

def _decide(attendee: Attendee, action: ScanAction, now: datetime, cooldown_seconds: int) -> Transition | Rejection:
    return decide(
        attendee.status, action,
        now=now, check_in_time=attendee.check_in_time, cooldown_seconds=cooldown_seconds,
    )

def _rejected(attendee: Attendee, action: ScanAction, rejection: Rejection, device_id: str | None) -> StateConflict:
    if rejection.within_cooldown:
        logger.info(
            "Probable double submission: %s scanned %s again within cooldown (device=%s)",
            attendee.scan_identifier, action.value, device_id,
        )
    else:
        logger.info(
            "Scan rejected: %s %s -> %s (device=%s)",
            attendee.scan_identifier, action.value, rejection.code, device_id,
        )
    return StateConflict(
        rejection.message, code=rejection.code, attendee=attendee, within_cooldown=rejection.within_cooldown
    )

async def process_scan(
    db: AsyncSession,
    *,
    scan_identifier: str | None,
    action: str | ScanAction | None,
    device_id: str | None = None,
    operator_name: str | None = None,
    now: datetime | None = None,
    cooldown_seconds: int | None = None,
) -> ScanOutcome:
    """
    Apply one scan to the attendee holding `scan_identifier`.

    Raises ValidationError, NotFound, StateConflict, ConcurrencyConflict or
    StoreUnavailable. Nothing is written unless the transition is accepted;
    an accepted scan writes the attendee first, then appends one log entry.
    """
    identifier = _clean(scan_identifier)
    if identifier is None:
        raise ValidationError("Scan identifier is required")
    action = parse_action(action)
    device_id = _clean(device_id)
    operator_name = _clean(operator_name)
    cooldown = settings.rapid_rescan_cooldown_seconds if cooldown_seconds is None else cooldown_seconds

    attendee = await store_call(get_attendee_by_identifier(db, identifier), what="attendee lookup")
    if attendee is None:
        logger.info("Scan of unknown ticket %r (device=%s)", identifier, device_id)
        raise NotFound("Invalid ticket", code="invalid_ticket")

    now = now or _now()
    decision = _decide(attendee, action, now, cooldown)
    if isinstance(decision, Rejection):
        raise _rejected(attendee, action, decision, device_id)

    values = dict(decision.changes)
    values.update(updated_at=now, device_id=device_id, last_scanned_by=operator_name)
    observed = attendee.status

    swapped = await _compare_and_swap(db, attendee.id, observed, values)
    if not swapped:
        logger.warning("Concurrent update on %s while applying %s", identifier, action.value)
        current = await store_call(get_attendee_by_identifier(db, identifier, fresh=True), what="attendee re-read")
        if current is None:
            raise NotFound("Invalid ticket", code="invalid_ticket")
        retry = _decide(current, action, now, cooldown)
        if isinstance(retry, Rejection):
            raise _rejected(current, action, retry, device_id)
        raise ConcurrencyConflict(attendee=current)

    for key, value in values.items():
        set_committed_value(attendee, key, value)
    # detach so a rollback of the log append cannot expire the committed snapshot
    db.expunge(attendee)

    logged = await _append_log(
        db, attendee_id=attendee.id, action=decision.action,
        device_id=device_id, operator_name=operator_name, at=now,
    )
    logger.info(
        "Scan accepted: %s %s -> %s (device=%s, operator=%s)",
        identifier, decision.action.value, decision.status.value, device_id, operator_name,
    )
    return ScanOutcome(
        attendee=attendee, action=decision.action, status=decision.status,
        scanned_at=now, log_recorded=logged,
    )

async def list_scans_for_attendee(db: AsyncSession, attendee_id: uuid.UUID, *, limit: int = 100) -> list[ScanLog]:
    rows = (await db.execute(
        select(ScanLog).where(ScanLog.attendee_id == attendee_id)
        .order_by(ScanLog.created_at.desc()).limit(limit)
    )).scalars().all()
    return list(rows)

async def notify_scan_recorded(outcome: ScanOutcome) -> None:
    """Fire-and-forget NATS event for an accepted scan."""
    a = outcome.attendee
    scanned_at = outcome.scanned_at.isoformat().replace("+00:00", "Z")
    try:
        await publish_scan({
            "attendee_id": str(a.id),
            "scan_identifier": a.scan_identifier,
            "action": outcome.action.value,
            "status": outcome.status.value,
            "device_id": a.device_id,
            "operator_name": a.last_scanned_by,
            "scanned_at": scanned_at,
            "idempotency_key": f"{a.id}:{outcome.action.value}:{scanned_at}",
        })
    except Exception as e:
        # non-fatal for the scan response
        logger.warning("Publishing scan event for %s failed: %s", a.scan_identifier, e)
