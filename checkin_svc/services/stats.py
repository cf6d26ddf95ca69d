from __future__ import annotations
import logging
from datetime import datetime, timezone
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from .. import db as database
from ..models import Attendee, AttendeeStats, AttendanceStatus

logger = logging.getLogger(__name__)

# single-row projection
STATS_ROW_ID = 1

def _now():
    return datetime.now(timezone.utc)

async def compute_stats(db: AsyncSession) -> dict:
    by_status = dict((await db.execute(
        select(Attendee.status, func.count()).group_by(Attendee.status)
    )).all())
    counts = {s.value: int(by_status.get(s, 0)) for s in AttendanceStatus}
    return {
        "total": sum(counts.values()),
        **counts,
        # the attendee store is authoritative; the scan log may be short after a failed append
        "currently_inside": counts[AttendanceStatus.CHECKED_IN.value],
    }

async def refresh_stats(db: AsyncSession) -> AttendeeStats:
    """Rebuild the materialised stats row from grouped counts."""
    values = await compute_stats(db)
    row = await db.get(AttendeeStats, STATS_ROW_ID)
    if row is None:
        row = AttendeeStats(id=STATS_ROW_ID)
        db.add(row)
    for k, v in values.items():
        setattr(row, k, v)
    row.refreshed_at = _now()
    await db.commit()
    return row

async def get_stats(db: AsyncSession) -> AttendeeStats:
    row = await db.get(AttendeeStats, STATS_ROW_ID)
    if row is None:
        row = await refresh_stats(db)
    return row

async def refresh_stats_in_background() -> None:
    """Fire-and-forget refresh; never raises into the caller."""
    try:
        async with database.async_session_maker() as session:
            await database.store_call(refresh_stats(session), what="stats refresh")
    except Exception as e:
        logger.warning("Stats refresh failed: %s", e)
