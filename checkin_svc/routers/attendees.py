from __future__ import annotations
from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, http_error
from ..core.config import get_settings
from ..core.errors import CheckinError, NotFound
from ..core.qr import render_ticket_qr
from ..db import store_call
from ..models import Attendee, AttendanceStatus
from ..schemas import AttendeeList, AttendeeRead, ScanLogRead
from ..services.scans import get_attendee_by_identifier, list_scans_for_attendee

settings = get_settings()
router = APIRouter(prefix="/attendees", tags=["attendees"])

async def _get_or_404(db: AsyncSession, scan_identifier: str) -> Attendee:
    try:
        att = await store_call(get_attendee_by_identifier(db, scan_identifier), what="attendee lookup")
        if att is None:
            raise NotFound("Attendee not found")
    except CheckinError as e:
        raise http_error(e)
    return att

# --- Recent activity, newest change first
@router.get("", response_model=AttendeeList)
async def list_attendees(
    status: AttendanceStatus | None = None,
    limit: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
):
    n = min(limit or settings.attendees_default_limit, settings.attendees_max_limit)
    q = select(Attendee).order_by(Attendee.updated_at.desc(), Attendee.created_at.desc()).limit(n)
    if status is not None:
        q = q.where(Attendee.status == status)
    try:
        rows = (await store_call(db.execute(q), what="attendee list")).scalars().all()
    except CheckinError as e:
        raise http_error(e)
    data = [AttendeeRead.model_validate(r) for r in rows]
    return AttendeeList(data=data, count=len(data))

# --- Audit trail of one ticket
@router.get("/{scan_identifier:path}/scans", response_model=list[ScanLogRead])
async def attendee_scans(
    scan_identifier: str,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    att = await _get_or_404(db, scan_identifier)
    try:
        rows = await store_call(list_scans_for_attendee(db, att.id, limit=limit), what="scan log list")
    except CheckinError as e:
        raise http_error(e)
    return [ScanLogRead.model_validate(r) for r in rows]

# (Optional) PNG for reprinting a lost ticket
@router.get("/{scan_identifier:path}/qr.png")
async def attendee_qr_png(scan_identifier: str, db: AsyncSession = Depends(get_db)):
    att = await _get_or_404(db, scan_identifier)
    return Response(content=render_ticket_qr(att.scan_identifier), media_type="image/png")

# Registered last: identifiers may contain "/" (URL payloads), so the suffixed routes above match first
@router.get("/{scan_identifier:path}", response_model=AttendeeRead)
async def get_attendee(scan_identifier: str, db: AsyncSession = Depends(get_db)):
    return AttendeeRead.model_validate(await _get_or_404(db, scan_identifier))
