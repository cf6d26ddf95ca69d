from __future__ import annotations
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, client_key, http_error
from ..core.errors import CheckinError
from ..core.redis import allow_request
from ..schemas import ScanRequest, ScanResponse, AttendeeRead
from ..services.scans import process_scan, notify_scan_recorded
from ..services.stats import refresh_stats_in_background

router = APIRouter(tags=["scan"])

# --- Device scans a ticket with an explicit intent (check_in / check_out)
@router.post("/scan", response_model=ScanResponse)
async def scan_ticket(
    payload: ScanRequest,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    # flood guard per device; not a dedupe of legitimate rescans
    if not await allow_request(client_key(request, payload.device_id), "scan"):
        raise HTTPException(status_code=429, detail={"code": "rate_limited", "message": "Too many scans, slow down"})

    try:
        outcome = await process_scan(
            db,
            scan_identifier=payload.scan_identifier,
            action=payload.action,
            device_id=payload.device_id,
            operator_name=payload.operator_name,
        )
    except CheckinError as e:
        raise http_error(e)

    # run in order after the response is produced; each swallows its own failures
    background_tasks.add_task(refresh_stats_in_background)
    background_tasks.add_task(notify_scan_recorded, outcome)

    return ScanResponse(
        action=outcome.action,
        status=outcome.status,
        attendee=AttendeeRead.model_validate(outcome.attendee),
        log_recorded=outcome.log_recorded,
    )
