from __future__ import annotations
from fastapi import APIRouter, BackgroundTasks, Depends, File, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, http_error
from ..core.errors import CheckinError
from ..schemas import ImportResult
from ..services.imports import import_spreadsheet
from ..services.stats import refresh_stats_in_background

router = APIRouter(tags=["import"])

# --- Organiser uploads the attendee spreadsheet (re-upload is safe)
@router.post("/import", response_model=ImportResult)
async def import_attendees(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
):
    content = await file.read()
    try:
        summary = await import_spreadsheet(db, filename=file.filename, content=content)
    except CheckinError as e:
        raise http_error(e)

    if summary.created or summary.updated:
        background_tasks.add_task(refresh_stats_in_background)

    return ImportResult(
        imported=summary.imported,
        created=summary.created,
        updated=summary.updated,
        skipped=summary.skipped,
    )
