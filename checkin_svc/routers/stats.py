from __future__ import annotations
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..deps import get_db, http_error
from ..core.errors import CheckinError
from ..db import store_call
from ..schemas import StatsRead
from ..services.stats import get_stats

router = APIRouter(tags=["stats"])

@router.get("/stats", response_model=StatsRead)
async def stats(db: AsyncSession = Depends(get_db)):
    try:
        row = await store_call(get_stats(db), what="stats read")
    except CheckinError as e:
        raise http_error(e)
    return StatsRead.model_validate(row)
