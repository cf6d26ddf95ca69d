from __future__ import annotations
from typing import AsyncGenerator
from fastapi import HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from . import db
from .core.errors import CheckinError, ConcurrencyConflict, NotFound, StateConflict, StoreUnavailable, ValidationError
from .schemas import AttendeeRead

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async for s in db.get_session():
        yield s

def client_key(request: Request, device_id: str | None = None) -> str:
    """Rate-limit identity: the scanning device if it says who it is, else its address."""
    if device_id:
        return f"device:{device_id}"
    return f"ip:{request.client.host if request.client else 'unknown'}"

_HTTP_STATUS = (
    (ValidationError, 422),
    (NotFound, 404),
    (StateConflict, 409),
    (ConcurrencyConflict, 409),
    (StoreUnavailable, 503),
)

def http_error(e: CheckinError) -> HTTPException:
    """Map a service error onto a structured, non-leaking HTTP error."""
    detail = {"code": e.code, "message": e.message}
    attendee = getattr(e, "attendee", None)
    if attendee is not None:
        detail["attendee"] = AttendeeRead.model_validate(attendee).model_dump(mode="json")
    code = next((c for cls, c in _HTTP_STATUS if isinstance(e, cls)), 500)
    return HTTPException(status_code=code, detail=detail)
