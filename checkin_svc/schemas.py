from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field
from uuid import UUID
from datetime import datetime

from .models import AttendanceStatus, ScanAction

class ScanRequest(BaseModel):
    # emptiness and action values are validated by services.scans
    scan_identifier: str | None = Field(default=None, max_length=255)
    action: str | None = None
    device_id: str | None = Field(default=None, max_length=255)
    operator_name: str | None = Field(default=None, max_length=255)

class AttendeeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    scan_identifier: str
    name: str
    phone: str
    seat_id: str
    category: str
    status: AttendanceStatus
    check_in_time: datetime | None = None
    check_out_time: datetime | None = None
    last_scanned_by: str | None = None
    device_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

class ScanResponse(BaseModel):
    success: bool = True
    action: ScanAction
    status: AttendanceStatus
    attendee: AttendeeRead
    # false when the audit-log append failed after the state change was committed
    log_recorded: bool = True

class ScanLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    attendee_id: UUID
    scan_type: ScanAction
    device_id: str | None = None
    operator_name: str | None = None
    created_at: datetime

class AttendeeList(BaseModel):
    success: bool = True
    data: list[AttendeeRead]
    count: int

class ImportResult(BaseModel):
    success: bool = True
    imported: int
    created: int
    updated: int
    skipped: int
    message: str = "Data imported successfully"

class StatsRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total: int
    not_checked_in: int
    checked_in: int
    checked_out: int
    currently_inside: int
    refreshed_at: datetime | None = None
