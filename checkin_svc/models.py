from __future__ import annotations
import uuid
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import Enum as SqlEnum, ForeignKey, Index, Integer, String
from sqlalchemy.types import DateTime

Base = declarative_base()

def utcnow():
    return datetime.now(timezone.utc)

class AttendanceStatus(str, Enum):
    NOT_CHECKED_IN = "not_checked_in"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"

class ScanAction(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"

# Stored by value so the column reads "checked_in" rather than "CHECKED_IN"
def _values(enum_cls):
    return [m.value for m in enum_cls]

class Attendee(Base):
    __tablename__ = "attendees"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    # natural key printed on the ticket QR
    scan_identifier: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    seat_id: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    category: Mapped[str] = mapped_column(String(128), default="", nullable=False)

    status: Mapped[AttendanceStatus] = mapped_column(
        SqlEnum(AttendanceStatus, name="attendance_status", values_callable=_values),
        default=AttendanceStatus.NOT_CHECKED_IN,
        nullable=False,
    )
    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    last_scanned_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (
        Index("ix_attendees_status", "status"),
        Index("ix_attendees_updated", "updated_at"),
    )

# Append-only audit trail of accepted scans
class ScanLog(Base):
    __tablename__ = "scan_logs"
    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    attendee_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("attendees.id"), index=True, nullable=False)
    scan_type: Mapped[ScanAction] = mapped_column(
        SqlEnum(ScanAction, name="scan_type", values_callable=_values), nullable=False
    )
    device_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    operator_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (Index("ix_scan_logs_attendee_created", "attendee_id", "created_at"),)

# Materialised stats projection (single row, id=1)
class AttendeeStats(Base):
    __tablename__ = "attendee_stats"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    total: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    not_checked_in: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked_in: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    checked_out: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    currently_inside: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    refreshed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
