from __future__ import annotations
import csv
import io
import logging
import os
import re
import zipfile
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.config import get_settings
from ..core.errors import ConcurrencyConflict, ValidationError
from ..db import store_call
from ..models import Attendee, AttendanceStatus

settings = get_settings()
logger = logging.getLogger(__name__)

# normalised header -> attendee field
HEADER_ALIASES = {
    "name": "name",
    "fullname": "name",
    "phone": "phone",
    "phonenumber": "phone",
    "mobile": "phone",
    "qrpayload": "scan_identifier",
    "qr": "scan_identifier",
    "qrcode": "scan_identifier",
    "scanidentifier": "scan_identifier",
    "ticket": "scan_identifier",
    "seatid": "seat_id",
    "seat": "seat_id",
    "category": "category",
}

FIELD_LIMITS = {"name": 255, "phone": 64, "seat_id": 64, "category": 128}
DESCRIPTIVE_FIELDS = tuple(FIELD_LIMITS)
IDENTIFIER_MAX = 255
LOOKUP_CHUNK = 500

@dataclass
class ImportSummary:
    imported: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0

def _now():
    return datetime.now(timezone.utc)

def _norm_header(h: str | None) -> str:
    return re.sub(r"[^a-z0-9]", "", (h or "").lower())

def _cell_text(value) -> str:
    if value is None:
        return ""
    # numeric cells (phone numbers, seat numbers) come back as floats from some writers
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)

def _collect(headers: List[str | None], rows: Iterable[Dict[str, str]]) -> Tuple[List[Dict[str, str]], int]:
    fieldmap = {h: HEADER_ALIASES.get(_norm_header(h)) for h in headers if h}
    if "scan_identifier" not in fieldmap.values():
        found = [h for h in headers if h]
        raise ValidationError(f"Sheet must have a 'QR Payload' column. Found: {found}")

    records: Dict[str, Dict[str, str]] = {}
    skipped = 0
    for row in rows:
        rec = {f: "" for f in DESCRIPTIVE_FIELDS}
        rec["scan_identifier"] = ""
        for header, field in fieldmap.items():
            if field is None:
                continue
            value = (row.get(header) or "").strip()
            if value:
                rec[field] = value
        ident = rec["scan_identifier"]
        if not ident or len(ident) > IDENTIFIER_MAX:
            skipped += 1
            continue
        for f, limit in FIELD_LIMITS.items():
            rec[f] = rec[f][:limit]
        records[ident] = rec
    return list(records.values()), skipped

def parse_rows(content: bytes) -> Tuple[List[Dict[str, str]], int]:
    """
    Turn CSV bytes into attendee records, one per scan identifier.

    Returns (records, skipped). Rows without an identifier are skipped;
    a repeated identifier keeps its first position but takes the last
    row's values.
    """
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise ValidationError("File must be a UTF-8 encoded CSV")

    reader = csv.DictReader(io.StringIO(text))
    return _collect(list(reader.fieldnames or []), reader)

def parse_workbook(content: bytes) -> Tuple[List[Dict[str, str]], int]:
    """Same as parse_rows for an .xlsx workbook; only the first worksheet is read."""
    try:
        wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as e:
        raise ValidationError(f"Could not read workbook: {e.__class__.__name__}")
    try:
        if not wb.worksheets:
            raise ValidationError("Workbook has no worksheets")
        values = wb.worksheets[0].iter_rows(values_only=True)
        header_row = next(values, None) or ()
        headers = [_cell_text(h).strip() or None for h in header_row]
        rows = []
        for raw in values:
            if raw is None or all(v is None for v in raw):
                continue
            rows.append({h: _cell_text(v) for h, v in zip(headers, raw) if h})
        return _collect(headers, rows)
    finally:
        wb.close()

def _chunks(items: List[str], size: int) -> Iterable[List[str]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]

async def upsert_attendees(db: AsyncSession, records: List[Dict[str, str]]) -> Tuple[int, int]:
    """
    Idempotent upsert keyed by scan identifier. Attendance state of existing
    attendees is never touched; only descriptive fields are refreshed.
    Returns (created, updated).
    """
    by_ident = {r["scan_identifier"]: r for r in records}
    existing: Dict[str, Attendee] = {}
    for chunk in _chunks(list(by_ident), LOOKUP_CHUNK):
        rows = (await db.execute(select(Attendee).where(Attendee.scan_identifier.in_(chunk)))).scalars().all()
        existing.update({a.scan_identifier: a for a in rows})

    now = _now()
    created = updated = 0
    for ident, rec in by_ident.items():
        att = existing.get(ident)
        if att is None:
            db.add(Attendee(
                scan_identifier=ident,
                status=AttendanceStatus.NOT_CHECKED_IN,
                created_at=now,
                updated_at=now,
                **{f: rec[f] for f in DESCRIPTIVE_FIELDS},
            ))
            created += 1
            continue
        changed = False
        for f in DESCRIPTIVE_FIELDS:
            if getattr(att, f) != rec[f]:
                setattr(att, f, rec[f])
                changed = True
        if changed:
            att.updated_at = now
            updated += 1

    await db.commit()
    return created, updated

SHEET_PARSERS = {
    ".csv": parse_rows,
    ".xlsx": parse_workbook,
}

async def import_spreadsheet(db: AsyncSession, *, filename: str | None, content: bytes) -> ImportSummary:
    parser = SHEET_PARSERS.get(os.path.splitext(filename or "")[1].lower())
    if parser is None:
        raise ValidationError("Invalid file type, upload a .xlsx or .csv file")
    if not content:
        raise ValidationError("No file uploaded")
    if len(content) > settings.import_max_bytes:
        raise ValidationError(f"File too large (max {settings.import_max_bytes} bytes)")

    records, skipped = parser(content)
    summary = ImportSummary(imported=len(records), skipped=skipped)
    if not records:
        logger.info("Import of %s: no rows with a QR payload (%d skipped)", filename, skipped)
        return summary

    try:
        summary.created, summary.updated = await store_call(upsert_attendees(db, records), what="attendee import")
    except IntegrityError as e:
        await db.rollback()
        logger.warning("Import of %s collided with a concurrent write: %s", filename, e.orig)
        raise ConcurrencyConflict("Attendees changed during import, please retry")

    logger.info(
        "Import of %s: %d rows, %d created, %d updated, %d skipped",
        filename, summary.imported, summary.created, summary.updated, summary.skipped,
    )
    return summary
