# slot_booking/services/export_service.py
import json
from io import BytesIO
from typing import Any, Callable, Iterable, List, Tuple

from openpyxl import Workbook

from .. import models

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

Column = Tuple[str, Callable[[Any], Any]]


def _enum_value(value):
    return value.value if hasattr(value, "value") else value


def _timestamp(value):
    # openpyxl rejects tz-aware datetimes
    return value.replace(tzinfo=None) if value is not None else None


BOOKING_COLUMNS: List[Column] = [
    ("ID", lambda b: b.id),
    ("Name", lambda b: b.name),
    ("Phone", lambda b: b.phone),
    ("Army Number", lambda b: b.army_number),
    ("Date", lambda b: b.date),
    ("Time Slot", lambda b: b.time_slot),
    ("Purpose", lambda b: b.purpose),
    ("Location", lambda b: b.location),
    ("Status", lambda b: _enum_value(b.status)),
    ("Created At", lambda b: _timestamp(b.created_at)),
]

AUDIT_LOG_COLUMNS: List[Column] = [
    ("Date/Time", lambda log: _timestamp(log.created_at)),
    ("Admin Username", lambda log: log.admin_username),
    ("Action", lambda log: log.action),
    ("Entity Type", lambda log: log.entity_type),
    ("Entity ID", lambda log: log.entity_id),
    ("IP Address", lambda log: log.ip_address),
    ("Old Values", lambda log: json.dumps(log.old_values) if log.old_values is not None else None),
    ("New Values", lambda log: json.dumps(log.new_values) if log.new_values is not None else None),
]


def build_workbook(title: str, columns: List[Column], rows: Iterable[Any]) -> bytes:
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = title
    sheet.append([header for header, _ in columns])
    for row in rows:
        sheet.append([getter(row) for _, getter in columns])

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def bookings_workbook(bookings: Iterable[models.Booking]) -> bytes:
    return build_workbook("Bookings", BOOKING_COLUMNS, bookings)


def audit_logs_workbook(logs: Iterable[models.AuditLog]) -> bytes:
    return build_workbook("Audit Logs", AUDIT_LOG_COLUMNS, logs)
