"""
Appointment Import Service
Handles importing the appointment schedule from CSV and Excel files.

Expected columns (matched case-insensitively):
- Apt. Start Date / Start Date: MM/DD/YYYY, an Excel date, or a date serial
- Start Time: HH:MM[:SS], an Excel time, or a fraction of a day
- Sales Order, Delivery: at least one per row
- Customer: optional
"""

import csv
import io
import logging
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterator, List, Optional

import openpyxl

from backend.core.errors import ImportFileError
from backend.models.appointment import TIME_SLOTS, AppointmentInput, AppointmentSource, ImportResult
from backend.services.appointment_service import AppointmentService

logger = logging.getLogger(__name__)

EXCEL_EPOCH = date(1899, 12, 30)

SENTINEL_SLOTS = [slot for slot in TIME_SLOTS if ':' not in slot]


def _find_column(headers: List[str], *keywords: str) -> Optional[str]:
    for header in headers:
        lowered = header.lower()
        if all(keyword in lowered for keyword in keywords):
            return header
    return None


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def parse_date(value: Any) -> date:
    """Parse MM/DD/YYYY, ISO dates, datetime objects and Excel date serials"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)):
        return EXCEL_EPOCH + timedelta(days=int(value))

    text = str(value).strip()
    for fmt in ("%m/%d/%Y", "%Y-%m-%d", "%m/%d/%y"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    try:
        return parse_date(float(text))
    except ValueError:
        raise ValueError(f"Invalid date format: {text}")


def parse_time(value: Any) -> str:
    """Parse HH:MM[:SS], time objects and fractional-day numbers into HH:MM"""
    if isinstance(value, datetime):
        value = value.time()
    if isinstance(value, time):
        return f"{value.hour:02d}:{value.minute:02d}"
    if isinstance(value, (int, float)):
        total_minutes = round((float(value) % 1) * 24 * 60)
        hours, minutes = divmod(total_minutes, 60)
        return f"{hours % 24:02d}:{minutes:02d}"

    text = str(value).strip()
    for slot in SENTINEL_SLOTS:
        if text.lower() == slot.lower():
            return slot
    parts = text.split(':')
    if len(parts) in (2, 3) and all(p.strip().isdigit() for p in parts):
        hours, minutes = int(parts[0]), int(parts[1])
        if 0 <= hours < 24 and 0 <= minutes < 60:
            return f"{hours:02d}:{minutes:02d}"
        raise ValueError(f"Invalid time: {text}")
    try:
        return parse_time(float(text))
    except ValueError:
        raise ValueError(f"Invalid time format: {text}")


def read_rows(file_bytes: bytes, filename: str) -> Iterator[Dict[str, Any]]:
    """Yield each data row of a CSV or XLSX upload as a header -> value dict"""
    name = (filename or '').lower()
    if name.endswith('.csv') or name.endswith('.txt'):
        try:
            text = file_bytes.decode('utf-8-sig')
        except UnicodeDecodeError as e:
            raise ImportFileError(f"CSV file is not valid UTF-8: {e}") from e
        yield from csv.DictReader(io.StringIO(text))
        return

    if not (name.endswith('.xlsx') or name.endswith('.xlsm')):
        raise ImportFileError(f"Unsupported file type: {filename}")

    try:
        workbook = openpyxl.load_workbook(io.BytesIO(file_bytes), read_only=True, data_only=True)
    except Exception as e:
        raise ImportFileError(f"Could not read Excel file: {e}") from e

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header_row = next(rows, None)
        if header_row is None:
            return
        headers = [str(h).strip() if h is not None else '' for h in header_row]
        for values in rows:
            if values is None or all(v is None or str(v).strip() == '' for v in values):
                continue
            yield dict(zip(headers, values))
    finally:
        workbook.close()


class ImportService:
    def __init__(self, appointments: AppointmentService):
        self.appointments = appointments

    async def import_file(self, file_bytes: bytes, filename: str) -> ImportResult:
        """
        Create one appointment per row.

        Rows missing a date or time, or both references, are counted as failed.
        Rows that repeat an existing (date, time, sales order, delivery) key,
        in storage or earlier in the same file, are skipped.
        """
        result = ImportResult()
        seen: set = set()
        columns: Optional[Dict[str, Optional[str]]] = None

        for index, row in enumerate(read_rows(file_bytes, filename), start=1):
            if columns is None:
                columns = self._resolve_columns(list(row.keys()))
            result.total += 1

            try:
                parsed = self._parse_row(row, columns)
            except ValueError as e:
                result.failed += 1
                result.errors.append(f"Row {index}: {e}")
                continue

            key = (parsed.scheduled_date, parsed.scheduled_time, parsed.sales_order, parsed.delivery)
            if key in seen or await self.appointments.is_duplicate(*key):
                result.skipped += 1
                logger.info(f"Row {index}: duplicate appointment skipped")
                continue

            try:
                await self.appointments.create(parsed)
            except Exception as e:
                result.failed += 1
                result.errors.append(f"Row {index}: {e}")
                logger.error(f"Row {index} failed: {e}")
                continue

            seen.add(key)
            result.success += 1

        logger.info(
            f"Import of {filename}: {result.success} created, {result.skipped} skipped, "
            f"{result.failed} failed of {result.total}"
        )
        return result

    def _resolve_columns(self, headers: List[str]) -> Dict[str, Optional[str]]:
        return {
            'date': _find_column(headers, 'start', 'date') or _find_column(headers, 'date'),
            'time': _find_column(headers, 'start', 'time') or _find_column(headers, 'time'),
            'sales_order': _find_column(headers, 'sales', 'order'),
            'delivery': _find_column(headers, 'delivery'),
            'customer': _find_column(headers, 'customer'),
        }

    def _parse_row(self, row: Dict[str, Any], columns: Dict[str, Optional[str]]) -> AppointmentInput:
        def value(field: str) -> Any:
            column = columns.get(field)
            return row.get(column) if column else None

        raw_date = value('date')
        raw_time = value('time')
        if raw_date is None or str(raw_date).strip() == '':
            raise ValueError("Missing date")
        if raw_time is None or str(raw_time).strip() == '':
            raise ValueError("Missing time")

        sales_order = _text(value('sales_order'))
        delivery = _text(value('delivery'))
        if not sales_order and not delivery:
            raise ValueError("Missing both Sales Order and Delivery")

        return AppointmentInput(
            scheduled_date=parse_date(raw_date),
            scheduled_time=parse_time(raw_time),
            sales_order=sales_order,
            delivery=delivery,
            customer=_text(value('customer')),
            source=AppointmentSource.EXCEL,
        )
