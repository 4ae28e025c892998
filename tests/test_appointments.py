import io
from datetime import date, datetime, time

import openpyxl
import pytest

from backend.core.errors import AppointmentValidationError, ImportFileError, RecordNotFoundError
from backend.models.appointment import AppointmentInput, AppointmentSource, AppointmentUpdate
from backend.services.import_service import parse_date, parse_time

DAY = date(2025, 3, 4)

CSV_HEADER = "Apt. Start Date,Start Time,Sales Order,Delivery,Customer\n"


def csv_bytes(*rows):
    return (CSV_HEADER + "".join(row + "\n" for row in rows)).encode("utf-8")


async def test_create_requires_a_reference(appointment_service):
    with pytest.raises(AppointmentValidationError):
        await appointment_service.create(AppointmentInput(scheduled_date=DAY, scheduled_time="08:00"))
    with pytest.raises(AppointmentValidationError):
        await appointment_service.create(AppointmentInput(
            scheduled_date=DAY, scheduled_time="08:00", sales_order="  ",
        ))


async def test_list_by_date_orders_by_time(appointment_service):
    await appointment_service.create(AppointmentInput(scheduled_date=DAY, scheduled_time="13:00", sales_order="SO1"))
    await appointment_service.create(AppointmentInput(scheduled_date=DAY, scheduled_time="08:00", delivery="D1"))
    await appointment_service.create(AppointmentInput(
        scheduled_date=date(2025, 3, 5), scheduled_time="08:00", delivery="D2",
    ))

    appointments = await appointment_service.list_by_date(DAY)

    assert [a.scheduled_time for a in appointments] == ["08:00", "13:00"]
    assert appointments[0].source == AppointmentSource.MANUAL
    assert appointments[0].scheduled_date == DAY


async def test_update_cannot_clear_both_references(appointment_service):
    appointment = await appointment_service.create(AppointmentInput(
        scheduled_date=DAY, scheduled_time="08:00", sales_order="SO1",
    ))

    with pytest.raises(AppointmentValidationError):
        await appointment_service.update(appointment.id, AppointmentUpdate(sales_order=None))

    updated = await appointment_service.update(appointment.id, AppointmentUpdate(
        sales_order=None, delivery="D9", scheduled_time="09:30",
    ))
    assert updated.sales_order is None
    assert updated.delivery == "D9"
    assert updated.scheduled_time == "09:30"


async def test_delete_appointment(appointment_service):
    appointment = await appointment_service.create(AppointmentInput(
        scheduled_date=DAY, scheduled_time="08:00", sales_order="SO1",
    ))
    await appointment_service.delete(appointment.id)
    assert await appointment_service.list_by_date(DAY) == []
    with pytest.raises(RecordNotFoundError):
        await appointment_service.delete(appointment.id)


async def test_customer_breakdown(appointment_service):
    for customer, ref in [("Acme", "1"), ("Zenith", "2"), ("Acme", "3"), (None, "4")]:
        await appointment_service.create(AppointmentInput(
            scheduled_date=DAY, scheduled_time="08:00", sales_order=f"SO{ref}", customer=customer,
        ))

    breakdown = await appointment_service.customer_breakdown(DAY)

    assert [(c.customer, c.count) for c in breakdown] == [("Acme", 2), ("Unknown", 1), ("Zenith", 1)]


@pytest.mark.parametrize("value, expected", [
    ("03/04/2025", DAY),
    ("3/4/2025", DAY),
    ("2025-03-04", DAY),
    (45720, DAY),
    ("45720", DAY),
    (datetime(2025, 3, 4, 0, 0), DAY),
])
def test_parse_date(value, expected):
    assert parse_date(value) == expected


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date("next tuesday")


@pytest.mark.parametrize("value, expected", [
    ("08:00", "08:00"),
    ("8:30:00", "08:30"),
    (0.3541666667, "08:30"),
    (time(14, 0), "14:00"),
    ("work in", "Work In"),
    ("LTL", "LTL"),
])
def test_parse_time(value, expected):
    assert parse_time(value) == expected


def test_parse_time_rejects_garbage():
    with pytest.raises(ValueError):
        parse_time("noon-ish")
    with pytest.raises(ValueError):
        parse_time("25:00")


async def test_import_csv(import_service, appointment_service):
    result = await import_service.import_file(csv_bytes(
        "03/04/2025,08:00,SO100,,Acme",
        "03/04/2025,09:30,,DL200,Zenith",
    ), "schedule.csv")

    assert result.total == 2
    assert result.success == 2
    assert result.failed == 0
    appointments = await appointment_service.list_by_date(DAY)
    assert [a.source for a in appointments] == [AppointmentSource.EXCEL, AppointmentSource.EXCEL]


async def test_import_skips_duplicate_rows(import_service, appointment_service):
    result = await import_service.import_file(csv_bytes(
        "03/04/2025,08:00,SO100,DL100,Acme",
        "03/04/2025,08:00,SO100,DL100,Acme",
    ), "schedule.csv")

    assert result.success == 1
    assert result.skipped == 1
    assert len(await appointment_service.list_by_date(DAY)) == 1


async def test_reimporting_a_file_creates_nothing(import_service, appointment_service):
    content = csv_bytes("03/04/2025,08:00,SO100,,Acme")
    await import_service.import_file(content, "schedule.csv")

    result = await import_service.import_file(content, "schedule.csv")

    assert result.success == 0
    assert result.skipped == 1
    assert len(await appointment_service.list_by_date(DAY)) == 1


async def test_import_counts_invalid_rows_as_failed(import_service):
    result = await import_service.import_file(csv_bytes(
        "03/04/2025,08:00,,,Acme",
        ",08:00,SO1,,Acme",
        "03/04/2025,,SO2,,Acme",
        "03/04/2025,later,SO3,,Acme",
        "03/04/2025,10:00,SO4,,Acme",
    ), "schedule.csv")

    assert result.total == 5
    assert result.failed == 4
    assert result.success == 1
    assert result.errors[0].startswith("Row 1:")
    assert "Sales Order" in result.errors[0]


async def test_import_xlsx_with_excel_types(import_service, appointment_service):
    workbook = openpyxl.Workbook()
    sheet = workbook.active
    sheet.append(["Apt. Start Date", "Start Time", "Sales Order", "Delivery", "Customer"])
    sheet.append([datetime(2025, 3, 4), 0.3541666667, 123456, None, "Acme"])
    sheet.append([datetime(2025, 3, 4), "Work In", None, "DL-77", "Zenith"])
    buffer = io.BytesIO()
    workbook.save(buffer)

    result = await import_service.import_file(buffer.getvalue(), "schedule.xlsx")

    assert result.success == 2
    appointments = await appointment_service.list_by_date(DAY)
    by_time = {a.scheduled_time: a for a in appointments}
    assert by_time["08:30"].sales_order == "123456"
    assert by_time["Work In"].delivery == "DL-77"


async def test_import_rejects_unknown_file_type(import_service):
    with pytest.raises(ImportFileError):
        await import_service.import_file(b"data", "schedule.pdf")


async def test_import_rejects_corrupt_workbook(import_service):
    with pytest.raises(ImportFileError):
        await import_service.import_file(b"not a zip file", "schedule.xlsx")
