from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from backend.core.config import Settings
from backend.core.security import create_access_token
from backend.db.mongo import Database, to_db_time
from backend.models.check_in import CheckInForm
from backend.services.appointment_service import AppointmentService
from backend.services.change_feed import ChangeFeed
from backend.services.check_in_service import CheckInService
from backend.services.dock_service import DockService
from backend.services.import_service import ImportService
from backend.services.notification_service import NotificationDispatcher
from backend.services.report_service import ReportService
from main import create_app


@pytest.fixture
def settings():
    test_settings = Settings()
    test_settings.FACILITY_TIMEZONE = "America/Indiana/Indianapolis"
    test_settings.DOCK_COUNT = 70
    test_settings.DETENTION_GRACE_MINUTES = 120
    test_settings.RESEND_API_KEY = ""
    test_settings.TWILIO_ACCOUNT_SID = ""
    test_settings.TWILIO_AUTH_TOKEN = ""
    test_settings.TWILIO_PHONE_NUMBER = ""
    test_settings.ADMIN_EMAIL = ""
    test_settings.ADMIN_PASSWORD = ""
    return test_settings


@pytest.fixture
def database():
    client = mongomock.MongoClient()
    return Database(client["dock_checkin_test"], client=client)


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def notifier(settings):
    return NotificationDispatcher(settings)


@pytest.fixture
def appointment_service(database, feed):
    return AppointmentService(database, feed)


@pytest.fixture
def import_service(appointment_service):
    return ImportService(appointment_service)


@pytest.fixture
def check_in_service(database, feed, notifier, appointment_service, settings):
    return CheckInService(database, feed, notifier, appointment_service, settings)


@pytest.fixture
def dock_service(database, feed, notifier, settings):
    return DockService(database, feed, notifier, settings)


@pytest.fixture
def report_service(check_in_service, settings):
    return ReportService(check_in_service, settings)


@pytest.fixture
def make_form():
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "load_type": "inbound",
            "reference_number": f"PU-{100000 + counter['n']}",
            "carrier_name": "Blue Line Freight",
            "trailer_number": "TR-4410",
            "destination_city": "Columbus",
            "destination_state": "oh",
            "driver_name": "Sam Rivera",
            "driver_phone": "(317) 555-0142",
        }
        data.update(overrides)
        return CheckInForm(**data)

    return _make


@pytest.fixture
def insert_check_in(database):
    """Insert a raw check-in document with explicit timestamps"""
    counter = {"n": 0}

    def _insert(**fields):
        counter["n"] += 1
        now = datetime.now(timezone.utc)
        doc = {
            "load_type": "outbound",
            "reference_number": f"REF-{200000 + counter['n']}",
            "carrier_name": "Hoosier Haul",
            "trailer_number": "53-118",
            "destination_city": "Dayton",
            "destination_state": "OH",
            "driver_name": f"Driver {counter['n']}",
            "driver_phone": "317-555-0100",
            "driver_email": None,
            "status": "pending",
            "dock_number": None,
            "appointment_time": None,
            "check_in_time": now,
            "check_out_time": None,
            "start_time": None,
            "end_time": None,
            "notes": None,
        }
        doc.update(fields)
        for key in ("check_in_time", "check_out_time", "start_time", "end_time"):
            doc[key] = to_db_time(doc[key])
        result = database.check_ins.insert_one(doc)
        return str(result.inserted_id)

    return _insert


@pytest.fixture
def app(settings, database, notifier):
    return create_app(settings=settings, database=database, notifier=notifier)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def csr_client(client):
    token = create_access_token({"sub": "csr@example.com", "role": "csr"})
    client.headers["Authorization"] = f"Bearer {token}"
    return client
