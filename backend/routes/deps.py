"""Request-scoped access to the handles created at application startup"""

from fastapi import Request

from backend.core.config import Settings
from backend.db.mongo import Database
from backend.services.appointment_service import AppointmentService
from backend.services.change_feed import ChangeFeed
from backend.services.check_in_service import CheckInService
from backend.services.dock_service import DockService
from backend.services.import_service import ImportService
from backend.services.notification_service import NotificationDispatcher
from backend.services.report_service import ReportService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_database(request: Request) -> Database:
    return request.app.state.database

def get_feed(request: Request) -> ChangeFeed:
    return request.app.state.change_feed

def get_notifier(request: Request) -> NotificationDispatcher:
    return request.app.state.notifier


def get_appointment_service(request: Request) -> AppointmentService:
    return AppointmentService(get_database(request), get_feed(request))

def get_import_service(request: Request) -> ImportService:
    return ImportService(get_appointment_service(request))

def get_check_in_service(request: Request) -> CheckInService:
    return CheckInService(
        get_database(request),
        get_feed(request),
        get_notifier(request),
        get_appointment_service(request),
        get_settings(request),
    )

def get_dock_service(request: Request) -> DockService:
    return DockService(get_database(request), get_feed(request), get_notifier(request), get_settings(request))

def get_report_service(request: Request) -> ReportService:
    return ReportService(get_check_in_service(request), get_settings(request))
