import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo
from pymongo import ReturnDocument
from backend.core.config import Settings
from backend.core.errors import DuplicateCheckInError, InvalidTransitionError, RecordNotFoundError
from backend.db.mongo import Database, parse_object_id, serialize_document, to_db_time, utcnow, wrap_storage_errors
from backend.models.check_in import (
    ACTIVE_STATUSES,
    NOTES_REQUIRED_STATUSES,
    TERMINAL_STATUSES,
    CheckIn,
    CheckInForm,
    CheckInStatus,
    CheckInUpdate,
    ManualCheckInForm,
)
from backend.models.notification import NotificationType
from backend.services.appointment_service import AppointmentService
from backend.services.change_feed import ChangeFeed
from backend.services.dock_service import DockService
from backend.services.notification_service import NotificationDispatcher
from backend.services.timing import local_day_bounds, local_today, slot_to_appointment_code, to_local

logger = logging.getLogger(__name__)


class CheckInService:
    """Lifecycle of driver visits: pending -> checked_in -> one terminal status"""

    def __init__(
        self,
        database: Database,
        feed: ChangeFeed,
        notifier: NotificationDispatcher,
        appointments: AppointmentService,
        settings: Settings,
    ):
        self.db = database
        self.feed = feed
        self.notifier = notifier
        self.appointments = appointments
        self.tz = ZoneInfo(settings.FACILITY_TIMEZONE)
        self.docks = DockService(database, feed, notifier, settings)

    @wrap_storage_errors("load check-in")
    async def get_check_in(self, check_in_id: str) -> CheckIn:
        doc = self.db.check_ins.find_one({'_id': parse_object_id(check_in_id)})
        if doc is None:
            raise RecordNotFoundError(f"Check-in {check_in_id} not found")
        return CheckIn(**serialize_document(doc))

    @wrap_storage_errors("load check-ins")
    async def list_check_ins(self, day: Optional[date] = None, status: Optional[CheckInStatus] = None) -> List[CheckIn]:
        """Check-ins for one facility-local day (today by default), newest first"""
        start, end = local_day_bounds(day or local_today(self.tz), self.tz)
        query: Dict[str, Any] = {'check_in_time': {'$gte': to_db_time(start), '$lt': to_db_time(end)}}
        if status is not None:
            query['status'] = status.value
        docs = self.db.check_ins.find(query, sort=[('check_in_time', -1)])
        return [CheckIn(**serialize_document(doc)) for doc in docs]

    @wrap_storage_errors("load active check-ins")
    async def list_active(self) -> List[CheckIn]:
        docs = self.db.check_ins.find(
            {'status': {'$in': [s.value for s in ACTIVE_STATUSES]}},
            sort=[('check_in_time', 1)],
        )
        return [CheckIn(**serialize_document(doc)) for doc in docs]

    async def create_check_in(self, form: CheckInForm) -> Dict[str, Any]:
        """
        Record a driver's arrival as a pending check-in.

        A reference number may check in once per facility day. When today's
        appointment board has the reference as a sales order or delivery, its
        slot is copied onto the check-in.
        """
        today = local_today(self.tz)
        if await self._checked_in_today(form.reference_number, today):
            raise DuplicateCheckInError("This reference number has already checked in today")

        appointment = await self.appointments.find_for_reference(today, form.reference_number)
        appointment_time = slot_to_appointment_code(appointment.scheduled_time) if appointment else None

        check_in = await self._insert(form, CheckInStatus.PENDING, appointment_time=appointment_time)
        notifications = await self.notifier.notify_driver(
            NotificationType.CHECKIN,
            check_in.model_dump(mode="json"),
            {'checkInTime': to_local(check_in.check_in_time, self.tz).strftime('%b %d, %Y %H:%M')},
        )
        return {'check_in': check_in, 'notifications': notifications}

    async def create_manual_check_in(self, form: ManualCheckInForm) -> Dict[str, Any]:
        """
        CSR entry; a dock given up front puts the record straight into checked_in.

        The dock goes through the same normalization and occupancy check as a
        dock assignment. Warnings are returned and never block the entry.
        """
        dock_number = None
        warnings: List[str] = []
        if form.dock_number and form.dock_number.strip():
            dock_number = self.docks.normalize_dock_number(form.dock_number)
            warnings = await self.docks.check_availability(dock_number)
            if warnings:
                logger.warning(f"Manual check-in placed on dock {dock_number} despite: {'; '.join(warnings)}")
        status = CheckInStatus.CHECKED_IN if dock_number else CheckInStatus.PENDING
        check_in = await self._insert(
            form,
            status,
            appointment_time=slot_to_appointment_code(form.appointment_time),
            dock_number=dock_number,
            notes=form.notes,
        )
        return {'check_in': check_in, 'warnings': warnings}

    @wrap_storage_errors("look up today's check-ins")
    async def _checked_in_today(self, reference_number: str, today: date) -> bool:
        start, end = local_day_bounds(today, self.tz)
        return self.db.check_ins.count_documents({
            'reference_number': reference_number,
            'check_in_time': {'$gte': to_db_time(start), '$lt': to_db_time(end)},
        }, limit=1) > 0

    @wrap_storage_errors("create check-in")
    async def _insert(
        self,
        form: CheckInForm,
        status: CheckInStatus,
        appointment_time: Optional[str] = None,
        dock_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> CheckIn:
        now = utcnow()
        doc = {
            'load_type': form.load_type.value,
            'reference_number': form.reference_number,
            'carrier_name': form.carrier_name,
            'trailer_number': form.trailer_number,
            'trailer_length': form.trailer_length,
            'destination_city': form.destination_city,
            'destination_state': form.destination_state,
            'driver_name': form.driver_name,
            'driver_phone': form.driver_phone,
            'driver_email': str(form.driver_email) if form.driver_email else None,
            'status': status.value,
            'dock_number': dock_number,
            'appointment_time': appointment_time,
            'check_in_time': now,
            'check_out_time': None,
            'start_time': now if status == CheckInStatus.CHECKED_IN else None,
            'end_time': None,
            'notes': notes,
            'created_at': now,
            'updated_at': now,
        }
        result = self.db.check_ins.insert_one(doc)
        doc['_id'] = result.inserted_id
        row = serialize_document(doc)
        self.feed.publish('check_ins', 'insert', row)
        logger.info(f"Check-in {row['id']} created for {form.reference_number} ({status.value})")
        return CheckIn(**row)

    @wrap_storage_errors("update check-in")
    async def update_check_in(self, check_in_id: str, data: CheckInUpdate) -> CheckIn:
        """Plain field edits; the last write wins"""
        changes = data.model_dump(exclude_unset=True)
        if 'load_type' in changes and changes['load_type'] is not None:
            changes['load_type'] = changes['load_type'].value
        if 'driver_email' in changes and changes['driver_email'] is not None:
            changes['driver_email'] = str(changes['driver_email'])
        if 'appointment_time' in changes:
            changes['appointment_time'] = slot_to_appointment_code(changes['appointment_time'])
        for field in ('start_time', 'end_time'):
            if field in changes:
                changes[field] = to_db_time(changes[field])
        if 'destination_state' in changes and changes['destination_state']:
            changes['destination_state'] = changes['destination_state'].upper()
        changes['updated_at'] = utcnow()
        return await self._apply(check_in_id, changes)

    async def change_status(
        self,
        check_in_id: str,
        status: CheckInStatus,
        notes: Optional[str] = None,
        end_time: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Close out a visit (checked_out, rejected, turned_away, driver_left).

        Dock assignment and denial have their own operations. The notification
        sent afterwards cannot undo the status change.
        """
        if status == CheckInStatus.DENIED:
            return await self.deny_check_in(check_in_id, notes or '')
        if status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(f"Use dock assignment to move a check-in to {status.value}")
        if status in NOTES_REQUIRED_STATUSES and not (notes and notes.strip()):
            raise InvalidTransitionError(f"Notes are required when marking a check-in {status.value}")

        current = await self.get_check_in(check_in_id)
        self._ensure_active(current)

        now = utcnow()
        changes = {
            'status': status.value,
            'end_time': to_db_time(end_time) or now,
            'check_out_time': now,
            'updated_at': now,
        }
        if notes:
            changes['notes'] = notes.strip()
        updated = await self._apply(check_in_id, changes)
        notifications = await self.notifier.notify_driver(
            NotificationType.STATUS_CHANGE,
            updated.model_dump(mode="json"),
            {'oldStatus': current.status.value, 'newStatus': status.value, 'notes': updated.notes},
        )
        return {'check_in': updated, 'notifications': notifications}

    async def deny_check_in(self, check_in_id: str, reason: str) -> Dict[str, Any]:
        if not reason or not reason.strip():
            raise InvalidTransitionError("A reason is required to deny a check-in")
        current = await self.get_check_in(check_in_id)
        if current.status != CheckInStatus.PENDING:
            raise InvalidTransitionError(f"Only pending check-ins can be denied, this one is {current.status.value}")

        now = utcnow()
        updated = await self._apply(check_in_id, {
            'status': CheckInStatus.DENIED.value,
            'denial_reason': reason.strip(),
            'end_time': now,
            'check_out_time': now,
            'updated_at': now,
        })
        notifications = await self.notifier.notify_driver(
            NotificationType.DENIAL,
            updated.model_dump(mode="json"),
            {'reason': reason.strip()},
        )
        return {'check_in': updated, 'notifications': notifications}

    @wrap_storage_errors("delete check-in")
    async def delete_check_in(self, check_in_id: str):
        result = self.db.check_ins.delete_one({'_id': parse_object_id(check_in_id)})
        if result.deleted_count == 0:
            raise RecordNotFoundError(f"Check-in {check_in_id} not found")
        self.feed.publish('check_ins', 'delete', {'id': check_in_id})
        logger.info(f"Deleted check-in {check_in_id}")

    def _ensure_active(self, check_in: CheckIn):
        if check_in.is_terminal:
            raise InvalidTransitionError(f"Check-in {check_in.id} is already {check_in.status.value}")

    @wrap_storage_errors("update check-in")
    async def _apply(self, check_in_id: str, changes: Dict[str, Any]) -> CheckIn:
        updated = self.db.check_ins.find_one_and_update(
            {'_id': parse_object_id(check_in_id)},
            {'$set': changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise RecordNotFoundError(f"Check-in {check_in_id} not found")
        row = serialize_document(updated)
        self.feed.publish('check_ins', 'update', row)
        return CheckIn(**row)
