import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional
from zoneinfo import ZoneInfo
from pymongo import ReturnDocument
from backend.core.config import Settings
from backend.core.errors import (
    DockUnavailableError,
    InvalidDockError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from backend.db.mongo import Database, parse_object_id, serialize_document, utcnow, wrap_storage_errors
from backend.models.check_in import ACTIVE_STATUSES, CheckIn, CheckInStatus
from backend.models.dock import (
    RAMP,
    DockBlock,
    DockCycle,
    DockCycleStatus,
    DockState,
    DockStatusView,
    DockSummary,
    dock_numbers,
)
from backend.models.notification import NotificationType
from backend.services.change_feed import ChangeFeed
from backend.services.notification_service import NotificationDispatcher
from backend.services.timing import slot_to_appointment_code

logger = logging.getLogger(__name__)


def classify(active_count: int, blocked: bool) -> DockState:
    """Derive a dock's state. A manual block wins over any occupancy."""
    if blocked:
        return DockState.BLOCKED
    if active_count >= 2:
        return DockState.DOUBLE_BOOKED
    if active_count == 1:
        return DockState.IN_USE
    return DockState.AVAILABLE


def group_by_dock(check_ins: Iterable[Dict[str, Any]]) -> Dict[str, List[Dict[str, Any]]]:
    """Group active check-ins that reference a dock by dock number"""
    grouped = defaultdict(list)
    for check_in in check_ins:
        if check_in.get('status') not in [s.value for s in ACTIVE_STATUSES]:
            continue
        if check_in.get('dock_number'):
            grouped[check_in['dock_number']].append(check_in)
    return grouped


def _dock_sort_key(dock_number: str):
    if dock_number == RAMP:
        return (0, 0, dock_number)
    if dock_number.isdigit():
        return (1, int(dock_number), dock_number)
    return (2, 0, dock_number)


class DockService:
    """Dock registry, occupancy classification and assignment.

    Two assignment paths exist. ``assign_dock`` is advisory: it re-reads the
    dock's occupancy and reports warnings, then writes anyway, so concurrent
    assignments can leave a dock double-booked (shown, never auto-resolved).
    ``claim_dock`` drives the dock cycle collection through a conditional
    update and lets exactly one caller win.
    """

    def __init__(self, database: Database, feed: ChangeFeed, notifier: NotificationDispatcher, settings: Settings):
        self.db = database
        self.feed = feed
        self.notifier = notifier
        self.settings = settings
        self.tz = ZoneInfo(settings.FACILITY_TIMEZONE)
        self.dock_numbers = dock_numbers(settings.DOCK_COUNT)

    def normalize_dock_number(self, dock_number: str) -> str:
        value = str(dock_number).strip()
        if value.lower() == RAMP.lower():
            return RAMP
        value = value.lstrip('0') or value
        if value not in self.dock_numbers:
            raise InvalidDockError(f"Unknown dock: {dock_number}")
        return value

    # ------------------------------------------------------------------
    # Occupancy
    # ------------------------------------------------------------------

    def _active_query(self, dock_number: Optional[str] = None, exclude_check_in_id: Optional[str] = None) -> Dict[str, Any]:
        query: Dict[str, Any] = {
            'status': {'$in': [s.value for s in ACTIVE_STATUSES]},
            'dock_number': {'$nin': [None, '']},
        }
        if dock_number is not None:
            query['dock_number'] = dock_number
        if exclude_check_in_id is not None:
            query['_id'] = {'$ne': parse_object_id(exclude_check_in_id)}
        return query

    @wrap_storage_errors("load active check-ins")
    async def get_active_check_ins(self, dock_number: Optional[str] = None, exclude_check_in_id: Optional[str] = None) -> List[Dict[str, Any]]:
        docs = self.db.check_ins.find(
            self._active_query(dock_number, exclude_check_in_id),
            sort=[('check_in_time', 1)],
        )
        return [serialize_document(doc) for doc in docs]

    @wrap_storage_errors("load dock blocks")
    async def get_blocks(self) -> Dict[str, DockBlock]:
        return {
            doc['dock_number']: DockBlock(**serialize_document(doc))
            for doc in self.db.dock_blocks.find({})
        }

    async def get_dock_statuses(self) -> List[DockStatusView]:
        """Every dock with its derived state and the active check-ins on it"""
        grouped = group_by_dock(await self.get_active_check_ins())
        blocks = await self.get_blocks()

        # Docks referenced by records but outside the registry still show up
        all_docks = set(self.dock_numbers) | set(grouped) | set(blocks)
        views = []
        for dock_number in sorted(all_docks, key=_dock_sort_key):
            occupants = grouped.get(dock_number, [])
            block = blocks.get(dock_number)
            views.append(DockStatusView(
                dock_number=dock_number,
                status=classify(len(occupants), block is not None),
                check_ins=[CheckIn(**c) for c in occupants],
                block=block,
            ))
        return views

    async def get_dock_status(self, dock_number: str) -> DockStatusView:
        dock_number = self.normalize_dock_number(dock_number)
        occupants = await self.get_active_check_ins(dock_number)
        block = (await self.get_blocks()).get(dock_number)
        return DockStatusView(
            dock_number=dock_number,
            status=classify(len(occupants), block is not None),
            check_ins=[CheckIn(**c) for c in occupants],
            block=block,
        )

    async def get_dock_summary(self) -> DockSummary:
        views = await self.get_dock_statuses()
        counts = defaultdict(int)
        for view in views:
            counts[view.status] += 1
        return DockSummary(
            total=len(views),
            available=counts[DockState.AVAILABLE],
            in_use=counts[DockState.IN_USE],
            double_booked=counts[DockState.DOUBLE_BOOKED],
            blocked=counts[DockState.BLOCKED],
        )

    async def check_availability(self, dock_number: str, exclude_check_in_id: Optional[str] = None) -> List[str]:
        """Advisory warnings for putting one more driver on a dock"""
        dock_number = self.normalize_dock_number(dock_number)
        warnings = []
        block = (await self.get_blocks()).get(dock_number)
        if block is not None:
            warnings.append(f"Dock {dock_number} is blocked: {block.reason}")
        occupants = await self.get_active_check_ins(dock_number, exclude_check_in_id)
        for occupant in occupants:
            warnings.append(
                f"Dock {dock_number} is already assigned to {occupant.get('driver_name', 'another driver')} "
                f"({occupant.get('reference_number', '-')}, {occupant.get('status')})"
            )
        return warnings

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    async def assign_dock(
        self,
        check_in_id: str,
        dock_number: str,
        appointment_time: Optional[str] = None,
        notify: bool = True,
    ) -> Dict[str, Any]:
        """
        Put a driver on a dock and mark the check-in checked_in.

        The occupancy check is a read before the write with nothing holding the
        dock in between. Warnings are returned with the result and never stop
        the assignment.

        Returns:
            Dictionary with the updated check-in, warnings and notification results
        """
        dock_number = self.normalize_dock_number(dock_number)
        object_id = parse_object_id(check_in_id)

        existing = await self._get_check_in(object_id)
        if existing.get('status') not in [s.value for s in ACTIVE_STATUSES]:
            raise InvalidTransitionError(
                f"Cannot assign a dock to a check-in that is {existing.get('status')}"
            )

        warnings = await self.check_availability(dock_number, exclude_check_in_id=check_in_id)
        if warnings:
            logger.warning(f"Assigning dock {dock_number} to {check_in_id} despite: {'; '.join(warnings)}")

        now = utcnow()
        changes: Dict[str, Any] = {
            'dock_number': dock_number,
            'status': CheckInStatus.CHECKED_IN.value,
            'start_time': now,
            'updated_at': now,
        }
        if appointment_time:
            changes['appointment_time'] = slot_to_appointment_code(appointment_time)

        updated = await self._update_check_in(object_id, changes)
        row = serialize_document(updated)
        self.feed.publish('check_ins', 'update', row)
        logger.info(f"Assigned dock {dock_number} to check-in {check_in_id}")

        notifications = []
        if notify:
            notifications = await self.notifier.notify_driver(
                NotificationType.DOCK_ASSIGNMENT,
                row,
                {'dockNumber': dock_number, 'appointmentTime': row.get('appointment_time')},
            )
            for result in notifications:
                if not result.success:
                    warnings.append(f"Notification to {result.destination} failed: {result.error}")

        return {
            'check_in': CheckIn(**row),
            'warnings': warnings,
            'notifications': notifications,
        }

    @wrap_storage_errors("load check-in")
    async def _get_check_in(self, object_id) -> Dict[str, Any]:
        existing = self.db.check_ins.find_one({'_id': object_id})
        if existing is None:
            raise RecordNotFoundError(f"Check-in {object_id} not found")
        return existing

    @wrap_storage_errors("update check-in")
    async def _update_check_in(self, object_id, changes: Dict[str, Any]) -> Dict[str, Any]:
        updated = self.db.check_ins.find_one_and_update(
            {'_id': object_id},
            {'$set': changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            raise RecordNotFoundError(f"Check-in {object_id} not found")
        return updated

    # ------------------------------------------------------------------
    # Manual blocks
    # ------------------------------------------------------------------

    @wrap_storage_errors("block dock")
    async def block_dock(self, dock_number: str, reason: str, blocked_by: Optional[str] = None) -> DockBlock:
        dock_number = self.normalize_dock_number(dock_number)
        block = {
            'dock_number': dock_number,
            'reason': reason,
            'blocked_by': blocked_by,
            'blocked_at': utcnow(),
        }
        self.db.dock_blocks.replace_one({'dock_number': dock_number}, block, upsert=True)
        logger.info(f"Dock {dock_number} blocked by {blocked_by}: {reason}")
        return DockBlock(**block)

    @wrap_storage_errors("unblock dock")
    async def unblock_dock(self, dock_number: str) -> bool:
        dock_number = self.normalize_dock_number(dock_number)
        result = self.db.dock_blocks.delete_one({'dock_number': dock_number})
        logger.info(f"Dock {dock_number} unblocked")
        return result.deleted_count > 0

    # ------------------------------------------------------------------
    # Dock cycle (available -> assigned -> loading)
    # ------------------------------------------------------------------

    @wrap_storage_errors("seed dock cycle records")
    async def seed_dock_cycles(self):
        """Create a cycle record for every dock that does not have one yet"""
        for dock_number in self.dock_numbers:
            self.db.docks.update_one(
                {'dock_number': dock_number},
                {'$setOnInsert': {
                    'dock_number': dock_number,
                    'cycle_status': DockCycleStatus.AVAILABLE.value,
                    'check_in_id': None,
                    'updated_at': utcnow(),
                }},
                upsert=True,
            )

    @wrap_storage_errors("load dock cycles")
    async def get_dock_cycles(self) -> List[DockCycle]:
        docs = [serialize_document(doc) for doc in self.db.docks.find({})]
        docs.sort(key=lambda d: _dock_sort_key(d['dock_number']))
        return [DockCycle(**doc) for doc in docs]

    async def claim_dock(
        self,
        dock_number: str,
        new_status: DockCycleStatus = DockCycleStatus.ASSIGNED,
        check_in_id: Optional[str] = None,
    ) -> DockCycle:
        """Atomically move a dock out of ``available``; only one caller can win"""
        return await self._swap_cycle_status(dock_number, DockCycleStatus.AVAILABLE, new_status, check_in_id)

    async def advance_dock(
        self,
        dock_number: str,
        expected_status: DockCycleStatus = DockCycleStatus.ASSIGNED,
        new_status: DockCycleStatus = DockCycleStatus.LOADING,
    ) -> DockCycle:
        return await self._swap_cycle_status(dock_number, expected_status, new_status)

    @wrap_storage_errors("release dock")
    async def release_dock(self, dock_number: str) -> DockCycle:
        dock_number = self.normalize_dock_number(dock_number)
        updated = self.db.docks.find_one_and_update(
            {'dock_number': dock_number},
            {'$set': {
                'cycle_status': DockCycleStatus.AVAILABLE.value,
                'check_in_id': None,
                'updated_at': utcnow(),
            }},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        row = serialize_document(updated)
        self.feed.publish('docks', 'update', row)
        logger.info(f"Dock {dock_number} released")
        return DockCycle(**row)

    @wrap_storage_errors("update dock cycle")
    async def _swap_cycle_status(
        self,
        dock_number: str,
        expected: DockCycleStatus,
        new_status: DockCycleStatus,
        check_in_id: Optional[str] = None,
    ) -> DockCycle:
        dock_number = self.normalize_dock_number(dock_number)
        if new_status == expected:
            raise InvalidTransitionError(f"Dock {dock_number} is already {expected.value}")

        changes: Dict[str, Any] = {'cycle_status': new_status.value, 'updated_at': utcnow()}
        if check_in_id is not None:
            changes['check_in_id'] = check_in_id

        # The filter on the current status makes this a compare-and-swap
        updated = self.db.docks.find_one_and_update(
            {'dock_number': dock_number, 'cycle_status': expected.value},
            {'$set': changes},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.info(f"Dock {dock_number} is not {expected.value}; {new_status.value} refused")
            raise DockUnavailableError(f"Dock {dock_number} is not {expected.value}")

        row = serialize_document(updated)
        self.feed.publish('docks', 'update', row)
        logger.info(f"Dock {dock_number}: {expected.value} -> {new_status.value}")
        return DockCycle(**row)
