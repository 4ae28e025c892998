import csv
import io
import logging
from collections import Counter
from datetime import date
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo
from backend.core.config import Settings
from backend.models.check_in import CheckIn
from backend.services.check_in_service import CheckInService
from backend.services.timing import detention_minutes, is_on_time, local_today, parse_hhmm, to_local

logger = logging.getLogger(__name__)

DAILY_LOG_HEADER = [
    'Check-in Time', 'Driver', 'Reference Number', 'Carrier', 'Trailer',
    'Dock', 'Appointment', 'Status', 'On Time', 'Detention Minutes',
]


class ReportService:
    """Daily on-time and detention figures, recomputed on every request"""

    def __init__(self, check_ins: CheckInService, settings: Settings):
        self.check_ins = check_ins
        self.tz = ZoneInfo(settings.FACILITY_TIMEZONE)
        self.grace_minutes = settings.DETENTION_GRACE_MINUTES

    def evaluate(self, check_in: CheckIn) -> Dict[str, Any]:
        on_time = is_on_time(check_in.check_in_time, check_in.appointment_time, self.tz)
        return {
            'id': check_in.id,
            'driver_name': check_in.driver_name,
            'reference_number': check_in.reference_number,
            'dock_number': check_in.dock_number,
            'appointment_time': check_in.appointment_time,
            'status': check_in.status.value,
            'check_in_time': to_local(check_in.check_in_time, self.tz).isoformat(),
            'on_time': on_time,
            'detention_minutes': detention_minutes(
                check_in.appointment_time,
                check_in.check_in_time,
                check_in.end_time,
                self.tz,
                self.grace_minutes,
            ),
        }

    async def daily_report(self, day: Optional[date] = None) -> Dict[str, Any]:
        day = day or local_today(self.tz)
        rows = [self.evaluate(c) for c in await self.check_ins.list_check_ins(day)]

        scheduled = [r for r in rows if parse_hhmm(r['appointment_time']) is not None]
        on_time = sum(1 for r in rows if r['on_time'])
        by_time = Counter(r['appointment_time'] or 'none' for r in rows)
        by_dock = Counter(r['dock_number'] for r in rows if r['dock_number'])

        logger.info(f"Daily report for {day}: {len(rows)} check-ins, {on_time} on time")
        return {
            'date': day.isoformat(),
            'total': len(rows),
            'on_time': on_time,
            'late': len(scheduled) - on_time,
            'detentions': sum(1 for r in rows if r['detention_minutes'] > 0),
            'detention_minutes': sum(r['detention_minutes'] for r in rows),
            'by_time': dict(by_time),
            'by_dock': dict(by_dock),
            'records': rows,
        }

    async def daily_log_csv(self, day: Optional[date] = None) -> str:
        day = day or local_today(self.tz)
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(DAILY_LOG_HEADER)
        for check_in in await self.check_ins.list_check_ins(day):
            row = self.evaluate(check_in)
            writer.writerow([
                to_local(check_in.check_in_time, self.tz).strftime('%H:%M'),
                check_in.driver_name or '-',
                check_in.reference_number or '-',
                check_in.carrier_name or '-',
                check_in.trailer_number or '-',
                check_in.dock_number or '-',
                check_in.appointment_time or '-',
                check_in.status.value,
                'yes' if row['on_time'] else 'no',
                row['detention_minutes'],
            ])
        return buffer.getvalue()
