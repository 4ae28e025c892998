"""On-time and detention calculations for check-ins.

Appointment times are stored as 4-digit ``HHMM`` strings (``"0800"``) or as a
sentinel code such as ``"work_in"``. All comparisons happen on the facility's
local clock, whatever offset the stored timestamps carry.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

DEFAULT_GRACE_MINUTES = 120

WORK_IN = "work_in"

_HHMM = re.compile(r"^([01]\d|2[0-3])([0-5]\d)$")

# Slot labels used on the appointment board that are not clock times
_SENTINEL_SLOTS = {
    "Work In": WORK_IN,
    "Paid - No Appt": "paid_no_appt",
    "Paid - Charge Customer": "paid_charge_customer",
    "LTL": "ltl",
}


def slot_to_appointment_code(slot: Optional[str]) -> Optional[str]:
    """Convert an appointment board slot ("08:00", "Work In") to a check-in code"""
    if not slot:
        return None
    slot = slot.strip()
    if slot in _SENTINEL_SLOTS:
        return _SENTINEL_SLOTS[slot]
    match = re.match(r"^(\d{1,2}):(\d{2})", slot)
    if match:
        return f"{int(match.group(1)):02d}{match.group(2)}"
    if _HHMM.match(slot):
        return slot
    return slot.lower().replace(" ", "_")


def parse_hhmm(appointment_time: Optional[str]) -> Optional[time]:
    """Return the clock time for a real HHMM value, None for sentinels"""
    if not appointment_time:
        return None
    match = _HHMM.match(appointment_time.strip())
    if not match:
        return None
    return time(int(match.group(1)), int(match.group(2)))


def to_local(moment: datetime, tz: ZoneInfo) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz)


def appointment_instant(appointment_time: Optional[str], check_in_time: datetime, tz: ZoneInfo) -> Optional[datetime]:
    """The appointment as a local datetime on the check-in's local date"""
    slot = parse_hhmm(appointment_time)
    if slot is None:
        return None
    local_day = to_local(check_in_time, tz).date()
    return datetime.combine(local_day, slot, tzinfo=tz)


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def is_on_time(check_in_time: Optional[datetime], appointment_time: Optional[str], tz: ZoneInfo) -> bool:
    if check_in_time is None:
        return False
    appt = appointment_instant(appointment_time, check_in_time, tz)
    if appt is None:
        return False
    return minutes_between(appt, to_local(check_in_time, tz)) <= 0


def detention_minutes(
    appointment_time: Optional[str],
    check_in_time: Optional[datetime],
    end_time: Optional[datetime],
    tz: ZoneInfo,
    grace_minutes: int = DEFAULT_GRACE_MINUTES,
) -> int:
    """Minutes of detention past the grace period; only on-time loads accrue any"""
    if end_time is None or not is_on_time(check_in_time, appointment_time, tz):
        return 0
    appt = appointment_instant(appointment_time, check_in_time, tz)
    dwell = minutes_between(appt, to_local(end_time, tz))
    return max(0, int(dwell - grace_minutes))


def local_day_bounds(day: date, tz: ZoneInfo):
    """UTC start (inclusive) and end (exclusive) of a facility-local day"""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def local_today(tz: ZoneInfo) -> date:
    return datetime.now(tz).date()
