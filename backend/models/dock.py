from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from enum import Enum

from backend.models.check_in import CheckIn

RAMP = "Ramp"

class DockState(str, Enum):
    AVAILABLE = "available"
    IN_USE = "in-use"
    DOUBLE_BOOKED = "double-booked"
    BLOCKED = "blocked"

class DockCycleStatus(str, Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    LOADING = "loading"


def dock_numbers(dock_count: int) -> List[str]:
    """The facility's dock identifiers: the ramp followed by docks 1..N"""
    return [RAMP] + [str(i) for i in range(1, dock_count + 1)]


class DockBlock(BaseModel):
    dock_number: str
    reason: str
    blocked_by: Optional[str] = None
    blocked_at: Optional[datetime] = None

class DockBlockRequest(BaseModel):
    reason: str = Field(..., min_length=1)

class DockStatusView(BaseModel):
    dock_number: str
    status: DockState
    check_ins: List[CheckIn] = []
    block: Optional[DockBlock] = None

class DockSummary(BaseModel):
    total: int
    available: int
    in_use: int
    double_booked: int
    blocked: int

class AssignDockRequest(BaseModel):
    check_in_id: str
    appointment_time: Optional[str] = None
    notify: bool = True

class DockCycle(BaseModel):
    dock_number: str
    cycle_status: DockCycleStatus
    check_in_id: Optional[str] = None
    updated_at: Optional[datetime] = None

class ClaimDockRequest(BaseModel):
    new_status: DockCycleStatus = DockCycleStatus.ASSIGNED
    check_in_id: Optional[str] = None

class AdvanceDockRequest(BaseModel):
    expected_status: DockCycleStatus = DockCycleStatus.ASSIGNED
    new_status: DockCycleStatus = DockCycleStatus.LOADING
