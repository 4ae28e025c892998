from pydantic import BaseModel, EmailStr, Field, field_validator
from datetime import datetime
from typing import Optional
from enum import Enum

class LoadType(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"

class CheckInStatus(str, Enum):
    PENDING = "pending"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    REJECTED = "rejected"
    TURNED_AWAY = "turned_away"
    DENIED = "denied"
    DRIVER_LEFT = "driver_left"

ACTIVE_STATUSES = (CheckInStatus.PENDING, CheckInStatus.CHECKED_IN)

TERMINAL_STATUSES = (
    CheckInStatus.CHECKED_OUT,
    CheckInStatus.REJECTED,
    CheckInStatus.TURNED_AWAY,
    CheckInStatus.DENIED,
    CheckInStatus.DRIVER_LEFT,
)

# Terminal outcomes a CSR must explain in the notes
NOTES_REQUIRED_STATUSES = (
    CheckInStatus.REJECTED,
    CheckInStatus.TURNED_AWAY,
    CheckInStatus.DRIVER_LEFT,
)

# Record fields an edit may change but never clear
REQUIRED_FIELDS = (
    "load_type",
    "reference_number",
    "carrier_name",
    "trailer_number",
    "destination_city",
    "destination_state",
    "driver_name",
    "driver_phone",
)


class CheckInForm(BaseModel):
    """Driver-facing check-in form"""
    load_type: LoadType = LoadType.INBOUND
    reference_number: str = Field(..., min_length=6, max_length=20, pattern=r"^[A-Za-z0-9-]+$")
    carrier_name: str = Field(..., min_length=2)
    trailer_number: str = Field(..., min_length=2, max_length=20)
    trailer_length: Optional[str] = None
    destination_city: str = Field(..., min_length=2)
    destination_state: str = Field(..., pattern=r"^[A-Za-z]{2}$")
    driver_name: str = Field(..., min_length=2)
    driver_phone: str = Field(..., min_length=10, pattern=r"^[\d\s\-\(\)]+$")
    driver_email: Optional[EmailStr] = None

    @field_validator("destination_state")
    @classmethod
    def upper_state(cls, value: str) -> str:
        return value.upper()

    @field_validator("reference_number", "carrier_name", "trailer_number", "destination_city", "driver_name", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ManualCheckInForm(CheckInForm):
    """CSR entry on behalf of a driver, optionally placed straight on a dock"""
    dock_number: Optional[str] = None
    appointment_time: Optional[str] = None
    notes: Optional[str] = None


class CheckInUpdate(BaseModel):
    """Partial edit; omitted fields are left alone, required ones cannot be cleared"""
    load_type: Optional[LoadType] = None
    reference_number: Optional[str] = Field(None, min_length=6, max_length=20, pattern=r"^[A-Za-z0-9-]+$")
    carrier_name: Optional[str] = Field(None, min_length=2)
    trailer_number: Optional[str] = Field(None, min_length=2, max_length=20)
    trailer_length: Optional[str] = None
    destination_city: Optional[str] = Field(None, min_length=2)
    destination_state: Optional[str] = Field(None, pattern=r"^[A-Za-z]{2}$")
    driver_name: Optional[str] = Field(None, min_length=2)
    driver_phone: Optional[str] = Field(None, min_length=10, pattern=r"^[\d\s\-\(\)]+$")
    driver_email: Optional[EmailStr] = None
    appointment_time: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator(*REQUIRED_FIELDS, mode="before")
    @classmethod
    def not_cleared(cls, value):
        if value is None:
            raise ValueError("This field is required and cannot be cleared")
        return value.strip() if isinstance(value, str) else value

    @field_validator("destination_state")
    @classmethod
    def upper_state(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value


class StatusChange(BaseModel):
    status: CheckInStatus
    notes: Optional[str] = None
    end_time: Optional[datetime] = None


class DenyRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class CheckIn(BaseModel):
    id: str
    load_type: LoadType
    reference_number: str
    carrier_name: str
    trailer_number: str
    trailer_length: Optional[str] = None
    destination_city: str
    destination_state: str
    driver_name: str
    driver_phone: str
    driver_email: Optional[str] = None
    status: CheckInStatus
    dock_number: Optional[str] = None
    appointment_time: Optional[str] = None
    check_in_time: datetime
    check_out_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    notes: Optional[str] = None
    denial_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
