from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional, Literal, get_args
from enum import Enum

TimeSlot = Literal[
    "Work In", "Paid - No Appt", "Paid - Charge Customer", "LTL",
    "08:00", "09:00", "09:30", "10:00", "10:30", "11:00", "12:30",
    "13:00", "13:30", "14:00", "14:30", "15:00", "15:30",
]

TIME_SLOTS = get_args(TimeSlot)

class AppointmentSource(str, Enum):
    EXCEL = "excel"
    MANUAL = "manual"

class AppointmentInput(BaseModel):
    scheduled_date: date
    scheduled_time: str
    sales_order: Optional[str] = None
    delivery: Optional[str] = None
    customer: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None
    source: AppointmentSource = AppointmentSource.MANUAL

class AppointmentSlotInput(AppointmentInput):
    """Manual entry restricted to the dock office's slot list"""
    scheduled_time: TimeSlot

class AppointmentUpdate(BaseModel):
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[TimeSlot] = None
    sales_order: Optional[str] = None
    delivery: Optional[str] = None
    customer: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None

class Appointment(BaseModel):
    id: str
    scheduled_date: date
    scheduled_time: str
    sales_order: Optional[str] = None
    delivery: Optional[str] = None
    customer: Optional[str] = None
    carrier: Optional[str] = None
    notes: Optional[str] = None
    source: AppointmentSource
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class CustomerCount(BaseModel):
    customer: str
    count: int

class ImportResult(BaseModel):
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
