"""Data models and DTOs for the Odoo integration and the HTTP facade."""

import json
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


APPOINTMENT_STATUSES = ("confirmed", "cancelled", "completed")
TIME_INTERVALS = (10, 15, 30)
CLOCK_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class WorkingHoursEntry(BaseModel):
    """One attendance period of a working-hours calendar."""

    model_config = ConfigDict(populate_by_name=True)

    # Remote convention: 0-6 for Mon-Sun
    day_of_week: int = Field(
        ge=0, le=6, validation_alias=AliasChoices("day_of_week", "dayofweek")
    )
    hour_from: float = Field(ge=0, le=24)
    hour_to: float = Field(ge=0, le=24)
    day_period: Optional[str] = None

    @model_validator(mode="after")
    def check_bounds(self) -> "WorkingHoursEntry":
        if self.hour_to <= self.hour_from:
            raise ValueError("hour_to must be after hour_from")
        return self

    def contains(self, day_of_week: int, decimal_hour: float) -> bool:
        return self.day_of_week == day_of_week and self.hour_from <= decimal_hour < self.hour_to


class WorkingHoursSchedule(BaseModel):
    """Structured working-hours schedule of a staff member."""

    calendar_id: Optional[int] = None
    name: Optional[str] = None
    entries: list[WorkingHoursEntry] = Field(default_factory=list)

    def to_storage(self) -> str:
        """Serialize entries to the JSON text stored on the staff member."""
        return json.dumps([entry.model_dump() for entry in self.entries])


class RemoteResource(BaseModel):
    """Bookable resource (staff member) as returned by the remote system."""

    remote_id: int
    name: str
    employee_id: Optional[int] = None
    resource_calendar_id: Optional[int] = None


class RemoteAppointment(BaseModel):
    """Calendar event as returned by the remote system."""

    remote_id: int
    name: str = ""
    start: datetime
    stop: datetime
    resource_id: Optional[int] = None
    partner_id: Optional[int] = None
    partner_name: Optional[str] = None
    partner_ids: list[int] = Field(default_factory=list)
    appointment_type_id: Optional[int] = None
    appointment_type_name: Optional[str] = None
    category_id: Optional[int] = None
    description: Optional[str] = None


class RemoteAppointmentType(BaseModel):
    """Published appointment type; the remote system expresses duration in hours."""

    remote_id: int
    name: str
    duration_hours: float = 1.0
    resource_ids: list[int] = Field(default_factory=list)

    @property
    def duration_minutes(self) -> int:
        return int(round(self.duration_hours * 60))


class RemoteCustomer(BaseModel):
    """Customer (partner) record of the remote system."""

    remote_id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    mobile: Optional[str] = None


class CustomerIdentity(BaseModel):
    """Identity used to resolve or create a customer record remotely."""

    name: str = Field(min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    existing_id: Optional[int] = None


class StaffDTO(BaseModel):
    """Data transfer object for staff member data."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    remote_id: int
    name: str
    email: Optional[str] = None
    role: Optional[str] = None
    color: str
    is_active: bool = True
    resource_calendar_id: Optional[int] = None
    working_hours: Optional[str] = None
    created_at: Optional[datetime] = None


class StaffCreate(BaseModel):
    remote_id: int
    name: str = Field(min_length=1)
    email: Optional[str] = None
    role: Optional[str] = None
    color: Optional[str] = None
    is_active: bool = True
    resource_calendar_id: Optional[int] = None
    working_hours: Optional[str] = None


class StaffUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None
    color: Optional[str] = None
    is_active: Optional[bool] = None
    working_hours: Optional[str] = None


class AppointmentDTO(BaseModel):
    """Data transfer object for appointment data."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    remote_id: Optional[int] = None
    name: str
    customer_name: str
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    service: str
    start_time: datetime
    end_time: datetime
    duration: int
    staff_id: Optional[str] = None
    status: str = "confirmed"
    price: Optional[str] = None
    notes: Optional[str] = None
    category_color: Optional[str] = None
    last_synced: Optional[datetime] = None


class AppointmentUpdate(BaseModel):
    """Locally owned descriptive fields of an appointment."""

    name: Optional[str] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    service: Optional[str] = None
    status: Optional[str] = None
    price: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in APPOINTMENT_STATUSES:
            raise ValueError(f"status must be one of {', '.join(APPOINTMENT_STATUSES)}")
        return value


class BookingRequest(BaseModel):
    """Booking of one or more consecutive appointment types for a customer."""

    customer: CustomerIdentity
    appointment_type_ids: list[int] = Field(min_length=1)
    start_time: datetime
    staff_id: str


class CalendarSettingsDTO(BaseModel):
    """Data transfer object for the calendar settings singleton."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    time_interval: int
    inactive_days: str
    booking_months_ahead: int
    working_hours_start: str
    working_hours_end: str
    last_sync: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CalendarSettingsUpdate(BaseModel):
    """Partial update of calendar settings."""

    time_interval: Optional[int] = None
    inactive_days: Optional[list[int]] = None
    booking_months_ahead: Optional[int] = Field(default=None, ge=1, le=24)
    working_hours_start: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)
    working_hours_end: Optional[str] = Field(default=None, pattern=CLOCK_PATTERN)

    @field_validator("time_interval")
    @classmethod
    def check_interval(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value not in TIME_INTERVALS:
            raise ValueError("time_interval must be 10, 15 or 30")
        return value

    @field_validator("inactive_days")
    @classmethod
    def check_days(cls, value: Optional[list[int]]) -> Optional[list[int]]:
        if value is None:
            return value
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("inactive days must be between 0 (Sunday) and 6 (Saturday)")
        return sorted(set(value))

    @model_validator(mode="after")
    def check_hours(self) -> "CalendarSettingsUpdate":
        if self.working_hours_start and self.working_hours_end:
            if self.working_hours_end <= self.working_hours_start:
                raise ValueError("working_hours_end must be after working_hours_start")
        return self


class SyncStatus(str, Enum):
    """Outcome of a sync request."""

    COMPLETED = "completed"
    REJECTED = "rejected"


class SyncResult(BaseModel):
    """Statistics of a completed sync cycle."""

    status: SyncStatus = SyncStatus.COMPLETED
    window_start: datetime
    window_end: datetime
    staff_created: int = 0
    staff_updated: int = 0
    staff_deactivated: int = 0
    appointments_created: int = 0
    appointments_updated: int = 0
    total_remote_appointments: int = 0
    errors: list[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SyncRejected(BaseModel):
    """Signal that a sync is already running; try again later."""

    status: SyncStatus = SyncStatus.REJECTED
    reason: str = "A sync is already running"


class RescheduleResult(BaseModel):
    appointment: AppointmentDTO
    remote_synced: bool


class CancelResult(BaseModel):
    appointment_id: str
    remote_synced: bool
