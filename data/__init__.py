"""Data layer for the calendar sync service."""

from data.database import Base, SessionLocal, engine
from data.models import Appointment, CalendarSettings, StaffMember
from data.repositories import (
    AppointmentRepository,
    CalendarSettingsRepository,
    StaffRepository,
)

__all__ = [
    "Base",
    "SessionLocal",
    "engine",
    "StaffMember",
    "Appointment",
    "CalendarSettings",
    "StaffRepository",
    "AppointmentRepository",
    "CalendarSettingsRepository",
]
