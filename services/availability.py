"""Working-hours evaluation and per-day slot availability."""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Union

import pytz
from pydantic import TypeAdapter, ValidationError as PydanticValidationError

from models import WorkingHoursEntry
from services.appointments import as_utc
from services.conflicts import overlaps
from settings import settings

logger = logging.getLogger(__name__)

_entries_adapter = TypeAdapter(List[WorkingHoursEntry])


@dataclass(frozen=True)
class ParsedSchedule:
    entries: List[WorkingHoursEntry]


@dataclass(frozen=True)
class ScheduleParseFailed:
    reason: str


ParseResult = Union[ParsedSchedule, ScheduleParseFailed]


@dataclass
class TimeSlot:
    """One display slot of a staff member's day."""

    start: datetime
    end: datetime
    available: bool
    occupied: bool
    appointment_id: Optional[str] = None


def sunday_based_weekday(instant: Union[date, datetime]) -> int:
    """Weekday with Sunday=0 through Saturday=6."""
    return instant.isoweekday() % 7


def to_remote_weekday(day: int) -> int:
    """Convert a Sunday=0 weekday to the remote Monday=0 convention."""
    return (day + 6) % 7


def to_sunday_based_weekday(remote_day: int) -> int:
    """Convert a remote Monday=0 weekday back to Sunday=0."""
    return (remote_day + 1) % 7


def business_timezone(tz: Optional[Union[str, pytz.BaseTzInfo]] = None) -> pytz.BaseTzInfo:
    if tz is None:
        tz = settings.business_timezone
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def parse_working_hours(raw: Optional[str]) -> ParseResult:
    """Parse the stored JSON schedule; never raises."""
    if raw is None:
        return ScheduleParseFailed("no schedule stored")
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        return ScheduleParseFailed(f"invalid JSON: {e}")
    try:
        return ParsedSchedule(entries=_entries_adapter.validate_python(data))
    except PydanticValidationError as e:
        return ScheduleParseFailed(f"invalid entries: {e.error_count()} errors")


def is_available(staff, instant: datetime, tz=None) -> bool:
    """Whether ``instant`` falls inside one of the staff member's working periods.

    Staff without a stored schedule, or with one that cannot be parsed, are
    treated as always available.
    """
    if not staff.working_hours:
        return True

    parsed = parse_working_hours(staff.working_hours)
    if isinstance(parsed, ScheduleParseFailed):
        logger.warning(
            "Unreadable working hours for staff %s, treating as available: %s",
            staff.id,
            parsed.reason,
        )
        return True

    local = as_utc(instant).astimezone(business_timezone(tz))
    remote_day = to_remote_weekday(sunday_based_weekday(local))
    decimal_hour = local.hour + local.minute / 60
    return any(entry.contains(remote_day, decimal_hour) for entry in parsed.entries)


def is_day_active(calendar_settings, day: date) -> bool:
    return sunday_based_weekday(day) not in calendar_settings.inactive_day_numbers


def _clock(value: str) -> time:
    hours, minutes = value.split(":")
    return time(int(hours), int(minutes))


def generate_time_slots(calendar_settings, day: date, tz=None) -> List[datetime]:
    """Slot start instants (UTC) for the configured display hours of ``day``."""
    zone = business_timezone(tz)
    start = zone.localize(datetime.combine(day, _clock(calendar_settings.working_hours_start)))
    end = zone.localize(datetime.combine(day, _clock(calendar_settings.working_hours_end)))
    step = timedelta(minutes=calendar_settings.time_interval)

    slots = []
    current = start
    while current < end:
        slots.append(current.astimezone(timezone.utc))
        current += step
    return slots


def staff_day_availability(
    staff,
    day: date,
    calendar_settings,
    appointments: Iterable,
    tz=None,
) -> List[TimeSlot]:
    """Per-slot working-hours and occupancy for one staff member and day."""
    if not is_day_active(calendar_settings, day):
        return []

    booked = [
        appointment
        for appointment in appointments
        if appointment.staff_id == staff.id and appointment.status != "cancelled"
    ]
    step = timedelta(minutes=calendar_settings.time_interval)

    slots = []
    for slot_start in generate_time_slots(calendar_settings, day, tz):
        slot_end = slot_start + step
        blocking = next(
            (
                appointment
                for appointment in booked
                if overlaps(slot_start, slot_end, appointment.start_time, appointment.end_time)
            ),
            None,
        )
        slots.append(
            TimeSlot(
                start=slot_start,
                end=slot_end,
                available=is_available(staff, slot_start, tz),
                occupied=blocking is not None,
                appointment_id=blocking.id if blocking is not None else None,
            )
        )
    return slots
