"""Double-booking detection for a staff member's appointments."""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


def overlaps(start: datetime, end: datetime, other_start: datetime, other_end: datetime) -> bool:
    """Half-open interval overlap; touching endpoints do not overlap."""
    return start < other_end and end > other_start


def _candidates(appointments: Iterable, exclude_id: Optional[str], target_staff_id: Optional[str]):
    for appointment in appointments:
        if appointment.staff_id != target_staff_id or appointment.id == exclude_id:
            continue
        if appointment.status == "cancelled":
            continue
        yield appointment


def find_conflicts(
    appointments: Iterable,
    exclude_id: Optional[str],
    target_staff_id: Optional[str],
    start: datetime,
    end: datetime,
) -> List:
    """Return every appointment of the staff member that overlaps ``[start, end)``."""
    if target_staff_id is None or end <= start:
        return []
    return [
        appointment
        for appointment in _candidates(appointments, exclude_id, target_staff_id)
        if overlaps(start, end, appointment.start_time, appointment.end_time)
    ]


def has_conflict(
    appointments: Iterable,
    exclude_id: Optional[str],
    target_staff_id: Optional[str],
    start: datetime,
    end: datetime,
) -> bool:
    """Whether ``[start, end)`` overlaps another appointment of the same staff member.

    Unassigned targets and zero-length candidates never conflict.
    """
    if target_staff_id is None or end <= start:
        return False
    for appointment in _candidates(appointments, exclude_id, target_staff_id):
        if overlaps(start, end, appointment.start_time, appointment.end_time):
            logger.debug(
                "Interval %s-%s conflicts with appointment %s", start, end, appointment.id
            )
            return True
    return False
