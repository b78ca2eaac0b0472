"""Repository layer for SQLAlchemy ORM data persistence."""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from data.database import SessionLocal
from data.models import Appointment, CalendarSettings, StaffMember
from exceptions import ValidationError

logger = logging.getLogger(__name__)


def interval_minutes(start: datetime, end: datetime) -> int:
    """Length of ``[start, end)`` in minutes.

    Rejects reversed intervals and intervals that are not whole minutes.
    """
    if end < start:
        raise ValidationError("end_time must not be before start_time", field="end_time")
    minutes, remainder = divmod(end - start, timedelta(minutes=1))
    if remainder:
        raise ValidationError("interval must be a whole number of minutes", field="end_time")
    return minutes


class _Repository:
    """Shared session factory plumbing."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or SessionLocal

    def _session(self):
        return self._session_factory()


class StaffRepository(_Repository):
    """Repository for staff member management with SQLAlchemy."""

    def get_all(self) -> List[StaffMember]:
        """Return all staff members or an empty list on error."""
        session = self._session()
        try:
            result = session.execute(select(StaffMember).order_by(StaffMember.name))
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to get all staff members")
            return []
        finally:
            session.close()

    def get_active(self) -> List[StaffMember]:
        """Return active staff members or an empty list on error."""
        session = self._session()
        try:
            result = session.execute(
                select(StaffMember)
                .where(StaffMember.is_active.is_(True))
                .order_by(StaffMember.name)
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to get active staff members")
            return []
        finally:
            session.close()

    def get_by_id(self, id: str) -> Optional[StaffMember]:
        """Return staff member by primary key or None if not found."""
        session = self._session()
        try:
            result = session.execute(select(StaffMember).where(StaffMember.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Failed to get staff member by id %s", id)
            return None
        finally:
            session.close()

    def get_by_remote_id(self, remote_id: int) -> Optional[StaffMember]:
        session = self._session()
        try:
            result = session.execute(
                select(StaffMember).where(StaffMember.remote_id == remote_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Failed to get staff member by remote id %s", remote_id)
            return None
        finally:
            session.close()

    def create(self, remote_id: int, name: str, **fields: Any) -> Optional[StaffMember]:
        """Create staff member and return instance or None on error."""
        session = self._session()
        try:
            staff = StaffMember(remote_id=remote_id, name=name)
            for key, value in fields.items():
                if value is not None and hasattr(staff, key):
                    setattr(staff, key, value)
            session.add(staff)
            session.commit()
            session.refresh(staff)
            logger.info("Created staff member %s (ID: %s)", staff.name, staff.id)
            return staff
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to create staff member %s", name)
            return None
        finally:
            session.close()

    def update(self, id: str, **kwargs: Any) -> Optional[StaffMember]:
        """Update staff member fields and return instance or None on error."""
        session = self._session()
        try:
            result = session.execute(select(StaffMember).where(StaffMember.id == id))
            staff = result.scalar_one_or_none()

            if staff is None:
                logger.warning("Staff member with id %s not found for update", id)
                return None

            for key, value in kwargs.items():
                # remote_id is immutable once assigned
                if key != "remote_id" and hasattr(staff, key):
                    setattr(staff, key, value)

            staff.updated_at = datetime.now(timezone.utc)
            session.commit()
            session.refresh(staff)
            logger.debug("Updated staff member %s (ID: %s)", staff.name, staff.id)
            return staff
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to update staff member %s", id)
            return None
        finally:
            session.close()

    def deactivate_missing(self, remote_ids: Iterable[int]) -> Optional[int]:
        """Mark active staff whose remote id is not listed as inactive.

        Returns the number of deactivated staff members or None on error.
        """
        keep = set(remote_ids)
        session = self._session()
        try:
            result = session.execute(
                select(StaffMember).where(StaffMember.is_active.is_(True))
            )
            count = 0
            for staff in result.scalars().all():
                if staff.remote_id not in keep:
                    staff.is_active = False
                    staff.updated_at = datetime.now(timezone.utc)
                    count += 1
            session.commit()
            if count:
                logger.info("Deactivated %s staff members missing remotely", count)
            return count
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to deactivate missing staff members")
            return None
        finally:
            session.close()


class AppointmentRepository(_Repository):
    """Repository for appointment management with SQLAlchemy.

    Every write keeps ``duration`` equal to the minutes between
    ``start_time`` and ``end_time``.
    """

    @staticmethod
    def _apply_interval(appointment: Appointment, fields: dict) -> None:
        start = fields.get("start_time", appointment.start_time)
        end = fields.get("end_time", appointment.end_time)
        if start is None or end is None:
            raise ValidationError("start_time and end_time are required", field="start_time")
        minutes = interval_minutes(start, end)
        duration = fields.get("duration")
        if duration is not None and duration != minutes:
            raise ValidationError(
                f"duration {duration} does not match interval of {minutes} minutes",
                field="duration",
            )
        fields["duration"] = minutes

    def get_all(self) -> List[Appointment]:
        """Return all appointments ordered by start or an empty list on error."""
        session = self._session()
        try:
            result = session.execute(select(Appointment).order_by(Appointment.start_time))
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to get all appointments")
            return []
        finally:
            session.close()

    def get_by_id(self, id: str) -> Optional[Appointment]:
        """Return appointment by primary key or None if not found."""
        session = self._session()
        try:
            result = session.execute(select(Appointment).where(Appointment.id == id))
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Failed to get appointment by id %s", id)
            return None
        finally:
            session.close()

    def get_by_remote_id(self, remote_id: int) -> Optional[Appointment]:
        session = self._session()
        try:
            result = session.execute(
                select(Appointment).where(Appointment.remote_id == remote_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception("Failed to get appointment by remote id %s", remote_id)
            return None
        finally:
            session.close()

    def get_by_staff(self, staff_id: str) -> List[Appointment]:
        """Return appointments of a staff member or an empty list on error."""
        session = self._session()
        try:
            result = session.execute(
                select(Appointment)
                .where(Appointment.staff_id == staff_id)
                .order_by(Appointment.start_time)
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to get appointments for staff member %s", staff_id)
            return []
        finally:
            session.close()

    def get_by_date_range(self, start: datetime, end: datetime) -> List[Appointment]:
        """Return appointments starting within ``[start, end]`` or an empty list on error."""
        session = self._session()
        try:
            result = session.execute(
                select(Appointment)
                .where(Appointment.start_time >= start, Appointment.start_time <= end)
                .order_by(Appointment.start_time)
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to get appointments between %s and %s", start, end)
            return []
        finally:
            session.close()

    def create(self, **fields: Any) -> Optional[Appointment]:
        """Create appointment and return instance or None on error.

        Raises ValidationError when the interval and duration disagree.
        """
        appointment = Appointment()
        self._apply_interval(appointment, fields)
        for key, value in fields.items():
            if hasattr(appointment, key):
                setattr(appointment, key, value)

        session = self._session()
        try:
            session.add(appointment)
            session.commit()
            session.refresh(appointment)
            logger.info(
                "Created appointment %s for staff %s (ID: %s)",
                appointment.name,
                appointment.staff_id,
                appointment.id,
            )
            return appointment
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to create appointment %s", fields.get("name"))
            return None
        finally:
            session.close()

    def update(self, id: str, **kwargs: Any) -> Optional[Appointment]:
        """Update appointment fields and return instance or None on error."""
        session = self._session()
        try:
            result = session.execute(select(Appointment).where(Appointment.id == id))
            appointment = result.scalar_one_or_none()

            if appointment is None:
                logger.warning("Appointment with id %s not found for update", id)
                return None

            if {"start_time", "end_time", "duration"} & kwargs.keys():
                self._apply_interval(appointment, kwargs)

            for key, value in kwargs.items():
                if hasattr(appointment, key):
                    setattr(appointment, key, value)

            session.commit()
            session.refresh(appointment)
            logger.debug("Updated appointment (ID: %s)", appointment.id)
            return appointment
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to update appointment %s", id)
            return None
        finally:
            session.close()

    def delete(self, id: str) -> bool:
        """Delete appointment by id and return status."""
        session = self._session()
        try:
            result = session.execute(select(Appointment).where(Appointment.id == id))
            appointment = result.scalar_one_or_none()

            if appointment is None:
                logger.warning("Appointment with id %s not found for deletion", id)
                return False

            session.delete(appointment)
            session.commit()
            logger.info("Deleted appointment (ID: %s)", id)
            return True
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to delete appointment %s", id)
            return False
        finally:
            session.close()


class CalendarSettingsRepository(_Repository):
    """Repository for the calendar settings singleton."""

    def get(self) -> Optional[CalendarSettings]:
        """Return the settings row, creating it with defaults on first access."""
        session = self._session()
        try:
            result = session.execute(select(CalendarSettings).limit(1))
            calendar_settings = result.scalar_one_or_none()
            if calendar_settings is None:
                calendar_settings = CalendarSettings()
                session.add(calendar_settings)
                session.commit()
                session.refresh(calendar_settings)
                logger.info("Created default calendar settings (ID: %s)", calendar_settings.id)
            return calendar_settings
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to load calendar settings")
            return None
        finally:
            session.close()

    def update(self, **kwargs: Any) -> Optional[CalendarSettings]:
        """Update settings fields and return instance or None on error."""
        current = self.get()
        if current is None:
            return None

        session = self._session()
        try:
            calendar_settings = session.get(CalendarSettings, current.id)
            for key, value in kwargs.items():
                if key == "inactive_days" and isinstance(value, (list, tuple)):
                    value = ",".join(str(day) for day in value)
                if hasattr(calendar_settings, key):
                    setattr(calendar_settings, key, value)
            calendar_settings.updated_at = datetime.now(timezone.utc)
            session.commit()
            session.refresh(calendar_settings)
            logger.info("Updated calendar settings")
            return calendar_settings
        except SQLAlchemyError:
            session.rollback()
            logger.exception("Failed to update calendar settings")
            return None
        finally:
            session.close()

    def record_sync(self, when: Optional[datetime] = None) -> Optional[CalendarSettings]:
        """Advance the sync watermark."""
        return self.update(last_sync=when or datetime.now(timezone.utc))
