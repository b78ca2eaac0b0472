"""SQLAlchemy ORM models for the local calendar cache."""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    Text,
    DateTime,
    ForeignKey,
)
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator

from data.database import Base


DEFAULT_STAFF_COLOR = "#6366f1"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class UTCDateTime(TypeDecorator):
    """Stores naive UTC, returns timezone-aware UTC (SQLite keeps no tzinfo)."""

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime given; expected an aware UTC instant")
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class StaffMember(Base):
    """Staff member mirrored from a remote bookable resource."""

    __tablename__ = "staff_member"

    id = Column(String(36), primary_key=True, default=_new_id)
    remote_id = Column(Integer, unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    role = Column(String(100), nullable=True)
    color = Column(String(20), default=DEFAULT_STAFF_COLOR, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    resource_calendar_id = Column(Integer, nullable=True)
    working_hours = Column(Text, nullable=True)  # JSON list of attendance periods
    created_at = Column(UTCDateTime, default=_utcnow, nullable=False)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    appointments = relationship("Appointment", back_populates="staff")

    def __repr__(self) -> str:
        return f"<StaffMember(id={self.id}, remote_id={self.remote_id}, name={self.name})>"


class Appointment(Base):
    """Appointment mirrored from a remote calendar event."""

    __tablename__ = "appointment"

    id = Column(String(36), primary_key=True, default=_new_id)
    remote_id = Column(Integer, unique=True, nullable=True, index=True)
    name = Column(String(255), nullable=False)
    customer_name = Column(String(255), nullable=False)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    service = Column(String(255), nullable=False)
    start_time = Column(UTCDateTime, nullable=False, index=True)
    end_time = Column(UTCDateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    staff_id = Column(
        String(36),
        ForeignKey("staff_member.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    status = Column(String(20), default="confirmed", nullable=False)  # confirmed, cancelled, completed
    price = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    category_color = Column(String(20), nullable=True)
    last_synced = Column(UTCDateTime, default=_utcnow, nullable=False)

    staff = relationship("StaffMember", back_populates="appointments")

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, remote_id={self.remote_id}, staff_id={self.staff_id})>"


class CalendarSettings(Base):
    """Singleton row with the calendar display settings and the sync watermark."""

    __tablename__ = "calendar_settings"

    id = Column(String(36), primary_key=True, default=_new_id)
    time_interval = Column(Integer, default=15, nullable=False)  # 10, 15 or 30 minutes
    inactive_days = Column(String(20), default="0", nullable=False)  # Sunday=0, comma separated
    booking_months_ahead = Column(Integer, default=5, nullable=False)
    working_hours_start = Column(String(5), default="09:00", nullable=False)
    working_hours_end = Column(String(5), default="17:00", nullable=False)
    last_sync = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    @property
    def inactive_day_numbers(self) -> list[int]:
        return [int(day) for day in (self.inactive_days or "").split(",") if day.strip()]

    def __repr__(self) -> str:
        return f"<CalendarSettings(id={self.id}, last_sync={self.last_sync})>"
