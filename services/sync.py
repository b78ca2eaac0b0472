"""Pull synchronisation of staff and appointments from the remote calendar."""

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Union

from data.repositories import (
    AppointmentRepository,
    CalendarSettingsRepository,
    StaffRepository,
)
from exceptions import RemoteError, SyncError, ValidationError
from integrations.remote.base import RemoteGateway
from models import (
    RemoteAppointment,
    RemoteResource,
    SyncRejected,
    SyncResult,
    WorkingHoursSchedule,
)
from settings import settings

logger = logging.getLogger(__name__)

STAFF_PALETTE = (
    "#6366f1",
    "#ec4899",
    "#10b981",
    "#f59e0b",
    "#3b82f6",
    "#8b5cf6",
    "#ef4444",
    "#14b8a6",
)

UNKNOWN_CUSTOMER = "Unknown Customer"


def palette_color(remote_id: int) -> str:
    """Deterministic display colour for a newly observed staff member."""
    return STAFF_PALETTE[remote_id % len(STAFF_PALETTE)]


def customer_name_for(remote: RemoteAppointment) -> str:
    if remote.partner_name:
        return remote.partner_name
    if remote.name:
        return remote.name.split(" - ")[0] or remote.name
    return UNKNOWN_CUSTOMER


class SyncLock:
    """Process-wide non-blocking mutual exclusion for sync cycles."""

    def __init__(self):
        self._lock = threading.Lock()

    def try_acquire(self) -> bool:
        return self._lock.acquire(blocking=False)

    def release(self) -> None:
        self._lock.release()

    @property
    def is_held(self) -> bool:
        return self._lock.locked()


class SyncOrchestrator:
    """Runs sync cycles against the remote gateway, one at a time."""

    def __init__(
        self,
        gateway: RemoteGateway,
        staff_repository: Optional[StaffRepository] = None,
        appointment_repository: Optional[AppointmentRepository] = None,
        settings_repository: Optional[CalendarSettingsRepository] = None,
        window_days: Optional[int] = None,
        freshness_minutes: Optional[int] = None,
    ):
        self.gateway = gateway
        self.staff = staff_repository or StaffRepository()
        self.appointments = appointment_repository or AppointmentRepository()
        self.calendar_settings = settings_repository or CalendarSettingsRepository()
        self.window_days = window_days or settings.sync_window_days
        self.freshness = timedelta(
            minutes=settings.sync_freshness_minutes if freshness_minutes is None else freshness_minutes
        )
        self.lock = SyncLock()

    @property
    def is_running(self) -> bool:
        return self.lock.is_held

    async def run_sync(
        self,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
    ) -> Union[SyncResult, SyncRejected]:
        """Run one sync cycle, or reject immediately if one is already running.

        Remote and storage failures propagate; writes committed before the
        failure stay committed.
        """
        if not self.lock.try_acquire():
            logger.info("Sync requested while another sync is running")
            return SyncRejected()

        try:
            start = window_start or datetime.now(timezone.utc)
            end = window_end or start + timedelta(days=self.window_days)
            result = SyncResult(
                window_start=start,
                window_end=end,
                started_at=datetime.now(timezone.utc),
            )
            logger.info(
                "Starting sync for %s - %s", start, end, extra={"sync_window": f"{start}/{end}"}
            )

            staff_ids = await self._sync_staff(result)
            await self._sync_appointments(start, end, staff_ids, result)

            completed_at = datetime.now(timezone.utc)
            if self.calendar_settings.record_sync(completed_at) is None:
                raise SyncError("Failed to record sync watermark")
            result.completed_at = completed_at

            logger.info(
                "Sync completed: staff %s created / %s updated / %s deactivated, "
                "appointments %s created / %s updated",
                result.staff_created,
                result.staff_updated,
                result.staff_deactivated,
                result.appointments_created,
                result.appointments_updated,
            )
            return result
        finally:
            self.lock.release()

    async def sync_if_stale(
        self, now: Optional[datetime] = None
    ) -> Union[SyncResult, SyncRejected, None]:
        """Sync only when the last completed sync is older than the freshness threshold."""
        now = now or datetime.now(timezone.utc)
        calendar_settings = self.calendar_settings.get()
        last_sync = calendar_settings.last_sync if calendar_settings else None
        if last_sync is not None and now - last_sync < self.freshness:
            logger.debug("Skipping sync, last sync at %s", last_sync)
            return None
        return await self.run_sync()

    async def _fetch_schedules(
        self, resources: List[RemoteResource], result: SyncResult
    ) -> Dict[int, WorkingHoursSchedule]:
        schedules: Dict[int, WorkingHoursSchedule] = {}
        calendar_ids = {r.resource_calendar_id for r in resources if r.resource_calendar_id}
        for calendar_id in sorted(calendar_ids):
            try:
                schedule = await self.gateway.fetch_resource_calendar(calendar_id)
            except RemoteError as e:
                logger.warning("Failed to fetch working hours for calendar %s: %s", calendar_id, e)
                result.errors.append(f"calendar {calendar_id}: {e}")
                continue
            if schedule is not None:
                schedules[calendar_id] = schedule
        return schedules

    async def _sync_staff(self, result: SyncResult) -> Dict[int, str]:
        """Upsert staff by remote id; returns remote id to local id."""
        resources = await self.gateway.fetch_resources()
        schedules = await self._fetch_schedules(resources, result)
        staff_ids: Dict[int, str] = {}

        for resource in resources:
            schedule = schedules.get(resource.resource_calendar_id)
            existing = self.staff.get_by_remote_id(resource.remote_id)

            if existing is None:
                staff = self.staff.create(
                    remote_id=resource.remote_id,
                    name=resource.name,
                    color=palette_color(resource.remote_id),
                    resource_calendar_id=resource.resource_calendar_id,
                    working_hours=schedule.to_storage() if schedule else None,
                )
                if staff is None:
                    raise SyncError(f"Failed to create staff member {resource.remote_id}")
                result.staff_created += 1
            else:
                changes = {
                    "name": resource.name,
                    "resource_calendar_id": resource.resource_calendar_id,
                    "is_active": True,
                }
                if schedule is not None:
                    changes["working_hours"] = schedule.to_storage()
                staff = self.staff.update(existing.id, **changes)
                if staff is None:
                    raise SyncError(f"Failed to update staff member {existing.id}")
                result.staff_updated += 1

            staff_ids[resource.remote_id] = staff.id

        deactivated = self.staff.deactivate_missing(staff_ids.keys())
        if deactivated is None:
            raise SyncError("Failed to deactivate missing staff members")
        result.staff_deactivated = deactivated
        return staff_ids

    async def _sync_appointments(
        self,
        start: datetime,
        end: datetime,
        staff_ids: Dict[int, str],
        result: SyncResult,
    ) -> None:
        remote_appointments = await self.gateway.fetch_appointments(start, end)
        result.total_remote_appointments = len(remote_appointments)
        colors = await self.gateway.fetch_category_colors(
            {r.category_id for r in remote_appointments if r.category_id}
        )
        synced_at = datetime.now(timezone.utc)

        for remote in remote_appointments:
            staff_id = staff_ids.get(remote.resource_id) if remote.resource_id else None
            if remote.resource_id and staff_id is None:
                known = self.staff.get_by_remote_id(remote.resource_id)
                staff_id = known.id if known else None

            fields = {
                "name": remote.name or "Untitled Appointment",
                "customer_name": customer_name_for(remote),
                "service": remote.appointment_type_name or remote.name or "General Service",
                "start_time": remote.start,
                "end_time": remote.stop,
                "staff_id": staff_id,
                "notes": remote.description,
                "category_color": colors.get(remote.category_id) if remote.category_id else None,
                "last_synced": synced_at,
            }

            existing = self.appointments.get_by_remote_id(remote.remote_id)
            try:
                if existing is None:
                    created = self.appointments.create(
                        remote_id=remote.remote_id, status="confirmed", **fields
                    )
                    if created is None:
                        raise SyncError(f"Failed to create appointment for event {remote.remote_id}")
                    result.appointments_created += 1
                else:
                    if self.appointments.update(existing.id, **fields) is None:
                        raise SyncError(f"Failed to update appointment {existing.id}")
                    result.appointments_updated += 1
            except ValidationError as e:
                logger.warning(
                    "Skipping remote event %s: %s",
                    remote.remote_id,
                    e.message,
                    extra={"remote_id": remote.remote_id},
                )
                result.errors.append(f"event {remote.remote_id}: {e.message}")
