"""Reschedule, cancel and booking transactions for appointments."""

import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from data.models import Appointment
from data.repositories import AppointmentRepository, StaffRepository
from exceptions import (
    ApplicationError,
    NotFoundError,
    RemoteError,
    SlotOccupiedError,
    ValidationError,
)
from integrations.remote.base import RemoteGateway
from models import (
    AppointmentDTO,
    AppointmentUpdate,
    BookingRequest,
    CancelResult,
    CustomerIdentity,
    RescheduleResult,
)
from services.conflicts import find_conflicts, has_conflict

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Aware UTC instant; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def event_name(customer: CustomerIdentity) -> str:
    details = [value for value in (customer.email, customer.phone) if value]
    if details:
        return f"{customer.name} ({', '.join(details)})"
    return customer.name


class AppointmentService:
    """Local-first mutations of appointments with best-effort remote propagation.

    Check-then-commit for one staff member is serialised by a per-staff lock
    inside this process.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        staff_repository: Optional[StaffRepository] = None,
        appointment_repository: Optional[AppointmentRepository] = None,
    ):
        self.gateway = gateway
        self.staff = staff_repository or StaffRepository()
        self.appointments = appointment_repository or AppointmentRepository()
        self._staff_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def _lock_for(self, staff_id: Optional[str]) -> asyncio.Lock:
        return self._staff_locks[staff_id or ""]

    def _load(self, appointment_id: str) -> Appointment:
        appointment = self.appointments.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment", appointment_id)
        return appointment

    async def reschedule(
        self,
        appointment_id: str,
        new_start: datetime,
        new_end: datetime,
        new_staff_id: Optional[str] = None,
    ) -> RescheduleResult:
        """Move an appointment, optionally to another staff member.

        Raises:
            NotFoundError: Unknown appointment or staff member
            ValidationError: ``new_end`` is not after ``new_start``
            SlotOccupiedError: The target interval overlaps another appointment
        """
        new_start, new_end = as_utc(new_start), as_utc(new_end)
        if new_end <= new_start:
            raise ValidationError("end time must be after start time", field="end_time")

        appointment = self._load(appointment_id)
        new_staff = None
        if new_staff_id:
            new_staff = self.staff.get_by_id(new_staff_id)
            if new_staff is None:
                raise NotFoundError("Staff member", new_staff_id)

        target_staff_id = new_staff.id if new_staff else appointment.staff_id

        async with self._lock_for(target_staff_id):
            existing = self.appointments.get_by_staff(target_staff_id) if target_staff_id else []
            conflicts = find_conflicts(existing, appointment.id, target_staff_id, new_start, new_end)
            if conflicts:
                logger.info(
                    "Reschedule of %s rejected, overlaps %s",
                    appointment.id,
                    [c.id for c in conflicts],
                    extra={"appointment_id": appointment.id, "staff_id": target_staff_id},
                )
                raise SlotOccupiedError(target_staff_id, [c.id for c in conflicts])

            remote_synced = False
            if appointment.remote_id is not None:
                remote_fields = {"start": new_start, "stop": new_end}
                if new_staff is not None and new_staff.id != appointment.staff_id:
                    remote_fields["appointment_resource_id"] = new_staff.remote_id
                try:
                    await self.gateway.update_appointment(appointment.remote_id, remote_fields)
                    remote_synced = True
                except RemoteError as e:
                    logger.warning(
                        "Remote reschedule of %s failed, updating locally only: %s",
                        appointment.id,
                        e,
                        extra={"appointment_id": appointment.id, "remote_id": appointment.remote_id},
                    )

            changes = {
                "start_time": new_start,
                "end_time": new_end,
                "last_synced": datetime.now(timezone.utc),
            }
            if new_staff is not None:
                changes["staff_id"] = new_staff.id

            updated = self.appointments.update(appointment.id, **changes)
            if updated is None:
                raise ApplicationError(f"Failed to store rescheduled appointment {appointment.id}")

        return RescheduleResult(
            appointment=AppointmentDTO.model_validate(updated),
            remote_synced=remote_synced,
        )

    async def cancel(self, appointment_id: str) -> CancelResult:
        """Delete an appointment remotely (best-effort) and locally."""
        appointment = self._load(appointment_id)

        remote_synced = False
        if appointment.remote_id is not None:
            try:
                await self.gateway.delete_appointment(appointment.remote_id)
                remote_synced = True
            except RemoteError as e:
                logger.warning(
                    "Remote delete of %s failed, deleting locally only: %s",
                    appointment.id,
                    e,
                    extra={"appointment_id": appointment.id, "remote_id": appointment.remote_id},
                )

        if not self.appointments.delete(appointment.id):
            raise ApplicationError(f"Failed to delete appointment {appointment.id}")

        return CancelResult(appointment_id=appointment.id, remote_synced=remote_synced)

    async def book(self, request: BookingRequest) -> List[Appointment]:
        """Create consecutive appointments, one per requested type.

        Every interval is checked before anything is written. Each appointment
        is created remotely first; a remote failure propagates.
        """
        staff = self.staff.get_by_id(request.staff_id)
        if staff is None:
            raise NotFoundError("Staff member", request.staff_id)

        types = {t.remote_id: t for t in await self.gateway.fetch_appointment_types()}
        unknown = [type_id for type_id in request.appointment_type_ids if type_id not in types]
        if unknown:
            raise ValidationError(
                f"unknown appointment types: {', '.join(map(str, unknown))}",
                field="appointment_type_ids",
            )

        plan = []
        cursor = as_utc(request.start_time)
        for type_id in request.appointment_type_ids:
            appointment_type = types[type_id]
            end = cursor + timedelta(minutes=appointment_type.duration_minutes)
            plan.append((appointment_type, cursor, end))
            cursor = end

        async with self._lock_for(staff.id):
            existing = self.appointments.get_by_staff(staff.id)
            for _, start, end in plan:
                if has_conflict(existing, None, staff.id, start, end):
                    raise SlotOccupiedError(staff.id)

            customer = request.customer
            customer_id = await self.gateway.find_or_create_customer(customer)
            name = event_name(customer)

            created = []
            for appointment_type, start, end in plan:
                remote_id = await self.gateway.create_appointment(
                    {
                        "name": name,
                        "start": start,
                        "stop": end,
                        "appointment_type_id": appointment_type.remote_id,
                        "appointment_resource_id": staff.remote_id,
                        "partner_ids": [(6, 0, [customer_id])],
                    }
                )
                appointment = self.appointments.create(
                    remote_id=remote_id,
                    name=customer.name,
                    customer_name=customer.name,
                    customer_email=customer.email,
                    customer_phone=customer.phone,
                    service=appointment_type.name,
                    start_time=start,
                    end_time=end,
                    staff_id=staff.id,
                    status="confirmed",
                )
                if appointment is None:
                    raise ApplicationError(f"Failed to store booked appointment for event {remote_id}")
                created.append(appointment)

        logger.info(
            "Booked %s appointments for %s with %s",
            len(created),
            customer.name,
            staff.name,
            extra={"staff_id": staff.id},
        )
        return created

    async def update_details(self, appointment_id: str, update: AppointmentUpdate) -> Appointment:
        """Edit locally owned descriptive fields.

        Reactivating a cancelled appointment claims its slot again, so it is
        conflict-checked like a reschedule.

        Raises:
            NotFoundError: Unknown appointment
            SlotOccupiedError: Reactivation overlaps another appointment
        """
        appointment = self._load(appointment_id)
        fields = update.model_dump(exclude_unset=True)
        reactivating = (
            appointment.status == "cancelled"
            and fields.get("status", "cancelled") != "cancelled"
        )

        async with self._lock_for(appointment.staff_id):
            if reactivating and appointment.staff_id:
                conflicts = find_conflicts(
                    self.appointments.get_by_staff(appointment.staff_id),
                    appointment.id,
                    appointment.staff_id,
                    appointment.start_time,
                    appointment.end_time,
                )
                if conflicts:
                    logger.info(
                        "Reactivation of %s rejected, overlaps %s",
                        appointment.id,
                        [c.id for c in conflicts],
                        extra={"appointment_id": appointment.id, "staff_id": appointment.staff_id},
                    )
                    raise SlotOccupiedError(appointment.staff_id, [c.id for c in conflicts])

            updated = self.appointments.update(appointment_id, **fields)

        if updated is None:
            raise ApplicationError(f"Failed to update appointment {appointment_id}")
        return updated
