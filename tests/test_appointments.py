"""Tests for the reschedule, cancel and booking transactions."""

import asyncio
from datetime import datetime, timezone

import pytest

from exceptions import (
    NotFoundError,
    RemoteCallError,
    RemoteUnavailableError,
    SlotOccupiedError,
    ValidationError,
)
from models import (
    AppointmentUpdate,
    BookingRequest,
    CustomerIdentity,
    RemoteAppointmentType,
)
from services.appointments import AppointmentService, as_utc, event_name


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def service(gateway, staff_repository, appointment_repository):
    return AppointmentService(gateway, staff_repository, appointment_repository)


@pytest.fixture
def staff_a(staff_repository):
    return staff_repository.create(remote_id=11, name="Maria")


@pytest.fixture
def staff_b(staff_repository):
    return staff_repository.create(remote_id=12, name="Ivan")


def add_appointment(appointment_repository, staff, start, end, remote_id=None, **extra):
    return appointment_repository.create(
        remote_id=remote_id,
        name="Cut",
        customer_name="Ada",
        service="Cut",
        start_time=start,
        end_time=end,
        staff_id=staff.id if staff else None,
        **extra,
    )


class TestReschedule:
    @pytest.mark.asyncio
    async def test_end_to_end_scenario(self, service, gateway, appointment_repository, staff_a):
        existing = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10), remote_id=501
        )
        moving = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 14), utc(2026, 3, 2, 15), remote_id=502
        )

        with pytest.raises(SlotOccupiedError) as exc_info:
            await service.reschedule(moving.id, utc(2026, 3, 2, 9, 30), utc(2026, 3, 2, 10, 30))

        assert exc_info.value.conflicting_ids == [existing.id]
        assert gateway.calls_to("update_appointment") == []
        assert appointment_repository.get_by_id(moving.id).start_time == utc(2026, 3, 2, 14)

        result = await service.reschedule(moving.id, utc(2026, 3, 2, 10), utc(2026, 3, 2, 11))

        assert result.remote_synced is True
        assert result.appointment.start_time == utc(2026, 3, 2, 10)
        stored = appointment_repository.get_by_id(moving.id)
        assert (stored.start_time, stored.end_time, stored.duration) == (
            utc(2026, 3, 2, 10),
            utc(2026, 3, 2, 11),
            60,
        )
        assert gateway.calls_to("update_appointment") == [
            ("update_appointment", 502, {"start": utc(2026, 3, 2, 10), "stop": utc(2026, 3, 2, 11)})
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [RemoteUnavailableError("down"), RemoteCallError("fault")])
    async def test_degrades_when_remote_fails(self, service, gateway, appointment_repository, staff_a, error):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10), remote_id=501
        )
        gateway.failures["update_appointment"] = error

        result = await service.reschedule(appointment.id, utc(2026, 3, 2, 12), utc(2026, 3, 2, 13))

        assert result.remote_synced is False
        assert appointment_repository.get_by_id(appointment.id).start_time == utc(2026, 3, 2, 12)

    @pytest.mark.asyncio
    async def test_local_commit_refreshes_last_synced_when_remote_fails(
        self, service, gateway, appointment_repository, staff_a
    ):
        appointment = add_appointment(
            appointment_repository,
            staff_a,
            utc(2026, 3, 2, 9),
            utc(2026, 3, 2, 10),
            remote_id=501,
            last_synced=utc(2020, 1, 1),
        )
        gateway.failures["update_appointment"] = RemoteUnavailableError("down")

        result = await service.reschedule(appointment.id, utc(2026, 3, 2, 12), utc(2026, 3, 2, 13))

        assert result.remote_synced is False
        assert appointment_repository.get_by_id(appointment.id).last_synced > utc(2020, 1, 1)

    @pytest.mark.asyncio
    async def test_move_to_other_staff(
        self, service, gateway, appointment_repository, staff_a, staff_b
    ):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10), remote_id=501
        )
        add_appointment(appointment_repository, staff_a, utc(2026, 3, 2, 11), utc(2026, 3, 2, 12))

        result = await service.reschedule(
            appointment.id, utc(2026, 3, 2, 11), utc(2026, 3, 2, 12), new_staff_id=staff_b.id
        )

        assert result.appointment.staff_id == staff_b.id
        _, remote_id, fields = gateway.calls_to("update_appointment")[0]
        assert fields["appointment_resource_id"] == 12

    @pytest.mark.asyncio
    async def test_conflict_checked_against_new_staff(
        self, service, appointment_repository, staff_a, staff_b
    ):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10)
        )
        add_appointment(appointment_repository, staff_b, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10))

        with pytest.raises(SlotOccupiedError):
            await service.reschedule(
                appointment.id, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10), new_staff_id=staff_b.id
            )

    @pytest.mark.asyncio
    async def test_local_only_appointment_skips_remote(self, service, gateway, appointment_repository, staff_a):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10)
        )

        result = await service.reschedule(appointment.id, utc(2026, 3, 2, 12), utc(2026, 3, 2, 13))

        assert result.remote_synced is False
        assert gateway.calls_to("update_appointment") == []

    @pytest.mark.asyncio
    async def test_unassigned_appointment_is_not_conflict_checked(self, service, appointment_repository):
        first = add_appointment(appointment_repository, None, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10))
        add_appointment(appointment_repository, None, utc(2026, 3, 2, 11), utc(2026, 3, 2, 12))

        result = await service.reschedule(first.id, utc(2026, 3, 2, 11), utc(2026, 3, 2, 12))

        assert result.appointment.start_time == utc(2026, 3, 2, 11)

    @pytest.mark.asyncio
    async def test_validation_errors(self, service, appointment_repository, staff_a):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10)
        )

        with pytest.raises(ValidationError):
            await service.reschedule(appointment.id, utc(2026, 3, 2, 10), utc(2026, 3, 2, 10))
        with pytest.raises(NotFoundError):
            await service.reschedule("missing", utc(2026, 3, 2, 10), utc(2026, 3, 2, 11))
        with pytest.raises(NotFoundError):
            await service.reschedule(
                appointment.id, utc(2026, 3, 2, 10), utc(2026, 3, 2, 11), new_staff_id="missing"
            )

    @pytest.mark.asyncio
    async def test_concurrent_moves_into_same_slot(
        self, service, gateway, appointment_repository, staff_a
    ):
        first = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 8), utc(2026, 3, 2, 9), remote_id=1
        )
        second = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 14), utc(2026, 3, 2, 15), remote_id=2
        )
        update = gateway.update_appointment

        async def slow_update(remote_id, fields):
            await asyncio.sleep(0)
            return await update(remote_id, fields)

        gateway.update_appointment = slow_update

        results = await asyncio.gather(
            service.reschedule(first.id, utc(2026, 3, 2, 11), utc(2026, 3, 2, 12)),
            service.reschedule(second.id, utc(2026, 3, 2, 11), utc(2026, 3, 2, 12)),
            return_exceptions=True,
        )

        assert sum(isinstance(r, SlotOccupiedError) for r in results) == 1


class TestCancel:
    @pytest.mark.asyncio
    async def test_deletes_remote_and_local(self, service, gateway, appointment_repository, staff_a):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10), remote_id=501
        )

        result = await service.cancel(appointment.id)

        assert result.remote_synced is True
        assert gateway.calls_to("delete_appointment") == [("delete_appointment", 501)]
        assert appointment_repository.get_by_id(appointment.id) is None

    @pytest.mark.asyncio
    async def test_local_delete_when_remote_fails(self, service, gateway, appointment_repository, staff_a):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10), remote_id=501
        )
        gateway.failures["delete_appointment"] = RemoteUnavailableError("down")

        result = await service.cancel(appointment.id)

        assert result.remote_synced is False
        assert appointment_repository.get_by_id(appointment.id) is None

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, service):
        with pytest.raises(NotFoundError):
            await service.cancel("missing")


class TestBook:
    @pytest.fixture(autouse=True)
    def appointment_types(self, gateway):
        gateway.appointment_types = [
            RemoteAppointmentType(remote_id=1, name="Cut", duration_hours=0.5),
            RemoteAppointmentType(remote_id=2, name="Colour", duration_hours=1.5),
        ]

    def request(self, staff, start, type_ids=(1, 2)):
        return BookingRequest(
            customer=CustomerIdentity(name="Ada", email="ada@example.com", phone="+100"),
            appointment_type_ids=list(type_ids),
            start_time=start,
            staff_id=staff.id,
        )

    @pytest.mark.asyncio
    async def test_books_consecutive_appointments(self, service, gateway, staff_a):
        created = await service.book(self.request(staff_a, utc(2026, 3, 2, 9)))

        assert [(a.start_time, a.end_time, a.duration, a.service) for a in created] == [
            (utc(2026, 3, 2, 9), utc(2026, 3, 2, 9, 30), 30, "Cut"),
            (utc(2026, 3, 2, 9, 30), utc(2026, 3, 2, 11), 90, "Colour"),
        ]
        assert [a.remote_id for a in created] == [9001, 9002]
        assert len(gateway.calls_to("find_or_create_customer")) == 1
        _, fields = gateway.calls_to("create_appointment")[0]
        assert fields["name"] == "Ada (ada@example.com, +100)"
        assert fields["appointment_resource_id"] == 11
        assert fields["partner_ids"] == [(6, 0, [77])]

    @pytest.mark.asyncio
    async def test_conflict_blocks_whole_booking(self, service, gateway, appointment_repository, staff_a):
        add_appointment(appointment_repository, staff_a, utc(2026, 3, 2, 10), utc(2026, 3, 2, 11))

        with pytest.raises(SlotOccupiedError):
            await service.book(self.request(staff_a, utc(2026, 3, 2, 9)))

        assert gateway.calls_to("create_appointment") == []
        assert gateway.calls_to("find_or_create_customer") == []

    @pytest.mark.asyncio
    async def test_remote_failure_surfaces(self, service, gateway, appointment_repository, staff_a):
        gateway.failures["create_appointment"] = RemoteUnavailableError("down")

        with pytest.raises(RemoteUnavailableError):
            await service.book(self.request(staff_a, utc(2026, 3, 2, 9)))

        assert appointment_repository.get_all() == []

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, service, staff_a):
        with pytest.raises(ValidationError):
            await service.book(self.request(staff_a, utc(2026, 3, 2, 9), type_ids=(1, 99)))

    @pytest.mark.asyncio
    async def test_unknown_staff(self, service, staff_a):
        request = self.request(staff_a, utc(2026, 3, 2, 9))
        request.staff_id = "missing"

        with pytest.raises(NotFoundError):
            await service.book(request)


class TestUpdateDetails:
    @pytest.mark.asyncio
    async def test_edits_descriptive_fields(self, service, appointment_repository, staff_a):
        appointment = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10)
        )

        updated = await service.update_details(
            appointment.id, AppointmentUpdate(notes="Allergic to dye", price="45")
        )

        assert (updated.notes, updated.price, updated.status) == ("Allergic to dye", "45", "confirmed")

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, service):
        with pytest.raises(NotFoundError):
            await service.update_details("missing", AppointmentUpdate(notes="x"))

    @pytest.mark.asyncio
    async def test_reactivating_into_occupied_slot_is_rejected(
        self, service, appointment_repository, staff_a
    ):
        booked = add_appointment(
            appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10)
        )
        cancelled = add_appointment(
            appointment_repository,
            staff_a,
            utc(2026, 3, 2, 9, 30),
            utc(2026, 3, 2, 10, 30),
            status="cancelled",
        )

        with pytest.raises(SlotOccupiedError) as exc_info:
            await service.update_details(cancelled.id, AppointmentUpdate(status="confirmed"))

        assert exc_info.value.conflicting_ids == [booked.id]
        assert appointment_repository.get_by_id(cancelled.id).status == "cancelled"

    @pytest.mark.asyncio
    async def test_reactivating_into_free_slot(self, service, appointment_repository, staff_a):
        add_appointment(appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10))
        cancelled = add_appointment(
            appointment_repository,
            staff_a,
            utc(2026, 3, 2, 10),
            utc(2026, 3, 2, 11),
            status="cancelled",
        )

        updated = await service.update_details(cancelled.id, AppointmentUpdate(status="confirmed"))

        assert updated.status == "confirmed"

    @pytest.mark.asyncio
    async def test_cancelled_appointment_notes_edit_skips_conflict_check(
        self, service, appointment_repository, staff_a
    ):
        add_appointment(appointment_repository, staff_a, utc(2026, 3, 2, 9), utc(2026, 3, 2, 10))
        cancelled = add_appointment(
            appointment_repository,
            staff_a,
            utc(2026, 3, 2, 9),
            utc(2026, 3, 2, 10),
            status="cancelled",
        )

        updated = await service.update_details(cancelled.id, AppointmentUpdate(notes="Rebook later"))

        assert (updated.notes, updated.status) == ("Rebook later", "cancelled")


def test_as_utc_assumes_naive_is_utc():
    assert as_utc(datetime(2026, 3, 2, 9)) == utc(2026, 3, 2, 9)


def test_event_name_without_contact_details():
    assert event_name(CustomerIdentity(name="Ada")) == "Ada"
