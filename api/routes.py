"""HTTP facade over the sync orchestrator and appointment transactions."""

import logging
from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass
from datetime import date, datetime
from functools import partial
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from core.health import HealthChecker
from data.database import ping
from data.models import DEFAULT_STAFF_COLOR
from data.repositories import (
    AppointmentRepository,
    CalendarSettingsRepository,
    StaffRepository,
)
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
    CalendarSettingsDTO,
    CalendarSettingsUpdate,
    CancelResult,
    RemoteAppointmentType,
    RemoteCustomer,
    RescheduleResult,
    StaffCreate,
    StaffDTO,
    StaffUpdate,
    SyncRejected,
)
from services.appointments import AppointmentService, as_utc
from services.availability import staff_day_availability
from services.sync import SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()


@dataclass
class Services:
    """Everything the routes need, built once per application."""

    gateway: RemoteGateway
    staff: StaffRepository
    appointments: AppointmentRepository
    calendar_settings: CalendarSettingsRepository
    sync: SyncOrchestrator
    appointment_service: AppointmentService
    health: HealthChecker

    @classmethod
    def build(cls, gateway: RemoteGateway, session_factory=None) -> "Services":
        staff = StaffRepository(session_factory)
        appointments = AppointmentRepository(session_factory)
        calendar_settings = CalendarSettingsRepository(session_factory)
        return cls(
            gateway=gateway,
            staff=staff,
            appointments=appointments,
            calendar_settings=calendar_settings,
            sync=SyncOrchestrator(gateway, staff, appointments, calendar_settings),
            appointment_service=AppointmentService(gateway, staff, appointments),
            health=HealthChecker(gateway, partial(ping, session_factory)),
        )


def get_services(request: Request) -> Services:
    return request.app.state.services


# ==================== Request Models ====================


class RescheduleRequest(BaseModel):
    start_time: datetime
    end_time: datetime
    staff_id: Optional[str] = None


class SyncRequest(BaseModel):
    start: Optional[datetime] = None
    end: Optional[datetime] = None


# ==================== Health ====================


@router.get("/health")
async def health(services: Services = Depends(get_services)):
    status = await services.health.perform_all_checks()
    return JSONResponse(status.to_dict(), status_code=200 if status.healthy else 503)


@router.get("/api/test-remote")
async def test_remote(services: Services = Depends(get_services)):
    version = await services.gateway.get_version()
    return {"success": True, "version": version}


# ==================== Staff ====================


@router.get("/api/staff", response_model=List[StaffDTO])
async def list_staff(services: Services = Depends(get_services)):
    return services.staff.get_active()


@router.post("/api/staff", response_model=StaffDTO)
async def create_staff(payload: StaffCreate, services: Services = Depends(get_services)):
    if services.staff.get_by_remote_id(payload.remote_id) is not None:
        raise ValidationError(f"remote id {payload.remote_id} already in use", field="remote_id")
    fields = payload.model_dump(exclude={"remote_id", "name"})
    fields["color"] = fields["color"] or DEFAULT_STAFF_COLOR
    staff = services.staff.create(payload.remote_id, payload.name, **fields)
    if staff is None:
        raise ApplicationError("Failed to create staff member")
    return staff


@router.put("/api/staff/{staff_id}", response_model=StaffDTO)
async def update_staff(
    staff_id: str, payload: StaffUpdate, services: Services = Depends(get_services)
):
    if services.staff.get_by_id(staff_id) is None:
        raise NotFoundError("Staff member", staff_id)
    staff = services.staff.update(staff_id, **payload.model_dump(exclude_unset=True))
    if staff is None:
        raise ApplicationError(f"Failed to update staff member {staff_id}")
    return staff


@router.get("/api/staff/{staff_id}/availability")
async def staff_availability(
    staff_id: str,
    day: date = Query(alias="date"),
    services: Services = Depends(get_services),
):
    staff = services.staff.get_by_id(staff_id)
    if staff is None:
        raise NotFoundError("Staff member", staff_id)
    calendar_settings = services.calendar_settings.get()
    if calendar_settings is None:
        raise ApplicationError("Calendar settings unavailable")
    slots = staff_day_availability(
        staff, day, calendar_settings, services.appointments.get_by_staff(staff.id)
    )
    return [asdict(slot) for slot in slots]


# ==================== Appointments ====================


@router.get("/api/appointments", response_model=List[AppointmentDTO])
async def list_appointments(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    services: Services = Depends(get_services),
):
    if start and end:
        return services.appointments.get_by_date_range(as_utc(start), as_utc(end))
    return services.appointments.get_all()


@router.put("/api/appointments/{appointment_id}", response_model=AppointmentDTO)
async def update_appointment(
    appointment_id: str,
    payload: AppointmentUpdate,
    services: Services = Depends(get_services),
):
    return await services.appointment_service.update_details(appointment_id, payload)


@router.put("/api/appointments/{appointment_id}/reschedule", response_model=RescheduleResult)
async def reschedule_appointment(
    appointment_id: str,
    payload: RescheduleRequest,
    services: Services = Depends(get_services),
):
    return await services.appointment_service.reschedule(
        appointment_id, payload.start_time, payload.end_time, payload.staff_id
    )


@router.delete("/api/appointments/{appointment_id}")
async def delete_appointment(appointment_id: str, services: Services = Depends(get_services)):
    result: CancelResult = await services.appointment_service.cancel(appointment_id)
    return {"success": True, "remote_synced": result.remote_synced}


@router.post("/api/appointments/book", response_model=List[AppointmentDTO])
async def book_appointments(payload: BookingRequest, services: Services = Depends(get_services)):
    return await services.appointment_service.book(payload)


@router.get("/api/appointment-types", response_model=List[RemoteAppointmentType])
async def appointment_types(services: Services = Depends(get_services)):
    return await services.gateway.fetch_appointment_types()


@router.get("/api/partners", response_model=List[RemoteCustomer])
async def partners(search: Optional[str] = None, services: Services = Depends(get_services)):
    return await services.gateway.search_customers(search)


# ==================== Sync ====================


def _sync_response(result):
    if isinstance(result, SyncRejected):
        return JSONResponse(result.model_dump(mode="json"), status_code=409)
    return result.model_dump(mode="json")


@router.post("/api/sync")
async def sync(
    payload: Optional[SyncRequest] = Body(default=None),
    services: Services = Depends(get_services),
):
    payload = payload or SyncRequest()
    result = await services.sync.run_sync(
        as_utc(payload.start) if payload.start else None,
        as_utc(payload.end) if payload.end else None,
    )
    return _sync_response(result)


@router.post("/api/sync/auto")
async def sync_auto(services: Services = Depends(get_services)):
    result = await services.sync.sync_if_stale()
    if result is None:
        return {"status": "skipped"}
    return _sync_response(result)


# ==================== Settings ====================


@router.get("/api/settings", response_model=CalendarSettingsDTO)
async def get_settings(services: Services = Depends(get_services)):
    calendar_settings = services.calendar_settings.get()
    if calendar_settings is None:
        raise ApplicationError("Calendar settings unavailable")
    return calendar_settings


@router.put("/api/settings", response_model=CalendarSettingsDTO)
async def update_settings(
    payload: CalendarSettingsUpdate, services: Services = Depends(get_services)
):
    calendar_settings = services.calendar_settings.update(**payload.model_dump(exclude_unset=True))
    if calendar_settings is None:
        raise ApplicationError("Failed to update calendar settings")
    return calendar_settings


# ==================== Application ====================


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse({"error": message, **extra}, status_code=status_code)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(SlotOccupiedError)
    async def slot_occupied(request: Request, exc: SlotOccupiedError):
        return _error(409, str(exc), conflicting_ids=exc.conflicting_ids)

    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(ValidationError)
    async def invalid(request: Request, exc: ValidationError):
        return _error(400, exc.message, field=exc.field)

    @app.exception_handler(RemoteError)
    async def remote_failed(request: Request, exc: RemoteError):
        logger.error("Remote call failed: %s", exc)
        return _error(502, f"Failed to reach {exc.service_name}", details=exc.message)

    @app.exception_handler(ApplicationError)
    async def application_failed(request: Request, exc: ApplicationError):
        logger.error("Request failed: %s", exc)
        return _error(500, str(exc))


def create_app(services: Services) -> FastAPI:
    """Build the FastAPI application around a prepared service container."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.gateway.close()

    app = FastAPI(title="Calendar Sync", version="0.1.0", lifespan=lifespan)
    app.state.services = services
    app.include_router(router)
    register_error_handlers(app)
    return app
