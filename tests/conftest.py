"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pytest
from sqlalchemy import create_engine

from data.database import get_session_local, init_db
from data.repositories import (
    AppointmentRepository,
    CalendarSettingsRepository,
    StaffRepository,
)
from integrations.remote.base import RemoteGateway
from models import (
    CustomerIdentity,
    RemoteAppointment,
    RemoteAppointmentType,
    RemoteCustomer,
    RemoteResource,
    WorkingHoursSchedule,
)


class FakeGateway(RemoteGateway):
    """In-memory remote system; ``failures`` maps an operation name to the error it raises."""

    def __init__(self):
        super().__init__("Fake")
        self.resources: List[RemoteResource] = []
        self.appointments: List[RemoteAppointment] = []
        self.calendars: Dict[int, WorkingHoursSchedule] = {}
        self.category_colors: Dict[int, str] = {}
        self.appointment_types: List[RemoteAppointmentType] = []
        self.customers: List[RemoteCustomer] = []
        self.failures: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self.next_id = 9000

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if name in self.failures:
            raise self.failures[name]

    def calls_to(self, name: str) -> List[tuple]:
        return [call for call in self.calls if call[0] == name]

    async def authenticate(self) -> int:
        self._record("authenticate")
        return 1

    async def get_version(self) -> Dict[str, Any]:
        self._record("get_version")
        return {"server_version": "17.0"}

    async def fetch_appointments(self, start: datetime, end: datetime) -> List[RemoteAppointment]:
        self._record("fetch_appointments", start, end)
        return [a for a in self.appointments if a.start >= start and a.stop <= end]

    async def fetch_category_colors(self, category_ids: Iterable[int]) -> Dict[int, str]:
        ids = set(category_ids)
        self._record("fetch_category_colors", ids)
        return {cid: color for cid, color in self.category_colors.items() if cid in ids}

    async def fetch_resources(self) -> List[RemoteResource]:
        self._record("fetch_resources")
        return list(self.resources)

    async def fetch_resource_calendar(self, calendar_id: int) -> Optional[WorkingHoursSchedule]:
        self._record("fetch_resource_calendar", calendar_id)
        return self.calendars.get(calendar_id)

    async def fetch_appointment_types(self) -> List[RemoteAppointmentType]:
        self._record("fetch_appointment_types")
        return list(self.appointment_types)

    async def search_customers(self, term: Optional[str] = None) -> List[RemoteCustomer]:
        self._record("search_customers", term)
        if not term:
            return list(self.customers)
        return [c for c in self.customers if term.lower() in c.name.lower()]

    async def create_appointment(self, fields: Dict[str, Any]) -> int:
        self._record("create_appointment", fields)
        self.next_id += 1
        return self.next_id

    async def update_appointment(self, remote_id: int, fields: Dict[str, Any]) -> bool:
        self._record("update_appointment", remote_id, fields)
        return True

    async def delete_appointment(self, remote_id: int) -> bool:
        self._record("delete_appointment", remote_id)
        return True

    async def find_or_create_customer(self, identity: CustomerIdentity) -> int:
        self._record("find_or_create_customer", identity)
        return 77


@pytest.fixture
def session_factory(tmp_path):
    """Session factory bound to a temporary SQLite database."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    init_db(engine)
    try:
        yield get_session_local(engine)
    finally:
        engine.dispose()


@pytest.fixture
def staff_repository(session_factory):
    return StaffRepository(session_factory)


@pytest.fixture
def appointment_repository(session_factory):
    return AppointmentRepository(session_factory)


@pytest.fixture
def settings_repository(session_factory):
    return CalendarSettingsRepository(session_factory)


@pytest.fixture
def gateway():
    return FakeGateway()
