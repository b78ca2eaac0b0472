"""Base abstraction for the remote calendar system gateway."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from models import (
    CustomerIdentity,
    RemoteAppointment,
    RemoteAppointmentType,
    RemoteCustomer,
    RemoteResource,
    WorkingHoursSchedule,
)

logger = logging.getLogger(__name__)


class RemoteGateway(ABC):
    """Abstract contract for the remote ERP holding the authoritative calendar.

    Every operation may raise ``RemoteUnavailableError`` (transport failure,
    timeout, server error) or ``RemoteCallError`` (the remote system rejected
    the call). Instants are timezone-aware UTC on both sides of this contract.
    """

    def __init__(self, service_name: str):
        self.service_name = service_name
        logger.info(f"Initialized {service_name} gateway")

    @abstractmethod
    async def authenticate(self) -> int:
        """Return the session uid, authenticating once per process.

        Raises:
            AuthenticationError: If the credentials are rejected
        """

    @abstractmethod
    async def get_version(self) -> Dict[str, Any]:
        """Connectivity probe returning the remote server version info."""

    @abstractmethod
    async def fetch_appointments(
        self, start: datetime, end: datetime
    ) -> List[RemoteAppointment]:
        """Return events with ``start >= start`` and ``stop <= end``, ordered by start."""

    @abstractmethod
    async def fetch_category_colors(self, category_ids: Iterable[int]) -> Dict[int, str]:
        """Return display colours for the given categories in one batch."""

    @abstractmethod
    async def fetch_resources(self) -> List[RemoteResource]:
        """Return all bookable resources."""

    @abstractmethod
    async def fetch_resource_calendar(
        self, calendar_id: int
    ) -> Optional[WorkingHoursSchedule]:
        """Return the working-hours schedule or None if the calendar does not exist."""

    @abstractmethod
    async def fetch_appointment_types(self) -> List[RemoteAppointmentType]:
        """Return published appointment types."""

    @abstractmethod
    async def search_customers(self, term: Optional[str] = None) -> List[RemoteCustomer]:
        """Return individual customers matching name, email or phone."""

    @abstractmethod
    async def create_appointment(self, fields: Dict[str, Any]) -> int:
        """Create a calendar event and return its remote id."""

    @abstractmethod
    async def update_appointment(self, remote_id: int, fields: Dict[str, Any]) -> bool:
        """Write fields onto a calendar event."""

    @abstractmethod
    async def delete_appointment(self, remote_id: int) -> bool:
        """Delete a calendar event."""

    @abstractmethod
    async def find_or_create_customer(self, identity: CustomerIdentity) -> int:
        """Resolve a customer by existing id, then email, then phone; create if absent."""

    async def close(self) -> None:
        """Release network resources."""
