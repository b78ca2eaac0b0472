"""Odoo gateway speaking the XML-RPC external API over httpx."""

import asyncio
import logging
import xmlrpc.client
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional
from xml.parsers.expat import ExpatError

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from exceptions import (
    AuthenticationError,
    RemoteCallError,
    RemoteUnavailableError,
)
from integrations.remote.base import RemoteGateway
from models import (
    CustomerIdentity,
    RemoteAppointment,
    RemoteAppointmentType,
    RemoteCustomer,
    RemoteResource,
    WorkingHoursEntry,
    WorkingHoursSchedule,
)
from settings import settings

logger = logging.getLogger(__name__)

REMOTE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"

COMMON_ENDPOINT = "/xmlrpc/2/common"
OBJECT_ENDPOINT = "/xmlrpc/2/object"

APPOINTMENT_FIELDS = [
    "id",
    "name",
    "start",
    "stop",
    "partner_id",
    "partner_ids",
    "appointment_resource_id",
    "appointment_type_id",
    "description",
    "appointment_category_id",
]


def format_remote_datetime(value: datetime) -> str:
    """Render an aware instant as the remote ``YYYY-MM-DD HH:MM:SS`` UTC string."""
    if value.tzinfo is None:
        raise ValueError("naive datetime cannot be sent to the remote system")
    return value.astimezone(timezone.utc).strftime(REMOTE_DATETIME_FORMAT)


def parse_remote_datetime(value: str) -> datetime:
    """Read a remote ``YYYY-MM-DD HH:MM:SS`` string as an aware UTC instant."""
    return datetime.strptime(value, REMOTE_DATETIME_FORMAT).replace(tzinfo=timezone.utc)


def _ref_id(value: Any) -> Optional[int]:
    # many2one values arrive as [id, display_name] or False
    if isinstance(value, (list, tuple)) and value:
        return int(value[0])
    return None


def _ref_name(value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)) and len(value) > 1:
        return str(value[1])
    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code >= 500


class OdooGateway(RemoteGateway):
    """Gateway to an Odoo instance.

    The session uid is cached after the first successful authentication and
    shared by all later calls. Transport errors and 5xx answers are retried
    with exponential backoff before surfacing as ``RemoteUnavailableError``.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        db: Optional[str] = None,
        username: Optional[str] = None,
        secret: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__("Odoo")
        self.url = (url or settings.odoo_url).rstrip("/")
        self.db = db or settings.odoo_db
        self.username = username or settings.odoo_username
        self._secret = secret or settings.odoo_secret
        self.timeout = timeout if timeout is not None else settings.odoo_timeout
        self.retry_attempts = max(1, retry_attempts or settings.odoo_retry_attempts)
        self._client = client or httpx.AsyncClient(base_url=self.url, timeout=self.timeout)
        self._uid: Optional[int] = None
        self._auth_lock = asyncio.Lock()
        logger.info("Odoo gateway configured for %s (database %s)", self.url, self.db)

    async def _call(self, endpoint: str, method: str, params: List[Any]) -> Any:
        payload = xmlrpc.client.dumps(tuple(params), methodname=method, allow_none=True)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_exponential(
                    min=settings.odoo_retry_delay_min,
                    max=settings.odoo_retry_delay_max,
                ),
                retry=retry_if_exception(_is_retryable),
                reraise=True,
            ):
                with attempt:
                    response = await self._client.post(
                        endpoint,
                        content=payload.encode("utf-8"),
                        headers={"Content-Type": "text/xml"},
                        timeout=self.timeout,
                    )
                    response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error("Odoo %s timed out after %s attempts", method, self.retry_attempts)
            raise RemoteUnavailableError(f"{method} timed out") from e
        except httpx.TransportError as e:
            logger.error("Odoo %s transport error: %s", method, e)
            raise RemoteUnavailableError(f"{method} failed: {e}") from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("Odoo %s returned HTTP %s", method, status)
            if status >= 500:
                raise RemoteUnavailableError(f"{method} returned HTTP {status}") from e
            raise RemoteCallError(f"{method} returned HTTP {status}") from e

        try:
            result, _ = xmlrpc.client.loads(response.content)
        except xmlrpc.client.Fault as fault:
            raise RemoteCallError(fault.faultString, fault_code=fault.faultCode) from fault
        except ExpatError as e:
            raise RemoteCallError(f"malformed {method} response") from e
        return result[0] if result else None

    async def authenticate(self) -> int:
        async with self._auth_lock:
            if self._uid:
                return self._uid

            logger.info("Authenticating against Odoo as %s", self.username)
            try:
                uid = await self._call(
                    COMMON_ENDPOINT,
                    "authenticate",
                    [self.db, self.username, self._secret, {}],
                )
            except RemoteCallError as e:
                raise AuthenticationError(f"authentication failed: {e.message}") from e

            if not uid:
                logger.error("Odoo authentication returned no uid")
                raise AuthenticationError("invalid credentials")

            self._uid = int(uid)
            logger.info("Authenticated with Odoo (uid %s)", self._uid)
            return self._uid

    async def get_version(self) -> Dict[str, Any]:
        return await self._call(COMMON_ENDPOINT, "version", [])

    async def execute_kw(
        self,
        model: str,
        method: str,
        args: List[Any],
        kwargs: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Call a model method through ``execute_kw``."""
        uid = await self.authenticate()
        return await self._call(
            OBJECT_ENDPOINT,
            "execute_kw",
            [self.db, uid, self._secret, model, method, args, kwargs or {}],
        )

    async def fetch_appointments(
        self, start: datetime, end: datetime
    ) -> List[RemoteAppointment]:
        records = await self.execute_kw(
            "calendar.event",
            "search_read",
            [[
                ["start", ">=", format_remote_datetime(start)],
                ["stop", "<=", format_remote_datetime(end)],
            ]],
            {"fields": APPOINTMENT_FIELDS, "order": "start ASC"},
        )
        appointments = []
        for record in records or []:
            appointments.append(
                RemoteAppointment(
                    remote_id=record["id"],
                    name=_text(record.get("name")) or "",
                    start=parse_remote_datetime(record["start"]),
                    stop=parse_remote_datetime(record["stop"]),
                    resource_id=_ref_id(record.get("appointment_resource_id")),
                    partner_id=_ref_id(record.get("partner_id")),
                    partner_name=_ref_name(record.get("partner_id")),
                    partner_ids=record.get("partner_ids") or [],
                    appointment_type_id=_ref_id(record.get("appointment_type_id")),
                    appointment_type_name=_ref_name(record.get("appointment_type_id")),
                    category_id=_ref_id(record.get("appointment_category_id")),
                    description=_text(record.get("description")),
                )
            )
        logger.info("Fetched %s appointments from Odoo", len(appointments))
        return appointments

    async def fetch_category_colors(self, category_ids: Iterable[int]) -> Dict[int, str]:
        ids = sorted(set(category_ids))
        if not ids:
            return {}
        records = await self.execute_kw(
            "appointment.category", "read", [ids], {"fields": ["id", "color"]}
        )
        return {
            record["id"]: str(record["color"])
            for record in records or []
            if record.get("color") not in (None, False, "")
        }

    async def fetch_resources(self) -> List[RemoteResource]:
        records = await self.execute_kw(
            "appointment.resource",
            "search_read",
            [[]],
            {
                "fields": ["id", "name", "employee_id", "resource_calendar_id"],
                "order": "name ASC",
            },
        )
        return [
            RemoteResource(
                remote_id=record["id"],
                name=record.get("name") or f"Resource {record['id']}",
                employee_id=_ref_id(record.get("employee_id")),
                resource_calendar_id=_ref_id(record.get("resource_calendar_id")),
            )
            for record in records or []
        ]

    async def fetch_resource_calendar(
        self, calendar_id: int
    ) -> Optional[WorkingHoursSchedule]:
        calendars = await self.execute_kw(
            "resource.calendar",
            "read",
            [[calendar_id]],
            {"fields": ["id", "name", "attendance_ids"]},
        )
        if not calendars:
            return None

        calendar = calendars[0]
        entries = []
        attendance_ids = calendar.get("attendance_ids") or []
        if attendance_ids:
            attendances = await self.execute_kw(
                "resource.calendar.attendance",
                "read",
                [attendance_ids],
                {"fields": ["dayofweek", "hour_from", "hour_to", "day_period"]},
            )
            for attendance in attendances or []:
                try:
                    entries.append(WorkingHoursEntry.model_validate(attendance))
                except PydanticValidationError:
                    logger.warning(
                        "Skipping malformed attendance %s of calendar %s",
                        attendance.get("id"),
                        calendar_id,
                    )

        return WorkingHoursSchedule(
            calendar_id=calendar_id,
            name=_text(calendar.get("name")),
            entries=entries,
        )

    async def fetch_appointment_types(self) -> List[RemoteAppointmentType]:
        records = await self.execute_kw(
            "appointment.type",
            "search_read",
            [[["is_published", "=", True]]],
            {
                "fields": ["id", "name", "appointment_duration", "resource_ids"],
                "order": "name ASC",
            },
        )
        return [
            RemoteAppointmentType(
                remote_id=record["id"],
                name=record.get("name") or "",
                duration_hours=record.get("appointment_duration") or 1.0,
                resource_ids=record.get("resource_ids") or [],
            )
            for record in records or []
        ]

    async def search_customers(self, term: Optional[str] = None) -> List[RemoteCustomer]:
        domain: List[Any] = [["active", "=", True], ["is_company", "=", False]]
        if term and term.strip():
            domain += [
                "|",
                "|",
                ["name", "ilike", term],
                ["email", "ilike", term],
                ["phone", "ilike", term],
            ]
        records = await self.execute_kw(
            "res.partner",
            "search_read",
            [domain],
            {
                "fields": ["id", "name", "email", "phone", "mobile"],
                "order": "name ASC",
                "limit": 100,
            },
        )
        return [
            RemoteCustomer(
                remote_id=record["id"],
                name=record.get("name") or "",
                email=_text(record.get("email")),
                phone=_text(record.get("phone")),
                mobile=_text(record.get("mobile")),
            )
            for record in records or []
        ]

    @staticmethod
    def _to_remote_fields(fields: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: format_remote_datetime(value) if isinstance(value, datetime) else value
            for key, value in fields.items()
        }

    async def create_appointment(self, fields: Dict[str, Any]) -> int:
        remote_id = await self.execute_kw(
            "calendar.event", "create", [self._to_remote_fields(fields)]
        )
        logger.info("Created Odoo event %s", remote_id)
        return int(remote_id)

    async def update_appointment(self, remote_id: int, fields: Dict[str, Any]) -> bool:
        result = await self.execute_kw(
            "calendar.event", "write", [[remote_id], self._to_remote_fields(fields)]
        )
        logger.info("Updated Odoo event %s", remote_id)
        return bool(result)

    async def delete_appointment(self, remote_id: int) -> bool:
        result = await self.execute_kw("calendar.event", "unlink", [[remote_id]])
        logger.info("Deleted Odoo event %s", remote_id)
        return bool(result)

    async def _find_customer(self, field: str, value: Any) -> Optional[int]:
        records = await self.execute_kw(
            "res.partner",
            "search_read",
            [[[field, "=", value]]],
            {"fields": ["id"], "limit": 1},
        )
        return records[0]["id"] if records else None

    async def find_or_create_customer(self, identity: CustomerIdentity) -> int:
        if identity.existing_id:
            if await self._find_customer("id", identity.existing_id):
                logger.debug("Using existing customer %s", identity.existing_id)
                return identity.existing_id

        for field in ("email", "phone"):
            value = getattr(identity, field)
            if value:
                customer_id = await self._find_customer(field, value)
                if customer_id:
                    logger.debug("Found customer %s by %s", customer_id, field)
                    return customer_id

        values: Dict[str, Any] = {"name": identity.name, "is_company": False}
        if identity.email:
            values["email"] = identity.email
        if identity.phone:
            values["phone"] = identity.phone
        customer_id = await self.execute_kw("res.partner", "create", [values])
        logger.info("Created Odoo customer %s", customer_id)
        return int(customer_id)

    async def close(self) -> None:
        await self._client.aclose()
