"""Custom exceptions for the application."""

from typing import Optional


class ApplicationError(Exception):
    """Base exception for the application."""

    pass


class ValidationError(ApplicationError):
    """Raised when input validation fails before any I/O is attempted."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(f"Validation error: {message}" + (f" ({field})" if field else ""))


class NotFoundError(ApplicationError):
    """Raised when a referenced local entity does not exist."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class SlotOccupiedError(ApplicationError):
    """Raised when the requested interval overlaps another appointment of the staff member."""

    def __init__(self, staff_id: str, conflicting_ids: Optional[list[str]] = None):
        self.staff_id = staff_id
        self.conflicting_ids = conflicting_ids or []
        super().__init__("This time slot is already occupied")


class SyncError(ApplicationError):
    """Raised when a sync cycle cannot write its results locally."""

    pass


class RemoteError(ApplicationError):
    """Base class for failures talking to the remote ERP."""

    def __init__(self, message: str, service_name: str = "Odoo"):
        self.message = message
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}")


class AuthenticationError(RemoteError):
    """Raised when the remote system rejects the configured credentials."""

    pass


class RemoteUnavailableError(RemoteError):
    """Raised on transport failures, timeouts and server errors after retries are exhausted."""

    pass


class RemoteCallError(RemoteError):
    """Raised when the remote system answers a call with a fault."""

    def __init__(self, message: str, service_name: str = "Odoo", fault_code: Optional[int] = None):
        self.fault_code = fault_code
        super().__init__(message, service_name)
