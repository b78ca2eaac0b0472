"""Remote calendar system integration."""

from integrations.remote.base import RemoteGateway
from integrations.remote.odoo import (
    OdooGateway,
    format_remote_datetime,
    parse_remote_datetime,
)

__all__ = [
    "RemoteGateway",
    "OdooGateway",
    "format_remote_datetime",
    "parse_remote_datetime",
]
