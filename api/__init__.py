"""HTTP API for the calendar sync service."""

from api.routes import Services, create_app, router

__all__ = ["Services", "create_app", "router"]
