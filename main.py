import logging
import sys

import uvicorn

from api.routes import Services, create_app
from core.logging import setup_logging
from data.database import init_db
from integrations.remote.odoo import OdooGateway
from settings import settings


logger = logging.getLogger(__name__)


def check_startup_requirements() -> bool:
    """
    Perform basic startup checks.

    Returns:
        True if all checks pass, False otherwise
    """
    checks_passed = True

    if not (settings.odoo_api_key or settings.odoo_password):
        logger.warning("Neither ODOO_API_KEY nor ODOO_PASSWORD is set, using default credentials")
        checks_passed = False

    if not settings.odoo_url.startswith(("http://", "https://")):
        logger.error(f"ODOO_URL must be an http(s) URL: {settings.odoo_url}")
        checks_passed = False

    return checks_passed


def build_app():
    """Create tables and assemble the application."""
    init_db()
    return create_app(Services.build(OdooGateway()))


def main() -> None:
    """Main application entry point."""
    setup_logging(log_level=settings.log_level, log_dir=settings.log_dir)
    logger.info("Calendar sync service starting...")
    logger.info(f"Odoo URL: {settings.odoo_url} (database {settings.odoo_db})")
    logger.info(f"Database URL: {settings.database_url}")

    if not check_startup_requirements():
        logger.warning("Some startup checks failed, but application will continue")

    app = build_app()
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Application interrupted by user")
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        sys.exit(1)
