"""Application settings and configuration."""

from typing import Optional
from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    model_config = ConfigDict(env_file=".env", case_sensitive=False, extra="allow")

    # Database
    database_url: str = "sqlite:///./calendar_sync.db"
    database_echo: bool = False

    # Odoo external API (XML-RPC)
    odoo_url: str = "https://demo.odoo.com"
    odoo_db: str = "demo"
    odoo_username: str = "admin"
    odoo_api_key: Optional[str] = None
    odoo_password: Optional[str] = None
    odoo_timeout: float = 30.0
    odoo_retry_attempts: int = 3
    odoo_retry_delay_min: float = 1.0
    odoo_retry_delay_max: float = 8.0

    # Sync behaviour
    sync_window_days: int = Field(default=7, ge=1)
    sync_freshness_minutes: int = Field(default=5, ge=0)

    # Working hours from Odoo are expressed in the business' local time
    business_timezone: str = "UTC"

    # Logging / server
    log_level: str = "INFO"
    log_dir: str = "logs"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def odoo_secret(self) -> str:
        """API key if configured, otherwise the account password."""
        return self.odoo_api_key or self.odoo_password or "admin"


settings = Settings()
