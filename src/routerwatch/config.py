"""Application configuration via environment variables and .env file."""

from pathlib import Path
from typing import Annotated

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode
from pydantic_settings.sources import DotEnvSettingsSource, PydanticBaseSettingsSource

# Path to .env file (patch in tests to use tmp_path / ".env")
_ENV_FILE: Path = Path(".env")


class Settings(BaseSettings):
    model_config = {
        "env_prefix": "ROUTERWATCH_",
        "env_file_encoding": "utf-8",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Load .env from _ENV_FILE (patchable in tests)
        return (
            init_settings,
            env_settings,
            DotEnvSettingsSource(
                settings_cls,
                env_file=_ENV_FILE,
                env_file_encoding="utf-8",
            ),
            file_secret_settings,
        )

    # Logging
    log_level: str = "info"

    # Router source: "routeros", "mock" or "none"
    source_mode: str = "none"
    router_name: str = "router"

    # RouterOS REST API
    router_url: str | None = None
    router_username: str | None = None
    router_password: str | None = None
    router_verify_tls: bool = False
    router_timeout: float = 15.0

    # Polling (seconds)
    presence_poll_interval: int = 10
    event_poll_interval: int = 15
    cleanup_interval: int = 300
    scan_timeout: float = 30.0
    max_consecutive_failures: int = 10
    autostart_monitoring: bool = True
    traffic_poll_interval: float = 2
    traffic_history_size: int = 60

    # Interfaces summed by the bandwidth endpoint
    # Env: ROUTERWATCH_BANDWIDTH_INTERFACES="ether1,main-bridge"
    bandwidth_interfaces: Annotated[list[str], NoDecode] = ["ether1", "main-bridge"]

    # Session tracking (seconds)
    reconnect_grace_window: int = 1800
    stats_retention: int = 86400
    kick_uptime_threshold: int = 1800  # shorter sessions count as kicked

    # Alerts
    alert_history_size: int = 100
    system_log_limit: int = 20
    ignored_interfaces: Annotated[list[str], NoDecode] = ["ether1"]
    webhook_url: str | None = None

    # Email (SMTP)
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_use_tls: bool = True
    email_from: str | None = None
    # Env: ROUTERWATCH_ADMIN_EMAILS="ops@example.com,noc@example.com"
    admin_emails: Annotated[list[str], NoDecode] = []

    # Authentication (optional; omit to disable)
    api_token: str | None = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    @field_validator("ignored_interfaces", "bandwidth_interfaces", "admin_emails", mode="before")
    @classmethod
    def parse_comma_list(cls, v: object) -> list[str]:
        """Parse comma-separated string or list."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        if isinstance(v, list):
            return [s for s in v if s]
        return []


def load_config() -> Settings:
    """Load configuration from .env and environment (env overrides .env)."""
    return Settings()


settings = Settings()
