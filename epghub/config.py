from pathlib import Path
from typing import Annotated
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from epghub.services.feed_discovery_service import normalize_urls, split_joined_urls


logger = logging.getLogger(__name__)


def _split_csv(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        if not value.strip():
            return []
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/epg.db"
    report_dir: str = "./data/reports"
    log_level: str = "INFO"

    default_provider_id: str = "default"
    epg_sources: Annotated[list[str], NoDecode] = []
    epg_fetch_cron: str = "0 3 * * *"  # Daily at 3 AM
    epg_fetch_misfire_grace_sec: int = 3600  # Allow 1 hour to run missed jobs
    epg_parse_timeout_sec: int = 600  # XML parsing timeout, 0 disables timeout

    http_user_agent: str | None = None
    http_referer: str | None = None
    http_timeout_sec: int = 180

    # Hosts that block aggressive parallel downloads
    restricted_feed_hosts: Annotated[list[str], NoDecode] = ["epgshare"]
    restricted_max_concurrency: int = 2
    restricted_stagger_ms: int = 250

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("epg_sources", mode="before")
    @classmethod
    def parse_epg_sources(cls, value):
        """Parse a comma/newline separated URL list, or a list."""
        if isinstance(value, str):
            return split_joined_urls(value)
        return normalize_urls(_split_csv(value))

    @field_validator("restricted_feed_hosts", mode="before")
    @classmethod
    def parse_comma_separated(cls, value):
        """Parse comma-separated values or list."""
        return _split_csv(value)

    @field_validator("epg_sources", mode="after")
    @classmethod
    def validate_epg_sources(cls, value):
        """Validate EPG source URLs are HTTP/HTTPS."""
        for url in value:
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"EPG source URL must be HTTP/HTTPS: {url}")
        return value

    @field_validator("database_path", "report_dir")
    @classmethod
    def validate_writable_path(cls, value: str, info) -> str:
        """Validate the parent directory is accessible."""
        path = Path(value)
        target = path if info.field_name == "report_dir" else path.parent
        try:
            target.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access {info.field_name} '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate logging level name."""
        normalized = value.upper()
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("default_provider_id")
    @classmethod
    def validate_provider_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("default_provider_id must not be empty")
        return value.strip()

    @field_validator("epg_parse_timeout_sec", "epg_fetch_misfire_grace_sec", "restricted_stagger_ms")
    @classmethod
    def validate_non_negative(cls, value: int, info) -> int:
        """Ensure timing values are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("http_timeout_sec")
    @classmethod
    def validate_http_timeout(cls, value: int) -> int:
        """Request timeouts are clamped to [10, 600] seconds when used."""
        if value <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        if value < 10 or value > 600:
            logger.warning("http_timeout_sec=%s will be clamped to [10, 600]", value)
        return value

    @field_validator("restricted_max_concurrency")
    @classmethod
    def validate_concurrency(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("restricted_max_concurrency must be > 0")
        return value

    @field_validator("epg_fetch_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_epg_configuration(self):
        """Validate cross-field configuration."""
        if not self.epg_sources:
            logger.warning(
                "No EPG sources configured - scheduled refresh relies on playlist discovery"
            )
        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Report Directory: %s", self.report_dir)
        logger.info("  Default Provider: %s", self.default_provider_id)
        logger.info("  EPG Sources: %s configured", len(self.epg_sources))
        logger.info("  Fetch Schedule: %s", self.epg_fetch_cron)
        logger.info("  Fetch Misfire Grace: %ss", self.epg_fetch_misfire_grace_sec)
        logger.info(
            "  Parse Timeout: %s seconds",
            self.epg_parse_timeout_sec or "disabled",
        )
        logger.info("  HTTP Timeout: %ss", self.http_timeout_sec)
        logger.info(
            "  Restricted Hosts: %s (concurrency=%s, stagger=%sms)",
            ", ".join(self.restricted_feed_hosts) or "none",
            self.restricted_max_concurrency,
            self.restricted_stagger_ms,
        )


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
