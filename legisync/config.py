"""
Settings for legisync, grouped by concern (store, remote source, sync
target, app) and read from the environment, an optional .env file and
defaults.
"""

from typing import Annotated, List, Optional
import json

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from sqlalchemy.engine import URL

_ASYNC_DRIVERS = {"postgresql": "postgresql+asyncpg", "sqlite": "sqlite+aiosqlite"}


class DatabaseConfig(BaseSettings):
    """Database configuration"""

    # DATABASE_URL wins over the individual fields
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    driver: str = Field(default="postgresql+asyncpg")
    host: Optional[str] = Field(default="localhost")
    port: Optional[int] = Field(default=5432)
    database: str = Field(default="xbill")
    username: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)

    # Connection pool settings (ignored for SQLite)
    pool_size: int = Field(default=5)
    max_overflow: int = Field(default=10)
    pool_timeout: int = Field(default=30)
    pool_recycle: int = Field(default=3600)

    echo: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True
    )

    @property
    def connection_string(self) -> str:
        """Async SQLAlchemy URL; a plain ``postgresql://`` or ``sqlite://`` DATABASE_URL gets its async driver."""
        if self.database_url:
            for plain, async_driver in _ASYNC_DRIVERS.items():
                if self.database_url.startswith(f"{plain}://"):
                    return f"{async_driver}{self.database_url[len(plain):]}"
            return self.database_url

        if self.driver.startswith("sqlite"):
            return f"{self.driver}:///{self.database}"

        return URL.create(
            self.driver,
            username=self.username,
            password=self.password,
            host=self.host or "localhost",
            port=self.port,
            database=self.database,
        ).render_as_string(hide_password=False)

    @property
    def is_sqlite(self) -> bool:
        return self.connection_string.startswith("sqlite")


class SourceConfig(BaseSettings):
    """Remote xBill API configuration"""

    base_url: str = Field(default="https://xbill.ca/api")
    timeout_seconds: float = Field(default=30.0)
    user_agent: str = Field(default="legisync/0.3 (+https://xbill.ca)")

    page_size: int = Field(default=100, ge=1, le=500)
    page_delay_seconds: float = Field(default=0.2, ge=0)
    detail_delay_seconds: float = Field(default=0.5, ge=0)

    # Shared process-wide request budget
    rate_limit_per_second: float = Field(default=5.0, gt=0)
    rate_limit_burst: int = Field(default=2, ge=1)

    # 429 handling for primary listing pages (capped exponential backoff)
    rate_limit_backoff_seconds: float = Field(default=2.0, ge=0)
    max_backoff_seconds: float = Field(default=60.0, ge=0)
    max_rate_limit_retries: int = Field(default=8, ge=0)

    # 429 handling for secondary detail lookups (small fixed retry budget)
    detail_max_retries: int = Field(default=3, ge=0)
    detail_backoff_seconds: float = Field(default=3.0, ge=0)

    # Parallel per-member sub-fetches; all share the limiter above
    member_concurrency: int = Field(default=4, ge=1)

    model_config = SettingsConfigDict(
        env_prefix="XBILL_",
        case_sensitive=False,
        extra="ignore"
    )


class SyncConfig(BaseSettings):
    """Synchronization run configuration"""

    parliament: str = Field(default="45")
    session: str = Field(default="1")

    safety_margin_minutes: int = Field(default=5, ge=0)
    force_full_backfill: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        description="Entities whose watermark filter is bypassed (JSON list or comma-separated in env)"
    )

    batch_size: int = Field(default=200, ge=1)
    write_retry_attempts: int = Field(default=3, ge=1)
    write_retry_max_wait_seconds: float = Field(default=10.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("parliament", "session", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        """Parliament and session identifiers are stored as strings"""
        return str(v).strip() if v is not None else v

    @field_validator("force_full_backfill", mode="before")
    @classmethod
    def parse_entity_list(cls, v):
        """Parse entity names from a JSON string or comma-separated list"""
        if v is None:
            return []
        if isinstance(v, (list, tuple, set)):
            return [str(item).strip() for item in v if str(item).strip()]
        if isinstance(v, str):
            v = v.strip()
            if (v.startswith('"') and v.endswith('"')) or (v.startswith("'") and v.endswith("'")):
                v = v[1:-1]
            if v.startswith("["):
                try:
                    return [str(item).strip() for item in json.loads(v) if str(item).strip()]
                except json.JSONDecodeError:
                    pass
            return [entity.strip() for entity in v.split(",") if entity.strip()]
        return v

    def forces_full_backfill(self, entity: str) -> bool:
        return entity in self.force_full_backfill or "all" in self.force_full_backfill


class AppConfig(BaseSettings):
    """Application configuration"""

    app_name: str = Field(default="legisync")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    # Tag written on every member_stats snapshot
    metrics_version: str = Field(default="v3")

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        case_sensitive=False,
        extra="ignore"
    )


class Settings(BaseSettings):
    """
    Global settings container.

    Loads configuration from:
    1. Environment variables
    2. .env file
    3. Default values

    Example:
        settings = Settings()

        # Tests and scripts build explicit groups
        settings = Settings(
            db=DatabaseConfig(database_url="sqlite+aiosqlite:///:memory:"),
            sync=SyncConfig(parliament="45", session="1"),
        )
    """

    app: AppConfig = Field(default_factory=AppConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def for_run(
        self,
        parliament: Optional[str] = None,
        session: Optional[str] = None,
        force_full_backfill: Optional[List[str]] = None,
    ) -> "Settings":
        """Copy of these settings with the sync target overridden for one run."""
        update = {}
        if parliament is not None:
            update["parliament"] = str(parliament)
        if session is not None:
            update["session"] = str(session)
        if force_full_backfill:
            update["force_full_backfill"] = list(force_full_backfill)
        if not update:
            return self
        return self.model_copy(update={"sync": self.sync.model_copy(update=update)})


# Default settings instance for entry points (CLI, Prefect flows)
settings = Settings()
