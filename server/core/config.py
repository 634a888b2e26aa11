"""Environment-driven configuration with Pydantic v2."""

from typing import List, Literal, Optional
from pathlib import Path
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from constants import DEFAULT_REPORT_CACHE_TTL, LOAD_LIMIT


class Settings(BaseSettings):
    """Application settings driven entirely by environment variables."""

    # Server Configuration
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3010, ge=1024, le=65535)
    debug: bool = Field(default=False)
    workers: int = Field(default=1, ge=1, le=8)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    # Database Configuration
    database_url: str = Field(default="sqlite+aiosqlite:///./data/reports.db")
    database_echo: bool = Field(default=False)
    database_pool_size: int = Field(default=20, ge=5, le=100)
    database_max_overflow: int = Field(default=30, ge=10, le=100)

    # Cache Configuration
    redis_url: Optional[str] = Field(default=None)
    redis_enabled: bool = Field(default=False)
    cache_ttl: int = Field(default=3600, ge=60)

    # Reports
    report_cache_ttl: int = Field(default=DEFAULT_REPORT_CACHE_TTL, ge=0)  # 0 = never cache
    report_page_layout: Literal["landscape", "portrait"] = Field(default="landscape")
    load_limit: int = Field(default=LOAD_LIMIT, ge=1)
    # Modules defining @register_report classes, imported at startup
    report_modules: List[str] = Field(default_factory=list)

    # Public server address, used to build export and POST URLs
    www_protocol: Literal["http", "https"] = Field(default="http")
    www_host: str = Field(default="localhost")
    www_port: Optional[int] = Field(default=None)
    www_path: str = Field(default="")

    # Tool administrator, shown in notifications
    admin_email: str = Field(default="admin@localhost")

    # Logging
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, v):
        """Ensure database directory exists for SQLite."""
        if v and v.startswith("sqlite"):
            if ":///" in v:
                db_path = v.split("///")[1]
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        return v

    @field_validator("www_path")
    @classmethod
    def validate_www_path(cls, v):
        """Sub-directory installs need a leading slash and no trailing one."""
        v = (v or "").strip().rstrip("/")
        if v and not v.startswith("/"):
            v = "/" + v
        return v

    @property
    def www_server(self) -> str:
        """Server root URL, e.g. ``https://reports.example.com:8443``."""
        port = f":{self.www_port}" if self.www_port else ""
        return f"{self.www_protocol}://{self.www_host}{port}"

    @property
    def base_url(self) -> str:
        """Root URL including the sub-directory the application is served from."""
        return f"{self.www_server}{self.www_path}"

    model_config = {
        "env_file": "../.env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
        "env_parse_none_str": "none",
        "env_nested_delimiter": "__",
    }
