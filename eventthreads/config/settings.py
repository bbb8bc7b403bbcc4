"""Configuration management using Pydantic Settings.

Features:
- Environment variable loading
- Type validation
- Default values
- Computed properties
"""

from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from eventthreads.utils.constants import (
    DEFAULT_API_SERVER_HOST,
    DEFAULT_API_SERVER_PORT,
    DEFAULT_DATABASE_URL,
    DEFAULT_THREAD_DURATIONS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Storage
    database_url: str = Field(
        DEFAULT_DATABASE_URL, description="Database connection URL"
    )

    # Identity
    admin_password: Optional[SecretStr] = Field(
        None,
        description="Password for admin logins (admin login disabled when unset)",
    )

    # Threads
    allowed_thread_durations: Annotated[List[int], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_THREAD_DURATIONS),
        description="Thread lifetimes (hours) a creator may choose from",
    )
    enable_audit_log: bool = Field(
        True, description="Record thread lifecycle events in the audit log"
    )

    # API server
    api_server_host: str = Field(
        DEFAULT_API_SERVER_HOST, description="Interface the API server binds to"
    )
    api_server_port: int = Field(DEFAULT_API_SERVER_PORT, description="API port")
    cors_origins: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to call the API from a browser",
    )

    # Monitoring
    log_level: str = Field("INFO", description="Logging level")

    # Development
    debug: bool = Field(False, description="Enable debug mode")
    development_mode: bool = Field(False, description="Enable development features")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("allowed_thread_durations", mode="before")
    @classmethod
    def parse_durations(cls, v: Any) -> List[int]:
        """Parse comma-separated hour counts."""
        if isinstance(v, int):
            return [v]
        if isinstance(v, str):
            return [int(hours.strip()) for hours in v.split(",") if hours.strip()]
        if isinstance(v, (list, tuple, set)):
            return [int(hours) for hours in v]
        return v  # type: ignore[no-any-return]

    @field_validator("allowed_thread_durations")
    @classmethod
    def validate_durations(cls, v: List[int]) -> List[int]:
        """Ensure at least one positive duration, deduplicated and sorted."""
        if not v:
            raise ValueError("allowed_thread_durations must not be empty")
        if any(hours <= 0 for hours in v):
            raise ValueError("allowed_thread_durations must all be positive")
        return sorted(set(v))

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> List[str]:
        """Parse comma-separated origins."""
        if v is None:
            return []
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v  # type: ignore[no-any-return]

    @field_validator("admin_password", mode="before")
    @classmethod
    def normalize_admin_password(cls, v: Any) -> Any:
        """Treat a blank ADMIN_PASSWORD as unset."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()  # type: ignore[no-any-return]

    @model_validator(mode="after")
    def validate_api_port(self) -> "Settings":
        """Validate the server port range."""
        if not 0 < self.api_server_port < 65536:
            raise ValueError("api_server_port must be between 1 and 65535")
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not (self.debug or self.development_mode)

    @property
    def database_path(self) -> Optional[Path]:
        """Extract path from SQLite database URL."""
        if self.database_url.startswith("sqlite:///"):
            db_path = self.database_url.replace("sqlite:///", "")
            return Path(db_path).resolve()
        return None

    @property
    def admin_password_str(self) -> Optional[str]:
        """Get admin password as string."""
        if self.admin_password:
            return self.admin_password.get_secret_value()
        return None
