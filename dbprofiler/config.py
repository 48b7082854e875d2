from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="PROFILER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    target_db_type: str = Field(
        default="postgres",
        description="Database type of the database being profiled ('postgres' or 'sqlite').",
        pattern=r"^(postgres|sqlite)$",
    )
    target_db: Optional[str] = Field(
        default=None,
        description="Connection string for the database being profiled.",
    )
    profile_db_type: str = Field(
        default="postgres",
        description="Database type of the profile store ('postgres' or 'sqlite').",
        pattern=r"^(postgres|sqlite)$",
    )
    profile_db: Optional[str] = Field(
        default=None,
        description="Connection string for the profile store database.",
    )
    profile_definition: Optional[str] = Field(
        default=None,
        description="Path to the profile definition JSON file.",
    )
    use_pascal_case: bool = Field(
        default=False,
        description="When true, profile store tables and columns are named in PascalCase instead of snake_case.",
    )
    max_workers: int = Field(
        default=8,
        description="Maximum number of tables profiled concurrently.",
        ge=1,
        le=256,
    )
    run_timeout_seconds: Optional[float] = Field(
        default=None,
        description="Optional wall-clock limit for a profile run; in-flight tables are cancelled when it elapses.",
        gt=0,
    )
    fail_fast: bool = Field(
        default=False,
        description="When true, the first failing table cancels every other in-flight table.",
    )
    log_level: str = Field(
        default="INFO",
        description="Python logging verbosity for profiler modules (e.g. INFO, DEBUG).",
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
