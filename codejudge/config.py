"""
Configuration management for the code judge service.
Supports environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SandboxConfig(BaseSettings):
    """Sandbox isolation and execution limits."""

    model_config = SettingsConfigDict(env_prefix="SANDBOX_")

    # CPU: 50% of one core
    cpu_period: int = Field(default=100_000, description="CFS period in microseconds")
    cpu_quota: int = Field(default=50_000, description="CFS quota in microseconds")
    pids_limit: int = Field(default=64, description="Maximum processes per sandbox")

    workdir: str = Field(default="/workspace", description="Writable working directory")
    workdir_size: str = Field(default="64m", description="tmpfs size of the working directory")

    max_output_size: int = Field(
        default=64 * 1024,
        description="Captured stdout/stderr is truncated beyond this many characters"
    )
    max_source_bytes: int = Field(default=256 * 1024, description="Largest accepted source file")
    max_input_bytes: int = Field(
        default=8 * 1024 * 1024,
        description="Largest accepted standard input of a single test case"
    )

    # Hard ceilings applied to caller-supplied limits
    max_time_limit_ms: int = Field(default=30_000, ge=1)
    max_memory_limit_mb: int = Field(default=1024, ge=16)
    # Docker refuses memory limits below 6 MB
    min_memory_limit_mb: int = Field(default=16, ge=6)

    provision_timeout: float = Field(
        default=30.0,
        description="Deadline in seconds for each create/start/stop/remove step"
    )
    compile_timeout: float = Field(default=60.0, description="Compilation deadline in seconds")

    stop_on_hidden_failure: bool = Field(
        default=False,
        description="Also stop running tests after a failing hidden test case"
    )

    pull_images: bool = Field(default=False, description="Pull toolchain images at startup")

    label_prefix: str = Field(default="codejudge", description="Container label namespace")
    image_overrides: dict[str, str] = Field(
        default_factory=dict,
        description="Per-language toolchain image overrides"
    )


class ServerConfig(BaseSettings):
    """Server configuration."""

    model_config = SettingsConfigDict(env_prefix="SERVER_")

    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port")
    workers: int = Field(default=1, description="Number of workers")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="Allowed CORS origins"
    )
    max_concurrent_jobs: int = Field(
        default=4,
        ge=1,
        description="Background submissions evaluated at the same time"
    )
    max_retained_submissions: int = Field(
        default=1000,
        ge=1,
        description="Finished submissions kept in memory; oldest are evicted first"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__"
    )

    app_name: str = "Code Judge"
    app_version: str = "1.0.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = Field(default=False, description="Debug mode")

    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @field_validator("debug", mode="before")
    @classmethod
    def validate_debug(cls, v: str | bool) -> bool:
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            return v.lower() in ("true", "1", "yes", "on")
        return False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
