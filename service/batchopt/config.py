from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Batch optimization global configuration."""

    model_config = SettingsConfigDict(env_prefix="BATCHOPT_", env_file=".env", env_file_encoding="utf-8")

    project_name: str = Field(default="Batch Optimization Service")
    api_prefix: str = Field(default="/api/v1")
    environment: str = Field(default="dev")

    # Planning engine
    engine_use_mock: bool = Field(default=True, description="Use the in-memory planning engine with sample plans")
    engine_factory: str = Field(default="", description="module:callable returning a PlanningEngine; used when engine_use_mock=false")
    optimization_config_file: str = Field(default="./BatchOptimization.cfg", description="key:value optimization defaults")

    # Per-batch log files
    log_dir: str = Field(default="./Logs")

    # Dialog watchdog
    watchdog_enabled: bool = Field(default=True)
    watchdog_poll_interval: float = Field(default=1.0, gt=0, description="Seconds between dialog scans")
    watchdog_title_patterns: List[str] = Field(default_factory=lambda: ["Warning"])

    # Job queue
    broker_url: str = Field(default="redis://localhost:6379/0")
    result_backend: str = Field(default="redis://localhost:6379/1")

    cors_origins: List[str] = Field(default_factory=lambda: ["*"])


@lru_cache
def get_settings() -> Settings:
    return Settings()
