"""
Incident Responder - Configuration
==================================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables (or a ``.env``
file) with defaults suitable for running the demo locally.
"""

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from incident_responder.constants import (
    DEFAULT_DATABASE_URL,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    Timing,
)


class DiagnosisProvider(str, Enum):
    """Where remediation plans come from."""
    RULES = "rules"     # Deterministic plan per incident class
    OPENAI = "openai"   # OpenAI-compatible chat completions endpoint


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Timing values are in seconds. Tests override the delays with zeros.
    """

    # Service identification
    service_name: str = Field(
        default="incident-responder",
        description="Name of this service for logging and tracing"
    )
    service_version: str = Field(default="0.1.0")

    # Responder API server
    host: str = Field(default="0.0.0.0", description="Host to bind to")
    port: int = Field(default=8090, description="Port to listen on")
    debug: bool = Field(default=False, description="Enable debug mode")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(default=True, description="Output logs as JSON")

    # Managed workload
    target_host: str = Field(default="127.0.0.1")
    target_port: int = Field(default=8080)
    target_serve_http: bool = Field(
        default=True,
        description="Serve the workload over HTTP; off runs it in-memory only"
    )

    # Health monitoring
    check_interval_seconds: float = Field(
        default=Timing.CHECK_INTERVAL_SECONDS,
        description="How often the workload health is sampled"
    )
    probe_timeout_seconds: float = Field(
        default=Timing.PROBE_TIMEOUT_SECONDS,
        description="Timeout applied to every health and status probe"
    )
    incident_queue_size: int = Field(
        default=10,
        ge=1,
        description="Capacity of the incident event channel"
    )

    # Remediation timings
    restart_settle_seconds: float = Field(default=Timing.RESTART_SETTLE_SECONDS)
    startup_grace_seconds: float = Field(default=Timing.STARTUP_GRACE_SECONDS)
    stabilization_seconds: float = Field(default=Timing.STABILIZATION_SECONDS)
    verification_interval_seconds: float = Field(default=Timing.VERIFICATION_INTERVAL_SECONDS)
    workload_restart_pause_seconds: float = Field(default=Timing.WORKLOAD_RESTART_PAUSE_SECONDS)

    # Known-good workload configuration restored by config fixes
    default_database_url: str = Field(default=DEFAULT_DATABASE_URL)
    default_timeout: str = Field(default=DEFAULT_TIMEOUT)
    default_max_retries: str = Field(default=DEFAULT_MAX_RETRIES)

    # Persistence
    memory_file: str = Field(
        default="incident_memory.json",
        description="Path of the incident and learned-fix document"
    )

    # Diagnosis source
    diagnosis_provider: DiagnosisProvider = Field(default=DiagnosisProvider.OPENAI)
    openai_api_key: Optional[str] = Field(default=None)
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_model: str = Field(default="gpt-4")
    diagnosis_temperature: float = Field(default=0.3)
    diagnosis_timeout_seconds: float = Field(default=30.0)
    diagnosis_max_attempts: int = Field(
        default=2,
        ge=1,
        description="Attempts per diagnosis call before falling back to rules"
    )

    # Scripted demo scenario
    demo_mode: bool = Field(default=False)

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def target_url(self) -> str:
        """Base URL the probes use to reach the workload."""
        return f"http://{self.target_host}:{self.target_port}"

    @property
    def known_good_config(self) -> dict[str, str]:
        return {
            "database_url": self.default_database_url,
            "timeout": self.default_timeout,
            "max_retries": self.default_max_retries,
        }


@lru_cache()
def get_settings() -> Settings:
    """
    Get the cached settings instance.

    Settings are read from the environment once per process.
    """
    return Settings()
