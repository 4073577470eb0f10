import json
import os
from typing import Annotated, List, Literal, Optional, Tuple, Type

from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    NoDecode,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_SETTINGS_FILE = "probe_settings.json"


class Settings(BaseSettings):
    """
    Probe daemon configuration settings using Pydantic Settings.
    Reads from init kwargs, environment variables, a .env file and an
    optional JSON settings file (in that order of precedence).
    """

    # ─────────────────────────────────────────────────────────────────────────────
    # Version
    # ─────────────────────────────────────────────────────────────────────────────
    VERSION: str = "1.0.0"
    # Also update pyproject.toml (version)

    # ─────────────────────────────────────────────────────────────────────────────
    # Targets
    # ─────────────────────────────────────────────────────────────────────────────
    HOSTS: Annotated[List[str], NoDecode] = Field(
        default_factory=list,
        validation_alias=AliasChoices("HOSTS", "Hosts"),
        description="Ordered list of hosts to probe (JSON list or comma-separated)",
    )

    # ─────────────────────────────────────────────────────────────────────────────
    # Scheduling
    # ─────────────────────────────────────────────────────────────────────────────
    INTERVAL: float = Field(default=60.0, gt=0, description="Seconds between sweep starts")
    PROBE_TIMEOUT: float = Field(default=5.0, gt=0, description="Per-host probe timeout in seconds")
    PROBE_BACKEND: Literal["system", "pythonping"] = "system"
    PROBE_CONCURRENCY: int = Field(default=1, ge=1, le=64)
    MAX_CONCURRENT_PROCESSES: int = Field(default=16, ge=1)

    # ─────────────────────────────────────────────────────────────────────────────
    # Telemetry
    # ─────────────────────────────────────────────────────────────────────────────
    SERVICE_NAME: str = "PingService"
    ENABLE_METRICS: bool = True
    METRICS_ADDR: str = "127.0.0.1"
    METRICS_PORT: int = Field(default=9464, ge=1, le=65535)
    OTLP_ENDPOINT: Optional[str] = None
    ENABLE_CONSOLE_TRACING: bool = False

    # ─────────────────────────────────────────────────────────────────────────────
    # Shutdown
    # ─────────────────────────────────────────────────────────────────────────────
    SHUTDOWN_TIMEOUT_SECONDS: int = Field(default=10, ge=0)

    # ─────────────────────────────────────────────────────────────────────────────
    # Logging
    # ─────────────────────────────────────────────────────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = None
    LOG_TRUNCATE_ON_START: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    @model_validator(mode="before")
    @classmethod
    def _lift_otlp_section(cls, data):
        # appsettings.json style: {"otlp": {"Endpoint": "..."}}
        if isinstance(data, dict) and "OTLP_ENDPOINT" not in data:
            section = data.get("otlp")
            if isinstance(section, dict) and section.get("Endpoint"):
                data = {**data, "OTLP_ENDPOINT": section["Endpoint"]}
        return data

    @field_validator("HOSTS", mode="before")
    @classmethod
    def _split_hosts(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            raw = value.strip()
            if raw.startswith("["):
                value = json.loads(raw)
            else:
                value = raw.split(",")
        return [str(host).strip() for host in value if str(host).strip()]

    @field_validator("LOG_LEVEL")
    @classmethod
    def _normalize_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _timeout_within_interval(self) -> "Settings":
        # A probe must never outlive its tick
        if self.PROBE_TIMEOUT > self.INTERVAL:
            raise ValueError(
                f"PROBE_TIMEOUT ({self.PROBE_TIMEOUT}s) must not exceed INTERVAL ({self.INTERVAL}s)"
            )
        return self

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        json_file = os.environ.get("PROBE_SETTINGS_FILE", DEFAULT_SETTINGS_FILE)
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls, json_file=json_file),
            file_secret_settings,
        )
