from datetime import timedelta
from typing import Literal

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing_extensions import Self


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="JOBFLOW_",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "jobflow"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"

    # Technician response window (every job type)
    TECHNICIAN_RESPONSE_MINUTES: int = 15
    # Slot-In acknowledgement SLA default
    SLOT_IN_SLA_MINUTES: int = 15
    # Urgency bands applied to both deadlines
    URGENCY_WARNING_MINUTES: int = 10
    URGENCY_CRITICAL_MINUTES: int = 5
    # Jobs in active work longer than this are escalated
    ESCALATION_HOURS: int = 24

    # Hourmeter plausibility; a fixed threshold wins over usage * window
    HOURMETER_JUMP_THRESHOLD_HOURS: int | None = None
    HOURMETER_JUMP_WINDOW_DAYS: int = 30
    DEFAULT_AVG_DAILY_USAGE_HOURS: float = 8.0

    REQUIRE_SIGNATURES_FOR_COMPLETION: bool = False

    # Per-job serialization
    JOB_LOCK_TIMEOUT_SECONDS: float = 10.0

    # Persistence: "memory" keeps records in process, "sql" uses DATABASE_URL
    STORAGE_BACKEND: Literal["memory", "sql"] = "memory"
    DATABASE_URL: str = "sqlite:///./jobflow.db"
    LOG_SQL: bool = False

    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "console"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def technician_response_window(self) -> timedelta:
        return timedelta(minutes=self.TECHNICIAN_RESPONSE_MINUTES)

    @model_validator(mode="after")
    def _check_bands(self) -> Self:
        if self.URGENCY_CRITICAL_MINUTES > self.URGENCY_WARNING_MINUTES:
            raise ValueError(
                "URGENCY_CRITICAL_MINUTES must not exceed URGENCY_WARNING_MINUTES"
            )
        for name in (
            "TECHNICIAN_RESPONSE_MINUTES",
            "SLOT_IN_SLA_MINUTES",
            "ESCALATION_HOURS",
            "HOURMETER_JUMP_WINDOW_DAYS",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        return self


settings = Settings()  # type: ignore
