"""Application configuration, read from the environment (and an optional .env file)."""

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

ISOLATION_LEVELS = ("READ COMMITTED", "REPEATABLE READ", "SERIALIZABLE")


class AppConfig(BaseModel):
    """
    Runtime configuration.

    Durations are in their natural units (milliseconds for statement
    timeouts, minutes for job intervals, hours for business rules).
    """

    log_level: str = Field(
        default="INFO",
        description="Root logging level",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )

    # Database
    statement_timeout_ms: int = Field(
        default=15000,
        description="Per-statement timeout applied to every pooled connection",
        ge=100,
        le=600000,
    )
    isolation_level: str = Field(
        default="READ COMMITTED",
        description="Isolation level for explicit transactions (merge, bulk jobs)",
    )
    pool_min: int = Field(default=2, ge=1, le=50)
    pool_max: int = Field(default=20, ge=1, le=200)

    # Task automation
    automation_enabled: bool = Field(
        default=False,
        description="Start the background task automation scheduler with the API",
    )
    overdue_sweep_minutes: int = Field(
        default=15,
        description="How often PENDING/IN_PROGRESS tasks past due are marked OVERDUE",
        ge=1,
        le=1440,
    )
    automation_rules_minutes: int = Field(
        default=60,
        description="How often follow-up rules run",
        ge=5,
        le=1440,
    )
    new_customer_follow_up_hours: int = Field(
        default=24,
        description="Customers without contact for this long get a follow-up task",
        ge=1,
        le=720,
    )

    @model_validator(mode="after")
    def check_database_settings(self) -> "AppConfig":
        """Reject unknown isolation levels and inverted pool bounds."""
        if self.isolation_level not in ISOLATION_LEVELS:
            raise ValueError(
                f"Unknown isolation level '{self.isolation_level}'. "
                f"Valid: {', '.join(ISOLATION_LEVELS)}"
            )
        if self.pool_min > self.pool_max:
            raise ValueError("pool_min cannot exceed pool_max")
        return self

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "AppConfig":
        """
        Build config from CRM_* environment variables.

        Unset variables fall back to field defaults.
        """
        if env_file is not None:
            load_dotenv(env_file, override=False)

        mapping = {
            "log_level": "CRM_LOG_LEVEL",
            "statement_timeout_ms": "CRM_STATEMENT_TIMEOUT_MS",
            "isolation_level": "CRM_ISOLATION_LEVEL",
            "pool_min": "CRM_POOL_MIN",
            "pool_max": "CRM_POOL_MAX",
            "automation_enabled": "CRM_AUTOMATION_ENABLED",
            "overdue_sweep_minutes": "CRM_OVERDUE_SWEEP_MINUTES",
            "automation_rules_minutes": "CRM_AUTOMATION_RULES_MINUTES",
            "new_customer_follow_up_hours": "CRM_NEW_CUSTOMER_FOLLOW_UP_HOURS",
        }
        values = {}
        for field, env_name in mapping.items():
            raw = os.getenv(env_name)
            if raw is not None and raw != "":
                values[field] = raw.upper() if field in ("log_level", "isolation_level") else raw

        return cls.model_validate(values)
