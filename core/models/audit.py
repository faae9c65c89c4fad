"""Audit log entry model."""

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class AuditStatus(str, Enum):
    """Outcome of the audited action."""

    SUCCESS = "SUCCESS"
    ERROR = "ERROR"


class AuditEntry(BaseModel):
    """One append-only audit record."""

    id: UUID
    request_id: str
    user_id: UUID
    user_ip: str
    action: str
    entity: str
    entity_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    status: AuditStatus
    latency_ms: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}
