"""Task (follow-up / reminder) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from core.models.customer import PHONE_PATTERN


class TaskType(str, Enum):
    """What kind of follow-up this is."""

    FOLLOW_UP = "FOLLOW_UP"
    CARE_CALL = "CARE_CALL"
    REPURCHASE = "REPURCHASE"
    BIRTHDAY = "BIRTHDAY"
    ANNIVERSARY = "ANNIVERSARY"
    PAYMENT_REMINDER = "PAYMENT_REMINDER"
    REFUND_PROCESS = "REFUND_PROCESS"
    OTHER = "OTHER"


class TaskPriority(str, Enum):
    """Task urgency."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskStatus(str, Enum):
    """
    Task lifecycle status.

    PENDING -> IN_PROGRESS -> COMPLETED | CANCELLED. The overdue sweep moves
    PENDING/IN_PROGRESS past their due date to OVERDUE; delaying an overdue
    task puts it back to PENDING.
    """

    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    OVERDUE = "OVERDUE"


OPEN_STATUSES = (TaskStatus.PENDING, TaskStatus.IN_PROGRESS, TaskStatus.OVERDUE)


class TaskCreate(BaseModel):
    """Data required to create a task."""

    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    order_id: UUID | None = None
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    type: TaskType
    priority: TaskPriority = TaskPriority.MEDIUM
    due_at: datetime
    assignee_user_id: UUID | None = None


class TaskUpdate(BaseModel):
    """Editable task fields. Status changes go through the lifecycle methods."""

    title: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = Field(None, max_length=5000)
    type: TaskType | None = None
    priority: TaskPriority | None = None
    assignee_user_id: UUID | None = None

    model_config = {"extra": "forbid"}


class TaskDelay(BaseModel):
    """Reschedule a task."""

    new_due_at: datetime
    reason: str | None = Field(None, max_length=1000)


class Task(BaseModel):
    """Full task entity as stored."""

    id: UUID
    customer_phone: str
    order_id: UUID | None = None
    title: str
    description: str | None = None
    type: TaskType
    priority: TaskPriority
    status: TaskStatus
    due_at: datetime
    assignee_user_id: UUID | None = None
    completed_at: datetime | None = None
    completion_notes: str | None = None
    delay_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @property
    def is_open(self) -> bool:
        """Whether the task still needs work."""
        return self.status in OPEN_STATUSES
