"""Interaction (logged customer contact) domain models."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.models.customer import PHONE_PATTERN


class InteractionChannel(str, Enum):
    """How the staff member and customer talked."""

    PHONE = "PHONE"
    EMAIL = "EMAIL"
    LINE = "LINE"
    FACEBOOK = "FACEBOOK"
    IN_PERSON = "IN_PERSON"
    OTHER = "OTHER"


class InteractionCreate(BaseModel):
    """Data required to log an interaction. The staff member comes from context."""

    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    channel: InteractionChannel
    summary: str = Field(..., min_length=1, max_length=1000)
    notes: str | None = Field(None, max_length=10000)
    attachments: list[str] = Field(default_factory=list)


class InteractionUpdate(BaseModel):
    """Data that can be updated on an interaction. All fields optional."""

    channel: InteractionChannel | None = None
    summary: str | None = Field(None, min_length=1, max_length=1000)
    notes: str | None = Field(None, max_length=10000)
    attachments: list[str] | None = None

    model_config = {"extra": "forbid"}


class Interaction(BaseModel):
    """Full interaction entity as stored."""

    id: UUID
    customer_phone: str
    user_id: UUID
    channel: InteractionChannel
    summary: str
    notes: str | None = None
    attachments: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("attachments", mode="before")
    @classmethod
    def null_attachments_to_empty(cls, value):
        return [] if value is None else value
