"""Order domain models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from core.models.customer import PHONE_PATTERN


class OrderStatus(str, Enum):
    """Order fulfilment status."""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class OrderItem(BaseModel):
    """One line of an order."""

    name: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)
    description: str | None = None


class OrderCreate(BaseModel):
    """Data required to create an order."""

    customer_phone: str = Field(..., pattern=PHONE_PATTERN)
    amount: Decimal = Field(..., ge=0)
    status: OrderStatus = OrderStatus.PENDING
    description: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=10000)
    expected_delivery_date: datetime | None = None
    items: list[OrderItem] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    """Data that can be updated on an order. All fields optional."""

    status: OrderStatus | None = None
    amount: Decimal | None = Field(None, ge=0)
    description: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=10000)
    expected_delivery_date: datetime | None = None
    items: list[OrderItem] | None = None

    model_config = {"extra": "forbid"}


class Order(BaseModel):
    """Full order entity as stored."""

    id: UUID
    order_number: str
    customer_phone: str
    amount: Decimal
    status: OrderStatus
    description: str | None = None
    notes: str | None = None
    expected_delivery_date: datetime | None = None
    items: list[OrderItem] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("items", mode="before")
    @classmethod
    def null_items_to_empty(cls, value):
        return [] if value is None else value
