"""Customer domain models. Customers are keyed by their Taiwan mobile number."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, EmailStr, field_validator

PHONE_PATTERN = r"^09\d{8}$"


class CustomerSource(str, Enum):
    """Where the customer came from."""

    REFERRAL = "REFERRAL"
    WEBSITE = "WEBSITE"
    SOCIAL_MEDIA = "SOCIAL_MEDIA"
    ADVERTISEMENT = "ADVERTISEMENT"
    COLD_CALL = "COLD_CALL"
    OTHER = "OTHER"


def _clean_tags(tags: list[str] | None) -> list[str] | None:
    """Strip whitespace, drop blanks and repeats, keep first-seen order."""
    if tags is None:
        return None
    seen: list[str] = []
    for tag in tags:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class CustomerCreate(BaseModel):
    """Data required to create a customer."""

    phone: str = Field(..., pattern=PHONE_PATTERN)
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr | None = None
    line_id: str | None = Field(None, max_length=100)
    facebook_url: str | None = Field(None, max_length=500)
    source: CustomerSource = CustomerSource.OTHER
    tags: list[str] = Field(default_factory=list)
    region: str | None = Field(None, max_length=100)
    marketing_consent: bool = False
    notes: str | None = Field(None, max_length=10000)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: list[str]) -> list[str]:
        return _clean_tags(value)


class CustomerUpdate(BaseModel):
    """
    Data that can be updated on a customer. All fields optional.

    Phone is deliberately absent: it is the customer's identity and only a
    merge can retire one.
    """

    name: str | None = Field(None, min_length=1, max_length=255)
    email: EmailStr | None = None
    line_id: str | None = Field(None, max_length=100)
    facebook_url: str | None = Field(None, max_length=500)
    source: CustomerSource | None = None
    tags: list[str] | None = None
    region: str | None = Field(None, max_length=100)
    marketing_consent: bool | None = None
    notes: str | None = Field(None, max_length=10000)

    model_config = {"extra": "forbid"}

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str | None) -> str | None:
        if value is None:
            return None
        if not value.strip():
            raise ValueError("name must not be blank")
        return value.strip()

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, value: list[str] | None) -> list[str] | None:
        return _clean_tags(value)


class Customer(BaseModel):
    """Full customer entity as stored."""

    phone: str
    name: str
    email: str | None = None
    line_id: str | None = None
    facebook_url: str | None = None
    source: CustomerSource = CustomerSource.OTHER
    tags: list[str] = Field(default_factory=list)
    region: str | None = None
    marketing_consent: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("tags", mode="before")
    @classmethod
    def null_tags_to_empty(cls, value):
        return [] if value is None else value


class CustomerSummary(BaseModel):
    """Customer fields surfaced to staff when reviewing possible duplicates."""

    phone: str
    name: str
    email: str | None = None
    line_id: str | None = None
    facebook_url: str | None = None
    source: CustomerSource = CustomerSource.OTHER
    tags: list[str] = Field(default_factory=list)
    region: str | None = None
    marketing_consent: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerSummary":
        return cls.model_validate(customer.model_dump())
