"""Request models for duplicate detection and customer merge."""

import re

from pydantic import BaseModel, Field, field_validator

from core.models.customer import PHONE_PATTERN


class DuplicateCheckRequest(BaseModel):
    """Find customers whose name looks like the candidate name."""

    name: str = Field(..., max_length=255)
    exclude_phone: str | None = Field(None, pattern=PHONE_PATTERN)


class MergeFields(BaseModel):
    """
    Which scalar fields to back-fill from secondaries into the primary.

    Only email, notes and tags are mergeable. Unknown keys (address, company,
    title, ...) are rejected rather than silently ignored.
    """

    email: bool = False
    notes: bool = False
    tags: bool = False

    model_config = {"extra": "forbid"}

    @property
    def requested(self) -> list[str]:
        return [name for name in ("email", "notes", "tags") if getattr(self, name)]


class MergeRequest(BaseModel):
    """Fold one or more secondary customers into a primary customer."""

    primary_phone: str = Field(..., pattern=PHONE_PATTERN)
    secondary_phones: list[str] = Field(..., min_length=1)
    merge_fields: MergeFields | None = None

    @field_validator("secondary_phones")
    @classmethod
    def check_phone_format(cls, phones: list[str]) -> list[str]:
        bad = [p for p in phones if not re.fullmatch(PHONE_PATTERN, p)]
        if bad:
            raise ValueError(
                f"All phones must be Taiwan format (09xxxxxxxx): {', '.join(bad)}"
            )
        return phones
