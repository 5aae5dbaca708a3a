"""Contact and identify request/response schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.identity.normalization import normalize_email, normalize_phone_number
from app.models.contact import LinkPrecedence


class IdentifyRequest(BaseModel):
    """Observation of an email and/or phone number from a purchase event."""

    model_config = ConfigDict(populate_by_name=True)

    email: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")

    @field_validator("email", mode="before")
    @classmethod
    def clean_email(cls, value: object) -> str | None:
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValueError("email must be a string.")
        return normalize_email(value)

    @field_validator("phone_number", mode="before")
    @classmethod
    def clean_phone_number(cls, value: object) -> str | None:
        if value is None:
            return None
        if not isinstance(value, (str, int)):
            raise ValueError("phoneNumber must be a string or a number.")
        return normalize_phone_number(value)

    @model_validator(mode="after")
    def validate_has_identifier(self) -> "IdentifyRequest":
        if self.email is None and self.phone_number is None:
            raise ValueError("Either email or phoneNumber must be provided.")
        return self


class IdentifiedContact(BaseModel):
    """Consolidated identity as returned by ``POST /identify``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    primary_contact_id: int
    emails: list[str]
    phone_numbers: list[str]
    secondary_contact_ids: list[int]


class IdentifyResponse(BaseModel):
    """Response envelope for ``POST /identify``."""

    contact: IdentifiedContact


class ContactRead(BaseModel):
    """Serialized contact row."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str | None
    phone_number: str | None
    linked_id: int | None
    link_precedence: LinkPrecedence
    created_at: datetime
    updated_at: datetime
    deleted_at: datetime | None


class IdentityRead(BaseModel):
    """Primary contact, its secondaries, and the identifiers they share."""

    primary: ContactRead
    secondaries: list[ContactRead]
    emails: list[str]
    phone_numbers: list[str]


class ContactStats(BaseModel):
    """Cluster size summary over live contacts."""

    total_primary_contacts: int
    total_secondary_contacts: int
    average_secondaries_per_primary: float
    max_secondaries_per_primary: int
