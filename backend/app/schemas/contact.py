"""
Mailroom Backend — Contact Schemas
====================================

Request bodies use camelCase (`firstName`, `phoneNumber`...). An upsert
payload only needs the fields being changed once the contact exists; the
service checks that a brand-new contact carries first and last name.
"""

import re
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import Field, field_validator

from app.schemas.common import ApiModel

ContactType = Literal["agent", "client", "vendor", "other"]

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def normalize_email(value: str) -> str:
    """Trim and validate against the basic local@domain.tld shape."""
    value = value.strip()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email format")
    return value


class ContactUpsert(ApiModel):
    email: str = Field(min_length=3, max_length=320)
    first_name: Optional[str] = Field(default=None, max_length=255)
    last_name: Optional[str] = Field(default=None, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=64)
    note: Optional[str] = None
    company_name: Optional[str] = Field(default=None, max_length=255)
    web_site: Optional[str] = Field(default=None, max_length=512)
    type: Optional[ContactType] = None
    is_active: Optional[bool] = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        return normalize_email(v)

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_names(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v


class ContactResponse(ApiModel):
    id: str
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    note: Optional[str] = None
    company_name: Optional[str] = None
    web_site: Optional[str] = None
    type: ContactType
    is_active: bool
    created_at: datetime
    updated_at: datetime


class ContactExportRow(ApiModel):
    """Flat projection used by the export endpoint (no timestamps, no flags)."""

    id: str
    first_name: str
    last_name: str
    email: str
    phone_number: Optional[str] = None
    note: Optional[str] = None
    company_name: Optional[str] = None
    web_site: Optional[str] = None
    type: ContactType


class BulkUpsertResult(ApiModel):
    total: int
    created: int
    updated: int
