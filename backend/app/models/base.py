"""
Mailroom Backend — Shared Model Columns
=========================================

What:  Mixins for the columns every resource table shares: the 24-hex
       record id, created/updated timestamps, and the optional attachment
       triple (original filename, storage location, MIME type).
Why:   Four resources reuse the same shapes; keeping them here means one
       definition of the id format and one attachment invariant.

Identifier format:
    <8 hex: seconds since epoch><16 hex: random>  → 24 lowercase hex chars.
    Ids sort roughly by creation time and are safe to expose in URLs.
"""

import re
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def new_object_id() -> str:
    """Generate a time-prefixed 24-character hexadecimal identifier."""
    return f"{int(time.time()):08x}{secrets.token_hex(8)}"


def is_object_id(value: Optional[str]) -> bool:
    return bool(value) and OBJECT_ID_PATTERN.match(value) is not None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AttachmentRef:
    """
    Metadata pointing at a stored file.

    filename: original upload name (what the user sees on download)
    location: path relative to the storage root
    mimetype: MIME type accepted at upload time
    """

    filename: str
    location: str
    mimetype: str


class IdMixin:
    id: Mapped[str] = mapped_column(
        String(24),
        primary_key=True,
        default=new_object_id,
        comment="24-character hexadecimal record id",
    )


class TimestampMixin:
    # Why timezone=True: all storage is UTC; naive datetimes cause comparison bugs
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        index=True,
    )


class AttachmentMixin:
    """
    Optional attachment stored by path reference.

    The three columns are populated together or not at all; the CHECK
    constraint returned by `attachment_constraint()` enforces it.
    """

    attachment_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    attachment_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    attachment_mimetype: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    @property
    def attachment(self) -> Optional[AttachmentRef]:
        if self.attachment_path is None:
            return None
        return AttachmentRef(
            filename=self.attachment_filename,
            location=self.attachment_path,
            mimetype=self.attachment_mimetype,
        )

    @attachment.setter
    def attachment(self, ref: Optional[AttachmentRef]) -> None:
        self.attachment_filename = ref.filename if ref else None
        self.attachment_path = ref.location if ref else None
        self.attachment_mimetype = ref.mimetype if ref else None


def attachment_constraint(table_name: str) -> CheckConstraint:
    """All-or-nothing CHECK over the attachment triple."""
    return CheckConstraint(
        "(attachment_filename IS NULL AND attachment_path IS NULL AND attachment_mimetype IS NULL)"
        " OR "
        "(attachment_filename IS NOT NULL AND attachment_path IS NOT NULL"
        " AND attachment_mimetype IS NOT NULL)",
        name=f"ck_{table_name}_attachment_complete",
    )
