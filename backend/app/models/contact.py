"""
Mailroom Backend — Contact Model
==================================

What:  ORM model for the `contacts` table (agents, clients, vendors...).
How:   Keyed for upserts by `email` (unique index). Soft deletion clears
       `is_active`; exports and the default listing only show active rows.
"""

from typing import Optional

from sqlalchemy import Boolean, Enum, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import IdMixin, TimestampMixin

CONTACT_TYPES = ("agent", "client", "vendor", "other")


class Contact(IdMixin, TimestampMixin, Base):
    __tablename__ = "contacts"

    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Upsert key — the unique index is what keeps concurrent upserts from
    # producing two rows for the same address
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)

    phone_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    company_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    web_site: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    type: Mapped[str] = mapped_column(
        Enum(*CONTACT_TYPES, name="contact_type", native_enum=False),
        nullable=False,
        default="other",
        server_default=text("'other'"),
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=text("true"),
    )

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, email='{self.email}', active={self.is_active})>"
