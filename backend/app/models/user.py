"""
Mailroom Backend — User Model
===============================

What:  ORM model for the `users` table.
How:   `email` is the unique key, stored trimmed and lowercased. Only the
       bcrypt hash of the password is persisted. The profile image is kept
       on disk by path reference, like template attachments, so it can be
       streamed without loading blobs from the database.
"""

from typing import Optional

from sqlalchemy import CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import AttachmentRef, IdMixin, TimestampMixin


class User(IdMixin, TimestampMixin, Base):
    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    profile_image_filename: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    profile_image_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    profile_image_mimetype: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "(profile_image_path IS NULL AND profile_image_mimetype IS NULL)"
            " OR (profile_image_path IS NOT NULL AND profile_image_mimetype IS NOT NULL)",
            name="ck_users_profile_image_complete",
        ),
    )

    @property
    def profile_image(self) -> Optional[AttachmentRef]:
        if self.profile_image_path is None:
            return None
        return AttachmentRef(
            filename=self.profile_image_filename or "",
            location=self.profile_image_path,
            mimetype=self.profile_image_mimetype,
        )

    @profile_image.setter
    def profile_image(self, ref: Optional[AttachmentRef]) -> None:
        self.profile_image_filename = ref.filename if ref else None
        self.profile_image_path = ref.location if ref else None
        self.profile_image_mimetype = ref.mimetype if ref else None

    def __repr__(self) -> str:
        # Never include password_hash here; reprs end up in logs
        return f"<User(id={self.id}, email='{self.email}')>"
