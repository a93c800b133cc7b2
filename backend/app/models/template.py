"""
Mailroom Backend — Email Template Model
=========================================

What:  ORM model for the `templates` table.
How:   `name` is the unique key. The optional attachment lives on disk;
       the row only keeps its filename, relative location and MIME type.

Query Patterns:
    - Names dropdown: SELECT id, name ORDER BY name
    - Search: ILIKE on name/subject/content + created_at range, paginated
    - Stats: COUNT, COUNT(attachment_path), AVG(LENGTH(content)),
      latest 5 by updated_at
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import AttachmentMixin, IdMixin, TimestampMixin, attachment_constraint


class Template(IdMixin, TimestampMixin, AttachmentMixin, Base):
    __tablename__ = "templates"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    subject: Mapped[str] = mapped_column(String(998), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (attachment_constraint("templates"),)

    def __repr__(self) -> str:
        return f"<Template(id={self.id}, name='{self.name}')>"
