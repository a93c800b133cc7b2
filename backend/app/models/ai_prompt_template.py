"""
Mailroom Backend — AI Prompt Template Model
=============================================

What:  ORM model for the `ai_prompt_templates` table: a named prompt bound
       to an agent, with the same optional attachment as email templates.
"""

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.models.base import AttachmentMixin, IdMixin, TimestampMixin, attachment_constraint


class AIPromptTemplate(IdMixin, TimestampMixin, AttachmentMixin, Base):
    __tablename__ = "ai_prompt_templates"

    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    agent: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)

    __table_args__ = (attachment_constraint("ai_prompt_templates"),)

    def __repr__(self) -> str:
        return f"<AIPromptTemplate(id={self.id}, name='{self.name}', agent='{self.agent}')>"
