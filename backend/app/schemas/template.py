"""
Mailroom Backend — Template & AI Prompt Template Schemas
==========================================================

What:  Response models for both attachment-bearing resources, plus the
       search and stats payloads that only email templates have.
How:   Create/update input arrives as multipart form fields (routes read
       them with `Form(...)`), so only response shapes live here.
"""

from datetime import datetime
from typing import List, Optional

from app.models.base import AttachmentRef
from app.schemas.common import ApiModel, AttachmentInfo


def attachment_info(ref: Optional[AttachmentRef], files_prefix: str) -> Optional[AttachmentInfo]:
    """Public view of an attachment: original name, MIME type and static URL."""
    if ref is None:
        return None
    return AttachmentInfo(
        filename=ref.filename,
        mimetype=ref.mimetype,
        url=f"{files_prefix}/{ref.location}",
    )


class TemplateResponse(ApiModel):
    id: str
    name: str
    subject: str
    content: str
    attachment: Optional[AttachmentInfo] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record, files_prefix: str) -> "TemplateResponse":
        return cls(
            id=record.id,
            name=record.name,
            subject=record.subject,
            content=record.content,
            attachment=attachment_info(record.attachment, files_prefix),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class TemplateName(ApiModel):
    id: str
    name: str


class Pagination(ApiModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_more: bool


class TemplateSearchResult(ApiModel):
    templates: List[TemplateResponse]
    pagination: Pagination


class RecentActivity(ApiModel):
    name: str
    updated_at: datetime


class TemplateStats(ApiModel):
    total_templates: int
    templates_with_attachments: int
    average_content_length: int
    recent_activity: List[RecentActivity]


class AIPromptTemplateResponse(ApiModel):
    id: str
    name: str
    agent: str
    prompt: str
    attachment: Optional[AttachmentInfo] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record, files_prefix: str) -> "AIPromptTemplateResponse":
        return cls(
            id=record.id,
            name=record.name,
            agent=record.agent,
            prompt=record.prompt,
            attachment=attachment_info(record.attachment, files_prefix),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class AIPromptTemplateName(ApiModel):
    id: str
    name: str
    agent: str
