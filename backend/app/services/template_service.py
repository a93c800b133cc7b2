"""
Mailroom Backend — Email Template Service
===========================================

What:  Template lifecycle (from AttachmentResourceService) plus filtered
       search with pagination and the overview statistics.
Who:   Called by the /api/templates routes.

Search semantics:
    - name / subject / content: case-insensitive substring, matched
      literally (% and _ in user input are escaped)
    - start_date / end_date: inclusive bounds on created_at
    - every supplied predicate must hold (AND); omitted ones are ignored
    - skip = (page - 1) * limit
    - total_pages = ceil(total / limit), has_more = skip + returned < total
"""

import logging
import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, ValidationError
from app.models.template import Template
from app.services.attachment_store import DOCUMENT_POLICY, AttachmentStore
from app.services.repository import Repository
from app.services.resource_service import AttachmentResourceService

logger = logging.getLogger(__name__)

# Public sort keys → columns
SORT_FIELDS = {
    "name": Template.name,
    "subject": Template.subject,
    "createdAt": Template.created_at,
    "updatedAt": Template.updated_at,
}
SORT_ORDERS = {"asc", "desc"}

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
RECENT_ACTIVITY_SIZE = 5


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive bounds are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _contains(column, needle: str):
    """Case-insensitive literal substring match."""
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return column.ilike(f"%{escaped}%", escape="\\")


class TemplateService(AttachmentResourceService[Template]):
    """Email templates: name (unique), subject, content, optional attachment."""

    def __init__(self, store: AttachmentStore):
        super().__init__(
            repository=Repository(
                Template,
                key_field="name",
                resource="template",
                duplicate_message="Template with this name already exists",
            ),
            store=store,
            required_fields=("name", "subject", "content"),
            policy=DOCUMENT_POLICY,
        )

    async def search(
        self,
        db: AsyncSession,
        name: Optional[str] = None,
        subject: Optional[str] = None,
        content: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = DEFAULT_PAGE,
        limit: int = DEFAULT_LIMIT,
    ) -> Dict[str, Any]:
        """
        Filtered, sorted, paginated template listing.

        Returns:
            {"templates": [Template...], "pagination": {...}}

        Raises:
            ValidationError: unknown sort field/order, page < 1, limit out
            of range, or start_date after end_date
        """
        if sort_by not in SORT_FIELDS:
            raise ValidationError(
                message=f"Invalid sort field '{sort_by}'. Allowed: {', '.join(SORT_FIELDS)}",
                field="sortBy",
            )
        sort_order = sort_order.lower()
        if sort_order not in SORT_ORDERS:
            raise ValidationError(message="Sort order must be 'asc' or 'desc'", field="sortOrder")
        if page < 1:
            raise ValidationError(message="Page must be 1 or greater", field="page")
        if not 1 <= limit <= MAX_LIMIT:
            raise ValidationError(message=f"Limit must be between 1 and {MAX_LIMIT}", field="limit")
        start_date = _as_utc(start_date)
        end_date = _as_utc(end_date)
        if start_date and end_date and start_date > end_date:
            raise ValidationError(message="startDate must not be after endDate", field="startDate")

        filters: List[Any] = []
        if name:
            filters.append(_contains(Template.name, name))
        if subject:
            filters.append(_contains(Template.subject, subject))
        if content:
            filters.append(_contains(Template.content, content))
        if start_date:
            filters.append(Template.created_at >= start_date)
        if end_date:
            filters.append(Template.created_at <= end_date)

        column = SORT_FIELDS[sort_by]
        ordering = column.asc() if sort_order == "asc" else column.desc()
        skip = (page - 1) * limit

        total = await self.repository.count(db, *filters)
        templates = await self.repository.find_all(
            db,
            *filters,
            # id as tie-breaker keeps pages stable when sort values collide
            order_by=[ordering, Template.id.asc()],
            offset=skip,
            limit=limit,
        )

        return {
            "templates": templates,
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "total_pages": math.ceil(total / limit) if total else 0,
                "has_more": skip + len(templates) < total,
            },
        }

    async def stats(self, db: AsyncSession) -> Dict[str, Any]:
        """
        Overview numbers for the dashboard.

        averageContentLength is rounded half up to an integer (0 when
        there are no templates).
        """
        try:
            result = await db.execute(
                select(
                    func.count(Template.id),
                    func.count(Template.attachment_path),
                    func.avg(func.length(Template.content)),
                )
            )
            total, with_attachments, avg_length = result.one()

            recent = await db.execute(
                select(Template.name, Template.updated_at)
                .order_by(Template.updated_at.desc())
                .limit(RECENT_ACTIVITY_SIZE)
            )
            recent_rows = recent.all()
        except SQLAlchemyError as e:
            logger.error("Database error computing template stats: %s", str(e), exc_info=True)
            raise DatabaseError(context={"resource": "template", "operation": "stats"})

        return {
            "total_templates": total or 0,
            "templates_with_attachments": with_attachments or 0,
            "average_content_length": math.floor(float(avg_length) + 0.5) if avg_length is not None else 0,
            "recent_activity": [
                {"name": row.name, "updated_at": row.updated_at} for row in recent_rows
            ],
        }
