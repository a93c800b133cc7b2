"""
Mailroom Backend — Email Template Route Handlers
==================================================

What:  /api/templates — list, names, search, stats, CRUD and attachment
       download.
How:   Create/update are multipart forms (name, subject, content and an
       optional `attachment` file). Fixed paths (/names, /search/templates,
       /stats/overview) are registered before /{template_id}.

Auth:
    Mutations depend on `require_user`; whether a token is mandatory is
    decided by the REQUIRE_AUTH setting.
"""

import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.database import get_db_session
from app.dependencies import get_settings, get_template_service, read_upload, require_user
from app.schemas.common import Envelope, ErrorResponse, MessageEnvelope
from app.schemas.template import (
    Pagination,
    TemplateName,
    TemplateResponse,
    TemplateSearchResult,
    TemplateStats,
)
from app.services.template_service import DEFAULT_LIMIT, DEFAULT_PAGE, TemplateService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/templates", tags=["Templates"])

_ERRORS = {
    400: {"description": "Invalid input, upload or malformed id", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    404: {"description": "Template not found", "model": ErrorResponse},
}


@router.get("", response_model=Envelope[List[TemplateResponse]], summary="List all templates")
async def list_templates(
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
    app_settings: Settings = Depends(get_settings),
) -> Envelope[List[TemplateResponse]]:
    templates = await service.list_all(db)
    prefix = app_settings.public_files_prefix
    return Envelope(data=[TemplateResponse.from_record(t, prefix) for t in templates])


@router.get("/names", response_model=Envelope[List[TemplateName]], summary="Template ids and names")
async def list_template_names(
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
) -> Envelope[List[TemplateName]]:
    templates = await service.list_names(db)
    return Envelope(data=[TemplateName(id=t.id, name=t.name) for t in templates])


@router.get(
    "/search/templates",
    response_model=Envelope[TemplateSearchResult],
    responses={400: _ERRORS[400]},
    summary="Search templates with filters, sorting and pagination",
)
async def search_templates(
    name: Optional[str] = Query(default=None, description="Substring of the name (case-insensitive)"),
    subject: Optional[str] = Query(default=None),
    content: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None, alias="startDate"),
    end_date: Optional[datetime] = Query(default=None, alias="endDate"),
    sort_by: str = Query(default="createdAt", alias="sortBy"),
    sort_order: str = Query(default="desc", alias="sortOrder"),
    page: int = Query(default=DEFAULT_PAGE),
    limit: int = Query(default=DEFAULT_LIMIT),
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
    app_settings: Settings = Depends(get_settings),
) -> Envelope[TemplateSearchResult]:
    result = await service.search(
        db,
        name=name,
        subject=subject,
        content=content,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    prefix = app_settings.public_files_prefix
    return Envelope(
        data=TemplateSearchResult(
            templates=[TemplateResponse.from_record(t, prefix) for t in result["templates"]],
            pagination=Pagination(**result["pagination"]),
        )
    )


@router.get("/stats/overview", response_model=Envelope[TemplateStats], summary="Template statistics")
async def template_stats(
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
) -> Envelope[TemplateStats]:
    stats = await service.stats(db)
    return Envelope(data=TemplateStats(**stats))


@router.get(
    "/{template_id}",
    response_model=Envelope[TemplateResponse],
    responses=_ERRORS,
    summary="Get a template by id",
)
async def get_template(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
    app_settings: Settings = Depends(get_settings),
) -> Envelope[TemplateResponse]:
    template = await service.get(db, template_id)
    return Envelope(data=TemplateResponse.from_record(template, app_settings.public_files_prefix))


@router.post(
    "",
    status_code=201,
    response_model=Envelope[TemplateResponse],
    responses=_ERRORS,
    summary="Create a template (multipart, optional attachment)",
)
async def create_template(
    name: Optional[str] = Form(default=None),
    subject: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
    attachment: Optional[UploadFile] = File(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
    app_settings: Settings = Depends(get_settings),
    user_id: Optional[str] = Depends(require_user),
) -> Envelope[TemplateResponse]:
    upload = await read_upload(attachment)
    template = await service.create(
        db, {"name": name, "subject": subject, "content": content}, upload
    )
    return Envelope(
        data=TemplateResponse.from_record(template, app_settings.public_files_prefix),
        message="Template created successfully",
    )


@router.put(
    "/{template_id}",
    response_model=Envelope[TemplateResponse],
    responses=_ERRORS,
    summary="Update a template (partial multipart, optional new attachment)",
)
async def update_template(
    template_id: str,
    name: Optional[str] = Form(default=None),
    subject: Optional[str] = Form(default=None),
    content: Optional[str] = Form(default=None),
    attachment: Optional[UploadFile] = File(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
    app_settings: Settings = Depends(get_settings),
    user_id: Optional[str] = Depends(require_user),
) -> Envelope[TemplateResponse]:
    upload = await read_upload(attachment)
    template = await service.update(
        db, template_id, {"name": name, "subject": subject, "content": content}, upload
    )
    return Envelope(
        data=TemplateResponse.from_record(template, app_settings.public_files_prefix),
        message="Template updated successfully",
    )


@router.get(
    "/{template_id}/download",
    response_class=FileResponse,
    responses=_ERRORS,
    summary="Download the template's attachment",
)
async def download_template_attachment(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
) -> FileResponse:
    path, ref = await service.attachment_file(db, template_id)
    return FileResponse(path=str(path), media_type=ref.mimetype, filename=ref.filename)


@router.delete(
    "/{template_id}",
    response_model=MessageEnvelope,
    responses=_ERRORS,
    summary="Delete a template and its attachment",
)
async def delete_template(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: TemplateService = Depends(get_template_service),
    user_id: Optional[str] = Depends(require_user),
) -> MessageEnvelope:
    await service.delete(db, template_id)
    logger.info("Template %s deleted by %s", template_id, user_id or "anonymous")
    return MessageEnvelope(message="Template deleted successfully")
