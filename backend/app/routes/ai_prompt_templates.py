"""
Mailroom Backend — AI Prompt Template Route Handlers
======================================================

What:  /api/ai-prompt-templates — list, names, CRUD, upsert by name and
       attachment download. Fields: name, agent, prompt, optional
       `attachment` file (multipart).
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.database import get_db_session
from app.dependencies import (
    get_ai_prompt_template_service,
    get_settings,
    read_upload,
    require_user,
)
from app.schemas.common import Envelope, ErrorResponse, MessageEnvelope
from app.schemas.template import AIPromptTemplateName, AIPromptTemplateResponse
from app.services.ai_prompt_template_service import AIPromptTemplateService

router = APIRouter(prefix="/api/ai-prompt-templates", tags=["AI Prompt Templates"])

_ERRORS = {
    400: {"description": "Invalid input, upload or malformed id", "model": ErrorResponse},
    401: {"description": "Missing or invalid token", "model": ErrorResponse},
    404: {"description": "AI prompt template not found", "model": ErrorResponse},
}


@router.get("", response_model=Envelope[List[AIPromptTemplateResponse]])
async def list_ai_prompt_templates(
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
    app_settings: Settings = Depends(get_settings),
) -> Envelope[List[AIPromptTemplateResponse]]:
    records = await service.list_all(db)
    prefix = app_settings.public_files_prefix
    return Envelope(data=[AIPromptTemplateResponse.from_record(r, prefix) for r in records])


@router.get("/names", response_model=Envelope[List[AIPromptTemplateName]])
async def list_ai_prompt_template_names(
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
) -> Envelope[List[AIPromptTemplateName]]:
    records = await service.list_names(db)
    return Envelope(
        data=[AIPromptTemplateName(id=r.id, name=r.name, agent=r.agent) for r in records]
    )


@router.post(
    "/upsert",
    response_model=Envelope[AIPromptTemplateResponse],
    responses=_ERRORS,
    summary="Create or replace an AI prompt template by name",
)
async def upsert_ai_prompt_template(
    name: Optional[str] = Form(default=None),
    agent: Optional[str] = Form(default=None),
    prompt: Optional[str] = Form(default=None),
    attachment: Optional[UploadFile] = File(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
    app_settings: Settings = Depends(get_settings),
    user_id: Optional[str] = Depends(require_user),
) -> Envelope[AIPromptTemplateResponse]:
    upload = await read_upload(attachment)
    record, created = await service.upsert_by_name(
        db, {"name": name, "agent": agent, "prompt": prompt}, upload
    )
    return Envelope(
        data=AIPromptTemplateResponse.from_record(record, app_settings.public_files_prefix),
        message="Template created successfully" if created else "Template updated successfully",
    )


@router.get("/{template_id}", response_model=Envelope[AIPromptTemplateResponse], responses=_ERRORS)
async def get_ai_prompt_template(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
    app_settings: Settings = Depends(get_settings),
) -> Envelope[AIPromptTemplateResponse]:
    record = await service.get(db, template_id)
    return Envelope(
        data=AIPromptTemplateResponse.from_record(record, app_settings.public_files_prefix)
    )


@router.post(
    "",
    status_code=201,
    response_model=Envelope[AIPromptTemplateResponse],
    responses=_ERRORS,
)
async def create_ai_prompt_template(
    name: Optional[str] = Form(default=None),
    agent: Optional[str] = Form(default=None),
    prompt: Optional[str] = Form(default=None),
    attachment: Optional[UploadFile] = File(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
    app_settings: Settings = Depends(get_settings),
    user_id: Optional[str] = Depends(require_user),
) -> Envelope[AIPromptTemplateResponse]:
    upload = await read_upload(attachment)
    record = await service.create(db, {"name": name, "agent": agent, "prompt": prompt}, upload)
    return Envelope(
        data=AIPromptTemplateResponse.from_record(record, app_settings.public_files_prefix),
        message="Template created successfully",
    )


@router.put("/{template_id}", response_model=Envelope[AIPromptTemplateResponse], responses=_ERRORS)
async def update_ai_prompt_template(
    template_id: str,
    name: Optional[str] = Form(default=None),
    agent: Optional[str] = Form(default=None),
    prompt: Optional[str] = Form(default=None),
    attachment: Optional[UploadFile] = File(default=None),
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
    app_settings: Settings = Depends(get_settings),
    user_id: Optional[str] = Depends(require_user),
) -> Envelope[AIPromptTemplateResponse]:
    upload = await read_upload(attachment)
    record = await service.update(
        db, template_id, {"name": name, "agent": agent, "prompt": prompt}, upload
    )
    return Envelope(
        data=AIPromptTemplateResponse.from_record(record, app_settings.public_files_prefix),
        message="Template updated successfully",
    )


@router.get("/{template_id}/download", response_class=FileResponse, responses=_ERRORS)
async def download_ai_prompt_template_attachment(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
) -> FileResponse:
    path, ref = await service.attachment_file(db, template_id)
    return FileResponse(path=str(path), media_type=ref.mimetype, filename=ref.filename)


@router.delete("/{template_id}", response_model=MessageEnvelope, responses=_ERRORS)
async def delete_ai_prompt_template(
    template_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: AIPromptTemplateService = Depends(get_ai_prompt_template_service),
    user_id: Optional[str] = Depends(require_user),
) -> MessageEnvelope:
    await service.delete(db, template_id)
    return MessageEnvelope(message="Template deleted successfully")
