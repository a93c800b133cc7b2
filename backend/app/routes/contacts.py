"""
Mailroom Backend — Contact Route Handlers
===========================================

What:  /api/contacts — list, fetch, upsert by email, bulk upload, export
       and delete.
How:   Thin handlers: parse the request, call ContactService, wrap the
       result in the success envelope.
"""

from typing import Any, List

from fastapi import APIRouter, Body, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db_session
from app.dependencies import get_contact_service
from app.schemas.common import Envelope, ErrorResponse, MessageEnvelope
from app.schemas.contact import BulkUpsertResult, ContactExportRow, ContactResponse, ContactUpsert
from app.services.contact_service import ContactService

router = APIRouter(prefix="/api/contacts", tags=["Contacts"])

_ERRORS = {
    400: {"description": "Invalid input or malformed id", "model": ErrorResponse},
    404: {"description": "Contact not found", "model": ErrorResponse},
}


@router.get(
    "",
    response_model=Envelope[List[ContactResponse]],
    summary="List active contacts",
)
async def list_contacts(
    response: Response,
    db: AsyncSession = Depends(get_db_session),
    service: ContactService = Depends(get_contact_service),
) -> Envelope[List[ContactResponse]]:
    contacts = await service.list_active(db)
    response.headers["X-Total-Count"] = str(len(contacts))
    return Envelope(data=[ContactResponse.model_validate(c) for c in contacts])


@router.get(
    "/export/all",
    response_model=Envelope[List[ContactExportRow]],
    summary="Export active contacts as flat rows",
)
async def export_contacts(
    db: AsyncSession = Depends(get_db_session),
    service: ContactService = Depends(get_contact_service),
) -> Envelope[List[ContactExportRow]]:
    contacts = await service.export_active(db)
    return Envelope(data=[ContactExportRow.model_validate(c) for c in contacts])


@router.get(
    "/{contact_id}",
    response_model=Envelope[ContactResponse],
    responses=_ERRORS,
    summary="Get a contact by id",
)
async def get_contact(
    contact_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: ContactService = Depends(get_contact_service),
) -> Envelope[ContactResponse]:
    contact = await service.get(db, contact_id)
    return Envelope(data=ContactResponse.model_validate(contact))


@router.post(
    "/upsert",
    status_code=201,
    response_model=Envelope[ContactResponse],
    responses={400: _ERRORS[400]},
    summary="Create or update a contact by email",
)
async def upsert_contact(
    payload: ContactUpsert,
    db: AsyncSession = Depends(get_db_session),
    service: ContactService = Depends(get_contact_service),
) -> Envelope[ContactResponse]:
    contact, created = await service.upsert(db, payload)
    return Envelope(
        data=ContactResponse.model_validate(contact),
        message="Contact created" if created else "Contact updated",
    )


@router.post(
    "/upload",
    response_model=Envelope[BulkUpsertResult],
    responses={400: _ERRORS[400]},
    summary="Bulk upsert contacts from a JSON array",
)
async def upload_contacts(
    entries: Any = Body(..., description="JSON array of contact objects"),
    db: AsyncSession = Depends(get_db_session),
    service: ContactService = Depends(get_contact_service),
) -> Envelope[BulkUpsertResult]:
    result = await service.bulk_upsert(db, entries)
    return Envelope(data=BulkUpsertResult(**result))


@router.delete(
    "/{contact_id}",
    response_model=MessageEnvelope,
    responses=_ERRORS,
    summary="Deactivate (or permanently delete) a contact",
)
async def delete_contact(
    contact_id: str,
    permanent: bool = Query(default=False, description="Remove the row instead of deactivating it"),
    db: AsyncSession = Depends(get_db_session),
    service: ContactService = Depends(get_contact_service),
) -> MessageEnvelope:
    await service.delete(db, contact_id, permanent=permanent)
    return MessageEnvelope(
        message="Contact deleted permanently" if permanent else "Contact deactivated"
    )
