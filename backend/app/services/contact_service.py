"""
Mailroom Backend — Contact Service
====================================

What:  Business rules for contacts: listing, upsert by email, bulk import,
       export and (soft) deletion.
Who:   Called by the /api/contacts routes.

Upsert rules:
    - The email is the key; fields present in the payload replace stored
      values, absent fields are left alone
    - A contact that does not exist yet needs first and last name
    - `type` defaults to "other" and `is_active` to true, on insert only
    - Repeating an upsert with the same payload changes nothing but updated_at
"""

import logging
from typing import Any, Dict, List, Tuple

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import ValidationError
from app.models.contact import Contact
from app.schemas.contact import ContactUpsert
from app.services.repository import Repository

logger = logging.getLogger(__name__)

# Columns that may not be set to NULL through an upsert payload
_NOT_NULL_FIELDS = {"first_name", "last_name", "type", "is_active"}

_INSERT_DEFAULTS = {"type": "other", "is_active": True}


def _payload_fields(payload: ContactUpsert) -> Dict[str, Any]:
    fields = payload.model_dump(exclude_unset=True, exclude={"email"})
    return {
        name: value
        for name, value in fields.items()
        if not (value is None and name in _NOT_NULL_FIELDS)
    }


class ContactService:
    def __init__(self):
        self.repository = Repository(
            Contact,
            key_field="email",
            resource="contact",
            duplicate_message="Duplicate email address",
        )

    async def list_active(self, db: AsyncSession) -> List[Contact]:
        return await self.repository.find_all(
            db,
            Contact.is_active.is_(True),
            order_by=[Contact.created_at.desc(), Contact.id.desc()],
        )

    async def get(self, db: AsyncSession, contact_id: str) -> Contact:
        return await self.repository.get_by_id(db, contact_id)

    async def upsert(self, db: AsyncSession, payload: ContactUpsert) -> Tuple[Contact, bool]:
        """
        Create-or-update by email.

        Returns:
            (contact, created)

        Raises:
            ValidationError if the contact is new and lacks first/last name
        """
        fields = _payload_fields(payload)

        existing = await self.repository.find_by_key(db, payload.email)
        if existing is None:
            missing = [name for name in ("first_name", "last_name") if not fields.get(name)]
            if missing:
                raise ValidationError(
                    message="First name, last name and email are required fields",
                    context={"missing": missing, "email": payload.email},
                )

        contact, created = await self.repository.upsert_by_key(
            db, payload.email, fields, defaults=_INSERT_DEFAULTS
        )
        logger.info("Contact %s: %s", "created" if created else "updated", contact.id)
        return contact, created

    async def bulk_upsert(self, db: AsyncSession, entries: Any) -> Dict[str, int]:
        """
        Upsert every entry of a JSON array by email.

        The whole batch shares the request transaction, so an invalid entry
        fails the batch; the error names the entry's index.

        Returns:
            {"total": n, "created": c, "updated": u}
        """
        if not isinstance(entries, list):
            raise ValidationError(message="Invalid input format")

        created_count = 0
        for index, entry in enumerate(entries):
            try:
                payload = ContactUpsert.model_validate(entry)
            except PydanticValidationError as e:
                raise ValidationError(
                    message=f"Invalid contact at index {index}",
                    context={
                        "index": index,
                        "errors": [
                            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                            for err in e.errors()
                        ],
                    },
                )
            try:
                _, created = await self.upsert(db, payload)
            except ValidationError as e:
                e.context["index"] = index
                e.message = f"{e.message} (entry {index})"
                raise
            created_count += int(created)

        result = {
            "total": len(entries),
            "created": created_count,
            "updated": len(entries) - created_count,
        }
        logger.info("Bulk contact upload: %s", result)
        return result

    async def export_active(self, db: AsyncSession) -> List[Contact]:
        """Active contacts ordered by last name; routes project them flat."""
        return await self.repository.find_all(
            db,
            Contact.is_active.is_(True),
            order_by=[Contact.last_name.asc(), Contact.first_name.asc()],
        )

    async def delete(self, db: AsyncSession, contact_id: str, permanent: bool = False) -> None:
        """Soft delete clears is_active; permanent removes the row."""
        contact = await self.repository.get_by_id(db, contact_id)
        if permanent:
            await self.repository.delete(db, contact)
            logger.info("Contact permanently deleted: %s", contact_id)
            return
        await self.repository.update(db, contact, {"is_active": False})
        logger.info("Contact deactivated: %s", contact_id)
