"""
Mailroom Backend — Attachment-Bearing Resource Service
========================================================

What:  Create / update / upsert / delete lifecycle shared by email templates
       and AI prompt templates.
Why:   Both resources have a unique name, a few required text fields and an
       optional attachment whose file must follow the record around.
How:   Parameterised by a Repository, the required fields and an
       AttachmentPolicy; subclasses add resource-specific queries.

Record state machine:
    NonExistent ──create──▶ Active ──update──▶ Active ──delete──▶ Deleted

Attachment rules:
    - A new upload is validated before any record is touched
    - On create, the file is stored first; if the record write fails the
      file is removed again
    - On update/upsert, the owning record is loaded first, then the new
      file is stored and the previous one deleted before the new metadata
      is flushed
    - On delete, the file goes first (best-effort), then the record
    - Deletion failures are logged by the store and never fail the request
"""

import logging
from pathlib import Path
from typing import Any, Dict, Generic, List, Mapping, Optional, Sequence, Tuple, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DuplicateKeyError, MailroomError, NotFoundError, ValidationError
from app.models.base import AttachmentRef
from app.services.attachment_store import (
    DOCUMENT_POLICY,
    AttachmentPolicy,
    AttachmentStore,
    IncomingFile,
)
from app.services.repository import Repository

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")


def _join_labels(labels: Sequence[str]) -> str:
    """("Name", "subject", "content") → "Name, subject and content"."""
    if len(labels) == 1:
        return labels[0]
    return f"{', '.join(labels[:-1])} and {labels[-1]}"


class AttachmentResourceService(Generic[ModelT]):
    """
    Business rules for a named resource with an optional stored attachment.

    Args:
        repository: unique-name persistence for the model
        store: attachment storage
        required_fields: text fields that must be non-blank on create
        policy: which upload types the resource accepts
        name_field: unique key field (trimmed before writes)
    """

    def __init__(
        self,
        repository: Repository[ModelT],
        store: AttachmentStore,
        required_fields: Sequence[str],
        policy: AttachmentPolicy = DOCUMENT_POLICY,
        name_field: str = "name",
    ):
        self.repository = repository
        self.store = store
        self.required_fields = tuple(required_fields)
        self.policy = policy
        self.name_field = name_field

    @property
    def resource(self) -> str:
        return self.repository.resource

    @property
    def label(self) -> str:
        return self.repository.label

    # ── Field handling ────────────────────────────────────────────────────

    def _required_message(self) -> str:
        labels = [f.replace("_", " ") for f in self.required_fields]
        labels[0] = labels[0][:1].upper() + labels[0][1:]
        return f"{_join_labels(labels)} are required fields"

    def _clean_fields(self, fields: Mapping[str, Any], partial: bool) -> Dict[str, Any]:
        """
        Keep only known fields that were supplied, trim the name, and check
        required ones.

        partial=False: every required field must be present and non-blank.
        partial=True:  absent fields are left alone, but a supplied required
                       field may not be blanked out.
        """
        cleaned: Dict[str, Any] = {}
        for name in self.required_fields:
            if name not in fields or fields[name] is None:
                continue
            value = fields[name]
            if name == self.name_field and isinstance(value, str):
                value = value.strip()
            cleaned[name] = value

        missing = [
            name for name in self.required_fields
            if (not partial and name not in cleaned)
            or (name in cleaned and not str(cleaned[name]).strip())
        ]
        if missing:
            raise ValidationError(
                message=self._required_message(),
                context={"missing": missing},
            )
        return cleaned

    @staticmethod
    def _attachment_columns(ref: Optional[AttachmentRef]) -> Dict[str, Any]:
        return {
            "attachment_filename": ref.filename if ref else None,
            "attachment_path": ref.location if ref else None,
            "attachment_mimetype": ref.mimetype if ref else None,
        }

    async def _store_upload(self, upload: Optional[IncomingFile]) -> Optional[AttachmentRef]:
        if upload is None:
            return None
        return await self.store.validate_and_store(
            content=upload.content,
            filename=upload.filename,
            mimetype=upload.mimetype,
            policy=self.policy,
            content_length=upload.content_length,
        )

    async def _ensure_name_available(self, db: AsyncSession, name: str, record_id: str) -> None:
        other = await self.repository.find_by_key(db, name)
        if other is not None and other.id != record_id:
            raise DuplicateKeyError(
                message=self.repository.duplicate_message,
                key_field=self.name_field,
                context={"key": name},
            )

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, db: AsyncSession, record_id: str) -> ModelT:
        return await self.repository.get_by_id(db, record_id)

    async def list_all(self, db: AsyncSession) -> List[ModelT]:
        return await self.repository.find_all(db, order_by=[self.repository.key_column.asc()])

    async def list_names(self, db: AsyncSession) -> List[ModelT]:
        """Records ordered by name; routes project them down to id + name."""
        return await self.list_all(db)

    async def attachment_file(self, db: AsyncSession, record_id: str) -> Tuple[Path, AttachmentRef]:
        """
        Locate the stored attachment of a record for download.

        Raises:
            NotFoundError if the record has no attachment or the file is gone
        """
        record = await self.repository.get_by_id(db, record_id)
        ref = record.attachment
        if ref is None:
            raise NotFoundError(resource="attachment", message=f"{self.label} has no attachment")
        return self.store.resolve(ref.location), ref

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(
        self,
        db: AsyncSession,
        fields: Mapping[str, Any],
        upload: Optional[IncomingFile] = None,
    ) -> ModelT:
        cleaned = self._clean_fields(fields, partial=False)
        ref = await self._store_upload(upload)

        try:
            record = await self.repository.create(db, **cleaned, **self._attachment_columns(ref))
        except MailroomError:
            if ref is not None:
                await self.store.delete(ref.location)
            raise

        logger.info("%s created: %s (%s)", self.label, record.id, cleaned[self.name_field])
        return record

    async def update(
        self,
        db: AsyncSession,
        record_id: str,
        fields: Mapping[str, Any],
        upload: Optional[IncomingFile] = None,
    ) -> ModelT:
        """Partial update; only supplied fields change."""
        cleaned = self._clean_fields(fields, partial=True)
        record = await self.repository.get_by_id(db, record_id)

        new_name = cleaned.get(self.name_field)
        if new_name is not None and new_name != getattr(record, self.name_field):
            await self._ensure_name_available(db, new_name, record.id)

        if upload is not None:
            ref = await self._store_upload(upload)
            previous = record.attachment
            if previous is not None:
                await self.store.delete(previous.location)
            cleaned.update(self._attachment_columns(ref))

        try:
            record = await self.repository.update(db, record, cleaned)
        except MailroomError:
            if upload is not None:
                await self.store.delete(cleaned.get("attachment_path"))
            raise

        logger.info("%s updated: %s (fields=%s)", self.label, record.id, sorted(cleaned))
        return record

    async def upsert_by_name(
        self,
        db: AsyncSession,
        fields: Mapping[str, Any],
        upload: Optional[IncomingFile] = None,
    ) -> Tuple[ModelT, bool]:
        """
        Create-or-replace keyed by name.

        Without an upload the stored attachment is kept; with one, the old
        file is replaced.
        """
        cleaned = self._clean_fields(fields, partial=False)
        name = cleaned.pop(self.name_field)

        existing = await self.repository.find_by_key(db, name)
        ref = await self._store_upload(upload)
        if ref is not None:
            if existing is not None and existing.attachment is not None:
                await self.store.delete(existing.attachment.location)
            cleaned.update(self._attachment_columns(ref))

        record, created = await self.repository.upsert_by_key(db, name, cleaned)
        logger.info(
            "%s %s by name: %s", self.label, "created" if created else "replaced", name
        )
        return record, created

    async def delete(self, db: AsyncSession, record_id: str) -> None:
        record = await self.repository.get_by_id(db, record_id)
        ref = record.attachment
        if ref is not None:
            await self.store.delete(ref.location)
        await self.repository.delete(db, record)
        logger.info("%s deleted: %s", self.label, record_id)
