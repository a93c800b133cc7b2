"""
Mailroom Backend — Generic Resource Repository
================================================

What:  Persistence access for one resource table, parameterised by model,
       unique key column and resource name.
Why:   Contacts, templates, AI prompt templates and users all need the same
       accessors and the same duplicate-key translation; one class instead
       of four near-identical controllers.
How:   Thin async wrappers over SQLAlchemy `select`/`insert`/`update`. The
       unique index on the key column is the only mutual-exclusion
       mechanism: `upsert_by_key` updates by key and otherwise inserts with
       `ON CONFLICT DO NOTHING`, so two concurrent upserts for the same key
       end in one row.

Error translation:
    unique violation   → DuplicateKeyError (resource-specific message)
    NOT NULL / CHECK   → ValidationError ("Invalid <resource> data")
    other SQLAlchemy   → DatabaseError (generic message, details logged)
    malformed id       → ValidationError (raised before any query)
"""

import logging
from typing import Any, Dict, Generic, List, Optional, Sequence, Tuple, Type, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.exceptions import DatabaseError, DuplicateKeyError, NotFoundError, ValidationError
from app.models.base import is_object_id, new_object_id, utcnow

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

# Dialects with a native atomic upsert
_UPSERT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}

# UPDATE-then-INSERT rounds before a key that keeps flapping is reported
_UPSERT_ATTEMPTS = 3

# SQLSTATE for unique_violation
_UNIQUE_VIOLATION = "23505"


class Repository(Generic[ModelT]):
    """
    Unique-key persistence for a single model.

    Args:
        model: ORM class (must have `id`, `created_at`, `updated_at`)
        key_field: column holding the resource's unique key
        resource: human name used in messages ("template", "contact"...)
        duplicate_message: message for DuplicateKeyError
    """

    def __init__(
        self,
        model: Type[ModelT],
        key_field: str,
        resource: str,
        duplicate_message: str,
    ):
        self.model = model
        self.key_field = key_field
        self.resource = resource
        self.duplicate_message = duplicate_message

    @property
    def key_column(self):
        return getattr(self.model, self.key_field)

    @property
    def label(self) -> str:
        """Resource name for the start of a sentence."""
        return self.resource[:1].upper() + self.resource[1:]

    # ── Identifiers ───────────────────────────────────────────────────────

    def validate_id(self, record_id: str) -> str:
        """Fail fast on ids that cannot exist, without a storage lookup."""
        if not is_object_id(record_id):
            raise ValidationError(
                message=f"Invalid {self.resource} ID format",
                field="id",
                context={"id": record_id},
            )
        return record_id.lower()

    # ── Reads ─────────────────────────────────────────────────────────────

    async def find_by_id(self, db: AsyncSession, record_id: str) -> Optional[ModelT]:
        record_id = self.validate_id(record_id)
        try:
            return await db.get(self.model, record_id)
        except SQLAlchemyError as e:
            raise self._database_error("find_by_id", e)

    async def get_by_id(self, db: AsyncSession, record_id: str) -> ModelT:
        record = await self.find_by_id(db, record_id)
        if record is None:
            raise NotFoundError(resource=self.resource, message=f"{self.label} not found")
        return record

    async def find_by_key(self, db: AsyncSession, key: Any) -> Optional[ModelT]:
        try:
            result = await db.execute(select(self.model).where(self.key_column == key))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._database_error("find_by_key", e)

    async def find_all(
        self,
        db: AsyncSession,
        *filters: Any,
        order_by: Sequence[Any] = (),
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> List[ModelT]:
        query = select(self.model).where(*filters)
        if order_by:
            query = query.order_by(*order_by)
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)
        try:
            result = await db.execute(query)
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise self._database_error("find_all", e)

    async def count(self, db: AsyncSession, *filters: Any) -> int:
        try:
            result = await db.execute(select(func.count()).select_from(self.model).where(*filters))
            return result.scalar() or 0
        except SQLAlchemyError as e:
            raise self._database_error("count", e)

    # ── Writes ────────────────────────────────────────────────────────────

    async def create(self, db: AsyncSession, **fields: Any) -> ModelT:
        record = self.model(**fields)
        db.add(record)
        await self._flush(db)
        return record

    async def update(self, db: AsyncSession, record: ModelT, fields: Dict[str, Any]) -> ModelT:
        for name, value in fields.items():
            setattr(record, name, value)
        await self._flush(db)
        return record

    async def delete(self, db: AsyncSession, record: ModelT) -> None:
        try:
            await db.delete(record)
            await db.flush()
        except SQLAlchemyError as e:
            raise self._database_error("delete", e)

    async def upsert_by_key(
        self,
        db: AsyncSession,
        key: Any,
        fields: Dict[str, Any],
        defaults: Optional[Dict[str, Any]] = None,
    ) -> Tuple[ModelT, bool]:
        """
        Create-if-absent, else update-in-place, keyed by the unique column.

        `fields` overwrite the stored values of an existing row and columns
        not named in `fields` are left alone; `defaults` only apply when a
        new row is inserted. The existing identity is kept.

        Native path (PostgreSQL, SQLite):
            1. UPDATE .. WHERE key = :key RETURNING *     → existing row
            2. INSERT .. ON CONFLICT (key) DO NOTHING RETURNING *
            3. nothing returned means a concurrent insert won; go to 1 again

        A partial payload therefore never has to form a complete insert row
        for a key that already exists.

        Returns:
            (record, created) where created is True when a row was inserted
        """
        dialect = db.get_bind().dialect.name
        insert_fn = _UPSERT_INSERTS.get(dialect)
        if insert_fn is None:
            return await self._upsert_fallback(db, key, fields, defaults or {})

        for _ in range(_UPSERT_ATTEMPTS):
            record = await self._update_by_key(db, key, fields)
            if record is not None:
                logger.debug("%s upsert key=%s created=False", self.resource, key)
                return record, False

            record = await self._insert_if_absent(db, insert_fn, key, fields, defaults or {})
            if record is not None:
                logger.debug("%s upsert key=%s created=True", self.resource, key)
                return record, True

        logger.error("%s upsert for key=%s kept losing races", self.resource, key)
        raise DatabaseError(context={"resource": self.resource, "operation": "upsert_by_key"})

    async def _update_by_key(
        self, db: AsyncSession, key: Any, fields: Dict[str, Any]
    ) -> Optional[ModelT]:
        stmt = (
            update(self.model)
            .where(self.key_column == key)
            .values(**fields, updated_at=utcnow())
            .returning(self.model)
        )
        try:
            result = await db.execute(
                stmt,
                execution_options={"synchronize_session": False, "populate_existing": True},
            )
            return result.scalar_one_or_none()
        except IntegrityError as e:
            raise self._integrity_error(key, e)
        except SQLAlchemyError as e:
            raise self._database_error("upsert_by_key", e)

    async def _insert_if_absent(
        self,
        db: AsyncSession,
        insert_fn: Any,
        key: Any,
        fields: Dict[str, Any],
        defaults: Dict[str, Any],
    ) -> Optional[ModelT]:
        now = utcnow()
        values = {
            **defaults,
            **fields,
            self.key_field: key,
            "id": new_object_id(),
            "created_at": now,
            "updated_at": now,
        }
        stmt = (
            insert_fn(self.model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=[self.key_field])
            .returning(self.model)
        )
        try:
            result = await db.execute(stmt, execution_options={"populate_existing": True})
            return result.scalar_one_or_none()
        except IntegrityError as e:
            raise self._integrity_error(key, e)
        except SQLAlchemyError as e:
            raise self._database_error("upsert_by_key", e)

    async def _upsert_fallback(
        self,
        db: AsyncSession,
        key: Any,
        fields: Dict[str, Any],
        defaults: Dict[str, Any],
    ) -> Tuple[ModelT, bool]:
        # Select-then-write: a concurrent insert of the same key loses on
        # the unique index and surfaces as DuplicateKeyError
        existing = await self.find_by_key(db, key)
        if existing is not None:
            return await self.update(db, existing, fields), False
        record = await self.create(db, **{**defaults, **fields, self.key_field: key})
        return record, True

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _flush(self, db: AsyncSession) -> None:
        try:
            await db.flush()
        except IntegrityError as e:
            raise self._integrity_error(None, e)
        except SQLAlchemyError as e:
            raise self._database_error("flush", e)

    @staticmethod
    def _is_unique_violation(exc: IntegrityError) -> bool:
        # asyncpg exposes the SQLSTATE, SQLite only the message
        orig = exc.orig
        code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if code is not None:
            return code == _UNIQUE_VIOLATION
        return "unique" in str(orig).lower()

    def _integrity_error(self, key: Any, exc: IntegrityError) -> Exception:
        """Unique index hits are duplicates; NOT NULL / CHECK failures are bad input."""
        if self._is_unique_violation(exc):
            return self._duplicate_error(key, exc)
        logger.warning("Constraint violation on %s: %s", self.resource, exc.orig)
        return ValidationError(
            message=f"Invalid {self.resource} data",
            context={"resource": self.resource},
        )

    def _duplicate_error(self, key: Any, exc: IntegrityError) -> DuplicateKeyError:
        logger.info("Duplicate %s rejected: %s", self.resource, exc.orig)
        context = {"resource": self.resource}
        if key is not None:
            context["key"] = str(key)
        return DuplicateKeyError(
            message=self.duplicate_message,
            key_field=self.key_field,
            context=context,
        )

    def _database_error(self, operation: str, exc: Exception) -> DatabaseError:
        logger.error(
            "Database error during %s.%s: %s", self.resource, operation, str(exc), exc_info=True
        )
        return DatabaseError(context={"resource": self.resource, "operation": operation})
