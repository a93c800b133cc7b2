"""
Mailroom Backend — Repository Tests
=====================================

What:  Identifier validation, key uniqueness and atomic upsert behaviour of
       the generic Repository, exercised on the contacts table.
"""

from unittest.mock import AsyncMock

import pytest

from app.exceptions import DuplicateKeyError, NotFoundError, ValidationError
from app.models import Contact, is_object_id, new_object_id
from app.services.repository import Repository


@pytest.fixture
def repository():
    return Repository(
        Contact,
        key_field="email",
        resource="contact",
        duplicate_message="Duplicate email address",
    )


def _contact_fields(**overrides):
    fields = {"first_name": "Ada", "last_name": "Lovelace", "email": "ada@example.com"}
    fields.update(overrides)
    return fields


class TestIdentifiers:
    def test_generated_ids_are_24_hex(self):
        ids = {new_object_id() for _ in range(50)}
        assert len(ids) == 50
        assert all(is_object_id(i) and len(i) == 24 for i in ids)

    @pytest.mark.parametrize("bad_id", ["", "123", "zzzzzzzzzzzzzzzzzzzzzzzz", "a" * 25, "../etc"])
    @pytest.mark.asyncio
    async def test_malformed_id_never_reaches_storage(self, repository, bad_id):
        db = AsyncMock()

        with pytest.raises(ValidationError, match="Invalid contact ID format"):
            await repository.find_by_id(db, bad_id)

        db.get.assert_not_awaited()
        db.execute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_id_is_not_found(self, repository, db_session):
        with pytest.raises(NotFoundError, match="Contact not found"):
            await repository.get_by_id(db_session, new_object_id())

    @pytest.mark.asyncio
    async def test_uppercase_hex_is_accepted(self, repository, db_session):
        record = await repository.create(db_session, **_contact_fields())

        found = await repository.get_by_id(db_session, record.id.upper())

        assert found.id == record.id


class TestUniqueness:
    @pytest.mark.asyncio
    async def test_second_create_with_same_key_is_duplicate(self, repository, db_session):
        await repository.create(db_session, **_contact_fields())
        await db_session.commit()

        with pytest.raises(DuplicateKeyError) as exc_info:
            await repository.create(db_session, **_contact_fields(first_name="Other"))
        await db_session.rollback()

        assert exc_info.value.message == "Duplicate email address"
        assert exc_info.value.status_code == 400
        assert await repository.count(db_session) == 1


class TestUpsert:
    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates_same_identity(self, repository, db_session):
        first, created = await repository.upsert_by_key(
            db_session,
            "ada@example.com",
            {"first_name": "Ada", "last_name": "Lovelace"},
            defaults={"type": "other", "is_active": True},
        )
        assert created is True
        first_id = first.id

        second, created_again = await repository.upsert_by_key(
            db_session,
            "ada@example.com",
            {"first_name": "Augusta", "last_name": "Lovelace"},
            defaults={"type": "other", "is_active": True},
        )

        assert created_again is False
        assert second.id == first_id
        assert second.first_name == "Augusta"
        assert await repository.count(db_session) == 1

    @pytest.mark.asyncio
    async def test_defaults_only_apply_on_insert(self, repository, db_session):
        await repository.upsert_by_key(
            db_session, "ada@example.com",
            {"first_name": "Ada", "last_name": "Lovelace", "type": "client"},
            defaults={"type": "other", "is_active": True},
        )

        record, _ = await repository.upsert_by_key(
            db_session, "ada@example.com", {"note": "met at conference"},
            defaults={"type": "other", "is_active": True},
        )

        assert record.type == "client"
        assert record.note == "met at conference"

    @pytest.mark.asyncio
    async def test_partial_fields_update_committed_row(self, repository, db_session):
        first, _ = await repository.upsert_by_key(
            db_session, "ada@example.com", {"first_name": "Ada", "last_name": "Lovelace"}
        )
        await db_session.commit()

        record, created = await repository.upsert_by_key(
            db_session, "ada@example.com", {"note": "Analyst"}
        )

        assert created is False
        assert record.id == first.id
        assert (record.first_name, record.last_name, record.note) == ("Ada", "Lovelace", "Analyst")

    @pytest.mark.asyncio
    async def test_incomplete_new_row_is_invalid_not_duplicate(self, repository, db_session):
        with pytest.raises(ValidationError, match="Invalid contact data") as exc_info:
            await repository.upsert_by_key(db_session, "new@example.com", {"note": "no names"})

        assert not isinstance(exc_info.value, DuplicateKeyError)

    @pytest.mark.asyncio
    async def test_fallback_path_matches_native_upsert(self, repository, db_session, monkeypatch):
        monkeypatch.setattr("app.services.repository._UPSERT_INSERTS", {})

        first, created = await repository.upsert_by_key(
            db_session, "ada@example.com", {"first_name": "Ada", "last_name": "Lovelace"}
        )
        second, created_again = await repository.upsert_by_key(
            db_session, "ada@example.com", {"last_name": "King"}
        )

        assert (created, created_again) == (True, False)
        assert second.id == first.id
        assert second.last_name == "King"
