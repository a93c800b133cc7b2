"""
Mailroom Backend — Contact Service Tests
==========================================

What we test:
    ✅ Upsert by email: create, partial update, idempotence
    ✅ New contacts need first and last name
    ✅ Bulk upload: counts, non-array body, failing entry index
    ✅ Soft delete hides from list/export; permanent delete removes the row
"""

import pytest

from app.exceptions import NotFoundError, ValidationError
from app.schemas.contact import ContactUpsert
from app.services.contact_service import ContactService

SNAPSHOT_FIELDS = (
    "id", "first_name", "last_name", "email", "phone_number", "note",
    "company_name", "web_site", "type", "is_active", "created_at",
)


@pytest.fixture
def service():
    return ContactService()


def _payload(**overrides):
    data = {
        "firstName": "Grace",
        "lastName": "Hopper",
        "email": "grace@example.com",
        "companyName": "Navy",
        "type": "client",
    }
    data.update(overrides)
    return ContactUpsert.model_validate(data)


def _snapshot(contact):
    return {name: getattr(contact, name) for name in SNAPSHOT_FIELDS}


class TestUpsert:
    @pytest.mark.asyncio
    async def test_creates_with_defaults(self, service, db_session):
        contact, created = await service.upsert(
            db_session, ContactUpsert(email="a@b.co", first_name="A", last_name="B")
        )

        assert created is True
        assert contact.type == "other"
        assert contact.is_active is True

    @pytest.mark.asyncio
    async def test_same_payload_twice_is_idempotent(self, service, db_session):
        first, _ = await service.upsert(db_session, _payload())
        before = _snapshot(first)

        second, created = await service.upsert(db_session, _payload())

        assert created is False
        assert _snapshot(second) == before
        assert len(await service.list_active(db_session)) == 1

    @pytest.mark.asyncio
    async def test_absent_fields_are_left_alone(self, service, db_session):
        await service.upsert(db_session, _payload(phoneNumber="555-0100"))

        contact, _ = await service.upsert(
            db_session, ContactUpsert(email="grace@example.com", note="Admiral")
        )

        assert contact.phone_number == "555-0100"
        assert contact.company_name == "Navy"
        assert contact.note == "Admiral"

    @pytest.mark.asyncio
    async def test_note_only_payload_updates_committed_contact(self, service, db_session):
        original, _ = await service.upsert(
            db_session, ContactUpsert(email="g@example.io", first_name="Grace", last_name="Hopper")
        )
        await db_session.commit()

        contact, created = await service.upsert(
            db_session, ContactUpsert(email="g@example.io", note="Admiral")
        )

        assert created is False
        assert contact.id == original.id
        assert contact.first_name == "Grace"
        assert contact.note == "Admiral"

    @pytest.mark.asyncio
    async def test_new_contact_without_names_rejected(self, service, db_session):
        with pytest.raises(ValidationError, match="required"):
            await service.upsert(db_session, ContactUpsert(email="nobody@example.com"))

    def test_invalid_email_rejected_by_schema(self):
        with pytest.raises(ValueError, match="Invalid email format"):
            ContactUpsert(email="not-an-email", first_name="A", last_name="B")


class TestBulkUpsert:
    @pytest.mark.asyncio
    async def test_counts_created_and_updated(self, service, db_session):
        await service.upsert(db_session, _payload())

        result = await service.bulk_upsert(db_session, [
            {"email": "grace@example.com", "note": "updated"},
            {"email": "linus@example.com", "firstName": "Linus", "lastName": "Torvalds"},
            {"email": "ken@example.com", "firstName": "Ken", "lastName": "Thompson", "type": "vendor"},
        ])

        assert result == {"total": 3, "created": 2, "updated": 1}
        assert len(await service.list_active(db_session)) == 3

    @pytest.mark.asyncio
    async def test_non_array_body_rejected(self, service, db_session):
        with pytest.raises(ValidationError, match="Invalid input format"):
            await service.bulk_upsert(db_session, {"email": "a@b.co"})

    @pytest.mark.asyncio
    async def test_invalid_entry_reports_index(self, service, db_session):
        with pytest.raises(ValidationError) as exc_info:
            await service.bulk_upsert(db_session, [
                {"email": "ok@example.com", "firstName": "O", "lastName": "K"},
                {"email": "broken"},
            ])

        assert exc_info.value.context["index"] == 1
        assert "index 1" in exc_info.value.message


class TestDeleteAndExport:
    @pytest.mark.asyncio
    async def test_soft_delete_hides_contact(self, service, db_session):
        contact, _ = await service.upsert(db_session, _payload())

        await service.delete(db_session, contact.id)

        assert await service.list_active(db_session) == []
        assert await service.export_active(db_session) == []
        assert (await service.get(db_session, contact.id)).is_active is False

    @pytest.mark.asyncio
    async def test_upsert_does_not_reactivate_implicitly(self, service, db_session):
        contact, _ = await service.upsert(db_session, _payload())
        await service.delete(db_session, contact.id)

        again, _ = await service.upsert(db_session, _payload())

        assert again.is_active is False

    @pytest.mark.asyncio
    async def test_permanent_delete_removes_row(self, service, db_session):
        contact, _ = await service.upsert(db_session, _payload())

        await service.delete(db_session, contact.id, permanent=True)

        with pytest.raises(NotFoundError, match="Contact not found"):
            await service.get(db_session, contact.id)

    @pytest.mark.asyncio
    async def test_export_is_sorted_by_last_name(self, service, db_session):
        await service.bulk_upsert(db_session, [
            {"email": "z@example.com", "firstName": "Zed", "lastName": "Young"},
            {"email": "a@example.com", "firstName": "Amy", "lastName": "Adams"},
        ])

        exported = await service.export_active(db_session)

        assert [c.last_name for c in exported] == ["Adams", "Young"]
