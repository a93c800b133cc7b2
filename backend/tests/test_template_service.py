"""
Mailroom Backend — Template & AI Prompt Template Service Tests
================================================================

What we test:
    ✅ Required fields and unique names
    ✅ Attachment lifecycle: create, replace (old file gone), delete
    ✅ Partial updates
    ✅ Search filters, date range, sorting and pagination arithmetic
    ✅ Stats aggregates
    ✅ Upsert by name for AI prompt templates
"""

import math
from datetime import timedelta, timezone
from pathlib import Path

import pytest

from app.exceptions import DuplicateKeyError, NotFoundError, ValidationError
from app.models.base import utcnow
from app.services.ai_prompt_template_service import AIPromptTemplateService
from app.services.attachment_store import IncomingFile
from app.services.template_service import TemplateService


@pytest.fixture
def service(store):
    return TemplateService(store)


@pytest.fixture
def prompt_service(store):
    return AIPromptTemplateService(store)


def _fields(name="welcome", subject="Hi", content="Hello"):
    return {"name": name, "subject": subject, "content": content}


def _on_disk(store, location) -> bool:
    return (Path(store.storage_root) / location).is_file()


class TestCreate:
    @pytest.mark.asyncio
    async def test_missing_field_rejected(self, service, db_session):
        with pytest.raises(ValidationError, match="Name, subject and content are required fields"):
            await service.create(db_session, {"name": "x", "subject": "  "})

    @pytest.mark.asyncio
    async def test_name_is_trimmed(self, service, db_session):
        template = await service.create(db_session, _fields(name="  welcome  "))
        assert template.name == "welcome"

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, service, db_session):
        await service.create(db_session, _fields())
        await db_session.commit()

        with pytest.raises(DuplicateKeyError, match="Template with this name already exists"):
            await service.create(db_session, _fields(subject="Other"))

    @pytest.mark.asyncio
    async def test_duplicate_name_cleans_up_stored_file(self, service, store, db_session, text_upload):
        await service.create(db_session, _fields())
        await db_session.commit()

        with pytest.raises(DuplicateKeyError):
            await service.create(db_session, _fields(), text_upload)

        assert not any(p.is_file() for p in Path(store.storage_root).rglob("*"))

    @pytest.mark.asyncio
    async def test_rejected_upload_writes_nothing(self, service, db_session):
        exe = IncomingFile(content=b"MZ", filename="tool.exe", mimetype="application/x-msdownload")

        with pytest.raises(ValidationError, match="Invalid file type"):
            await service.create(db_session, _fields(), exe)

        assert await service.list_all(db_session) == []


class TestAttachmentLifecycle:
    @pytest.mark.asyncio
    async def test_replace_deletes_previous_file(self, service, store, db_session, text_upload):
        template = await service.create(db_session, _fields(), text_upload)
        old_location = template.attachment.location
        assert _on_disk(store, old_location)

        replacement = IncomingFile(content=b"%PDF-1.4", filename="brochure.pdf", mimetype="application/pdf")
        updated = await service.update(db_session, template.id, {}, replacement)

        assert not _on_disk(store, old_location)
        assert updated.attachment.filename == "brochure.pdf"
        assert await store.read(updated.attachment.location) == b"%PDF-1.4"
        files = [p for p in Path(store.storage_root).rglob("*") if p.is_file()]
        assert len(files) == 1

    @pytest.mark.asyncio
    async def test_update_without_upload_keeps_attachment(self, service, db_session, text_upload):
        template = await service.create(db_session, _fields(), text_upload)
        location = template.attachment.location

        updated = await service.update(db_session, template.id, {"subject": "New subject"})

        assert updated.subject == "New subject"
        assert updated.content == "Hello"
        assert updated.attachment.location == location

    @pytest.mark.asyncio
    async def test_update_cannot_blank_required_field(self, service, db_session):
        template = await service.create(db_session, _fields())

        with pytest.raises(ValidationError):
            await service.update(db_session, template.id, {"content": ""})

    @pytest.mark.asyncio
    async def test_rename_onto_existing_name_rejected(self, service, db_session):
        await service.create(db_session, _fields(name="first"))
        second = await service.create(db_session, _fields(name="second"))

        with pytest.raises(DuplicateKeyError):
            await service.update(db_session, second.id, {"name": "first"})

    @pytest.mark.asyncio
    async def test_delete_purges_attachment(self, service, store, db_session, text_upload):
        template = await service.create(db_session, _fields(), text_upload)
        location = template.attachment.location

        await service.delete(db_session, template.id)

        assert not _on_disk(store, location)
        with pytest.raises(NotFoundError):
            await service.get(db_session, template.id)

    @pytest.mark.asyncio
    async def test_delete_survives_missing_file(self, service, store, db_session, text_upload):
        template = await service.create(db_session, _fields(), text_upload)
        (Path(store.storage_root) / template.attachment.location).unlink()

        await service.delete(db_session, template.id)

        assert await service.list_all(db_session) == []

    @pytest.mark.asyncio
    async def test_download_without_attachment_is_not_found(self, service, db_session):
        template = await service.create(db_session, _fields())

        with pytest.raises(NotFoundError, match="Template has no attachment"):
            await service.attachment_file(db_session, template.id)


class TestSearch:
    @pytest.mark.parametrize("total,limit", [(23, 10), (20, 10), (5, 10), (1, 1)])
    @pytest.mark.asyncio
    async def test_pagination_arithmetic(self, service, db_session, total, limit):
        for i in range(total):
            await service.create(db_session, _fields(name=f"template-{i:02d}"))

        last_page = math.ceil(total / limit)
        first = await service.search(db_session, page=1, limit=limit)
        last = await service.search(db_session, page=last_page, limit=limit)

        assert len(first["templates"]) == min(limit, total)
        assert first["pagination"]["has_more"] is (total > limit)
        assert first["pagination"]["total_pages"] == last_page
        expected_last = total % limit or limit
        assert len(last["templates"]) == expected_last
        assert last["pagination"]["has_more"] is False
        assert last["pagination"]["total"] == total

    @pytest.mark.asyncio
    async def test_filters_are_anded_and_case_insensitive(self, service, db_session):
        await service.create(db_session, _fields(name="Welcome Email", subject="Hello there"))
        await service.create(db_session, _fields(name="Welcome SMS", subject="Yo"))
        await service.create(db_session, _fields(name="Invoice", subject="Hello invoice"))

        result = await service.search(db_session, name="welcome", subject="HELLO")

        assert [t.name for t in result["templates"]] == ["Welcome Email"]

    @pytest.mark.asyncio
    async def test_wildcards_match_literally(self, service, db_session):
        await service.create(db_session, _fields(name="100% off"))
        await service.create(db_session, _fields(name="1000 off"))

        result = await service.search(db_session, name="0%")

        assert [t.name for t in result["templates"]] == ["100% off"]

    @pytest.mark.asyncio
    async def test_sort_by_name_ascending(self, service, db_session):
        for name in ("charlie", "alpha", "bravo"):
            await service.create(db_session, _fields(name=name))

        result = await service.search(db_session, sort_by="name", sort_order="asc")

        assert [t.name for t in result["templates"]] == ["alpha", "bravo", "charlie"]

    @pytest.mark.asyncio
    async def test_created_at_inside_range_matches(self, service, db_session):
        await service.create(db_session, _fields())
        now = utcnow()

        result = await service.search(
            db_session, start_date=now - timedelta(hours=1), end_date=now + timedelta(hours=1)
        )

        assert result["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_created_at_outside_range_is_excluded(self, service, db_session):
        await service.create(db_session, _fields())
        now = utcnow()

        future = await service.search(db_session, start_date=now + timedelta(hours=1))
        past = await service.search(db_session, end_date=now - timedelta(hours=1))

        assert future["pagination"]["total"] == 0
        assert past["pagination"]["total"] == 0

    @pytest.mark.asyncio
    async def test_naive_bounds_are_utc(self, service, db_session):
        await service.create(db_session, _fields())
        naive_now = utcnow().replace(tzinfo=None)

        result = await service.search(
            db_session,
            start_date=naive_now - timedelta(hours=1),
            end_date=naive_now + timedelta(hours=1),
        )

        assert result["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_offset_bounds_are_converted_to_utc(self, service, db_session):
        await service.create(db_session, _fields())
        # One hour ago, written at +03:00
        plus_three = timezone(timedelta(hours=3))
        start = (utcnow() - timedelta(hours=1)).astimezone(plus_three)

        result = await service.search(db_session, start_date=start)

        assert result["pagination"]["total"] == 1

    @pytest.mark.asyncio
    async def test_start_after_end_rejected(self, service, db_session):
        now = utcnow()

        with pytest.raises(ValidationError, match="startDate must not be after endDate"):
            await service.search(
                db_session, start_date=(now + timedelta(hours=1)).replace(tzinfo=None), end_date=now
            )

    @pytest.mark.parametrize(
        "kwargs",
        [{"sort_by": "password"}, {"sort_order": "sideways"}, {"page": 0}, {"limit": 0}, {"limit": 101}],
    )
    @pytest.mark.asyncio
    async def test_invalid_parameters_rejected(self, service, db_session, kwargs):
        with pytest.raises(ValidationError):
            await service.search(db_session, **kwargs)


class TestStats:
    @pytest.mark.asyncio
    async def test_empty(self, service, db_session):
        stats = await service.stats(db_session)

        assert stats["total_templates"] == 0
        assert stats["templates_with_attachments"] == 0
        assert stats["average_content_length"] == 0
        assert stats["recent_activity"] == []

    @pytest.mark.asyncio
    async def test_aggregates(self, service, db_session, text_upload):
        await service.create(db_session, _fields(name="a", content="x"), text_upload)
        await service.create(db_session, _fields(name="b", content="xx"))
        await service.create(db_session, _fields(name="c", content="xxxx"))
        for i in range(4):
            await service.create(db_session, _fields(name=f"extra-{i}", content="xx"))

        stats = await service.stats(db_session)

        assert stats["total_templates"] == 7
        assert stats["templates_with_attachments"] == 1
        # (1 + 2 + 4 + 2*4) / 7 = 2.14
        assert stats["average_content_length"] == 2
        assert len(stats["recent_activity"]) == 5
        assert set(stats["recent_activity"][0]) == {"name", "updated_at"}

    @pytest.mark.asyncio
    async def test_average_rounds_half_up(self, service, db_session):
        await service.create(db_session, _fields(name="a", content="xx"))
        await service.create(db_session, _fields(name="b", content="xxx"))

        stats = await service.stats(db_session)

        assert stats["average_content_length"] == 3


class TestAIPromptTemplates:
    @pytest.mark.asyncio
    async def test_required_fields_message(self, prompt_service, db_session):
        with pytest.raises(ValidationError, match="Name, agent and prompt are required fields"):
            await prompt_service.create(db_session, {"name": "x"})

    @pytest.mark.asyncio
    async def test_upsert_by_name_keeps_identity(self, prompt_service, db_session):
        first, created = await prompt_service.upsert_by_name(
            db_session, {"name": "triage", "agent": "support", "prompt": "v1"}
        )
        second, created_again = await prompt_service.upsert_by_name(
            db_session, {"name": "triage", "agent": "support", "prompt": "v2"}
        )

        assert (created, created_again) == (True, False)
        assert second.id == first.id
        assert second.prompt == "v2"
        assert len(await prompt_service.list_names(db_session)) == 1

    @pytest.mark.asyncio
    async def test_upsert_with_new_file_replaces_old(self, prompt_service, store, db_session, text_upload):
        first, _ = await prompt_service.upsert_by_name(
            db_session, {"name": "triage", "agent": "support", "prompt": "v1"}, text_upload
        )
        old_location = first.attachment.location

        png = IncomingFile(content=b"\x89PNG", filename="diagram.png", mimetype="image/png")
        second, _ = await prompt_service.upsert_by_name(
            db_session, {"name": "triage", "agent": "support", "prompt": "v2"}, png
        )

        assert not _on_disk(store, old_location)
        assert second.attachment.filename == "diagram.png"
        assert _on_disk(store, second.attachment.location)

    @pytest.mark.asyncio
    async def test_malformed_id_message(self, prompt_service, db_session):
        with pytest.raises(ValidationError, match="Invalid AI prompt template ID format"):
            await prompt_service.get(db_session, "not-an-id")
