"""
Tests for companion authoring: validation, ownership and the read/list/delete API.
"""

import pytest
from sqlalchemy import func, select

from companion_app.core.exceptions import Forbidden, NotFound, ValidationError
from companion_app.models import Category, Companion, Message
from companion_app.schemas.companion import CompanionDefinition


def _companion_count(db) -> int:
    return db.scalar(select(func.count()).select_from(Companion))


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_sets_owner_and_generates_id(self, companion_service, companion_definition, db):
        created = await companion_service.create_or_update("U1", companion_definition)

        assert created.id
        assert created.owner_id == "U1"
        assert created.name == "Ada"
        assert created.created_at is not None
        assert _companion_count(db) == 1

    @pytest.mark.asyncio
    async def test_accepts_parsed_definition(self, companion_service, companion_definition):
        created = await companion_service.create_or_update("U1", CompanionDefinition(**companion_definition))
        assert created.owner_id == "U1"

    @pytest.mark.parametrize("field,value", [
        ("instructions", "x" * 199),
        ("instructions", ""),
        ("seed", "Human: hi\nAda: hello"),
        ("seed", "y" * 199),
    ])
    @pytest.mark.asyncio
    async def test_short_persona_text_is_rejected_without_write(self, companion_service, companion_definition, db, field, value):
        companion_definition[field] = value

        with pytest.raises(ValidationError) as exc_info:
            await companion_service.create_or_update("U1", companion_definition)

        assert field in exc_info.value.fields
        assert _companion_count(db) == 0

    @pytest.mark.asyncio
    async def test_exactly_200_characters_is_accepted(self, companion_service, companion_definition):
        companion_definition["instructions"] = "i" * 200
        companion_definition["seed"] = "s" * 200

        created = await companion_service.create_or_update("U1", companion_definition)
        assert len(created.instructions) == 200

    @pytest.mark.asyncio
    async def test_length_counts_surrounding_whitespace(self, companion_service, companion_definition):
        companion_definition["instructions"] = "x" * 199 + "\n"
        companion_definition["seed"] = "   " + "s" * 197

        created = await companion_service.create_or_update("U1", companion_definition)

        assert created.instructions == "x" * 199 + "\n"
        assert created.seed.startswith("   ")
        assert len(created.seed) == 200

    @pytest.mark.asyncio
    async def test_text_is_stored_as_submitted(self, companion_service, companion_definition, db):
        companion_definition["seed"] = "  " + companion_definition["seed"] + "\n\n"
        companion_definition["name"] = " Ada "

        created = await companion_service.create_or_update("U1", companion_definition)

        db.expire_all()
        stored = db.get(Companion, created.id)
        assert stored.seed == companion_definition["seed"]
        assert stored.name == " Ada "

    @pytest.mark.asyncio
    async def test_long_name_is_accepted(self, companion_service, companion_definition):
        companion_definition["name"] = "A" * 300

        created = await companion_service.create_or_update("U1", companion_definition)
        assert created.name == "A" * 300

    @pytest.mark.asyncio
    async def test_reports_every_failing_field(self, companion_service, companion_definition):
        companion_definition["name"] = "   "
        companion_definition["image_ref"] = ""
        companion_definition["seed"] = "too short"

        with pytest.raises(ValidationError) as exc_info:
            await companion_service.create_or_update("U1", companion_definition)

        assert set(exc_info.value.fields) == {"name", "image_ref", "seed"}
        assert exc_info.value.to_dict()["error"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_missing_field_is_rejected(self, companion_service, companion_definition):
        del companion_definition["description"]

        with pytest.raises(ValidationError) as exc_info:
            await companion_service.create_or_update("U1", companion_definition)
        assert exc_info.value.fields == ["description"]

    @pytest.mark.asyncio
    async def test_dangling_category_is_never_persisted(self, companion_service, companion_definition, db):
        companion_definition["category_id"] = "no-such-category"

        with pytest.raises(ValidationError) as exc_info:
            await companion_service.create_or_update("U1", companion_definition)

        assert exc_info.value.fields == ["category_id"]
        assert _companion_count(db) == 0


class TestUpdate:

    @pytest.mark.asyncio
    async def test_owner_overwrites_fields_and_keeps_identity(self, companion_service, companion, companion_definition):
        original_created_at = companion.created_at
        companion_definition["name"] = "Countess Lovelace"
        companion_definition["description"] = "Poetical scientist"

        updated = await companion_service.create_or_update("U1", companion_definition, existing_id="c1")

        assert updated.id == "c1"
        assert updated.owner_id == "U1"
        assert updated.name == "Countess Lovelace"
        assert updated.description == "Poetical scientist"
        assert updated.created_at.replace(tzinfo=None) == original_created_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_non_owner_is_forbidden_and_companion_unchanged(self, companion_service, companion, companion_definition, db):
        companion_definition["name"] = "Hijacked"

        with pytest.raises(Forbidden):
            await companion_service.create_or_update("U2", companion_definition, existing_id="c1")

        db.expire_all()
        assert db.get(Companion, "c1").name == "Ada"

    @pytest.mark.asyncio
    async def test_unknown_companion_is_not_found(self, companion_service, companion_definition):
        with pytest.raises(NotFound):
            await companion_service.create_or_update("U1", companion_definition, existing_id="missing")

    @pytest.mark.asyncio
    async def test_invalid_update_leaves_row_untouched(self, companion_service, companion, companion_definition, db):
        companion_definition["name"] = "Renamed"
        companion_definition["instructions"] = "short"

        with pytest.raises(ValidationError):
            await companion_service.create_or_update("U1", companion_definition, existing_id="c1")

        db.expire_all()
        stored = db.get(Companion, "c1")
        assert stored.name == "Ada"
        assert len(stored.instructions) >= 200


class TestReadAndDelete:

    @pytest.mark.asyncio
    async def test_get_unknown_companion(self, companion_service):
        with pytest.raises(NotFound):
            await companion_service.get_companion("nope")

    @pytest.mark.asyncio
    async def test_list_filters_and_counts_messages(self, companion_service, companion, companion_definition, store, db):
        db.add(Category(id="cat-poets", name="Poets"))
        db.commit()
        companion_definition.update(name="Byron", category_id="cat-poets")
        await companion_service.create_or_update("U3", companion_definition)
        store.append("c1", "U2", "user", "hi")
        store.append("c1", "U2", "assistant", "hello")
        store.append("c1", "U4", "user", "hey")

        everything = await companion_service.list_companions()
        by_name = await companion_service.list_companions(name="ad")
        by_category = await companion_service.list_companions(category_id="cat-poets")

        assert {c.name for c in everything} == {"Ada", "Byron"}
        assert [c.id for c in by_name] == ["c1"]
        assert by_name[0].message_count == 3
        assert [c.name for c in by_category] == ["Byron"]
        assert by_category[0].message_count == 0

    @pytest.mark.asyncio
    async def test_owner_delete_removes_conversations(self, companion_service, companion, store, db):
        store.append("c1", "U2", "user", "hi")

        await companion_service.delete_companion("U1", "c1")

        assert db.get(Companion, "c1") is None
        assert db.scalar(select(func.count()).select_from(Message)) == 0

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(self, companion_service, companion, db):
        with pytest.raises(Forbidden):
            await companion_service.delete_companion("U2", "c1")
        assert db.get(Companion, "c1") is not None

    @pytest.mark.asyncio
    async def test_list_categories(self, companion_service, category):
        categories = await companion_service.list_categories()
        assert [(c.id, c.name) for c in categories] == [("cat-science", "Scientists")]
