"""
Klara Backend — User Service Tests
====================================

What we test:
    ✅ get_or_create is idempotent per subject
    ✅ Profile sync keeps stored values for empty fields
    ✅ API key update / delete, has_* flags
    ✅ Invalid key type → ValidationError
    ✅ delete_user removes notes and chat history
"""

import pytest

from app.exceptions import NotFoundError, ValidationError
from app.models.chat import ROLE_USER
from app.schemas.note import NoteCreate
from app.schemas.user import APIKeysUpdate, UserProfileCreate
from app.services.note_service import NoteService
from app.services.session_store import SessionStore
from app.services.user_service import UserService, key_status, to_profile


class TestUserService:

    def setup_method(self):
        self.service = UserService()

    @pytest.mark.asyncio
    async def test_get_or_create_is_idempotent(self, db_session):
        user, created = await self.service.get_or_create(db_session, "user_new")
        again, created_again = await self.service.get_or_create(db_session, "user_new")

        assert created is True
        assert created_again is False
        assert again.id == user.id

    @pytest.mark.asyncio
    async def test_require_unknown_subject(self, db_session):
        with pytest.raises(NotFoundError):
            await self.service.require(db_session, "nobody")

    @pytest.mark.asyncio
    async def test_sync_keeps_values_for_empty_fields(self, db_session):
        await self.service.create_or_sync(
            db_session, "user_a", UserProfileCreate(email="a@example.com", first_name="Ada")
        )
        user, created = await self.service.create_or_sync(
            db_session, "user_a", UserProfileCreate(email="", first_name="Ada L.")
        )

        assert created is False
        assert user.email == "a@example.com"
        assert user.first_name == "Ada L."

    @pytest.mark.asyncio
    async def test_update_and_delete_keys(self, db_session, make_user):
        await make_user("user_a", openai_key=None)

        user = await self.service.update_api_keys(
            db_session, "user_a", APIKeysUpdate(gemini_key="  g-key  ")
        )
        assert user.gemini_key == "g-key"
        assert key_status(user).model_dump() == {"has_openai_key": False, "has_gemini_key": True}

        user = await self.service.delete_api_key(db_session, "user_a", "gemini")
        assert user.gemini_key is None
        assert to_profile(user).has_gemini_key is False

    @pytest.mark.asyncio
    async def test_invalid_key_type(self, db_session, make_user):
        await make_user("user_a")

        with pytest.raises(ValidationError) as exc_info:
            await self.service.delete_api_key(db_session, "user_a", "claude")
        assert exc_info.value.field == "key_type"

    @pytest.mark.asyncio
    async def test_delete_user_cascades(self, db_session, make_user):
        user = await make_user("user_a")
        await NoteService().create(db_session, user.id, NoteCreate(title="T", content="C"))
        store = SessionStore()
        await store.upsert_session(db_session, "s1", user.id, "user_a", "hi", "openai", "m")
        await store.append_message(db_session, "s1", user.id, "user_a", ROLE_USER, "hi", "openai", "m")

        await self.service.delete_user(db_session, "user_a")

        assert await self.service.find(db_session, "user_a") is None
        assert await store.get_session(db_session, "s1") is None
        assert await store.get_history(db_session, "user_a", "s1") == []
