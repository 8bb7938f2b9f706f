"""
Klara Backend — User Service
==============================

What:  Profile and provider-credential management for Clerk subjects.
Who:   /api/user routes, plus ConversationService / note routes for the
       user lookup that precedes every chat turn.

Lifecycle:
    A user row is created either explicitly (POST /api/user/profile, which
    also syncs name/email) or implicitly the first time GET /api/user/profile
    or a note endpoint is called. Chat endpoints never create users: a
    subject without a profile cannot have an API key yet.

Credentials:
    Keys are stored as given and only ever leave this module through
    `User.api_key_for()` on their way to a provider call.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.exceptions import DatabaseError, NotFoundError, ValidationError
from app.models.chat import ChatMessage, ChatSession
from app.models.note import Note
from app.models.user import User
from app.schemas.note import NoteResponse
from app.schemas.user import (
    APIKeysUpdate,
    APIKeyStatus,
    UserProfileCreate,
    UserProfileResponse,
    UserWithNotesResponse,
)
from app.services.providers import Provider

logger = logging.getLogger(__name__)


def to_profile(user: User) -> UserProfileResponse:
    return UserProfileResponse(
        id=user.id,
        clerk_id=user.clerk_id,
        email=user.email,
        username=user.username,
        first_name=user.first_name,
        last_name=user.last_name,
        has_openai_key=bool(user.openai_key),
        has_gemini_key=bool(user.gemini_key),
        created_at=user.created_at,
        updated_at=user.updated_at,
    )


def key_status(user: User) -> APIKeyStatus:
    return APIKeyStatus(has_openai_key=bool(user.openai_key), has_gemini_key=bool(user.gemini_key))


class UserService:
    """Stateless; every method takes the request's AsyncSession."""

    async def find(self, db: AsyncSession, clerk_id: str) -> Optional[User]:
        try:
            result = await db.execute(select(User).where(User.clerk_id == clerk_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("User lookup failed: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "find_user"})

    async def require(self, db: AsyncSession, clerk_id: str) -> User:
        """
        Raises:
            NotFoundError: no profile exists for this subject
        """
        user = await self.find(db, clerk_id)
        if user is None:
            raise NotFoundError(
                resource="user profile",
                context={"hint": "Create your profile first (POST /api/user/profile)"},
            )
        return user

    async def get_or_create(self, db: AsyncSession, clerk_id: str) -> Tuple[User, bool]:
        """Returns (user, created)."""
        user = await self.find(db, clerk_id)
        if user is not None:
            return user, False

        now = utcnow()
        user = User(clerk_id=clerk_id, created_at=now, updated_at=now)
        try:
            async with db.begin_nested():
                db.add(user)
        except IntegrityError:
            # a concurrent request created the same subject first
            return await self.require(db, clerk_id), False
        except SQLAlchemyError as e:
            logger.error("Creating user failed: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "create_user"})

        logger.info("Created user %s for new subject", user.id)
        return user, True

    async def create_or_sync(
        self, db: AsyncSession, clerk_id: str, profile: UserProfileCreate
    ) -> Tuple[User, bool]:
        """
        Creates the profile, or refreshes its name/email fields if it exists.
        Empty fields in `profile` leave stored values untouched.
        """
        user, created = await self.get_or_create(db, clerk_id)
        for field_name in ("email", "username", "first_name", "last_name"):
            value = getattr(profile, field_name)
            if value:
                setattr(user, field_name, value)
        user.updated_at = utcnow()
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Syncing profile failed: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "sync_user"})
        return user, created

    async def update_api_keys(self, db: AsyncSession, clerk_id: str, keys: APIKeysUpdate) -> User:
        user = await self.require(db, clerk_id)
        if keys.openai_key:
            user.openai_key = keys.openai_key.strip()
        if keys.gemini_key:
            user.gemini_key = keys.gemini_key.strip()
        user.updated_at = utcnow()
        await db.flush()
        logger.info(
            "Updated API keys for user %s (openai=%s, gemini=%s)",
            user.id, bool(keys.openai_key), bool(keys.gemini_key),
        )
        return user

    async def delete_api_key(self, db: AsyncSession, clerk_id: str, key_type: str) -> User:
        """
        Raises:
            ValidationError: `key_type` is not a provider tag
        """
        try:
            provider = Provider(key_type)
        except ValueError:
            raise ValidationError(
                message="Invalid key type. Must be 'openai' or 'gemini'",
                field="key_type",
                context={"received": key_type},
            )

        user = await self.require(db, clerk_id)
        if provider is Provider.OPENAI:
            user.openai_key = None
        else:
            user.gemini_key = None
        user.updated_at = utcnow()
        await db.flush()
        logger.info("Removed %s API key for user %s", provider.value, user.id)
        return user

    async def get_with_notes(self, db: AsyncSession, clerk_id: str) -> UserWithNotesResponse:
        user, _ = await self.get_or_create(db, clerk_id)
        result = await db.execute(
            select(Note).where(Note.user_id == user.id).order_by(Note.updated_at.desc())
        )
        notes = [NoteResponse.model_validate(n) for n in result.scalars().all()]
        return UserWithNotesResponse(user=to_profile(user), notes=notes)

    async def delete_user(self, db: AsyncSession, clerk_id: str) -> None:
        """
        Deletes the profile with its notes and chat history.

        Memories in mem0 are keyed by the Clerk subject and are left alone;
        they can still be removed through /api/memories.
        """
        user = await self.require(db, clerk_id)
        try:
            await db.execute(delete(ChatMessage).where(ChatMessage.clerk_id == clerk_id))
            await db.execute(delete(ChatSession).where(ChatSession.clerk_id == clerk_id))
            await db.execute(delete(Note).where(Note.user_id == user.id))
            await db.delete(user)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Deleting user %s failed: %s", user.id, type(e).__name__)
            raise DatabaseError(context={"operation": "delete_user"})
        logger.info("Deleted user %s", user.id)


user_service = UserService()
