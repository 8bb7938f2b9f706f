"""
Klara Backend — Note Service
==============================

What:  CRUD for notes, plus the two write paths fed by AI output:
       apply-suggestion (partial overwrite) and replace_content (full rewrite
       after POST /api/chat/update-note).
Who:   /api/notes routes and the update-note route.

Ownership:
    Every query filters on (note id, user id). A note owned by someone else
    is indistinguishable from a missing one (404).

Design Decision:
    NoteService is stateless; it receives the db session for each call so
    each request keeps its own transaction.
"""

import logging
import uuid
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.exceptions import DatabaseError, NotFoundError, ValidationError
from app.models.note import Note
from app.schemas.note import ApplySuggestionRequest, NoteCreate, NoteListResponse, NoteResponse, NoteUpdate

logger = logging.getLogger(__name__)


def parse_note_id(raw: str) -> uuid.UUID:
    """
    Raises:
        ValidationError: `raw` is not a UUID
    """
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        raise ValidationError(message="Invalid note ID format", field="note_id", context={"received": raw})


class NoteService:
    """
    Business logic layer for note operations.

    Error Handling Strategy:
        NotFoundError and ValidationError propagate as-is. SQLAlchemy errors
        are logged with the operation name and re-raised as DatabaseError,
        which the global handler turns into a generic 500.
    """

    async def get_owned(self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> Note:
        """
        Query plan:
            SELECT * FROM notes WHERE id = :id AND user_id = :user_id
            → primary key lookup, user_id checked on the single row

        Raises:
            NotFoundError: no such note for this user
        """
        try:
            result = await db.execute(
                select(Note).where(Note.id == note_id, Note.user_id == user_id)
            )
            note = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, type(e).__name__)
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    async def create(self, db: AsyncSession, user_id: uuid.UUID, data: NoteCreate) -> Note:
        now = utcnow()
        note = Note(
            user_id=user_id,
            title=data.title,
            content=data.content,
            created_at=now,
            updated_at=now,
        )
        try:
            db.add(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating note: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "create_note"})
        logger.info("Note %s created (%d chars)", note.id, len(note.content))
        return note

    async def list_for_user(self, db: AsyncSession, user_id: uuid.UUID) -> NoteListResponse:
        """The user's notes, most recently edited first."""
        try:
            result = await db.execute(
                select(Note).where(Note.user_id == user_id).order_by(Note.updated_at.desc())
            )
            notes: List[Note] = list(result.scalars().all())
            total = await db.scalar(select(func.count(Note.id)).where(Note.user_id == user_id))
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", type(e).__name__, exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"operation": "list_notes"},
            )
        return NoteListResponse(
            notes=[NoteResponse.model_validate(n) for n in notes],
            total_count=total or 0,
        )

    async def update(
        self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID, data: NoteUpdate
    ) -> Note:
        note = await self.get_owned(db, user_id, note_id)
        if data.title:
            note.title = data.title
        if data.content:
            note.content = data.content
        note.updated_at = utcnow()
        await db.flush()
        return note

    async def apply_suggestion(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        note_id: uuid.UUID,
        suggestion: ApplySuggestionRequest,
    ) -> Note:
        note = await self.get_owned(db, user_id, note_id)
        if suggestion.new_title:
            note.title = suggestion.new_title
        if suggestion.new_content:
            note.content = suggestion.new_content
        note.updated_at = utcnow()
        await db.flush()
        logger.info(
            "Applied suggestion to note %s (title=%s, content=%s)",
            note_id, bool(suggestion.new_title), bool(suggestion.new_content),
        )
        return note

    async def replace_content(
        self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID, content: str
    ) -> Note:
        """
        Full content replacement after an AI rewrite.

        Ownership is checked again here, after the provider call, so a note
        deleted while the model was answering is not resurrected.
        """
        note = await self.get_owned(db, user_id, note_id)
        note.content = content
        note.updated_at = utcnow()
        await db.flush()
        logger.info("Note %s rewritten by AI (%d chars)", note_id, len(content))
        return note

    async def delete(self, db: AsyncSession, user_id: uuid.UUID, note_id: uuid.UUID) -> None:
        note = await self.get_owned(db, user_id, note_id)
        await db.delete(note)
        await db.flush()
        logger.info("Note %s deleted", note_id)


note_service = NoteService()
