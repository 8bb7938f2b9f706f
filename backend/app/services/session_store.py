"""
Klara Backend — Chat Session & Message Store
==============================================

What:  Persistence for chat sessions (one summary row per session id) and
       the append-only message log.
Who:   ConversationService writes; the /api/chat/sessions routes read and delete.

Consistency:
    The session row and the message rows are two independent writes with
    no transactional link between them beyond the request's session.
    The upsert is read-then-write without a lock: two concurrent turns on
    the same session id may both read message_count == n and both write
    n + 1. Accepted for a single user typing into one chat window.

Design Decision:
    Stateless like the other services; the caller passes the AsyncSession.
    Methods flush but never commit; the conversation service commits at the
    points where a write must outlive a later failure.
"""

import logging
import uuid
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import utcnow
from app.exceptions import DatabaseError, NotFoundError
from app.models.chat import ChatMessage, ChatSession

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50
TITLE_ELLIPSIS = "..."


def derive_session_title(first_message: str) -> str:
    """
    Title of a new session: the first message, cut to 50 characters.

    Longer messages keep their first 47 characters plus "...", so the
    title is never longer than 50.
    """
    if len(first_message) <= TITLE_MAX_LENGTH:
        return first_message
    return first_message[: TITLE_MAX_LENGTH - len(TITLE_ELLIPSIS)] + TITLE_ELLIPSIS


class SessionStore:
    """Data access for chat_sessions and chat_messages."""

    async def get_session(self, db: AsyncSession, session_id: str) -> Optional[ChatSession]:
        result = await db.execute(select(ChatSession).where(ChatSession.session_id == session_id))
        return result.scalar_one_or_none()

    async def upsert_session(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: uuid.UUID,
        clerk_id: str,
        first_message: str,
        provider: str,
        model: str,
    ) -> ChatSession:
        """
        Records one turn on a session.

        Existing session: message_count += 1, last_activity/updated_at = now.
        New session: inserted with message_count == 1 and a title derived
        from `first_message`.

        Raises:
            NotFoundError: the id belongs to another user's session
            DatabaseError: the query or flush failed
        """
        try:
            session = await self.get_session(db, session_id)
            now = utcnow()

            if session is not None:
                if session.clerk_id != clerk_id:
                    # another user's session
                    raise NotFoundError(resource="chat session", resource_id=session_id)
                session.message_count += 1
                session.last_activity = now
                session.updated_at = now
                await db.flush()
                logger.debug("Session %s now has %d turns", session_id, session.message_count)
                return session

            session = ChatSession(
                session_id=session_id,
                user_id=user_id,
                clerk_id=clerk_id,
                title=derive_session_title(first_message),
                provider=provider,
                model=model,
                message_count=1,
                last_activity=now,
                created_at=now,
                updated_at=now,
            )
            db.add(session)
            await db.flush()
            logger.info("Created chat session %s", session_id)
            return session

        except NotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error("Session upsert failed for %s: %s", session_id, type(e).__name__)
            raise DatabaseError(context={"session_id": session_id, "operation": "upsert_session"})

    async def append_message(
        self,
        db: AsyncSession,
        session_id: str,
        user_id: uuid.UUID,
        clerk_id: str,
        role: str,
        content: str,
        provider: str,
        model: str,
        memory_ids: Optional[List[str]] = None,
    ) -> ChatMessage:
        message = ChatMessage(
            session_id=session_id,
            user_id=user_id,
            clerk_id=clerk_id,
            role=role,
            content=content,
            provider=provider,
            model=model,
            memory_ids=memory_ids or None,
            created_at=utcnow(),
        )
        try:
            db.add(message)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Appending %s message to %s failed: %s", role, session_id, type(e).__name__)
            raise DatabaseError(context={"session_id": session_id, "operation": "append_message"})
        return message

    async def list_sessions(self, db: AsyncSession, clerk_id: str) -> List[ChatSession]:
        """The caller's sessions, most recently active first."""
        try:
            result = await db.execute(
                select(ChatSession)
                .where(ChatSession.clerk_id == clerk_id)
                .order_by(ChatSession.last_activity.desc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Listing sessions failed: %s", type(e).__name__)
            raise DatabaseError(context={"operation": "list_sessions"})

    async def get_history(
        self, db: AsyncSession, clerk_id: str, session_id: str
    ) -> List[ChatMessage]:
        """
        Messages of one session in the order they were written.

        An unknown session (or another user's) simply yields an empty list,
        matching how a brand-new session looks before its first turn.
        """
        try:
            result = await db.execute(
                select(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .where(ChatMessage.clerk_id == clerk_id)
                .order_by(ChatMessage.created_at.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Loading history of %s failed: %s", session_id, type(e).__name__)
            raise DatabaseError(context={"session_id": session_id, "operation": "get_history"})

    async def delete_session(self, db: AsyncSession, clerk_id: str, session_id: str) -> int:
        """
        Deletes the session's messages, then the session row.

        Returns the number of messages removed.

        Raises:
            NotFoundError: the caller owns no session with this id
        """
        try:
            messages = await db.execute(
                delete(ChatMessage)
                .where(ChatMessage.session_id == session_id)
                .where(ChatMessage.clerk_id == clerk_id)
            )
            sessions = await db.execute(
                delete(ChatSession)
                .where(ChatSession.session_id == session_id)
                .where(ChatSession.clerk_id == clerk_id)
            )
        except SQLAlchemyError as e:
            logger.error("Deleting session %s failed: %s", session_id, type(e).__name__)
            raise DatabaseError(context={"session_id": session_id, "operation": "delete_session"})

        if sessions.rowcount == 0 and messages.rowcount == 0:
            raise NotFoundError(resource="chat session", resource_id=session_id)

        logger.info("Deleted session %s with %d messages", session_id, messages.rowcount)
        return messages.rowcount


session_store = SessionStore()
