"""
Klara Backend — Chat Session & Message Models
===============================================

What:  ORM models for `chat_sessions` and `chat_messages`.

ChatSession:
    One row per `session_id`. The id is chosen by the client (or generated
    as a uuid4 string on the first turn), so it is a unique string column
    rather than the primary key. Upserted on every turn: inserted with
    message_count=1, afterwards message_count += 1 and last_activity bumped.

    message_count counts TURNS (user messages), not rows in chat_messages.
    A session with 2 turns has message_count == 2 and 4 message rows.

ChatMessage:
    Append-only transcript. Never updated; deleted only together with its
    session. `clerk_id` is denormalized so history queries need no join.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


class ChatSession(Base):
    __tablename__ = "chat_sessions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    clerk_id: Mapped[str] = mapped_column(String(255), nullable=False)

    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # What: provider tag and model id of the turn that created the session
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_chat_sessions_clerk_activity", "clerk_id", last_activity.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<ChatSession(session_id='{self.session_id}', "
            f"message_count={self.message_count})>"
        )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    clerk_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # "user" | "assistant"
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)

    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    model: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Ids of memory records that were used as context for this message
    memory_ids: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_chat_messages_session_created", "session_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<ChatMessage(session_id='{self.session_id}', role='{self.role}')>"
