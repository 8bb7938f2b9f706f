"""
Klara Backend — Note SQLAlchemy Model
=======================================

What:  ORM model for the `notes` table.
Who:   NoteService (CRUD, apply-suggestion) and the update-note route
       (full content replacement after an AI rewrite).

Every query against this table filters on BOTH `id` and `user_id`;
there is no code path that loads a note by id alone.

Index on (user_id, updated_at DESC):
    Serves the notes list ("my notes, most recently edited first").
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class Note(Base):
    """A user's note. Concurrent edits are last-write-wins."""

    __tablename__ = "notes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(500), nullable=False)

    # Markdown (headings, lists, code blocks); AI rewrites must preserve it
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_notes_user_updated", "user_id", updated_at.desc()),
    )

    def __repr__(self) -> str:
        return f"<Note(id={self.id}, user_id={self.user_id}, title='{self.title[:30]}')>"
