"""
Klara Backend — User SQLAlchemy Model
=======================================

What:  ORM model for the `users` table.
How:   One row per Clerk subject. Created lazily the first time an
       authenticated subject touches a user-scoped endpoint.

Provider credentials:
    `openai_key` and `gemini_key` hold the user's own provider API keys.
    They are read by the conversation service for a single outbound call and
    are never serialized into a response (the profile only exposes
    `has_openai_key` / `has_gemini_key`).
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base, utcnow


class User(Base):
    """A Klara account, keyed externally by `clerk_id`."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # What: `sub` claim of the Clerk session token
    clerk_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)

    email: Mapped[str] = mapped_column(String(320), nullable=False, default="")
    username: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    openai_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)
    gemini_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def api_key_for(self, provider: str) -> Optional[str]:
        """Returns the stored key for a provider tag, or None when unset or empty."""
        key = {"openai": self.openai_key, "gemini": self.gemini_key}.get(provider)
        return key or None

    def __repr__(self) -> str:
        return f"<User(id={self.id}, clerk_id='{self.clerk_id}')>"
