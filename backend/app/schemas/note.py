"""
Klara Backend — Note Request/Response Schemas
===============================================

What:  Pydantic models for the /api/notes endpoints.

Design Decision:
    Schemas are separate from the SQLAlchemy models so the API never leaks
    internal columns and request validation can be stricter than the table
    (title and content are required on create, optional on update).
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class NoteCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    content: str = Field(min_length=1)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v


class NoteUpdate(BaseModel):
    """
    Partial update. Omitted or empty fields are left untouched, so a client
    cannot blank a note by sending `{"content": ""}`.
    """
    title: Optional[str] = Field(default=None, max_length=500)
    content: Optional[str] = None


class ApplySuggestionRequest(BaseModel):
    """
    What:  Overwrites title and/or content with text the user accepted from
           a note-chat suggestion.
    Rule:  At least one of the two must be non-empty.
    """
    new_title: Optional[str] = Field(default=None, max_length=500)
    new_content: Optional[str] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "ApplySuggestionRequest":
        if not self.new_title and not self.new_content:
            raise ValueError("At least one of new_title or new_content must be provided")
        return self


class NoteChatRequest(BaseModel):
    """
    Chat about one note.

    `provider` selects the API ("openai" | "gemini"), `model` the concrete
    model id (e.g. "gpt-4o-mini", "gemini-1.5-flash").
    """
    message: str = Field(min_length=1)
    model: str = Field(min_length=1, description="Provider-specific model id")
    provider: str = Field(description="'openai' or 'gemini'")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class NoteResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    title: str
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NoteListResponse(BaseModel):
    notes: List[NoteResponse]
    total_count: int


class NoteChatResponse(BaseModel):
    """
    `suggestion` repeats the reply so the UI can offer it to apply-suggestion.
    `note_context` is "<title>: <content>" of the note the reply was based on.
    """
    message: str
    model: str
    note_context: str
    suggestion: Optional[str] = None
