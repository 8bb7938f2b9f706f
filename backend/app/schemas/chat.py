"""
Klara Backend — Chat Request/Response Schemas
===============================================

What:  Pydantic models for /api/chat.

Field naming:
    `model` on ChatRequest is the PROVIDER TAG ("openai" | "gemini"), kept as
    a plain string so an unsupported tag reaches the conversation service
    and is rejected there as a 400 validation error (not a 422 schema error).
    `model_name` optionally picks a concrete model id; when omitted the
    configured default for the provider is used.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.memory import MemoryRecord


# ══════════════════════════════════════════════════════════════════════════
# Request Models
# ══════════════════════════════════════════════════════════════════════════


class ChatRequest(BaseModel):
    session_id: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Existing session id. Omit to start a new session.",
    )
    message: str = Field(min_length=1)
    model: str = Field(description="Provider tag: 'openai' or 'gemini'")
    model_name: Optional[str] = Field(default=None, max_length=255)


class UpdateNoteRequest(BaseModel):
    """Rewrite a note from the memories of one chat session."""
    note_id: str
    session_id: str = Field(min_length=1, max_length=255)
    model: str = Field(description="Provider tag: 'openai' or 'gemini'")
    model_name: Optional[str] = Field(default=None, max_length=255)
    prompt: Optional[str] = Field(default=None, description="Extra instruction placed above the built-in one")


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class ChatResponse(BaseModel):
    session_id: str
    message: str
    role: str = "assistant"
    provider: str
    model: str
    memories: List[MemoryRecord] = Field(
        default_factory=list, description="Memories that were used as context"
    )
    created_at: datetime


class ChatSessionResponse(BaseModel):
    session_id: str
    title: str
    provider: str
    model: str
    message_count: int
    last_activity: datetime
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ChatMessageResponse(BaseModel):
    session_id: str
    role: str
    content: str
    provider: str
    model: str
    memory_ids: Optional[List[str]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ChatSessionListResponse(BaseModel):
    sessions: List[ChatSessionResponse]


class ChatHistoryResponse(BaseModel):
    session_id: str
    messages: List[ChatMessageResponse]


class UpdatedNote(BaseModel):
    id: str
    title: str
    content: str
    updated_at: datetime


class UpdateNoteResponse(BaseModel):
    message: str
    note: UpdatedNote
