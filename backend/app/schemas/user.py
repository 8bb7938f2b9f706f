"""
Klara Backend — User Request/Response Schemas
===============================================

Stored provider keys are never returned; responses expose only
`has_openai_key` / `has_gemini_key`.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.note import NoteResponse


class UserProfileCreate(BaseModel):
    """Profile fields the client may sync from Clerk. The subject comes from the token."""
    email: str = Field(default="", max_length=320)
    username: str = Field(default="", max_length=255)
    first_name: str = Field(default="", max_length=255)
    last_name: str = Field(default="", max_length=255)


class APIKeysUpdate(BaseModel):
    """Empty or omitted keys leave the stored value unchanged."""
    openai_key: Optional[str] = None
    gemini_key: Optional[str] = None


class APIKeyStatus(BaseModel):
    has_openai_key: bool
    has_gemini_key: bool


class UserProfileResponse(BaseModel):
    id: uuid.UUID
    clerk_id: str
    email: str
    username: str
    first_name: str
    last_name: str
    has_openai_key: bool
    has_gemini_key: bool
    created_at: datetime
    updated_at: datetime


class APIKeysUpdateResponse(BaseModel):
    message: str
    api_key_status: APIKeyStatus


class UserWithNotesResponse(BaseModel):
    user: UserProfileResponse
    notes: List[NoteResponse]
