"""
Klara Backend — Notes Routes
==============================

What:  CRUD for the caller's notes, apply-suggestion, and note chat.

Endpoints:
    POST   /api/notes                          create
    GET    /api/notes                          list own notes
    GET    /api/notes/{note_id}                get one
    PUT    /api/notes/{note_id}                partial update
    DELETE /api/notes/{note_id}                delete
    POST   /api/notes/{note_id}/apply-suggestion
    POST   /api/notes/{note_id}/chat           ask the AI about this note

The caller's profile is created on first use, so a freshly signed-in user
can start writing notes before ever visiting the profile page.
"""

import logging

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_subject
from app.database import get_db_session
from app.dependencies import get_conversation_service
from app.schemas.common import MessageResponse, error_responses
from app.schemas.note import (
    ApplySuggestionRequest,
    NoteChatRequest,
    NoteChatResponse,
    NoteCreate,
    NoteListResponse,
    NoteResponse,
    NoteUpdate,
)
from app.services.conversation_service import ConversationService
from app.services.note_service import note_service, parse_note_id
from app.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/notes",
    tags=["Notes"],
    responses=error_responses(400, 401, 404, 500, 503),
)


@router.post("", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
async def create_note(
    body: NoteCreate,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    user, _ = await user_service.get_or_create(db, clerk_id)
    note = await note_service.create(db, user.id, body)
    return NoteResponse.model_validate(note)


@router.get("", response_model=NoteListResponse)
async def list_notes(
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> NoteListResponse:
    user, _ = await user_service.get_or_create(db, clerk_id)
    return await note_service.list_for_user(db, user.id)


@router.get("/{note_id}", response_model=NoteResponse)
async def get_note(
    note_id: str,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    user = await user_service.require(db, clerk_id)
    note = await note_service.get_owned(db, user.id, parse_note_id(note_id))
    return NoteResponse.model_validate(note)


@router.put("/{note_id}", response_model=NoteResponse)
async def update_note(
    note_id: str,
    body: NoteUpdate,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    user = await user_service.require(db, clerk_id)
    note = await note_service.update(db, user.id, parse_note_id(note_id), body)
    return NoteResponse.model_validate(note)


@router.delete("/{note_id}", response_model=MessageResponse)
async def delete_note(
    note_id: str,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    user = await user_service.require(db, clerk_id)
    await note_service.delete(db, user.id, parse_note_id(note_id))
    return MessageResponse(message="Note deleted successfully")


@router.post("/{note_id}/apply-suggestion", response_model=NoteResponse)
async def apply_suggestion(
    note_id: str,
    body: ApplySuggestionRequest,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    user = await user_service.require(db, clerk_id)
    note = await note_service.apply_suggestion(db, user.id, parse_note_id(note_id), body)
    return NoteResponse.model_validate(note)


@router.post("/{note_id}/chat", response_model=NoteChatResponse)
async def chat_with_note(
    note_id: str,
    body: NoteChatRequest,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
    conversations: ConversationService = Depends(get_conversation_service),
) -> NoteChatResponse:
    return await conversations.chat_about_note(db, clerk_id, note_id, body)
