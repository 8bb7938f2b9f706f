"""
Klara Backend — Chat Routes
=============================

Endpoints:
    POST   /api/chat                         one chat turn
    GET    /api/chat/sessions                own sessions, most recent first
    GET    /api/chat/sessions/{session_id}   message history, oldest first
    DELETE /api/chat/sessions/{session_id}   session and its messages
    POST   /api/chat/update-note             rewrite a note from a session

Routes stay thin; ConversationService and NoteUpdateService own the flow
and raise the exceptions the global handlers map to status codes.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth import get_current_subject
from app.database import get_db_session
from app.dependencies import get_conversation_service, get_note_update_service
from app.schemas.chat import (
    ChatHistoryResponse,
    ChatMessageResponse,
    ChatRequest,
    ChatResponse,
    ChatSessionListResponse,
    ChatSessionResponse,
    UpdatedNote,
    UpdateNoteRequest,
    UpdateNoteResponse,
)
from app.schemas.common import MessageResponse, error_responses
from app.services.conversation_service import ConversationService
from app.services.note_update_service import NoteUpdateService
from app.services.session_store import session_store

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/chat",
    tags=["Chat"],
    responses=error_responses(400, 401, 404, 500, 503),
)


@router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
    conversations: ConversationService = Depends(get_conversation_service),
) -> ChatResponse:
    return await conversations.run_turn(db, clerk_id, body)


@router.get("/sessions", response_model=ChatSessionListResponse)
async def list_sessions(
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> ChatSessionListResponse:
    sessions = await session_store.list_sessions(db, clerk_id)
    return ChatSessionListResponse(
        sessions=[ChatSessionResponse.model_validate(s) for s in sessions]
    )


@router.get("/sessions/{session_id}", response_model=ChatHistoryResponse)
async def get_session_history(
    session_id: str,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> ChatHistoryResponse:
    messages = await session_store.get_history(db, clerk_id, session_id)
    return ChatHistoryResponse(
        session_id=session_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def delete_session(
    session_id: str,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await session_store.delete_session(db, clerk_id, session_id)
    return MessageResponse(message="Chat session deleted successfully")


@router.post("/update-note", response_model=UpdateNoteResponse)
async def update_note_with_chat(
    body: UpdateNoteRequest,
    clerk_id: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
    updater: NoteUpdateService = Depends(get_note_update_service),
) -> UpdateNoteResponse:
    note = await updater.rewrite(db, clerk_id, body)
    return UpdateNoteResponse(
        message="Note updated successfully with AI assistance",
        note=UpdatedNote(
            id=str(note.id),
            title=note.title,
            content=note.content,
            updated_at=note.updated_at,
        ),
    )
