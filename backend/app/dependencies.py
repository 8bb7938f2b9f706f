"""
Klara Backend — Service Dependencies
======================================

What:  FastAPI dependencies returning the long-lived service objects.
How:   The lifespan in main.py builds the HTTP clients, the provider adapter,
       the memory client and the two orchestrators once, and stores them on
       `app.state`. These functions hand them to route handlers.

Tests replace them through `app.dependency_overrides`.
"""

from fastapi import Request

from app.services.conversation_service import ConversationService
from app.services.memory_client import MemoryClient
from app.services.note_update_service import NoteUpdateService


def get_memory_client(request: Request) -> MemoryClient:
    return request.app.state.memory_client


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service


def get_note_update_service(request: Request) -> NoteUpdateService:
    return request.app.state.note_update_service
