"""
Klara Backend — Note Update Service (AI Rewrite Orchestrator)
===============================================================

What:  Rewrites a note from what was said in one chat session.
Who:   POST /api/chat/update-note.

Flow:
    1. Load the session's memories from mem0 by exact user + run_id match
    2. Build one prompt: custom instruction, fixed additive-edit rules,
       the current note verbatim, the session context, the task directive
    3. One provider call with no separate context (it is in the prompt)
    4. Return the completion verbatim

`update_note` never writes. `rewrite` wraps it for the route: validation
before any call, then the result is stored with ownership checked again.
Any retrieval or provider error aborts before the note is touched.
"""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.exceptions import LLMServiceError, ProviderCallError
from app.models.note import Note
from app.schemas.chat import UpdateNoteRequest
from app.services.conversation_service import resolve_api_key
from app.services.memory_client import MemoryClient
from app.services.note_service import NoteService, note_service, parse_note_id
from app.services.prompts import build_context, build_note_update_prompt
from app.services.providers import Provider, ProviderAdapter
from app.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)


class NoteUpdateService:

    def __init__(
        self,
        adapter: ProviderAdapter,
        memory: MemoryClient,
        users: UserService = user_service,
        notes: NoteService = note_service,
    ):
        self.adapter = adapter
        self.memory = memory
        self.users = users
        self.notes = notes

    async def update_note(
        self,
        clerk_id: str,
        session_id: str,
        note_id: str,
        current_content: str,
        provider: Provider,
        model: Optional[str],
        api_key: str,
        custom_prompt: Optional[str] = None,
    ) -> str:
        """
        Returns the provider's proposed note content, unmodified.

        Raises:
            MemoryServiceError: session history could not be loaded
            LLMServiceError:    the provider call failed
        """
        memories = await self.memory.get_session_memories(
            clerk_id, session_id, limit=settings.note_update_history_limit
        )
        prompt = build_note_update_prompt(current_content, build_context(memories), custom_prompt)

        try:
            return await self.adapter.complete(provider, prompt, "", model, api_key)
        except ProviderCallError as e:
            logger.error("AI note update failed for note %s: %s | %s", note_id, e.message, e.context)
            raise LLMServiceError(message="AI service failed", context={"provider": provider.value})

    async def rewrite(self, db: AsyncSession, clerk_id: str, request: UpdateNoteRequest) -> Note:
        provider = Provider.parse(request.model)
        user = await self.users.require(db, clerk_id)
        api_key = resolve_api_key(user, provider)
        note_id = parse_note_id(request.note_id)
        note = await self.notes.get_owned(db, user.id, note_id)

        new_content = await self.update_note(
            clerk_id,
            request.session_id,
            str(note_id),
            note.content,
            provider,
            request.model_name,
            api_key,
            request.prompt,
        )
        return await self.notes.replace_content(db, user.id, note_id, new_content)
