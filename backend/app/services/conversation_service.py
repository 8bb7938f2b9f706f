"""
Klara Backend — Conversation Service (Chat Turn Orchestrator)
===============================================================

What:  Runs one chat turn: memory retrieval, provider call, persistence,
       and the detached write-back of the turn into long-term memory.
Who:   POST /api/chat and POST /api/notes/{id}/chat.

Orchestration Flow (run_turn):
    ┌──────────┐   ┌──────────┐   ┌──────────────┐   ┌──────────┐   ┌──────────┐
    │ Validate │──▶│ Persist  │──▶│ Search mem0  │──▶│ Provider │──▶│ Persist  │
    │ tag, key │   │ session +│   │ (failure →   │   │ call     │   │ assistant│
    │          │   │ user msg │   │  no context) │   │          │   │ message  │
    └──────────┘   └──────────┘   └──────────────┘   └──────────┘   └──────────┘
                                                           │
                                                           └──▶ detached: add user
                                                                 msg + reply to mem0

    Validation happens before anything touches the database or network: an
    unsupported provider tag or a missing key leaves no trace.

    The user's message is committed BEFORE the provider call, so a failed
    call still shows the question in the session history.

    Memory writes are fire-and-forget. The response does not wait for them,
    so the next turn's search may not see this turn yet.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import utcnow
from app.exceptions import LLMServiceError, MemoryServiceError, MissingAPIKeyError, ProviderCallError
from app.models.chat import ROLE_ASSISTANT, ROLE_USER
from app.models.user import User
from app.schemas.chat import ChatRequest, ChatResponse
from app.schemas.note import NoteChatRequest, NoteChatResponse
from app.services.background import spawn_detached
from app.services.memory_client import MemoryClient
from app.services.note_service import NoteService, note_service, parse_note_id
from app.services.prompts import build_context, build_note_chat_prompt
from app.services.providers import Provider, ProviderAdapter, default_model
from app.services.session_store import SessionStore, session_store
from app.services.user_service import UserService, user_service

logger = logging.getLogger(__name__)


def resolve_api_key(user: User, provider: Provider) -> str:
    """
    Raises:
        MissingAPIKeyError: the user stored no key for `provider`
    """
    api_key = user.api_key_for(provider.value)
    if not api_key:
        raise MissingAPIKeyError(provider.value)
    return api_key


class ConversationService:
    """
    Built once per process in the application lifespan with the shared
    provider adapter and memory client; stateless across requests.
    """

    def __init__(
        self,
        adapter: ProviderAdapter,
        memory: MemoryClient,
        sessions: SessionStore = session_store,
        users: UserService = user_service,
        notes: NoteService = note_service,
    ):
        self.adapter = adapter
        self.memory = memory
        self.sessions = sessions
        self.users = users
        self.notes = notes

    # ── Core turn (no database) ───────────────────────────────────────────

    async def chat_with_ai(
        self,
        user_id: str,
        clerk_id: str,
        session_id: str,
        message: str,
        provider: Provider,
        model: Optional[str],
        api_key: str,
    ) -> ChatResponse:
        """
        Retrieve context → call provider → schedule memory write-back.

        Raises:
            LLMServiceError: the provider call failed (detail only in logs)
        """
        try:
            memories = await self.memory.search(clerk_id, message, top_k=settings.chat_memory_top_k)
        except MemoryServiceError as e:
            logger.warning(
                "Memory search failed for session %s, continuing without context: %s",
                session_id, e.message,
            )
            memories = []

        context = build_context(memories)
        model = model or default_model(provider)

        try:
            reply = await self.adapter.complete(provider, message, context, model, api_key)
        except ProviderCallError as e:
            logger.error(
                "AI call failed for user %s session %s: %s | %s",
                user_id, session_id, e.message, e.context,
            )
            raise LLMServiceError(message="AI service failed", context={"provider": provider.value})

        if self.memory.configured:
            spawn_detached(
                self._remember_turn(clerk_id, session_id, message, reply),
                name=f"mem0-write-{session_id}",
            )

        return ChatResponse(
            session_id=session_id,
            message=reply,
            role=ROLE_ASSISTANT,
            provider=provider.value,
            model=model,
            memories=memories,
            created_at=utcnow(),
        )

    async def _remember_turn(self, clerk_id: str, session_id: str, message: str, reply: str) -> None:
        """User message first, then the reply; each failure is logged and dropped."""
        for role, content in ((ROLE_USER, message), (ROLE_ASSISTANT, reply)):
            try:
                await self.memory.add_chat_memory(clerk_id, session_id, content, role)
            except MemoryServiceError as e:
                logger.warning("Storing %s message of session %s in memory failed: %s", role, session_id, e.message)

    # ── Persistent chat turn ──────────────────────────────────────────────

    async def run_turn(self, db: AsyncSession, clerk_id: str, request: ChatRequest) -> ChatResponse:
        """
        POST /api/chat.

        Raises:
            ValidationError:    unsupported provider tag (nothing touched)
            NotFoundError:      no profile for this subject
            MissingAPIKeyError: no key for the provider (nothing persisted)
            LLMServiceError:    provider failed (user message stays persisted)
        """
        provider = Provider.parse(request.model)
        user = await self.users.require(db, clerk_id)
        api_key = resolve_api_key(user, provider)

        session_id = request.session_id or str(uuid.uuid4())
        model = request.model_name or default_model(provider)

        await self.sessions.upsert_session(
            db, session_id, user.id, clerk_id, request.message, provider.value, model
        )
        await self.sessions.append_message(
            db, session_id, user.id, clerk_id, ROLE_USER, request.message, provider.value, model
        )
        await db.commit()

        response = await self.chat_with_ai(
            str(user.id), clerk_id, session_id, request.message, provider, model, api_key
        )

        await self.sessions.append_message(
            db,
            session_id,
            user.id,
            clerk_id,
            ROLE_ASSISTANT,
            response.message,
            provider.value,
            model,
            memory_ids=[m.id for m in response.memories],
        )
        logger.info(
            "Chat turn done: session=%s provider=%s model=%s memories=%d",
            session_id, provider.value, model, len(response.memories),
        )
        return response

    # ── Note chat ─────────────────────────────────────────────────────────

    async def chat_about_note(
        self, db: AsyncSession, clerk_id: str, note_id: str, request: NoteChatRequest
    ) -> NoteChatResponse:
        """
        POST /api/notes/{id}/chat. Not recorded in the session tables; the
        exchange only reaches long-term memory, under session "note-<id>".
        """
        provider = Provider.parse(request.provider)
        user = await self.users.require(db, clerk_id)
        note = await self.notes.get_owned(db, user.id, parse_note_id(note_id))
        api_key = resolve_api_key(user, provider)

        prompt = build_note_chat_prompt(note.title, note.content, request.message)
        response = await self.chat_with_ai(
            str(user.id),
            clerk_id,
            f"note-{note.id}",
            prompt,
            provider,
            request.model,
            api_key,
        )
        return NoteChatResponse(
            message=response.message,
            model=provider.value,
            note_context=f"{note.title}: {note.content}",
            suggestion=response.message,
        )
