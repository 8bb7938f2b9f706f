"""
Klara Backend — Services Layer
================================

Service Inventory:
    - providers:            ProviderAdapter over OpenAI-style and Gemini-style APIs
    - memory_client:        MemoryClient over the mem0 REST API
    - prompts:              context assembly and prompt templates (pure)
    - background:           detached tasks for post-turn memory writes
    - session_store:        chat sessions and the message log
    - conversation_service: the chat turn orchestrator
    - note_update_service:  AI note rewrite from a chat session
    - note_service:         note CRUD scoped by owner
    - user_service:         profiles and provider keys

Database-backed services are stateless singletons that take the request's
AsyncSession. Services holding HTTP clients are built in the app lifespan.
"""
