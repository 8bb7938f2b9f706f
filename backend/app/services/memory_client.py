"""
Klara Backend — mem0 Memory Client
====================================

What:  Async client for the mem0 platform REST API (https://api.mem0.ai).
Who:   ConversationService (search + detached writes), NoteUpdateService
       (session history) and the /api/memories routes (list/delete).
How:   Thin wrappers over one shared httpx.AsyncClient. Every method
       raises MemoryServiceError on transport errors, non-2xx statuses and
       undecodable bodies; callers decide whether that is fatal.

Scoping:
    Memories are keyed by the Clerk subject (`clerk_id`), never by the
    internal database id, so memories survive a user row being recreated.
    `run_id` is the chat session id.

Endpoints used:
    POST   /v2/memories/search/   semantic search, filtered by user
    POST   /v1/memories/          add (mem0 infers facts from the message)
    POST   /v2/memories/          list with filters, paged (?page=&page_size=)
    GET    /v1/memories/{id}/     get one
    DELETE /v1/memories/{id}/     delete one
    DELETE /v1/batch/             delete many
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from app.config import settings
from app.database import utcnow
from app.exceptions import MemoryServiceError
from app.schemas.memory import MemoryRecord

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100
MAX_LIST_PAGES = 50


class MemoryClient:
    """mem0 REST client. Safe to share across concurrent requests."""

    def __init__(
        self,
        api_key: str,
        http_client: httpx.AsyncClient,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._api_key = api_key
        self._client = http_client
        self._base_url = (base_url or settings.mem0_base_url).rstrip("/")
        self._timeout = timeout or settings.memory_timeout_seconds

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    # ── Transport ─────────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Any:
        if not self._api_key:
            raise MemoryServiceError("Memory service is not configured (MEM0_API_KEY unset)")

        try:
            response = await self._client.request(
                method,
                f"{self._base_url}{path}",
                json=payload,
                params=params,
                headers={"Authorization": f"Token {self._api_key}"},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("mem0 %s %s failed: %s", method, path, type(e).__name__)
            raise MemoryServiceError(
                f"Memory service request failed: {type(e).__name__}",
                context={"method": method, "path": path},
            )

        if response.status_code >= 400:
            logger.warning("mem0 %s %s returned HTTP %d", method, path, response.status_code)
            raise MemoryServiceError(
                f"Memory service returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
                context={"method": method, "path": path},
            )

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            raise MemoryServiceError(
                "Memory service returned a non-JSON body",
                status_code=response.status_code,
                body=response.text,
            )

    @staticmethod
    def _records(data: Any) -> List[MemoryRecord]:
        """mem0 answers with either a bare list or {"results": [...]}."""
        if isinstance(data, dict):
            data = data.get("results", [])
        if not isinstance(data, list):
            raise MemoryServiceError("Unexpected memory list payload")
        try:
            return [MemoryRecord.model_validate(item) for item in data]
        except ValueError as e:
            raise MemoryServiceError(f"Malformed memory record: {e}")

    # ── Core operations ───────────────────────────────────────────────────

    async def search(self, user_id: str, query: str, top_k: int = 5) -> List[MemoryRecord]:
        """Semantic search over one user's memories, re-ranked by mem0."""
        data = await self._request(
            "POST",
            "/v2/memories/search/",
            {
                "query": query,
                "filters": {"user_id": user_id},
                "top_k": top_k,
                "rerank": True,
            },
        )
        records = self._records(data)
        logger.debug("mem0 search returned %d memories", len(records))
        return records

    async def add_chat_memory(self, user_id: str, session_id: str, content: str, role: str) -> Any:
        """
        Stores one chat message. mem0 extracts the salient facts itself
        (`infer: true`), so one message may yield zero or several memories.
        """
        return await self._request(
            "POST",
            "/v1/memories/",
            {
                "messages": [{"role": role, "content": content}],
                "user_id": user_id,
                "run_id": session_id,
                "metadata": {
                    "session_id": session_id,
                    "timestamp": utcnow().isoformat(),
                },
                "infer": True,
                "version": "v2",
            },
        )

    async def _list_page(
        self, filters: Dict[str, Any], page: int, page_size: int
    ) -> Tuple[List[MemoryRecord], bool]:
        """One page of the filtered listing, plus whether mem0 links a next page."""
        data = await self._request(
            "POST",
            "/v2/memories/",
            {"filters": filters},
            params={"page": page, "page_size": page_size},
        )
        has_next = isinstance(data, dict) and bool(data.get("next"))
        return self._records(data), has_next

    async def get_memories(self, filters: Dict[str, Any]) -> List[MemoryRecord]:
        """Every memory matching `filters`, following pages until `next` is empty."""
        records: List[MemoryRecord] = []
        for page in range(1, MAX_LIST_PAGES + 1):
            batch, has_next = await self._list_page(filters, page, LIST_PAGE_SIZE)
            records.extend(batch)
            if not has_next:
                return records
        logger.warning("mem0 listing stopped after %d pages (%d memories)", MAX_LIST_PAGES, len(records))
        return records

    async def get_memory(self, memory_id: str) -> MemoryRecord:
        data = await self._request("GET", f"/v1/memories/{memory_id}/")
        try:
            return MemoryRecord.model_validate(data)
        except ValueError as e:
            raise MemoryServiceError(f"Malformed memory record: {e}")

    async def delete_memory(self, memory_id: str) -> None:
        await self._request("DELETE", f"/v1/memories/{memory_id}/")

    async def batch_delete(self, memory_ids: List[str]) -> None:
        await self._request("DELETE", "/v1/batch/", {"memory_ids": memory_ids})

    # ── Convenience ───────────────────────────────────────────────────────

    async def get_user_memories(self, user_id: str) -> List[MemoryRecord]:
        return await self.get_memories({"user_id": user_id})

    async def get_session_memories(
        self, user_id: str, session_id: str, limit: int = 10
    ) -> List[MemoryRecord]:
        """
        Memories written during one chat session, by exact `run_id` match.

        Only the first page is requested, sized to `limit`; the slice
        guards against a server that ignores `page_size`.
        """
        records, _ = await self._list_page(
            {"AND": [{"user_id": user_id}, {"run_id": session_id}]}, page=1, page_size=limit
        )
        return records[:limit]
