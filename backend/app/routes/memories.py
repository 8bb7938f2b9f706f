"""
Klara Backend — Memory Routes
===============================

What:  Lets users see and prune what the assistant remembers about them.

Endpoints:
    GET    /api/memories                 all of the caller's memories
    DELETE /api/memories/{memory_id}     delete one
    POST   /api/memories/batch-delete    delete several

mem0 ids are global, so every delete first loads the record and checks
that its `user_id` is the caller's Clerk subject. A memory owned by
someone else is reported as not found.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from app.auth import get_current_subject
from app.dependencies import get_memory_client
from app.exceptions import MemoryServiceError, NotFoundError
from app.schemas.common import MessageResponse, error_responses
from app.schemas.memory import BatchDeleteRequest, MemoryListResponse
from app.services.memory_client import MemoryClient

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/memories",
    tags=["Memories"],
    responses=error_responses(400, 401, 404, 503),
)


async def _require_owned(memory: MemoryClient, clerk_id: str, memory_id: str) -> None:
    try:
        record = await memory.get_memory(memory_id)
    except MemoryServiceError as e:
        if e.status_code == 404:
            raise NotFoundError(resource="memory", resource_id=memory_id)
        raise
    if record.user_id != clerk_id:
        raise NotFoundError(resource="memory", resource_id=memory_id)


@router.get("", response_model=MemoryListResponse)
async def list_memories(
    clerk_id: str = Depends(get_current_subject),
    memory: MemoryClient = Depends(get_memory_client),
) -> MemoryListResponse:
    records = await memory.get_user_memories(clerk_id)
    return MemoryListResponse(memories=records, count=len(records))


@router.delete("/{memory_id}", response_model=MessageResponse)
async def delete_memory(
    memory_id: str,
    clerk_id: str = Depends(get_current_subject),
    memory: MemoryClient = Depends(get_memory_client),
) -> MessageResponse:
    await _require_owned(memory, clerk_id, memory_id)
    await memory.delete_memory(memory_id)
    logger.info("Deleted memory %s", memory_id)
    return MessageResponse(message="Memory deleted successfully")


@router.post("/batch-delete", response_model=MessageResponse)
async def batch_delete_memories(
    body: BatchDeleteRequest,
    clerk_id: str = Depends(get_current_subject),
    memory: MemoryClient = Depends(get_memory_client),
) -> MessageResponse:
    # one listing instead of one GET per id
    owned = {record.id for record in await memory.get_user_memories(clerk_id)}
    foreign: List[str] = [mid for mid in body.memory_ids if mid not in owned]
    if foreign:
        raise NotFoundError(resource="memory", resource_id=foreign[0])

    await memory.batch_delete(body.memory_ids)
    logger.info("Batch-deleted %d memories", len(body.memory_ids))
    return MessageResponse(message=f"{len(body.memory_ids)} memories deleted successfully")
