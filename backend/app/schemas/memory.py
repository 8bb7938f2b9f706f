"""
Klara Backend — Memory Schemas
================================

What:  Shape of a mem0 memory record plus the /api/memories request/response
       bodies.

`MemoryRecord` tolerates unknown fields (mem0 adds fields without notice)
and missing optional ones. Only `id` and `memory` are guaranteed.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class MemoryRecord(BaseModel):
    """One memory as returned by the mem0 platform API."""
    id: str
    memory: str = ""
    user_id: Optional[str] = None
    agent_id: Optional[str] = None
    app_id: Optional[str] = None
    run_id: Optional[str] = None
    hash: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    categories: Optional[List[str]] = None
    immutable: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"extra": "ignore"}


class MemoryListResponse(BaseModel):
    memories: List[MemoryRecord]
    count: int


class BatchDeleteRequest(BaseModel):
    # mem0 caps batch operations at 1000 ids
    memory_ids: List[str] = Field(min_length=1, max_length=1000)
