"""
Klara Backend — Detached Background Tasks
===========================================

What:  Fire-and-forget scheduling for work that must not delay a response.
Who:   ConversationService, for the post-turn memory writes.

asyncio keeps only weak references to tasks, so a task nobody holds can be
garbage-collected mid-flight. `_pending` holds a strong reference until the
task finishes; the done-callback drops it and logs any failure.

Tasks are never awaited, cancelled or retried by the request that spawned
them. Work still pending at process exit is lost.
"""

import asyncio
import logging
from typing import Coroutine, Set

logger = logging.getLogger(__name__)

_pending: Set["asyncio.Task[object]"] = set()


def _on_done(task: "asyncio.Task[object]") -> None:
    _pending.discard(task)
    if task.cancelled():
        logger.warning("Background task %s was cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.error(
            "Background task %s failed: %s",
            task.get_name(),
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


def spawn_detached(coro: Coroutine, name: str) -> "asyncio.Task[object]":
    """Schedules `coro` on the running loop and returns immediately."""
    task = asyncio.create_task(coro, name=name)
    _pending.add(task)
    task.add_done_callback(_on_done)
    return task


def pending_tasks() -> Set["asyncio.Task[object]"]:
    """Snapshot of tasks still running (used by shutdown logging and tests)."""
    return set(_pending)
