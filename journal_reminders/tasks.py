"""Fire-and-forget background tasks.

Tasks are kept in a registry so they are not garbage-collected mid-flight and
so shutdown (and tests) can wait for them. A failing task is logged, never
propagated to whoever spawned it.
"""

import asyncio
import logging
from collections.abc import Coroutine

logger = logging.getLogger(__name__)

_background: set[asyncio.Task] = set()


def spawn(coro: Coroutine, *, name: str | None = None) -> asyncio.Task:
    task = asyncio.get_running_loop().create_task(coro, name=name)
    _background.add(task)
    task.add_done_callback(_on_done)
    return task


def _on_done(task: asyncio.Task) -> None:
    _background.discard(task)
    if task.cancelled():
        logger.warning("Background task %s was cancelled", task.get_name())
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background task %s failed", task.get_name(), exc_info=exc)


def pending() -> list[asyncio.Task]:
    loop = asyncio.get_running_loop()
    return [t for t in _background if not t.done() and t.get_loop() is loop]


async def drain(timeout: float | None = None) -> None:
    """Wait for the background tasks spawned on the running loop."""
    tasks = pending()
    if tasks:
        await asyncio.wait(tasks, timeout=timeout)
