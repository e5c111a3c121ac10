"""Fire-and-forget background work for webhook handlers.

Slack expects an acknowledgement within three seconds, while processing a
mention means several provider round-trips. The webhook handler hands the
mention to ``TaskRunner.spawn`` and returns immediately; the runner owns
the asyncio.Task from then on. ``spawn_once`` drops a name it has
already seen, which absorbs Slack redelivering the same event.

Lifecycle:
    spawn → RUNNING → DONE
                    → FAILED (exception logged, never re-raised)

There is no cancellation or timeout for an in-flight task; ``drain`` only
waits for them, at shutdown and in tests.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any, Callable, Coroutine

import structlog

logger = structlog.get_logger()


class TaskRunner:
    """Keeps strong references to detached tasks until they finish.

    Usage:
        runner = TaskRunner()
        runner.spawn("mention", orchestrator.handle_mention, mention)
    """

    def __init__(self, recent_limit: int = 1024) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()
        self._recent: OrderedDict[str, None] = OrderedDict()
        self._recent_limit = recent_limit

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def spawn(
        self,
        name: str,
        handler: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
    ) -> asyncio.Task[Any]:
        task = asyncio.create_task(handler(*args), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        logger.debug("background_task_spawned", task=name, in_flight=len(self._tasks))
        return task

    def spawn_once(
        self,
        name: str,
        handler: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
    ) -> asyncio.Task[Any] | None:
        """Spawn unless a task with this name was spawned recently.

        Returns None for a repeat. Only the last ``recent_limit`` names are
        remembered, in this process.
        """
        if name in self._recent:
            self._recent.move_to_end(name)
            logger.info("background_task_duplicate", task=name)
            return None
        self._recent[name] = None
        while len(self._recent) > self._recent_limit:
            self._recent.popitem(last=False)
        return self.spawn(name, handler, *args)

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning("background_task_cancelled", task=task.get_name())
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self) -> None:
        """Wait for every task spawned so far, including ones they spawn."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
