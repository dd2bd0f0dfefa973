"""
background.py - Named, awaitable background tasks.

Fire-and-forget work (cache revalidation, finalization polling) is spawned
here instead of being left dangling. Failures are routed to the logger and
the observability sink only; callers never see them. Tests call `drain()` to
wait for detached work deterministically.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Optional, Set

from loguru import logger

from ..domain.events import BackgroundTaskFailed, event_header
from ..ports.telemetry import ObservabilitySink, safe_emit


class BackgroundTasks:
    def __init__(self, sink: Optional[ObservabilitySink] = None):
        self.sink = sink
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[Any], name: str) -> asyncio.Task:
        """Detach `coro`; its outcome is logged, never raised to the spawner."""
        task = asyncio.create_task(self._guard(coro, name), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guard(self, coro: Awaitable[Any], name: str) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            logger.debug(f"BACKGROUND_CANCELLED | {name}")
            raise
        except Exception as exc:
            logger.warning(f"BACKGROUND_FAILED | {name} | {type(exc).__name__}: {exc}")
            safe_emit(
                self.sink,
                BackgroundTaskFailed(**event_header("background"), task_name=name, error=str(exc)),
            )
            return None

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)
