import asyncio
import inspect
import logging
from typing import Any, Callable, Optional, Set

from starlette.concurrency import run_in_threadpool

logger = logging.getLogger(__name__)


class BackgroundRunner:
    """Fire-and-forget task spawner for best-effort side effects.

    Spawned work is never awaited by the request that scheduled it. Failures are
    logged and swallowed here, so callers never observe them. Blocking callables
    run in the threadpool; coroutine functions run on the event loop.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def spawn(self, func: Callable[..., Any], *args, name: Optional[str] = None, **kwargs) -> asyncio.Task:
        """Schedule ``func(*args, **kwargs)``; must be called from a running event loop."""
        loop = asyncio.get_running_loop()
        label = name or getattr(func, "__name__", "background-task")
        if inspect.iscoroutinefunction(func):
            work = func(*args, **kwargs)
        else:
            work = run_in_threadpool(func, *args, **kwargs)
        task = loop.create_task(self._guard(work, label), name=label)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.debug(f"Spawned background task {label}")
        return task

    async def _guard(self, work, label: str) -> None:
        try:
            await work
            logger.debug(f"Background task {label} finished")
        except asyncio.CancelledError:
            logger.warning(f"Background task {label} was cancelled")
            raise
        except Exception as e:
            logger.error(f"Background task {label} failed: {str(e)}", exc_info=True)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
