"""Fire-and-forget task dispatch with isolated error handling."""

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class BackgroundTaskRunner:
    """Runs best-effort coroutines off the request path.

    Failures are logged and never reach the caller. Pending tasks are tracked
    so shutdown and tests can wait for them with ``drain()``.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def dispatch(
        self,
        name: str,
        func: Callable[..., Awaitable[Any]],
        *args: Any,
        **kwargs: Any,
    ) -> asyncio.Task:
        """Schedule ``func(*args, **kwargs)`` without awaiting it.

        Args:
            name: Label used in logs
            func: Coroutine function to run
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            The scheduled task
        """
        task = asyncio.get_running_loop().create_task(self._run(name, func, *args, **kwargs), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, name: str, func: Callable[..., Awaitable[Any]], *args: Any, **kwargs: Any) -> None:
        try:
            await func(*args, **kwargs)
        except asyncio.CancelledError:
            logger.info(f"Background task cancelled: {name}")
            raise
        except Exception:
            logger.error(f"Background task failed: {name}", exc_info=True, extra={"task_name": name})

    @property
    def pending(self) -> int:
        """Number of tasks not finished yet."""
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every pending task (including ones they spawn) finishes."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending tasks and wait for them to unwind."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
