"""
Shutdown Coordinator

Tracks in-flight request tasks by request event id and lets the process wait
for them to finish before exiting.
"""

import asyncio
import logging
import signal
from typing import Any, Coroutine

logger = logging.getLogger("nwc-bridge.shutdown")


class ShutdownCoordinator:
    """Owns the set of in-flight request tasks and the shutdown signal."""

    def __init__(self, poll_interval: float = 1.0) -> None:
        self.poll_interval = poll_interval
        self._tasks: dict[str, asyncio.Task[Any]] = {}
        self._shutdown = asyncio.Event()

    def track(self, request_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        """
        Run a request handler as a tracked task.

        Args:
            request_id: Id of the request event
            coro: Handler coroutine

        Returns:
            The task, or None if the id is already in flight
        """
        if request_id in self._tasks:
            logger.debug(f"Request {request_id} already in flight, skipping")
            coro.close()
            return None

        task = asyncio.create_task(coro)
        self._tasks[request_id] = task
        task.add_done_callback(lambda _t: self._tasks.pop(request_id, None))
        return task

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._tasks

    def request_shutdown(self) -> None:
        if not self._shutdown.is_set():
            logger.info("Shutdown requested")
            self._shutdown.set()

    async def wait_for_shutdown(self) -> None:
        await self._shutdown.wait()

    def install_signal_handlers(self) -> None:
        """Request shutdown on SIGINT and SIGTERM."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                signal.signal(sig, lambda *_: loop.call_soon_threadsafe(self.request_shutdown))

    async def drain(self) -> None:
        """Wait until every tracked task has finished."""
        while self._tasks:
            logger.info(f"Waiting for {len(self._tasks)} active requests")
            await asyncio.wait(list(self._tasks.values()), timeout=self.poll_interval)
        logger.info("All requests finished")
