"""Scheduler background loop - feeds ready tasks to the engine."""

import asyncio
import logging
import random
from typing import Optional

from agentruntime.engine.core import ExecutionEngine
from agentruntime.models import TaskOutcome

logger = logging.getLogger("agentruntime.scheduler")


class Scheduler:
    """
    Polls the store for ready tasks and executes them concurrently.

    - At most ``max_concurrent_tasks`` executions run at once
    - Idle polls wait a jittered interval (±20%) or until shutdown
    - Outcomes are kept in ``outcomes`` keyed by task id
    """

    def __init__(self, engine: ExecutionEngine):
        self.engine = engine
        self.config = engine.config
        self.outcomes: dict[str, TaskOutcome] = {}
        self._slots = asyncio.Semaphore(self.config.max_concurrent_tasks)
        self._running: set[asyncio.Task] = set()
        self._loop_task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    async def start(self) -> None:
        """Start the scheduler loop."""
        if self.is_running:
            return
        self._shutdown_event = asyncio.Event()
        self._loop_task = asyncio.create_task(self._run())

    async def stop(self, timeout: float = 10.0) -> None:
        """Stop polling and wait for in-flight executions."""
        if self._shutdown_event:
            self._shutdown_event.set()

        if self._loop_task:
            try:
                await asyncio.wait_for(self._loop_task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Scheduler loop did not stop gracefully, cancelling")
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass

        if self._running:
            await asyncio.gather(*self._running, return_exceptions=True)

        self._loop_task = None
        self._shutdown_event = None

    async def run_until_idle(self) -> dict[str, TaskOutcome]:
        """Execute ready tasks until nothing is ready and nothing is running."""
        while True:
            launched = await self._launch_ready()
            if not launched and not self._running:
                return dict(self.outcomes)
            if self._running:
                await asyncio.wait(self._running, return_when=asyncio.FIRST_COMPLETED)

    async def _run(self) -> None:
        base_interval = self.config.scheduler_poll_interval_seconds
        logger.info(f"Scheduler loop started (base interval: {base_interval}s with ±20% jitter)")

        while not self._shutdown_event.is_set():
            try:
                launched = await self._launch_ready()
            except Exception as e:
                logger.error(f"Scheduler error: {e}", exc_info=True)
                launched = 0

            if launched:
                continue

            jittered_interval = base_interval * random.uniform(0.8, 1.2)
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=jittered_interval)
            except asyncio.TimeoutError:
                pass

        logger.info("Scheduler loop stopped")

    async def _launch_ready(self) -> int:
        """Start every ready task a free slot allows; returns how many started."""
        launched = 0
        while not self._slots.locked():
            task = await self.engine.store.dequeue_next()
            if task is None:
                break
            await self._slots.acquire()
            job = asyncio.create_task(self._execute(task))
            self._running.add(job)
            job.add_done_callback(self._running.discard)
            launched += 1
        return launched

    async def _execute(self, task) -> None:
        try:
            self.outcomes[task.id] = await self.engine.execute(task)
        except Exception as e:
            logger.error(f"Execution of task {task.id} raised: {e}", exc_info=True)
        finally:
            self._slots.release()
