"""Task store - pending queue, active table and completion log."""

import asyncio
import logging
from typing import Any, Optional

from agentruntime.config import Settings, settings as default_settings
from agentruntime.errors import InvalidStateTransition, TaskNotFound, ValidationError
from agentruntime.events.sink import EventSink, TimelineRecorder, publish_safely
from agentruntime.models import (
    Task,
    TaskCancelled,
    TaskQueued,
    TaskStatus,
)
from agentruntime.models.events import TimelineEvent
from agentruntime.observability.metrics import metrics
from agentruntime.utils.time import utc_now

logger = logging.getLogger(__name__)


class TaskStore:
    """
    Owns every task known to the runtime.

    Three collections:
    - pending: ordered by priority, FIFO within a priority
    - active: tasks currently executing, keyed by id
    - log: completed, failed and cancelled tasks, never deleted

    All structural mutations happen under one ``asyncio.Lock``. The lock is
    released before any event is published and is never held across I/O.
    Reads hand out copies so callers cannot mutate stored state.
    """

    def __init__(self, sink: Optional[EventSink] = None, config: Optional[Settings] = None):
        self.sink: EventSink = sink if sink is not None else TimelineRecorder()
        self.config = config or default_settings
        self._pending: list[Task] = []
        self._active: dict[str, Task] = {}
        self._log: list[Task] = []
        self._log_index: dict[str, Task] = {}
        self._lock = asyncio.Lock()

    # =========================================================================
    # Queue operations
    # =========================================================================

    async def enqueue(self, task: Task) -> str:
        """Insert a task before the first pending task of strictly lower priority."""
        if task.status != TaskStatus.QUEUED:
            raise ValidationError(
                f"Task {task.id} cannot be enqueued from status {task.status.value}"
            )
        if task.started_at is not None or task.completed_at is not None:
            raise ValidationError(f"Task {task.id} has already been run")

        async with self._lock:
            if self._knows(task.id):
                raise ValidationError(f"Task already exists: {task.id}")

            task = task.model_copy(deep=True)
            insert_at = next(
                (
                    i
                    for i, pending in enumerate(self._pending)
                    if pending.priority.rank < task.priority.rank
                ),
                len(self._pending),
            )
            self._pending.insert(insert_at, task)
            self._record_depth()

        await self._emit(
            TaskQueued(task_id=task.id, description=task.description, priority=task.priority)
        )
        logger.info(f"Task queued: {task.id} (priority: {task.priority.value})")
        return task.id

    async def dequeue_next(self) -> Optional[Task]:
        """Remove and return the first pending task whose dependencies all completed.

        Pending order is scanned as stored, so a ready lower-priority task is
        returned ahead of a dependency-blocked higher-priority one.
        """
        async with self._lock:
            for i, task in enumerate(self._pending):
                if self._dependencies_met(task):
                    del self._pending[i]
                    self._record_depth()
                    return task.model_copy(deep=True)
        return None

    async def cancel(self, task_id: str, reason: str) -> Task:
        """Cancel a pending or active task and record it in the log."""
        if not reason or not reason.strip():
            raise ValidationError("Cancellation reason must not be empty")

        async with self._lock:
            task = self._take_pending(task_id)
            if task is None:
                task = self._active.pop(task_id, None)
            if task is None:
                raise TaskNotFound(task_id)

            task.status = TaskStatus.CANCELLED
            task.error = reason
            task.completed_at = utc_now()
            self._append_log(task)
            self._record_depth()
            snapshot = task.model_copy(deep=True)

        await self._emit(TaskCancelled(task_id=task_id, reason=reason))
        logger.info(f"Task cancelled: {task_id} ({reason})")
        return snapshot

    # =========================================================================
    # Engine-facing transitions
    # =========================================================================

    async def start(self, task: Task) -> Task:
        """Mark a dequeued task running and move it into the active table."""
        async with self._lock:
            if not task.can_transition_to(TaskStatus.RUNNING):
                raise InvalidStateTransition(task.status.value, TaskStatus.RUNNING.value)
            if task.id in self._active or task.id in self._log_index:
                raise ValidationError(f"Task already started: {task.id}")
            self._take_pending(task.id)

            task.status = TaskStatus.RUNNING
            task.started_at = utc_now()
            self._active[task.id] = task.model_copy(deep=True)
            self._record_depth()
            return task

    async def record_attempt(self, task_id: str, attempts: int, corrections: list[str]) -> None:
        """Mirror attempt count and correction log onto the active record."""
        async with self._lock:
            active = self._active.get(task_id)
            if active is not None:
                active.attempts = attempts
                active.corrections = list(corrections)

    async def finish(
        self,
        task_id: str,
        status: TaskStatus,
        result: Any = None,
        error: Optional[str] = None,
    ) -> Optional[Task]:
        """Move an active task to the log with a terminal status.

        Returns None when the task is no longer active (it was cancelled while
        running); the cancelled record is left untouched.
        """
        if status not in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            raise InvalidStateTransition(TaskStatus.RUNNING.value, status.value)

        async with self._lock:
            task = self._active.pop(task_id, None)
            if task is None:
                return None
            task.status = status
            task.completed_at = utc_now()
            task.result = result
            task.error = error
            self._append_log(task)
            self._record_depth()
            return task.model_copy(deep=True)

    def is_active(self, task_id: str) -> bool:
        return task_id in self._active

    # =========================================================================
    # Reads
    # =========================================================================

    def status_of(self, task_id: str) -> Optional[Task]:
        """Look a task up in the active table, then pending, then the log."""
        task = self._active.get(task_id)
        if task is None:
            task = next((t for t in self._pending if t.id == task_id), None)
        if task is None:
            task = self._log_index.get(task_id)
        return task.model_copy(deep=True) if task is not None else None

    def list_all(self) -> list[Task]:
        """Every known task, newest first."""
        tasks = [*self._pending, *self._active.values(), *self._log]
        tasks.sort(key=lambda t: t.created_at, reverse=True)
        return [t.model_copy(deep=True) for t in tasks]

    def pending(self) -> list[Task]:
        return [t.model_copy(deep=True) for t in self._pending]

    def completed_log(self) -> list[Task]:
        return [t.model_copy(deep=True) for t in self._log]

    def pending_count(self) -> int:
        return len(self._pending)

    def active_count(self) -> int:
        return len(self._active)

    # =========================================================================
    # Internals (call with the lock held)
    # =========================================================================

    def _knows(self, task_id: str) -> bool:
        return (
            task_id in self._active
            or task_id in self._log_index
            or any(t.id == task_id for t in self._pending)
        )

    def _dependencies_met(self, task: Task) -> bool:
        for dep_id in task.dependencies:
            dep = self._log_index.get(dep_id)
            if dep is None or dep.status != TaskStatus.COMPLETED:
                return False
        return True

    def _take_pending(self, task_id: str) -> Optional[Task]:
        for i, task in enumerate(self._pending):
            if task.id == task_id:
                return self._pending.pop(i)
        return None

    def _append_log(self, task: Task) -> None:
        self._log.append(task)
        self._log_index[task.id] = task

    def _record_depth(self) -> None:
        metrics.set_gauge("tasks_pending", len(self._pending))
        metrics.set_gauge("tasks_active", len(self._active))

    async def _emit(self, event: TimelineEvent) -> None:
        await publish_safely(self.sink, self.config.timeline_topic, event)
