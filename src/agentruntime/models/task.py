"""Task model - core unit of orchestrated work."""

from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from agentruntime.models.enums import TaskPriority, TaskStatus
from agentruntime.utils.time import utc_now


class Task(BaseModel):
    """A unit of work with priority, dependencies and a bounded retry lifecycle."""

    # Identity (immutable after creation)
    id: str = Field(default_factory=lambda: str(uuid4()))

    # What to do
    description: str
    goal: str

    # Ordering
    priority: TaskPriority = TaskPriority.NORMAL
    dependencies: frozenset[str] = Field(default_factory=frozenset)

    # Status
    status: TaskStatus = TaskStatus.QUEUED

    # Timestamps
    created_at: datetime = Field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    # Outcome (populated when terminal)
    result: Optional[Any] = None
    error: Optional[str] = None

    # Self-correction log, appended between attempts; goal stays untouched
    corrections: list[str] = Field(default_factory=list)
    attempts: int = 0

    metadata: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def new(
        cls,
        description: str,
        goal: str,
        priority: TaskPriority = TaskPriority.NORMAL,
        dependencies: Iterable[str] = (),
        metadata: Optional[dict[str, Any]] = None,
    ) -> "Task":
        """Create a queued task with a fresh id."""
        return cls(
            description=description,
            goal=goal,
            priority=priority,
            dependencies=frozenset(dependencies),
            metadata=dict(metadata or {}),
        )

    def is_terminal(self) -> bool:
        """Check if task is in a terminal state."""
        return self.status.is_terminal()

    def can_transition_to(self, new_status: TaskStatus) -> bool:
        """Check if transition to new status is valid per state machine."""
        valid_transitions: dict[TaskStatus, set[TaskStatus]] = {
            TaskStatus.QUEUED: {TaskStatus.RUNNING, TaskStatus.CANCELLED},
            TaskStatus.RUNNING: {
                TaskStatus.COMPLETED,
                TaskStatus.FAILED,
                TaskStatus.CANCELLED,
            },
            TaskStatus.COMPLETED: set(),
            TaskStatus.FAILED: set(),
            TaskStatus.CANCELLED: set(),
        }
        return new_status in valid_transitions.get(self.status, set())


class TaskOutcome(BaseModel):
    """What `ExecutionEngine.execute` reports back to the caller."""

    task_id: str
    status: TaskStatus
    result: Optional[Any] = None
    error: Optional[str] = None
    attempts: int = 0
    corrections: list[str] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == TaskStatus.COMPLETED
