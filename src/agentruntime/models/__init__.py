"""Agent runtime data models."""

from agentruntime.models.change import (
    Change,
    ChangeType,
    CommandExecuted,
    DirectoryCreated,
    DirectoryDeleted,
    FileCreated,
    FileDeleted,
    FileModified,
    FileRenamed,
    GitCheckout,
    GitCommit,
    Snapshot,
)
from agentruntime.models.enums import (
    ChangeKind,
    TaskPriority,
    TaskStatus,
)
from agentruntime.models.events import (
    Reasoning,
    StepCompleted,
    StepFailed,
    StepStarted,
    TaskCancelled,
    TaskCompleted,
    TaskFailed,
    TaskQueued,
    TaskStarted,
    TimelineEvent,
    TodoUpdated,
    ToolCalled,
    ToolResult,
    parse_timeline_event,
)
from agentruntime.models.task import Task, TaskOutcome

__all__ = [
    "Change",
    "ChangeKind",
    "ChangeType",
    "CommandExecuted",
    "DirectoryCreated",
    "DirectoryDeleted",
    "FileCreated",
    "FileDeleted",
    "FileModified",
    "FileRenamed",
    "GitCheckout",
    "GitCommit",
    "Reasoning",
    "Snapshot",
    "StepCompleted",
    "StepFailed",
    "StepStarted",
    "Task",
    "TaskCancelled",
    "TaskCompleted",
    "TaskFailed",
    "TaskOutcome",
    "TaskPriority",
    "TaskQueued",
    "TaskStarted",
    "TaskStatus",
    "TimelineEvent",
    "TodoUpdated",
    "ToolCalled",
    "ToolResult",
    "parse_timeline_event",
]
