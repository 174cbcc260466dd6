"""Agent runtime - priority/dependency-aware task orchestration with self-correction and revert."""

from agentruntime.config import Settings, settings
from agentruntime.models import Task, TaskOutcome, TaskPriority, TaskStatus
from agentruntime.runtime import AgentRuntime, configure_logging

__version__ = "0.1.0"

__all__ = [
    "AgentRuntime",
    "Settings",
    "Task",
    "TaskOutcome",
    "TaskPriority",
    "TaskStatus",
    "configure_logging",
    "settings",
]
