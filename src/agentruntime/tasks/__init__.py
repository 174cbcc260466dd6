"""Agent runtime background tasks."""

from agentruntime.tasks.scheduler import Scheduler

__all__ = ["Scheduler"]
