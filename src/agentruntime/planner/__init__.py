"""External planner interface.

A planner accepts a whole goal, plans and runs it out-of-band, and reports
per-tool results when asked. The engine can delegate attempts to it instead
of executing locally.
"""

from typing import Any, Optional, Protocol

from pydantic import BaseModel, Field


class Goal(BaseModel):
    """Goal handed to the planner, built from a task and its corrections."""

    task_id: str
    description: str
    goal: str
    priority: str
    constraints: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class ToolExecutionResult(BaseModel):
    tool_id: str
    success: bool
    result: Any = None
    error: Optional[str] = None
    execution_time_ms: int = 0


class GoalStatus(BaseModel):
    """Progress of a submitted goal; ``completed`` marks the final report."""

    goal_id: str
    completed: bool = False
    tool_results: list[ToolExecutionResult] = Field(default_factory=list)


class PlannerClient(Protocol):
    async def submit_goal(self, goal: Goal) -> str: ...

    async def get_goal_status(self, goal_id: str) -> Optional[GoalStatus]: ...


__all__ = ["Goal", "GoalStatus", "PlannerClient", "ToolExecutionResult"]
