"""Timeline events - ordered, append-only record of task lifecycles."""

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from agentruntime.models.enums import TaskPriority
from agentruntime.utils.time import utc_now


class _Event(BaseModel):
    """Fields shared by every timeline event."""

    task_id: str
    timestamp: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


class TaskQueued(_Event):
    type: Literal["task_queued"] = "task_queued"
    description: str
    priority: TaskPriority


class TaskStarted(_Event):
    type: Literal["task_started"] = "task_started"
    description: str


class StepStarted(_Event):
    type: Literal["step_started"] = "step_started"
    step_index: int
    step_description: str


class StepCompleted(_Event):
    type: Literal["step_completed"] = "step_completed"
    step_index: int
    result: Any = None


class StepFailed(_Event):
    type: Literal["step_failed"] = "step_failed"
    step_index: int
    error: str


class ToolCalled(_Event):
    type: Literal["tool_called"] = "tool_called"
    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ToolResult(_Event):
    type: Literal["tool_result"] = "tool_result"
    tool_name: str
    success: bool
    result: Any = None
    error: Optional[str] = None


class TaskCompleted(_Event):
    type: Literal["task_completed"] = "task_completed"
    result: Any = None


class TaskFailed(_Event):
    type: Literal["task_failed"] = "task_failed"
    error: str


class TaskCancelled(_Event):
    type: Literal["task_cancelled"] = "task_cancelled"
    reason: str


class Reasoning(_Event):
    type: Literal["reasoning"] = "reasoning"
    thought: str
    duration_ms: Optional[int] = None


class TodoUpdated(_Event):
    type: Literal["todo_updated"] = "todo_updated"
    todos: list[dict[str, Any]] = Field(default_factory=list)


TimelineEvent = Annotated[
    Union[
        TaskQueued,
        TaskStarted,
        StepStarted,
        StepCompleted,
        StepFailed,
        ToolCalled,
        ToolResult,
        TaskCompleted,
        TaskFailed,
        TaskCancelled,
        Reasoning,
        TodoUpdated,
    ],
    Field(discriminator="type"),
]

timeline_event_adapter: TypeAdapter[TimelineEvent] = TypeAdapter(TimelineEvent)


def parse_timeline_event(data: dict[str, Any]) -> TimelineEvent:
    """Rebuild a timeline event from its JSON form."""
    return timeline_event_adapter.validate_python(data)
