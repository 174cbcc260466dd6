"""Agent runtime errors."""


class AgentRuntimeError(Exception):
    """Base error for agent runtime operations."""

    def __init__(self, message: str, code: str = "AGENT_RUNTIME_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class ValidationError(AgentRuntimeError):
    """Bad or missing input."""

    def __init__(self, message: str):
        super().__init__(message, "VALIDATION_ERROR")


class InvocationError(AgentRuntimeError):
    """A tool, planner or LLM call failed."""

    def __init__(self, message: str, tool_id: str | None = None):
        super().__init__(message, "INVOCATION_ERROR")
        self.tool_id = tool_id


class NotFoundError(AgentRuntimeError):
    """Unknown id passed to an operation."""

    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message, code)


class TaskNotFound(NotFoundError):
    """Task does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}", "TASK_NOT_FOUND")
        self.task_id = task_id


class ChangeNotFound(NotFoundError):
    """Change does not exist."""

    def __init__(self, change_id: str):
        super().__init__(f"Change not found: {change_id}", "CHANGE_NOT_FOUND")
        self.change_id = change_id


class ToolNotFound(NotFoundError):
    """Tool is not registered."""

    def __init__(self, tool_id: str):
        super().__init__(f"Tool not registered: {tool_id}", "TOOL_NOT_FOUND")
        self.tool_id = tool_id


class InvalidStateTransition(AgentRuntimeError):
    """Invalid task state transition."""

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            f"Invalid transition from {current_status} to {requested_status}",
            "INVALID_STATE_TRANSITION",
        )
        self.current_status = current_status
        self.requested_status = requested_status


class RevertError(AgentRuntimeError):
    """An undo step failed; remaining changes were left untouched."""

    def __init__(
        self,
        task_id: str,
        change_id: str,
        reason: str,
        reverted_ids: list[str] | None = None,
    ):
        super().__init__(
            f"Failed to revert change {change_id}: {reason}",
            "REVERT_FAILED",
        )
        self.task_id = task_id
        self.change_id = change_id
        self.reason = reason
        self.reverted_ids = list(reverted_ids or [])
