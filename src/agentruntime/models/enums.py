"""Agent runtime enumerations."""

from enum import Enum


class TaskPriority(str, Enum):
    """Task priority levels, lowest first."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric ordering key (higher = more urgent)."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    TaskPriority.LOW: 0,
    TaskPriority.NORMAL: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.CRITICAL: 3,
}


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def terminal_states(cls) -> set["TaskStatus"]:
        """Return terminal states."""
        return {cls.COMPLETED, cls.FAILED, cls.CANCELLED}

    def is_terminal(self) -> bool:
        """Check if status is terminal."""
        return self in self.terminal_states()


class ChangeKind(str, Enum):
    """Kinds of side effects recorded by the change tracker."""

    FILE_CREATED = "file_created"
    FILE_MODIFIED = "file_modified"
    FILE_DELETED = "file_deleted"
    FILE_RENAMED = "file_renamed"
    DIRECTORY_CREATED = "directory_created"
    DIRECTORY_DELETED = "directory_deleted"
    COMMAND_EXECUTED = "command_executed"
    GIT_COMMIT = "git_commit"
    GIT_CHECKOUT = "git_checkout"

