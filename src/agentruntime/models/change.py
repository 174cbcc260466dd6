"""Change model - recorded side effects attributed to a task."""

from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, Field

from agentruntime.models.enums import ChangeKind
from agentruntime.utils.time import utc_now


class FileCreated(BaseModel):
    kind: Literal["file_created"] = "file_created"
    path: Path


class FileModified(BaseModel):
    kind: Literal["file_modified"] = "file_modified"
    path: Path
    before_content: str


class FileDeleted(BaseModel):
    kind: Literal["file_deleted"] = "file_deleted"
    path: Path
    before_content: str


class FileRenamed(BaseModel):
    kind: Literal["file_renamed"] = "file_renamed"
    path: Path
    old_path: Path


class DirectoryCreated(BaseModel):
    kind: Literal["directory_created"] = "directory_created"
    path: Path


class DirectoryDeleted(BaseModel):
    kind: Literal["directory_deleted"] = "directory_deleted"
    path: Path


class CommandExecuted(BaseModel):
    kind: Literal["command_executed"] = "command_executed"
    command: str
    working_dir: Path


class GitCommit(BaseModel):
    kind: Literal["git_commit"] = "git_commit"
    hash: str
    message: str


class GitCheckout(BaseModel):
    kind: Literal["git_checkout"] = "git_checkout"
    branch: str


ChangeType = Annotated[
    Union[
        FileCreated,
        FileModified,
        FileDeleted,
        FileRenamed,
        DirectoryCreated,
        DirectoryDeleted,
        CommandExecuted,
        GitCommit,
        GitCheckout,
    ],
    Field(discriminator="kind"),
]


class Change(BaseModel):
    """A single recorded side effect.

    Changes for one task are ordered by creation; ``reverted`` flips from
    False to True exactly once, via the tracker's ``mark_reverted``.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    task_id: str
    change_type: ChangeType
    timestamp: datetime = Field(default_factory=utc_now)
    after_content: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    can_revert: bool = True
    reverted: bool = False

    @property
    def kind(self) -> ChangeKind:
        return ChangeKind(self.change_type.kind)


class Snapshot(BaseModel):
    """Git state captured before a task runs."""

    task_id: str
    timestamp: datetime = Field(default_factory=utc_now)
    commit_hash: Optional[str] = None
    branch: str = "unknown"
    working_dir: Path
    changed_files: list[Path] = Field(default_factory=list)
