"""Change tracker - history of agent side effects for revert capability."""

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

from agentruntime.errors import ChangeNotFound
from agentruntime.models.change import (
    Change,
    ChangeType,
    CommandExecuted,
    DirectoryCreated,
    FileCreated,
    FileDeleted,
    FileModified,
    Snapshot,
)

logger = logging.getLogger(__name__)


class ChangeTracker(Protocol):
    """Records per-task mutations and exposes snapshot/revert primitives."""

    async def create_snapshot(self, task_id: str, root_dir: Path) -> Snapshot: ...

    async def get_task_changes(self, task_id: str) -> list[Change]: ...

    async def get_all_changes(self) -> list[Change]: ...

    async def mark_reverted(self, change_id: str) -> bool: ...


class InMemoryChangeTracker:
    """
    Process-local change tracker.

    Changes are appended in creation order. Snapshots capture the git state
    of a working directory (branch, HEAD, dirty files) before a task runs;
    outside a git repository they fall back to ``unknown`` and empty values.
    """

    def __init__(self, git_binary: str = "git") -> None:
        self.git_binary = git_binary
        self._changes: list[Change] = []
        self._index: dict[str, Change] = {}
        self._snapshots: dict[str, Snapshot] = {}
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    async def record(
        self,
        task_id: str,
        change_type: ChangeType,
        after_content: Optional[str] = None,
        metadata: Optional[dict] = None,
        can_revert: bool = True,
    ) -> str:
        change = Change(
            task_id=task_id,
            change_type=change_type,
            after_content=after_content,
            metadata=dict(metadata or {}),
            can_revert=can_revert,
        )
        async with self._lock:
            self._changes.append(change)
            self._index[change.id] = change
        logger.debug(f"Recorded {change.kind.value} change {change.id} for task {task_id}")
        return change.id

    async def record_file_created(self, task_id: str, path: Path, content: str) -> str:
        return await self.record(task_id, FileCreated(path=path), after_content=content)

    async def record_file_modified(
        self, task_id: str, path: Path, before_content: str, after_content: str
    ) -> str:
        return await self.record(
            task_id,
            FileModified(path=path, before_content=before_content),
            after_content=after_content,
        )

    async def record_file_deleted(self, task_id: str, path: Path, content: str) -> str:
        return await self.record(task_id, FileDeleted(path=path, before_content=content))

    async def record_directory_created(self, task_id: str, path: Path) -> str:
        return await self.record(task_id, DirectoryCreated(path=path))

    async def record_command(
        self,
        task_id: str,
        command: str,
        working_dir: Path,
        output: Optional[str] = None,
    ) -> str:
        return await self.record(
            task_id,
            CommandExecuted(command=command, working_dir=working_dir),
            after_content=output,
            metadata={"command": command},
            can_revert=False,
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_task_changes(self, task_id: str) -> list[Change]:
        """All changes for a task in creation order, reverted ones included."""
        async with self._lock:
            return [c.model_copy() for c in self._changes if c.task_id == task_id]

    async def get_all_changes(self) -> list[Change]:
        async with self._lock:
            return [c.model_copy() for c in self._changes]

    async def get_revertible_changes(self, task_id: Optional[str] = None) -> list[Change]:
        async with self._lock:
            return [
                c.model_copy()
                for c in self._changes
                if c.can_revert and not c.reverted and (task_id is None or c.task_id == task_id)
            ]

    async def mark_reverted(self, change_id: str) -> bool:
        """Flip a change to reverted; False when it already was."""
        async with self._lock:
            change = self._index.get(change_id)
            if change is None:
                raise ChangeNotFound(change_id)
            if change.reverted:
                return False
            change.reverted = True
            return True

    def get_snapshot(self, task_id: str) -> Optional[Snapshot]:
        return self._snapshots.get(task_id)

    # -------------------------------------------------------------------------
    # Snapshots
    # -------------------------------------------------------------------------

    async def create_snapshot(self, task_id: str, root_dir: Path) -> Snapshot:
        """Capture git state of ``root_dir`` before the task mutates it."""
        root_dir = Path(root_dir)
        if not root_dir.is_dir():
            raise FileNotFoundError(f"Snapshot root does not exist: {root_dir}")

        branch = await self._git(root_dir, "rev-parse", "--abbrev-ref", "HEAD")
        head = await self._git(root_dir, "rev-parse", "HEAD")
        diff = await self._git(root_dir, "diff", "--name-only", "HEAD")

        snapshot = Snapshot(
            task_id=task_id,
            commit_hash=head,
            branch=branch or "unknown",
            working_dir=root_dir,
            changed_files=[root_dir / line for line in (diff or "").splitlines() if line],
        )
        self._snapshots[task_id] = snapshot
        logger.info(
            f"Snapshot for task {task_id}: branch={snapshot.branch} "
            f"head={snapshot.commit_hash or '-'} dirty={len(snapshot.changed_files)}"
        )
        return snapshot

    async def _git(self, cwd: Path, *args: str) -> Optional[str]:
        """Run a git subcommand; None when git is missing or the call fails."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self.git_binary,
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            logger.debug(f"git unavailable: {e}")
            return None
        stdout, _ = await proc.communicate()
        if proc.returncode != 0:
            return None
        return stdout.decode("utf-8", errors="replace").strip()
