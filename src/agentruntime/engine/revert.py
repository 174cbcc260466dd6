"""Revert service - undoes a task's recorded changes, newest first."""

import asyncio
import errno
import logging
from pathlib import Path
from typing import Optional

from agentruntime.config import Settings, settings as default_settings
from agentruntime.errors import ChangeNotFound, RevertError
from agentruntime.events.sink import EventSink, TimelineRecorder, publish_safely
from agentruntime.models import (
    Change,
    CommandExecuted,
    DirectoryCreated,
    FileCreated,
    FileDeleted,
    FileModified,
    Reasoning,
)
from agentruntime.observability.metrics import metrics
from agentruntime.tracking.change_tracker import ChangeTracker

logger = logging.getLogger(__name__)


def _delete_file(path: Path) -> bool:
    """Remove a file; False when it was already gone."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


def _restore_file(path: Path, content: str, create_parents: bool) -> None:
    if create_parents:
        path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def _remove_empty_dir(path: Path) -> bool:
    """Remove a directory the agent created; False when something else now lives in it."""
    try:
        path.rmdir()
    except FileNotFoundError:
        return True
    except OSError as e:
        if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
            return False
        raise
    return True


class RevertService:
    """
    Best-effort undo over a ChangeTracker's per-task log.

    - FileCreated: delete the file
    - FileModified: write ``before_content`` back
    - FileDeleted: recreate parents and write ``before_content`` back
    - DirectoryCreated: remove the directory if it is empty
    - CommandExecuted and every other kind: warn and skip

    Reverts of one task are serialized, and a change counts as reverted only
    when this pass flipped its flag, so concurrent or repeated passes never
    undo or report the same change twice. The first failure stops the walk;
    reverts applied before it stay applied.
    """

    def __init__(
        self,
        tracker: ChangeTracker,
        sink: Optional[EventSink] = None,
        config: Optional[Settings] = None,
    ):
        self.tracker = tracker
        self.sink: EventSink = sink if sink is not None else TimelineRecorder()
        self.config = config or default_settings
        self._task_locks: dict[str, asyncio.Lock] = {}

    async def revert_task(self, task_id: str) -> list[str]:
        """Revert every outstanding change of a task; returns the reverted ids."""
        lock = self._task_locks.setdefault(task_id, asyncio.Lock())
        async with lock:
            return await self._revert_outstanding(task_id)

    async def _revert_outstanding(self, task_id: str) -> list[str]:
        changes = await self.tracker.get_task_changes(task_id)
        reverted_ids: list[str] = []

        # Tracker returns changes in creation order.
        for change in reversed(changes):
            if change.reverted:
                continue
            try:
                undone = await self._revert_change(change)
                flipped = await self.tracker.mark_reverted(change.id) if undone else False
            except (OSError, ValueError, ChangeNotFound) as e:
                reason = e.message if isinstance(e, ChangeNotFound) else str(e)
                logger.error(f"Failed to revert change {change.id}: {reason}")
                await self._report(task_id, reverted_ids, failed_change=change.id)
                raise RevertError(task_id, change.id, reason, reverted_ids) from e
            if not flipped:
                continue
            reverted_ids.append(change.id)

        await self._report(task_id, reverted_ids)
        return reverted_ids

    async def change_history(self, task_id: str) -> list[Change]:
        return await self.tracker.get_task_changes(task_id)

    async def all_change_history(self) -> list[Change]:
        return await self.tracker.get_all_changes()

    async def _revert_change(self, change: Change) -> bool:
        """Apply one undo. Returns False for kinds this layer cannot revert."""
        change_type = change.change_type

        if isinstance(change_type, FileCreated):
            existed = await asyncio.to_thread(_delete_file, change_type.path)
            if existed:
                logger.info(f"Reverted file creation: {change_type.path}")
            else:
                logger.info(f"File already absent, creation treated as reverted: {change_type.path}")
            return True

        if isinstance(change_type, FileModified):
            await asyncio.to_thread(
                _restore_file, change_type.path, change_type.before_content, False
            )
            logger.info(f"Reverted file modification: {change_type.path}")
            return True

        if isinstance(change_type, FileDeleted):
            await asyncio.to_thread(
                _restore_file, change_type.path, change_type.before_content, True
            )
            logger.info(f"Reverted file deletion: {change_type.path}")
            return True

        if isinstance(change_type, DirectoryCreated):
            removed = await asyncio.to_thread(_remove_empty_dir, change_type.path)
            if not removed:
                logger.warning(f"Directory not empty, leaving in place: {change_type.path}")
                return False
            logger.info(f"Reverted directory creation: {change_type.path}")
            return True

        if isinstance(change_type, CommandExecuted):
            logger.warning(f"Cannot revert command execution: {change_type.command}")
            return False

        logger.warning(f"Revert not implemented for change type: {change_type.kind}")
        return False

    async def _report(
        self,
        task_id: str,
        reverted_ids: list[str],
        failed_change: Optional[str] = None,
    ) -> None:
        metrics.inc_counter("changes_reverted_total", len(reverted_ids))
        thought = f"Reverted {len(reverted_ids)} changes"
        if failed_change:
            thought += f"; stopped at change {failed_change}"
        await publish_safely(
            self.sink,
            self.config.timeline_topic,
            Reasoning(task_id=task_id, thought=thought),
        )
