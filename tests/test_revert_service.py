"""
RevertService and change tracker tests.
"""

import asyncio

import pytest

from agentruntime.engine import RevertService
from agentruntime.errors import ChangeNotFound, RevertError
from agentruntime.models import ChangeKind, GitCommit
from agentruntime.tracking import InMemoryChangeTracker


@pytest.mark.asyncio
async def test_create_then_modify_reverts_newest_first(tracker, reverter, tmp_path):
    """Undoing in reverse order leaves no trace of a created-then-edited file."""
    path = tmp_path / "notes.md"
    path.write_text("v1")
    created = await tracker.record_file_created("t1", path, "v1")
    path.write_text("v2")
    modified = await tracker.record_file_modified("t1", path, "v1", "v2")

    reverted = await reverter.revert_task("t1")

    assert reverted == [modified, created]
    assert not path.exists()


@pytest.mark.asyncio
async def test_second_revert_is_a_noop(tracker, reverter, tmp_path):
    path = tmp_path / "a.txt"
    path.write_text("new")
    await tracker.record_file_created("t1", path, "new")
    other = tmp_path / "b.txt"
    other.write_text("after")
    await tracker.record_file_modified("t1", other, "before", "after")

    first = await reverter.revert_task("t1")
    other.write_text("edited by user")
    second = await reverter.revert_task("t1")

    assert len(first) == 2
    assert second == []
    assert not path.exists()
    assert other.read_text() == "edited by user"
    assert all(c.reverted for c in await tracker.get_task_changes("t1"))


@pytest.mark.asyncio
async def test_deleted_file_is_restored_with_parents(tracker, reverter, tmp_path):
    path = tmp_path / "deep" / "nested" / "keep.txt"
    await tracker.record_file_deleted("t1", path, "precious")

    await reverter.revert_task("t1")

    assert path.read_text() == "precious"


@pytest.mark.asyncio
async def test_modified_file_gets_before_content(tracker, reverter, tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("changed")
    await tracker.record_file_modified("t1", path, "original", "changed")

    await reverter.revert_task("t1")

    assert path.read_text() == "original"


@pytest.mark.asyncio
async def test_missing_created_file_counts_as_reverted(tracker, reverter, tmp_path):
    change_id = await tracker.record_file_created("t1", tmp_path / "gone.txt", "x")

    assert await reverter.revert_task("t1") == [change_id]


@pytest.mark.asyncio
async def test_command_and_git_changes_are_skipped(tracker, reverter, tmp_path):
    command_id = await tracker.record_command("t1", "make build", tmp_path, "ok")
    commit_id = await tracker.record("t1", GitCommit(hash="abc123", message="wip"))

    reverted = await reverter.revert_task("t1")

    assert reverted == []
    changes = {c.id: c for c in await tracker.get_task_changes("t1")}
    assert not changes[command_id].reverted
    assert not changes[command_id].can_revert
    assert not changes[commit_id].reverted


@pytest.mark.asyncio
async def test_revert_only_touches_the_given_task(tracker, reverter, tmp_path):
    mine = tmp_path / "mine.txt"
    theirs = tmp_path / "theirs.txt"
    mine.write_text("m")
    theirs.write_text("t")
    await tracker.record_file_created("t1", mine, "m")
    await tracker.record_file_created("t2", theirs, "t")

    await reverter.revert_task("t1")

    assert not mine.exists()
    assert theirs.exists()
    assert await tracker.get_revertible_changes("t2")


@pytest.mark.asyncio
async def test_partial_failure_keeps_earlier_reverts(tracker, reverter, recorder, tmp_path):
    blocked = tmp_path / "is_a_dir"
    blocked.mkdir()
    failing = await tracker.record_file_modified("t1", blocked, "old", "new")
    created = tmp_path / "created.txt"
    created.write_text("c")
    created_id = await tracker.record_file_created("t1", created, "c")

    with pytest.raises(RevertError) as exc_info:
        await reverter.revert_task("t1")

    error = exc_info.value
    assert error.change_id == failing
    assert error.reverted_ids == [created_id]
    assert error.message.startswith(f"Failed to revert change {failing}:")
    assert not created.exists()

    changes = {c.id: c for c in await tracker.get_task_changes("t1")}
    assert changes[created_id].reverted
    assert not changes[failing].reverted

    (event,) = recorder.events_for("t1")
    assert event.type == "reasoning"
    assert event.thought == f"Reverted 1 changes; stopped at change {failing}"


@pytest.mark.asyncio
async def test_revert_emits_summary_reasoning(tracker, reverter, recorder, tmp_path):
    path = tmp_path / "x.txt"
    path.write_text("x")
    await tracker.record_file_created("t1", path, "x")

    await reverter.revert_task("t1")

    (event,) = recorder.events_for("t1")
    assert event.thought == "Reverted 1 changes"


@pytest.mark.asyncio
async def test_unknown_task_reverts_nothing(reverter):
    assert await reverter.revert_task("nobody") == []


@pytest.mark.asyncio
async def test_change_history_in_creation_order(tracker, reverter, tmp_path):
    first = await tracker.record_file_created("t1", tmp_path / "a", "a")
    second = await tracker.record_command("t1", "ls", tmp_path)
    third = await tracker.record_file_created("t2", tmp_path / "b", "b")

    history = await reverter.change_history("t1")
    everything = await reverter.all_change_history()

    assert [c.id for c in history] == [first, second]
    assert [c.kind for c in history] == [ChangeKind.FILE_CREATED, ChangeKind.COMMAND_EXECUTED]
    assert [c.id for c in everything] == [first, second, third]


@pytest.mark.asyncio
async def test_mark_reverted_unknown_change(tracker):
    with pytest.raises(ChangeNotFound):
        await tracker.mark_reverted("missing")


@pytest.mark.asyncio
async def test_snapshot_outside_git_repo(tracker, tmp_path):
    snapshot = await tracker.create_snapshot("t1", tmp_path)

    assert snapshot.working_dir == tmp_path
    assert tracker.get_snapshot("t1") is snapshot


@pytest.mark.asyncio
async def test_snapshot_of_missing_directory_raises(tracker, tmp_path):
    with pytest.raises(FileNotFoundError):
        await tracker.create_snapshot("t1", tmp_path / "nope")


@pytest.mark.asyncio
async def test_concurrent_reverts_undo_each_change_once(tracker, reverter, tmp_path):
    path = tmp_path / "shared.txt"
    path.write_text("after")
    change_id = await tracker.record_file_modified("t1", path, "before", "after")

    first, second = await asyncio.gather(
        reverter.revert_task("t1"), reverter.revert_task("t1")
    )

    assert first + second == [change_id]
    assert path.read_text() == "before"


@pytest.mark.asyncio
async def test_mark_reverted_flips_only_once(tracker, tmp_path):
    change_id = await tracker.record_file_created("t1", tmp_path / "a", "a")

    assert await tracker.mark_reverted(change_id) is True
    assert await tracker.mark_reverted(change_id) is False


@pytest.mark.asyncio
async def test_value_error_during_restore_becomes_revert_error(tracker, reverter, recorder, tmp_path):
    created = tmp_path / "ok.txt"
    created.write_text("c")
    bad = await tracker.record_file_modified("t1", tmp_path / "bad\x00name", "old", "new")
    created_id = await tracker.record_file_created("t1", created, "c")

    with pytest.raises(RevertError) as exc_info:
        await reverter.revert_task("t1")

    assert exc_info.value.change_id == bad
    assert exc_info.value.reverted_ids == [created_id]
    assert recorder.events_for("t1")[-1].thought == f"Reverted 1 changes; stopped at change {bad}"


@pytest.mark.asyncio
async def test_vanished_change_becomes_revert_error(tracker, recorder, config, tmp_path):
    class ForgetfulTracker(InMemoryChangeTracker):
        async def mark_reverted(self, change_id: str) -> bool:
            raise ChangeNotFound(change_id)

    forgetful = ForgetfulTracker()
    path = tmp_path / "x.txt"
    path.write_text("x")
    change_id = await forgetful.record_file_created("t1", path, "x")

    with pytest.raises(RevertError) as exc_info:
        await RevertService(forgetful, recorder, config).revert_task("t1")

    assert exc_info.value.change_id == change_id
    assert exc_info.value.reverted_ids == []
    assert "Change not found" in exc_info.value.reason
    assert recorder.types_for("t1") == ["reasoning"]
