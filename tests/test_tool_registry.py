"""
ToolRegistry and built-in filesystem tool tests.
"""

import sys
from pathlib import Path

import pytest

from agentruntime.errors import InvocationError, ToolNotFound, ValidationError
from agentruntime.models import ChangeKind
from agentruntime.tools import register_filesystem_tools


@pytest.fixture
def file_tools(registry, tracker, config, tmp_path):
    cfg = config.model_copy(update={"allowed_commands": [Path(sys.executable).name, sys.executable]})
    return register_filesystem_tools(registry, tracker, config=cfg, root=tmp_path)


def test_register_rejects_bad_ids_and_duplicates(registry):
    registry.register("echo", lambda args: args)

    with pytest.raises(ValidationError):
        registry.register("echo", lambda args: args)
    with pytest.raises(ValidationError):
        registry.register("Bad Id", lambda args: args)
    with pytest.raises(ValidationError):
        registry.register("", lambda args: args)
    with pytest.raises(ValidationError):
        registry.register("not_callable", "nope")

    assert len(registry) == 1
    assert "echo" in registry


def test_list_tools_in_registration_order(registry):
    registry.register("b.tool", lambda a: None, capability_tags=["Browser"])
    registry.register("a.tool", lambda a: None)

    tools = registry.list_tools()

    assert [t.id for t in tools] == ["b.tool", "a.tool"]
    assert tools[0].capability_tags == ("browser",)


def test_unregister(registry):
    registry.register("echo", lambda args: args)
    registry.unregister("echo")

    assert "echo" not in registry
    with pytest.raises(ToolNotFound):
        registry.unregister("echo")


@pytest.mark.asyncio
async def test_execute_sync_and_async_handlers(registry):
    async def async_echo(args):
        return args["value"] * 2

    registry.register("sync.echo", lambda args: args["value"])
    registry.register("async.echo", async_echo)

    assert await registry.execute("sync.echo", {"value": 3}) == 3
    assert await registry.execute("async.echo", {"value": 3}) == 6


@pytest.mark.asyncio
async def test_execute_unknown_tool(registry):
    with pytest.raises(ToolNotFound):
        await registry.execute("missing", {})


@pytest.mark.asyncio
async def test_missing_required_param_is_validation_error(registry):
    calls = []
    registry.register("needs.path", calls.append, required_params=("path",))

    with pytest.raises(ValidationError) as exc_info:
        await registry.execute("needs.path", {"path": ""})

    assert "path" in exc_info.value.message
    assert calls == []


@pytest.mark.asyncio
async def test_handler_exception_becomes_invocation_error(registry):
    def explode(args):
        raise KeyError("value")

    registry.register("explode", explode)

    with pytest.raises(InvocationError) as exc_info:
        await registry.execute("explode", {})

    assert exc_info.value.tool_id == "explode"
    assert exc_info.value.message.startswith("explode failed:")


@pytest.mark.asyncio
async def test_write_file_records_created_then_modified(file_tools, registry, tracker, tmp_path):
    first = await registry.execute(
        "write_file", {"task_id": "t1", "path": "docs/out.md", "content": "one"}
    )
    second = await registry.execute(
        "write_file", {"task_id": "t1", "path": "docs/out.md", "content": "two"}
    )

    assert first["created"] is True
    assert second["created"] is False
    assert (tmp_path / "docs" / "out.md").read_text() == "two"

    changes = await tracker.get_task_changes("t1")
    assert [c.kind for c in changes] == [
        ChangeKind.DIRECTORY_CREATED,
        ChangeKind.FILE_CREATED,
        ChangeKind.FILE_MODIFIED,
    ]
    assert changes[0].change_type.path == tmp_path / "docs"
    assert changes[2].change_type.before_content == "one"
    assert changes[2].after_content == "two"


@pytest.mark.asyncio
async def test_read_and_delete_file(file_tools, registry, tracker, tmp_path):
    (tmp_path / "data.txt").write_text("payload")

    read = await registry.execute("read_file", {"path": "data.txt"})
    deleted = await registry.execute("delete_file", {"task_id": "t1", "path": "data.txt"})

    assert read["content"] == "payload"
    assert deleted["deleted"] is True
    assert not (tmp_path / "data.txt").exists()
    (change,) = await tracker.get_task_changes("t1")
    assert change.change_type.before_content == "payload"


@pytest.mark.asyncio
async def test_read_missing_file_is_invocation_error(file_tools, registry):
    with pytest.raises(InvocationError) as exc_info:
        await registry.execute("read_file", {"path": "absent.txt"})
    assert "No such file" in exc_info.value.message


@pytest.mark.asyncio
async def test_write_requires_task_id(file_tools, registry):
    with pytest.raises(ValidationError):
        await registry.execute("write_file", {"path": "x.txt", "content": "x"})


@pytest.mark.asyncio
async def test_run_command_records_non_revertible_change(file_tools, registry, tracker):
    command = f'"{sys.executable}" -c "print(42)"'
    result = await registry.execute("run_command", {"task_id": "t1", "command": command})

    assert result["exit_code"] == 0
    assert result["stdout"].strip() == "42"
    (change,) = await tracker.get_task_changes("t1")
    assert change.kind == ChangeKind.COMMAND_EXECUTED
    assert change.can_revert is False


@pytest.mark.asyncio
async def test_run_command_rejects_unlisted_executable(file_tools, registry, tracker):
    with pytest.raises(ValidationError):
        await registry.execute("run_command", {"task_id": "t1", "command": "rm -rf /"})
    assert await tracker.get_task_changes("t1") == []


@pytest.mark.asyncio
async def test_run_command_non_zero_exit_fails(file_tools, registry, tracker):
    command = f'"{sys.executable}" -c "import sys; sys.exit(3)"'
    with pytest.raises(InvocationError) as exc_info:
        await registry.execute("run_command", {"task_id": "t1", "command": command})

    assert "exited with 3" in exc_info.value.message
    assert len(await tracker.get_task_changes("t1")) == 1


@pytest.mark.asyncio
async def test_revert_removes_directories_created_by_write(file_tools, registry, tracker, reverter, tmp_path):
    """Nested parents are recorded outermost first and removed innermost first."""
    await registry.execute(
        "write_file", {"task_id": "t1", "path": "a/b/c/out.txt", "content": "x"}
    )
    changes = await tracker.get_task_changes("t1")
    assert [c.change_type.path for c in changes[:3]] == [
        tmp_path / "a",
        tmp_path / "a" / "b",
        tmp_path / "a" / "b" / "c",
    ]

    reverted = await reverter.revert_task("t1")

    assert len(reverted) == 4
    assert not (tmp_path / "a").exists()
    assert list(tmp_path.iterdir()) == []


@pytest.mark.asyncio
async def test_revert_keeps_directory_that_gained_other_files(file_tools, registry, tracker, reverter, tmp_path):
    await registry.execute("write_file", {"task_id": "t1", "path": "out/report.txt", "content": "x"})
    (tmp_path / "out" / "user_notes.txt").write_text("mine")

    reverted = await reverter.revert_task("t1")

    assert len(reverted) == 1
    assert not (tmp_path / "out" / "report.txt").exists()
    assert (tmp_path / "out" / "user_notes.txt").read_text() == "mine"
    (directory_change,) = [c for c in await tracker.get_task_changes("t1") if c.kind == ChangeKind.DIRECTORY_CREATED]
    assert not directory_change.reverted
