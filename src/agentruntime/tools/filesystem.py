"""Built-in file and command tools that record their side effects."""

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Any, Optional

from agentruntime.config import Settings, settings as default_settings
from agentruntime.errors import ValidationError
from agentruntime.tools.registry import ToolRegistry
from agentruntime.tracking.change_tracker import InMemoryChangeTracker

logger = logging.getLogger(__name__)


class FileTools:
    """Tool handlers bound to a change tracker and a root directory."""

    def __init__(
        self,
        tracker: InMemoryChangeTracker,
        config: Optional[Settings] = None,
        root: Optional[Path] = None,
    ):
        self.tracker = tracker
        self.config = config or default_settings
        self.root = Path(root) if root is not None else self.config.resolve_working_dir()

    def _resolve(self, raw: str) -> Path:
        candidate = Path(raw)
        return candidate if candidate.is_absolute() else self.root / candidate

    @staticmethod
    def _task_id(args: dict[str, Any]) -> str:
        task_id = args.get("task_id")
        if not task_id:
            raise ValidationError("task_id is required to attribute side effects")
        return str(task_id)

    async def read_file(self, args: dict[str, Any]) -> dict[str, Any]:
        path = self._resolve(args["path"])
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        return {"path": str(path), "content": content}

    async def write_file(self, args: dict[str, Any]) -> dict[str, Any]:
        task_id = self._task_id(args)
        path = self._resolve(args["path"])
        content = str(args.get("content", ""))

        existed = await asyncio.to_thread(path.exists)
        before = await asyncio.to_thread(path.read_text, encoding="utf-8") if existed else None

        def _write() -> list[Path]:
            created: list[Path] = []
            parent = path.parent
            while not parent.exists():
                created.append(parent)
                parent = parent.parent
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
            # Outermost first; revert walks changes newest first.
            return list(reversed(created))

        new_dirs = await asyncio.to_thread(_write)
        for directory in new_dirs:
            await self.tracker.record_directory_created(task_id, directory)

        if before is None:
            change_id = await self.tracker.record_file_created(task_id, path, content)
        else:
            change_id = await self.tracker.record_file_modified(task_id, path, before, content)
        return {"path": str(path), "created": before is None, "change_id": change_id}

    async def delete_file(self, args: dict[str, Any]) -> dict[str, Any]:
        task_id = self._task_id(args)
        path = self._resolve(args["path"])
        before = await asyncio.to_thread(path.read_text, encoding="utf-8")
        await asyncio.to_thread(path.unlink)
        change_id = await self.tracker.record_file_deleted(task_id, path, before)
        return {"path": str(path), "deleted": True, "change_id": change_id}

    async def run_command(self, args: dict[str, Any]) -> dict[str, Any]:
        task_id = self._task_id(args)
        command = str(args["command"])
        argv = shlex.split(command)
        if not argv:
            raise ValidationError("Command is empty after parsing")
        if argv[0] not in self.config.allowed_commands:
            raise ValidationError(f"Command not allowed: {argv[0]}")

        cwd = self._resolve(args.get("cwd") or ".")
        proc = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.config.command_timeout_seconds
            )
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            raise TimeoutError(
                f"Command timed out after {self.config.command_timeout_seconds}s: {command}"
            )

        output = stdout.decode("utf-8", errors="replace")
        await self.tracker.record_command(task_id, command, cwd, output)
        if proc.returncode != 0:
            raise RuntimeError(
                f"Command exited with {proc.returncode}: "
                f"{stderr.decode('utf-8', errors='replace').strip()}"
            )
        return {"command": command, "exit_code": proc.returncode, "stdout": output}


def register_filesystem_tools(
    registry: ToolRegistry,
    tracker: InMemoryChangeTracker,
    config: Optional[Settings] = None,
    root: Optional[Path] = None,
) -> FileTools:
    """Register read_file, write_file, delete_file and run_command."""
    tools = FileTools(tracker, config=config, root=root)
    registry.register(
        "read_file",
        tools.read_file,
        description="Read a text file",
        capability_tags=("file", "read"),
        required_params=("path",),
    )
    registry.register(
        "write_file",
        tools.write_file,
        description="Create or overwrite a text file",
        capability_tags=("file", "write", "code"),
        required_params=("task_id", "path"),
    )
    registry.register(
        "delete_file",
        tools.delete_file,
        description="Delete a file",
        capability_tags=("file", "delete"),
        required_params=("task_id", "path"),
    )
    registry.register(
        "run_command",
        tools.run_command,
        description="Run an allow-listed command",
        capability_tags=("command", "terminal", "shell"),
        required_params=("task_id", "command"),
    )
    logger.info(f"Registered filesystem tools rooted at {tools.root}")
    return tools
